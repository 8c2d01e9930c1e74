"""Receipt scanning through the OCR worker pool.

A quick recognition pass runs first. When its confidence is low, every preprocessed
variant of the image is recognized with each full configuration and the most
confident result is kept. The winning text is parsed into a ParsedReceipt.
"""

from collections.abc import Sequence
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import date
import logging
from typing import Any

from receipt_ocr.exceptions import OcrError
from receipt_ocr.ocr.context import OcrContext
from receipt_ocr.ocr.engine import EngineConfig
from receipt_ocr.ocr.stats import quality_label
from receipt_ocr.parsing.models import OcrResult, ParsedReceipt
from receipt_ocr.parsing.normalize import normalize_ocr_symbols
from receipt_ocr.parsing.receipt_parser import ReceiptParser

logger = logging.getLogger(__name__)

QUICK_VARIANT = "quick"


@dataclass(frozen=True)
class ImageVariant:
    """A preprocessed rendition of the source image (grayscale, thresholded, cropped...)."""

    path: str
    label: str


@dataclass(frozen=True)
class ScanResult:
    """Best recognition of a receipt and what was parsed from it."""

    parsed: ParsedReceipt
    text: str
    confidence: float
    quality: str
    variant: str
    config: EngineConfig

    @property
    def method(self) -> str:
        return "quick" if self.variant == QUICK_VARIANT else "preprocessed"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary with JSON serializable values."""
        return {
            "method": self.method,
            "variant": self.variant,
            "config": self.config.to_dict(),
            "text": self.text,
            "confidence": round(self.confidence, 2),
            "quality": self.quality,
            "parsed": self.parsed.to_dict(),
        }


class ReceiptScanService:
    """Service for recognizing and parsing receipt images."""

    def __init__(self, context: OcrContext, parser: ReceiptParser | None = None):
        """Initialize the scan service from the OCR context settings."""
        self.context = context
        self.parser = parser or context.parser
        settings = context.settings
        self.quick_psm = int(settings.get("OCR_QUICK_PSM", 3))
        self.full_psm = int(settings.get("OCR_FULL_PSM", 6))
        self.low_confidence = float(settings.get("OCR_LOW_CONFIDENCE", 70.0))
        self.prefer_inr = bool(settings.get("OCR_PREFER_INR", False))

    @property
    def full_configs(self) -> list[EngineConfig]:
        base = self.context.base_config
        return [base.with_page_seg_mode(self.full_psm), base.with_page_seg_mode(3)]

    def scan(
        self,
        image_path: str,
        variants: Sequence[ImageVariant] = (),
        filename: str | None = None,
        today: date | None = None,
    ) -> ScanResult:
        """Recognize and parse a receipt image.

        Args:
            image_path: Image for the quick pass
            variants: Preprocessed renditions tried when the quick pass is not confident enough
            filename: Name recorded with the quality statistics; defaults to ``image_path``
            today: Reference day for date extraction

        Returns:
            ScanResult for the most confident recognition

        Raises:
            OcrError: If the quick pass could not be scheduled or the engine failed on it
        """
        filename = filename or image_path
        quick_config = self.context.base_config.with_page_seg_mode(self.quick_psm)
        quick_result = self.context.pool.enqueue(image_path, quick_config).result()
        quick = self._track(quick_result, filename, QUICK_VARIANT, quick_config)

        best_result, best_variant, best_config = quick, QUICK_VARIANT, quick_config
        if quick.confidence < self.low_confidence and variants:
            logger.info(
                f"Quick OCR confidence {quick.confidence:.2f} below {self.low_confidence}, "
                f"trying {len(variants)} variants"
            )
            for variant, config, result in self._recognize_variants(variants):
                tracked = self._track(result, filename, variant.label, config)
                if tracked.confidence > best_result.confidence:
                    best_result, best_variant, best_config = tracked, variant.label, config

        parsed = self.parser.parse(best_result.text, best_result.words or None, today)
        logger.debug(f"Best OCR result for {filename}: variant={best_variant} confidence={best_result.confidence:.2f}")
        return ScanResult(
            parsed=parsed,
            text=best_result.text,
            confidence=best_result.confidence,
            quality=quality_label(best_result.confidence),
            variant=best_variant,
            config=best_config,
        )

    def _recognize_variants(
        self, variants: Sequence[ImageVariant]
    ) -> list[tuple[ImageVariant, EngineConfig, OcrResult]]:
        # Enqueue everything first so the pool can run variants in parallel
        submitted: list[tuple[ImageVariant, EngineConfig, Future[OcrResult]]] = [
            (variant, config, self.context.pool.enqueue(variant.path, config))
            for variant in variants
            for config in self.full_configs
        ]
        results = []
        for variant, config, future in submitted:
            try:
                results.append((variant, config, future.result()))
            except OcrError as e:
                logger.warning(f"OCR variant {variant.label} (psm={config.page_seg_mode}) failed: {e}")
        return results

    def _track(self, result: OcrResult, filename: str, variant: str, config: EngineConfig) -> OcrResult:
        """Normalize the text and record the confidence in the quality tracker."""
        tracker = self.context.tracker
        tracker.record_max(result.confidence, filename=filename, variant=variant, config=config.to_dict())
        tracker.record(result.confidence)
        return OcrResult(
            text=normalize_ocr_symbols(result.text, prefer_inr=self.prefer_inr),
            confidence=result.confidence,
            words=result.words,
            raw=result.raw,
        )
