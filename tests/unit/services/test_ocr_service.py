"""Tests for the receipt scan service."""

from collections.abc import Generator
from decimal import Decimal
import logging

import pytest

from receipt_ocr.exceptions import EngineFailureError
from receipt_ocr.ocr.context import OcrContext
from receipt_ocr.services.ocr_service import ImageVariant, ReceiptScanService

VARIANTS = [ImageVariant(path="gray.png", label="gray"), ImageVariant(path="thresh.png", label="thresh")]


@pytest.fixture
def context(engine_factory) -> Generator[OcrContext, None, None]:
    """Running OCR context on fake engines."""
    with OcrContext({"OCR_WORKER_COUNT": 2, "OCR_LOW_CONFIDENCE": 70}, engine_factory=engine_factory) as ctx:
        yield ctx


@pytest.fixture
def service(context: OcrContext) -> ReceiptScanService:
    """Scan service bound to the test context."""
    return ReceiptScanService(context)


class TestReceiptScanService:
    """Test ReceiptScanService.scan."""

    def test_confident_quick_pass(self, service, context, engine_factory, today) -> None:
        """A confident quick pass is used as is and recorded once."""
        result = service.scan("receipt.png", VARIANTS, today=today)

        assert result.method == "quick"
        assert result.variant == "quick"
        assert result.quality == "Excellent"
        assert result.config.page_seg_mode == 3
        assert result.parsed.merchant == "TEST STORE"
        assert result.parsed.total.value == Decimal("28.25")
        assert engine_factory.recognized == ["receipt.png"]

        assert context.tracker.count == 1
        assert context.tracker.max_record.filename == "receipt.png"
        assert context.tracker.max_record.variant == "quick"

    def test_text_is_normalized(self, service, engine_factory, today) -> None:
        """Bracket noise is cleaned before parsing."""
        engine_factory.results["receipt.png"] = {"text": "TEST STORE\nTOTAL [28.25]", "confidence": 90}
        result = service.scan("receipt.png", today=today)
        assert result.text == "TEST STORE\nTOTAL 28.25"
        assert result.parsed.total.value == Decimal("28.25")

    def test_low_confidence_tries_variants(self, service, context, engine_factory, today) -> None:
        """Every variant runs with each full configuration and the best one wins."""
        engine_factory.results.update(
            {
                "receipt.png": {"text": "T0TAL 2B.25", "confidence": 40},
                "gray.png": {"text": "STORE\nTOTAL 28.25", "confidence": 75},
                "thresh.png": {"text": "STORE\nTOTAL 28.25", "confidence": 88},
            }
        )
        result = service.scan("receipt.png", VARIANTS, filename="upload.jpg", today=today)

        assert result.method == "preprocessed"
        assert result.variant == "thresh"
        assert result.confidence == 88.0
        assert result.quality == "Excellent"
        # Equal confidence under the second configuration does not replace the first
        assert result.config.page_seg_mode == 6
        assert result.parsed.total.value == Decimal("28.25")

        assert sorted(engine_factory.recognized) == sorted(
            ["receipt.png", "gray.png", "gray.png", "thresh.png", "thresh.png"]
        )
        assert context.tracker.count == 5
        assert context.tracker.max_record.value == 88.0
        assert context.tracker.max_record.filename == "upload.jpg"

    def test_failing_variant_is_skipped(self, service, context, engine_factory, today, caplog) -> None:
        """An engine failure on one variant does not fail the scan."""
        engine_factory.results.update(
            {
                "receipt.png": {"text": "STORE", "confidence": 30},
                "thresh.png": {"text": "STORE\nTOTAL 9.99", "confidence": 72},
            }
        )
        engine_factory.failures["gray.png"] = ValueError("corrupt image")

        with caplog.at_level(logging.WARNING, logger="receipt_ocr.services.ocr_service"):
            result = service.scan("receipt.png", VARIANTS, today=today)

        assert result.variant == "thresh"
        assert result.quality == "Good"
        assert result.parsed.total.value == Decimal("9.99")
        assert context.tracker.count == 3
        assert "OCR variant gray" in caplog.text

    def test_low_confidence_without_variants(self, service, engine_factory, today) -> None:
        """Without variants the quick pass is kept however poor."""
        engine_factory.results["receipt.png"] = {"text": "TOTAL 3.00", "confidence": 40}
        result = service.scan("receipt.png", today=today)
        assert result.variant == "quick"
        assert result.quality == "Poor"
        assert result.to_dict()["confidence"] == 40.0

    def test_quick_pass_failure_propagates(self, service, engine_factory) -> None:
        """A failure on the quick pass is reported to the caller."""
        engine_factory.failures["receipt.png"] = RuntimeError("tesseract crashed")
        with pytest.raises(EngineFailureError, match="tesseract crashed"):
            service.scan("receipt.png", VARIANTS)

    def test_to_dict(self, service, today) -> None:
        """The scan result is JSON friendly."""
        data = service.scan("receipt.png", today=today).to_dict()
        assert data["method"] == "quick"
        assert data["config"]["page_seg_mode"] == 3
        assert data["parsed"]["total"]["value"] == "28.25"
        assert data["quality"] == "Excellent"
