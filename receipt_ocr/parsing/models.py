"""Typed records shared by the OCR pool and the extraction engine."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from receipt_ocr.parsing.normalize import iso_to_epoch_ms, to_display


class TotalReason(Enum):
    """How a total amount was obtained."""

    LABEL_PRIORITY_LAST = "label_priority_last"
    COMPUTED_FROM_SUBTOTAL_AND_TAXES = "computed_from_subtotal_and_taxes"
    REPAIRED_CANDIDATE_NEAR_EXPECTED = "repaired_candidate_near_expected"
    RANKED_CANDIDATE = "ranked_candidate"


class DateReason(Enum):
    """How a transaction date was obtained."""

    LABEL_MATCH_NUMERIC = "label_match_numeric"
    LABEL_MATCH_TEXTUAL = "label_match_textual"
    LABEL_FALLBACK = "label_fallback"
    RANKED = "ranked"
    FALLBACK_TODAY = "fallback:today"


@dataclass(frozen=True)
class BoundingBox:
    """Pixel box of a recognized word."""

    x0: float = 0.0
    y0: float = 0.0
    x1: float = 0.0
    y1: float = 0.0

    @property
    def mid_y(self) -> float:
        return (self.y0 + self.y1) / 2

    @classmethod
    def from_mapping(cls, data: Any) -> "BoundingBox":
        """Build a box from the key spellings engines commonly use.

        Accepts ``x0/y0/x1/y1``, ``left/top/right/bottom`` or ``x/y/w/h`` (also ``width/height``).
        """
        if isinstance(data, BoundingBox):
            return data
        if not isinstance(data, dict):
            return cls()

        def pick(*keys: str) -> float | None:
            for key in keys:
                value = data.get(key)
                if value is not None:
                    try:
                        return float(value)
                    except (TypeError, ValueError):
                        continue
            return None

        x0 = pick("x0", "left", "x") or 0.0
        y0 = pick("y0", "top", "y") or 0.0
        width = pick("w", "width") or 0.0
        height = pick("h", "height") or 0.0
        x1 = pick("x1", "right")
        y1 = pick("y1", "bottom")
        return cls(
            x0=x0,
            y0=y0,
            x1=x1 if x1 is not None else x0 + width,
            y1=y1 if y1 is not None else y0 + height,
        )


@dataclass(frozen=True)
class Word:
    """A single recognized word with its position."""

    text: str
    bbox: BoundingBox = field(default_factory=BoundingBox)
    confidence: float | None = None

    @classmethod
    def from_mapping(cls, data: Any) -> "Word":
        """Build a word from an engine dict (``text``, ``bbox``/``boundingBox``/``box``, ``confidence``/``conf``)."""
        if isinstance(data, Word):
            return data
        bbox_data = data.get("bbox") or data.get("boundingBox") or data.get("box") or {}
        confidence = data.get("confidence", data.get("conf"))
        try:
            confidence = float(confidence) if confidence is not None else None
        except (TypeError, ValueError):
            confidence = None
        return cls(text=str(data.get("text") or ""), bbox=BoundingBox.from_mapping(bbox_data), confidence=confidence)


@dataclass
class OcrResult:
    """Output of one OCR job."""

    text: str
    confidence: float
    words: list[Word] = field(default_factory=list)
    raw: Any = None


@dataclass(frozen=True)
class NumberMatch:
    """A number found in free text."""

    raw: str
    value: Decimal
    normalized: str


@dataclass(frozen=True)
class AmountCandidate:
    """A scored monetary candidate."""

    value: Decimal
    raw_token: str
    normalized_token: str
    line_index: int | None
    has_keyword: bool
    score: float
    confidence: float | None = None
    line_text: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": str(self.value),
            "raw_token": self.raw_token,
            "normalized_token": self.normalized_token,
            "line_index": self.line_index,
            "has_keyword": self.has_keyword,
            "score": self.score,
            "confidence": self.confidence,
            "line_text": self.line_text,
        }


@dataclass(frozen=True)
class DateCandidate:
    """A parsed date with provenance."""

    iso: str
    raw_token: str
    reason: DateReason
    score: float
    line_index: int | None = None
    source_line: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "iso": self.iso,
            "raw_token": self.raw_token,
            "reason": self.reason.value,
            "score": self.score,
            "line_index": self.line_index,
            "source_line": self.source_line,
        }


@dataclass(frozen=True)
class TotalExtractionResult:
    """Best-guess total and the evidence behind it."""

    value: Decimal
    raw_token: str
    reason: TotalReason
    subtotal: Decimal | None = None
    taxes: tuple[Decimal, ...] = ()

    @property
    def expected_net(self) -> Decimal | None:
        if self.subtotal is None:
            return None
        return self.subtotal + sum(self.taxes, Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": str(self.value),
            "raw_token": self.raw_token,
            "reason": self.reason.value,
            "subtotal": str(self.subtotal) if self.subtotal is not None else None,
            "taxes": [str(tax) for tax in self.taxes],
        }


@dataclass(frozen=True)
class LayoutParseResult:
    """Bounding-box-aware amount candidates for one OCR result."""

    chosen: AmountCandidate | None
    candidates: tuple[AmountCandidate, ...]
    vendor_candidates: tuple[str, ...]
    raw_lines: tuple[str, ...]


@dataclass(frozen=True)
class ParsedReceipt:
    """Structured facts extracted from a receipt."""

    merchant: str
    amount_candidates: tuple[AmountCandidate, ...]
    total: TotalExtractionResult | None
    date: str
    date_raw: str | None
    date_reason: DateReason
    line_count: int
    amount: AmountCandidate | None = None
    vendor_candidates: tuple[str, ...] = ()
    date_candidate: DateCandidate | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary with JSON serializable values."""
        return {
            "merchant": self.merchant,
            "amount": self.amount.to_dict() if self.amount else None,
            "amount_candidates": [candidate.to_dict() for candidate in self.amount_candidates],
            "vendor_candidates": list(self.vendor_candidates),
            "total": self.total.to_dict() if self.total else None,
            "date": self.date,
            "date_display": to_display(self.date),
            "date_epoch_ms": iso_to_epoch_ms(self.date),
            "date_raw": self.date_raw,
            "date_reason": self.date_reason.value,
            "line_count": self.line_count,
        }
