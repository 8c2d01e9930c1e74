"""Receipt parser turning OCR output into a ParsedReceipt.

This module has no dependencies on Flask or the worker pool, so it can be used from
the CLI, from the scan service or from standalone scripts alike.
"""

from collections.abc import Sequence
from datetime import date
import logging

from receipt_ocr.parsing.dates import extract_date
from receipt_ocr.parsing.layout import parse_ocr_result
from receipt_ocr.parsing.models import DateReason, OcrResult, ParsedReceipt, Word
from receipt_ocr.parsing.normalize import today_iso
from receipt_ocr.parsing.totals import extract_total, split_lines

logger = logging.getLogger(__name__)


class ReceiptParser:
    """Stateless facade over the total, date and layout extractors."""

    def parse(
        self,
        text: str | None,
        words: Sequence[Word | dict] | None = None,
        today: date | None = None,
    ) -> ParsedReceipt:
        """Parse OCR text (and optional word boxes) into structured receipt facts.

        Never raises for malformed or empty input: a missing total is None and a
        missing date falls back to ``today`` with ``DateReason.FALLBACK_TODAY``.

        Args:
            text: Raw text extracted from OCR
            words: Optional engine words with bounding boxes
            today: Reference day; defaults to the current date

        Returns:
            ParsedReceipt
        """
        text = text or ""
        lines = split_lines(text)
        logger.debug(f"Parsing receipt text with {len(lines)} lines")

        layout = parse_ocr_result(text, words)
        total = extract_total(text)
        date_candidate = extract_date(text, today)

        if date_candidate:
            date_iso, date_raw, date_reason = date_candidate.iso, date_candidate.raw_token, date_candidate.reason
        else:
            logger.debug("No date found, falling back to today")
            date_iso, date_raw, date_reason = today_iso(today), None, DateReason.FALLBACK_TODAY

        if layout.vendor_candidates:
            merchant = layout.vendor_candidates[0]
        else:
            merchant = lines[0] if lines else ""

        return ParsedReceipt(
            merchant=merchant,
            amount_candidates=layout.candidates,
            total=total,
            date=date_iso,
            date_raw=date_raw,
            date_reason=date_reason,
            line_count=len(lines),
            amount=layout.chosen,
            vendor_candidates=layout.vendor_candidates,
            date_candidate=date_candidate,
        )

    def parse_result(self, result: OcrResult, today: date | None = None) -> ParsedReceipt:
        """Parse the output of one OCR job."""
        return self.parse(result.text, result.words or None, today)
