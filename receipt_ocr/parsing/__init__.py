"""Extraction engine: repair, numbers, totals, dates and layout-aware candidates."""

from receipt_ocr.parsing.dates import extract_date, extract_date_from_labels
from receipt_ocr.parsing.layout import cluster_words_into_lines, parse_ocr_result
from receipt_ocr.parsing.models import (
    AmountCandidate,
    BoundingBox,
    DateCandidate,
    DateReason,
    LayoutParseResult,
    OcrResult,
    ParsedReceipt,
    TotalExtractionResult,
    TotalReason,
    Word,
)
from receipt_ocr.parsing.numbers import find_numbers_in_text
from receipt_ocr.parsing.receipt_parser import ReceiptParser
from receipt_ocr.parsing.totals import extract_total

__all__ = [
    "AmountCandidate",
    "BoundingBox",
    "DateCandidate",
    "DateReason",
    "LayoutParseResult",
    "OcrResult",
    "ParsedReceipt",
    "ReceiptParser",
    "TotalExtractionResult",
    "TotalReason",
    "Word",
    "cluster_words_into_lines",
    "extract_date",
    "extract_date_from_labels",
    "extract_total",
    "find_numbers_in_text",
    "parse_ocr_result",
]
