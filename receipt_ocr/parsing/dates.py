"""Transaction date extraction."""

from datetime import date
import logging
import re

from receipt_ocr.parsing.models import DateCandidate, DateReason
from receipt_ocr.parsing.normalize import (
    normalize_noisy_date_string,
    parse_numeric_date_token,
    parse_textual_date_token,
    safe_parse_numeric_token,
)
from receipt_ocr.parsing.totals import split_lines

logger = logging.getLogger(__name__)

_MONTH_ALT = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*"

DATE_LABEL_RE = re.compile(
    r"\b(?:bill\s+date|invoice\s+date|txn\s+date|transaction\s+date|date\s+of\s+purchase|date|dt)\b"
    r"\.?\s*[:\-]?\s*([^\n\r]{5,40})",
    re.IGNORECASE,
)
NUMERIC_DATE_RE = re.compile(
    r"(\d{1,4}[/\-.\s]\d{1,2}[/\-.\s]\d{2,4})(?:\s*(?:[01]?\d|2[0-3])[:.][0-5]\d(?:\s?[AaPp][Mm])?)?"
)
TEXTUAL_DATE_RE = re.compile(
    rf"(\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTH_ALT}\.?\s*,?\s*\d{{2,4}})"
    rf"|({_MONTH_ALT}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?\s*,?\s*\d{{2,4}})",
    re.IGNORECASE,
)

HEADER_KEYWORDS = ("receipt", "terminal", "invoice", "bill", "txn", "transaction")
HEADER_SCAN_LINES = 12
LABEL_SCORE = 200.0
NORMALIZED_BONUS = 8
UNANCHORED_SCORE = 30.0


def _first_part(candidate: str) -> str:
    """Cut a label capture at a wide gap or at a following time of day."""
    return re.split(r"\s{2,}|\s(?=\d{2}[:.]\d{2})", candidate.strip())[0].strip()


def _label_candidate(line_index: int, line: str, capture: str, today: date | None) -> DateCandidate | None:
    first_part = _first_part(capture)

    numeric = NUMERIC_DATE_RE.search(first_part)
    if numeric:
        iso = parse_numeric_date_token(numeric.group(1), today)
        if iso:
            return DateCandidate(iso, numeric.group(1), DateReason.LABEL_MATCH_NUMERIC, LABEL_SCORE, line_index, line)

    textual = TEXTUAL_DATE_RE.search(first_part)
    if textual:
        iso = parse_textual_date_token(textual.group(0), today)
        if iso:
            return DateCandidate(iso, textual.group(0), DateReason.LABEL_MATCH_TEXTUAL, LABEL_SCORE, line_index, line)

    iso = safe_parse_numeric_token(first_part, today)
    if iso:
        return DateCandidate(iso, first_part, DateReason.LABEL_FALLBACK, LABEL_SCORE, line_index, line)
    return None


def extract_date_from_labels(text: str | None, today: date | None = None) -> DateCandidate | None:
    """Find a date written after an explicit label such as ``Date:`` or ``Invoice Date``.

    Labels are tried in reading order; the first one followed by a parseable date wins.
    """
    for idx, line in enumerate(split_lines(text)):
        for match in DATE_LABEL_RE.finditer(line):
            candidate = _label_candidate(idx, line, match.group(1), today)
            if candidate:
                return candidate
    return None


def _header_indexes(lines: list[str]) -> list[int]:
    indexes = []
    for idx, line in enumerate(lines[:HEADER_SCAN_LINES]):
        lowered = line.lower()
        indexes.extend(idx for keyword in HEADER_KEYWORDS if keyword in lowered)
    return indexes


def score_date_line(line_index: int, header_indexes: list[int], normalized: bool) -> float:
    """Earlier lines score higher; lines at or near a header keyword get a bonus."""
    score = max(0, 100 - 2 * line_index)
    for header_index in header_indexes:
        distance = abs(header_index - line_index)
        if distance == 0:
            score += 40
        elif distance <= 2:
            score += 20 - distance * 5
    if normalized:
        score += NORMALIZED_BONUS
    return float(score)


def _tokens_in(line: str) -> list[str]:
    tokens = [match.group(1) for match in NUMERIC_DATE_RE.finditer(line)]
    tokens.extend(match.group(0) for match in TEXTUAL_DATE_RE.finditer(line))
    return tokens


def _parse_any(token: str, today: date | None) -> str | None:
    iso = parse_numeric_date_token(token, today) or safe_parse_numeric_token(token, today)
    if iso:
        return iso
    iso = parse_textual_date_token(re.sub(r"(\d+)(st|nd|rd|th)\b", r"\1", token, flags=re.IGNORECASE), today)
    if iso:
        return iso
    return parse_textual_date_token(re.sub(r"[^A-Za-z0-9 \-]", " ", token.replace(",", " ")), today)


def extract_date(text: str | None, today: date | None = None) -> DateCandidate | None:
    """Extract the most plausible transaction date.

    An explicitly labelled date wins. Otherwise every date-looking token is scored by
    how early its line is, how close it sits to a header keyword (receipt, invoice,
    terminal, ...) and whether the line needed confusable repair first. Ties favor the
    earlier line.

    Args:
        text: Full OCR text
        today: Reference day for the valid year window and 2-digit years

    Returns:
        DateCandidate, or None when nothing parses. Falling back to today is the caller's call.
    """
    if not text:
        return None
    labelled = extract_date_from_labels(text, today)
    if labelled:
        logger.debug(f"Date from label: {labelled.iso} ({labelled.raw_token!r})")
        return labelled

    lines = split_lines(text.replace("|", "I"))
    header_indexes = _header_indexes(lines)

    # (score, line index, token, source line)
    found: list[tuple[float, int, str, str]] = []
    for idx, line in enumerate(lines):
        tokens = _tokens_in(line)
        if tokens:
            found.extend((score_date_line(idx, header_indexes, False), idx, token, line) for token in tokens)
            continue
        repaired = normalize_noisy_date_string(line)
        if repaired != line:
            found.extend((score_date_line(idx, header_indexes, True), idx, token, repaired) for token in _tokens_in(repaired))

    if not found:
        whole = normalize_noisy_date_string(text.replace("|", "I"))
        found.extend((UNANCHORED_SCORE, len(lines), token, whole) for token in _tokens_in(whole))

    parsed: list[DateCandidate] = []
    for score, idx, token, source in found:
        iso = _parse_any(token, today)
        if iso:
            parsed.append(DateCandidate(iso, token, DateReason.RANKED, score, idx, source))
    if not parsed:
        return None

    best = min(parsed, key=lambda candidate: (-candidate.score, candidate.line_index))
    logger.debug(f"Ranked date: {best.iso} ({best.raw_token!r}) score={best.score}")
    return best
