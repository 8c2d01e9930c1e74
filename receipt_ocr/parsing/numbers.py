"""Number discovery in free OCR text."""

import logging
import re

from receipt_ocr.parsing.models import NumberMatch
from receipt_ocr.parsing.normalize import looks_numeric, normalize_grouped_digits, parse_cleaned_number, to_money

logger = logging.getLogger(__name__)

# A digit or a glyph OCR commonly returns instead of one
NUMBER_CHAR = r"[0-9OoIlSs|]"

# Numbers anchored by a currency marker; digit groups may be split by single spaces
CURRENCY_NUMBER_RE = re.compile(
    r"(?:₹|(?<![A-Za-z])(?:Rs\.?|INR|USD|EUR)|[$€£])\s*[-:]?\s*"
    rf"({NUMBER_CHAR}(?:(?:{NUMBER_CHAR}|[,.]|\s(?=\d{{3}}(?!\d)))*{NUMBER_CHAR})?)",
    re.IGNORECASE,
)

# Free-standing numbers of at least two characters, not glued to letters
BARE_NUMBER_RE = re.compile(rf"(?<![A-Za-z0-9])({NUMBER_CHAR}(?:{NUMBER_CHAR}|[,.])*{NUMBER_CHAR})(?![A-Za-z0-9])")

# Loose pattern kept for label lines where nothing else matched
LOOSE_NUMBER_RE = re.compile(rf"{NUMBER_CHAR}[0-9OoIlSs|\s,.]{{0,20}}{NUMBER_CHAR}")


def _to_match(raw: str, capture: str) -> NumberMatch | None:
    if not looks_numeric(capture):
        return None
    normalized = normalize_grouped_digits(capture)
    value = parse_cleaned_number(re.sub(r"[^\d.,]", "", normalized))
    if value is None:
        return None
    return NumberMatch(raw=raw.strip(), value=to_money(value), normalized=normalized)


def _collect(pattern: re.Pattern[str], text: str, seen: set[tuple], out: list[NumberMatch]) -> None:
    for match in pattern.finditer(text):
        number = _to_match(match.group(0), match.group(1))
        if number is None:
            continue
        key = (number.value, number.normalized)
        if key not in seen:
            seen.add(key)
            out.append(number)


def find_numbers_in_text(text: str | None) -> list[NumberMatch]:
    """Find monetary-looking numbers in text.

    Currency-anchored numbers (``₹ 1 234.50``, ``Rs.500``, ``$12.00``) are preferred. Bare
    numbers are only collected when the text holds no currency-anchored number at all.
    Results keep reading order and are de-duplicated by value and normalized digits.

    Args:
        text: A line or a whole document

    Returns:
        List of NumberMatch, values rounded to cents
    """
    if not text:
        return []
    out: list[NumberMatch] = []
    seen: set[tuple] = set()
    _collect(CURRENCY_NUMBER_RE, text, seen, out)
    if not out:
        _collect(BARE_NUMBER_RE, text, seen, out)
    return out


def find_loose_numbers(text: str | None) -> list[NumberMatch]:
    """Loosely match digit runs, allowing spaces inside them."""
    if not text:
        return []
    out = []
    for match in LOOSE_NUMBER_RE.finditer(text):
        raw = match.group(0)
        number = _to_match(raw, raw)
        if number is not None:
            out.append(number)
    return out
