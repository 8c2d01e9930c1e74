"""Character repair and token parsing for noisy OCR text.

Every function here is pure: the same input (and the same ``today``) always gives the
same output. ``today`` is injectable wherever the current year matters so callers and
tests can pin the century-rollover window.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
import re

# Visually similar glyphs OCR commonly returns in place of digits
CONFUSABLE_DIGITS: dict[str, str] = {
    "O": "0",
    "o": "0",
    "I": "1",
    "l": "1",
    "|": "1",
    "S": "5",
    "s": "5",
}
NUMERIC_SEPARATORS = frozenset(",.:-")

MONTHS: dict[str, int] = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}

MIN_YEAR = 1970
CENT = Decimal("0.01")
# Longer digit runs are barcodes or merged references, never amounts
MAX_INTEGER_DIGITS = 15

_CURRENCY_RE = re.compile(r"₹|(?<![A-Za-z])(?:Rs\.?|INR|USD|EUR)|[$€£]", re.IGNORECASE)
_ORDINAL_RE = re.compile(r"(\d)(st|nd|rd|th)\b", re.IGNORECASE)
_DIGITS_ONLY_RE = re.compile(r"[0-9]+")
_COMMA_DECIMAL_RE = re.compile(r",[0-9]{2}$")


def looks_numeric(token: str) -> bool:
    """Return True when a token is numeric enough for confusable repair.

    A token qualifies if it already holds a digit, or if it is made only of confusable
    glyphs and numeric separators with at least one separator (``lO.OO``). Ordinary
    words such as ``Total:`` never qualify.
    """
    if not token:
        return False
    if any(ch.isdigit() for ch in token):
        return True
    has_separator = any(ch in NUMERIC_SEPARATORS for ch in token)
    return has_separator and all(ch in CONFUSABLE_DIGITS or ch in NUMERIC_SEPARATORS for ch in token)


def repair_confusables(token: str) -> str:
    """Map confusable glyphs onto digits inside a numeric-looking token."""
    if not looks_numeric(token):
        return token
    return "".join(CONFUSABLE_DIGITS.get(ch, ch) for ch in token)


def repair_text(text: str) -> str:
    """Apply :func:`repair_confusables` to every whitespace-separated token."""
    return "".join(repair_confusables(part) for part in re.split(r"(\s+)", text))


def to_money(value: Decimal) -> Decimal:
    """Round a value to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _resolve_separators(cleaned: str) -> str:
    """Decide which separator is the decimal point and drop the rest."""
    has_comma = "," in cleaned
    has_period = "." in cleaned
    if has_comma and has_period:
        # Whichever separator comes last is the decimal point
        if cleaned.rfind(",") > cleaned.rfind("."):
            return cleaned.replace(".", "").replace(",", ".")
        return cleaned.replace(",", "")
    if has_comma:
        if cleaned.count(",") == 1 and _COMMA_DECIMAL_RE.search(cleaned):
            return cleaned.replace(",", ".")
        return cleaned.replace(",", "")
    return cleaned


def parse_cleaned_number(cleaned: str) -> Decimal | None:
    """Parse a string already reduced to digits, commas and periods.

    When the separators make no sense (``12.34.56``) the digits are retried with a
    decimal point two places from the right, assuming the cents separator was lost.
    Values with more than ``MAX_INTEGER_DIGITS`` integer digits are rejected.
    """
    if not cleaned:
        return None
    try:
        value: Decimal | None = Decimal(_resolve_separators(cleaned))
    except InvalidOperation:
        value = None
    if value is None or not value.is_finite():
        digits = re.sub(r"\D", "", cleaned)
        if len(digits) < 3:
            return None
        value = Decimal(f"{digits[:-2]}.{digits[-2:]}")
    if value and value.adjusted() >= MAX_INTEGER_DIGITS:
        return None
    return value


def normalize_number_token(token: str | None) -> Decimal | None:
    """Parse a monetary token such as ``"₹ 1,234.56"``, ``"1.234,56"`` or ``"lO.5O"``.

    Args:
        token: Raw token from OCR text

    Returns:
        The non-negative value, or None when nothing numeric can be recovered
    """
    if token is None:
        return None
    text = _CURRENCY_RE.sub(" ", str(token)).strip()
    if not text:
        return None
    text = repair_text(text)
    cleaned = re.sub(r"[^\d.,]", "", text)
    return parse_cleaned_number(cleaned)


def normalize_grouped_digits(value: str | None) -> str:
    """Repair confusables and join digit groups split by whitespace (``"1 234"`` -> ``"1234"``)."""
    if not value:
        return ""
    text = repair_text(str(value))
    text = re.sub(r"[^\d,.\-\s]", "", text)
    text = re.sub(r"(?<=\d)\s+(?=\d)", "", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def expand_two_digit_year(yy: int, today: date | None = None) -> int:
    """Expand a 2-digit year into the current century, or the previous one past ``current + 1``."""
    today = today or date.today()
    year = today.year - today.year % 100 + yy
    if year > today.year + 1:
        year -= 100
    return year


def _validated_iso(year: int | None, month: int | None, day: int | None, today: date | None) -> str | None:
    if year is None or month is None or day is None:
        return None
    today = today or date.today()
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    if year < MIN_YEAR or year > today.year + 1:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        # Day does not exist in that month (e.g. 31/02)
        return None


def _year_from_token(token: str, today: date | None) -> int | None:
    if not _DIGITS_ONLY_RE.fullmatch(token):
        return None
    if len(token) == 4:
        return int(token)
    if len(token) == 2:
        return expand_two_digit_year(int(token), today)
    return None


def parse_numeric_date_token(token: str | None, today: date | None = None) -> str | None:
    """Parse ``15/03/2024``, ``2024-03-15``, ``15.03.24`` style tokens into ISO ``YYYY-MM-DD``.

    The 4-digit group decides the order: first means year-month-day, last means
    day-month-year. Without a 4-digit group the last group must have two digits and is
    the year.
    """
    if not token:
        return None
    cleaned = re.sub(r"\s+", "-", token.strip())
    cleaned = re.sub(r"[/.]", "-", cleaned)
    parts = [part for part in cleaned.split("-") if part]
    if len(parts) != 3 or not all(_DIGITS_ONLY_RE.fullmatch(part) for part in parts):
        return None

    if len(parts[0]) == 4:
        year, month, day = int(parts[0]), int(parts[1]), int(parts[2])
    elif len(parts[2]) == 4:
        day, month, year = int(parts[0]), int(parts[1]), int(parts[2])
    elif len(parts[2]) == 2:
        day, month = int(parts[0]), int(parts[1])
        year = expand_two_digit_year(int(parts[2]), today)
    else:
        return None
    return _validated_iso(year, month, day, today)


def month_number(word: str) -> int | None:
    """Look up a month by full name or 3-letter abbreviation."""
    lowered = word.lower().rstrip(".")
    if not lowered.isalpha():
        return None
    if lowered in MONTHS:
        return MONTHS[lowered]
    if len(lowered) <= 9:
        return MONTHS.get(lowered[:3])
    return None


def parse_textual_date_token(token: str | None, today: date | None = None) -> str | None:
    """Parse ``5th March 2024``, ``Mar 5, 24`` style tokens into ISO ``YYYY-MM-DD``."""
    if not token:
        return None
    cleaned = re.sub(r"\s+", " ", token.replace(",", " ")).strip()
    parts = [_ORDINAL_RE.sub(r"\1", part) for part in cleaned.split(" ") if part]
    if len(parts) < 2:
        return None

    month_idx = next((i for i, part in enumerate(parts) if month_number(part)), -1)
    if month_idx == -1:
        return None
    month = month_number(parts[month_idx])

    day: int | None = None
    year: int | None = None
    if month_idx in (0, 1):
        day_token = parts[1] if month_idx == 0 else parts[0]
        day = int(day_token) if _DIGITS_ONLY_RE.fullmatch(day_token) and len(day_token) <= 2 else None
        year = _year_from_token(parts[2], today) if len(parts) >= 3 else None
    else:
        for part in parts[:month_idx] + parts[month_idx + 1 :]:
            if not _DIGITS_ONLY_RE.fullmatch(part):
                continue
            if len(part) == 4:
                year = int(part)
            elif len(part) <= 2 and day is None:
                day = int(part)
            elif len(part) == 2 and year is None:
                year = expand_two_digit_year(int(part), today)

    return _validated_iso(year, month, day, today)


def safe_parse_numeric_token(token: str | None, today: date | None = None) -> str | None:
    """Strip ordinals and non-date characters, then parse as a numeric date."""
    if not token:
        return None
    text = _ORDINAL_RE.sub(r"\1", token)
    text = re.sub(r"[^0-9./\-\s]", "", text)
    return parse_numeric_date_token(text.strip(), today)


def normalize_noisy_date_string(value: str | None) -> str:
    """Repair confusable glyphs in numeric tokens of a line before date scanning.

    Commas inside numeric tokens become dashes and runs of separators collapse to one.
    """
    if not value:
        return ""
    fixed = []
    for token in re.split(r"(\s+|[;()\[\]])", value):
        if token and looks_numeric(token):
            token = repair_confusables(token).replace(",", "-")
        fixed.append(token)
    joined = "".join(fixed)
    return re.sub(r"[-.\s]{2,}", lambda match: match.group(0)[0], joined).strip()


def normalize_ocr_symbols(text: str | None, prefer_inr: bool = False) -> str:
    """Clean recognition noise around currency symbols and punctuation.

    Args:
        text: Raw OCR text
        prefer_inr: Rewrite glyphs commonly misread for the rupee sign (``R``, ``X``, ``I``,
            ``l``, ``£``) into ``₹`` when they sit directly before digits

    Returns:
        Text with pipes as ``I``, bracket noise removed, ellipses spaced out and
        non-ASCII characters other than ``₹ € £`` dropped
    """
    if not text:
        return ""
    cleaned = text.replace("|", "I")
    cleaned = re.sub(r"[\[\]}]", "", cleaned)
    cleaned = re.sub(r"\.{2,}", " ... ", cleaned)
    if prefer_inr and re.search(r"[£$₹€RXxIl]\s*\d{1,3}", cleaned):
        cleaned = re.sub(r"[RXxIl£](?=\d)", "₹", cleaned)
    return re.sub(r"[^\x00-\x7F₹€£]", "", cleaned)


def today_iso(today: date | None = None) -> str:
    return (today or date.today()).isoformat()


def to_display(iso: str | None) -> str | None:
    """Render ``YYYY-MM-DD`` as ``DD-MM-YYYY``."""
    if not iso:
        return None
    try:
        parsed = date.fromisoformat(iso)
    except ValueError:
        return None
    return parsed.strftime("%d-%m-%Y")


def iso_to_epoch_ms(iso: str | None) -> int | None:
    """Milliseconds since the epoch for UTC midnight of an ISO date."""
    if not iso:
        return None
    try:
        parsed = date.fromisoformat(iso)
    except ValueError:
        return None
    midnight = datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
    return int(midnight.timestamp() * 1000)
