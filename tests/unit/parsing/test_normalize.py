"""Tests for OCR character repair and token parsing."""

from datetime import date
from decimal import Decimal

import pytest

from receipt_ocr.parsing.normalize import (
    expand_two_digit_year,
    iso_to_epoch_ms,
    looks_numeric,
    month_number,
    normalize_grouped_digits,
    normalize_noisy_date_string,
    normalize_number_token,
    normalize_ocr_symbols,
    parse_numeric_date_token,
    parse_textual_date_token,
    repair_confusables,
    safe_parse_numeric_token,
    to_display,
    today_iso,
)


class TestConfusableRepair:
    """Test confusable-character repair."""

    def test_repairs_inside_numeric_tokens(self) -> None:
        """Confusable glyphs become digits when the token is numeric."""
        assert repair_confusables("lO.OO") == "10.00"
        assert repair_confusables("S0") == "50"
        assert repair_confusables("1|") == "11"

    def test_leaves_words_alone(self) -> None:
        """Ordinary words are never rewritten."""
        assert repair_confusables("Total:") == "Total:"
        assert repair_confusables("SOLO") == "SOLO"

    def test_looks_numeric(self) -> None:
        """Only tokens with a digit, or confusables plus a separator, qualify."""
        assert looks_numeric("12ab")
        assert looks_numeric("O.S")
        assert not looks_numeric("Ol")
        assert not looks_numeric("")


class TestNormalizeNumberToken:
    """Test monetary token parsing."""

    @pytest.mark.parametrize(
        "token, expected",
        [
            ("1,234.56", Decimal("1234.56")),
            ("1.234,56", Decimal("1234.56")),
            ("12,50", Decimal("12.50")),
            ("₹ 1,234.50", Decimal("1234.50")),
            ("Rs.500", Decimal("500")),
            ("$12.00", Decimal("12.00")),
            ("lO.5O", Decimal("10.50")),
            ("1,234", Decimal("1234")),
        ],
    )
    def test_parses_tokens(self, token: str, expected: Decimal) -> None:
        """Test comma/period semantics and currency stripping."""
        assert normalize_number_token(token) == expected

    def test_cents_heuristic_when_separators_make_no_sense(self) -> None:
        """Unparseable separators fall back to a decimal point two digits from the right."""
        assert normalize_number_token("12.34.56") == Decimal("1234.56")

    def test_returns_none_for_non_numeric(self) -> None:
        """Test tokens with nothing numeric."""
        assert normalize_number_token(None) is None
        assert normalize_number_token("") is None
        assert normalize_number_token("abc") is None
        assert normalize_number_token("₹") is None

    def test_normalize_grouped_digits(self) -> None:
        """Digit groups split by spaces are joined."""
        assert normalize_grouped_digits("₹ 1 234.50") == "1234.50"
        assert normalize_grouped_digits("") == ""


class TestNumericDates:
    """Test numeric date token parsing."""

    def test_day_month_year(self, today: date) -> None:
        """Test a trailing 4-digit year."""
        assert parse_numeric_date_token("15/03/2024", today) == "2024-03-15"
        assert parse_numeric_date_token("15.03.2024", today) == "2024-03-15"

    def test_year_month_day(self, today: date) -> None:
        """Test a leading 4-digit year."""
        assert parse_numeric_date_token("2024-03-15", today) == "2024-03-15"

    def test_two_digit_year_current_century(self, today: date) -> None:
        """A 2-digit year up to next year stays in the current century."""
        assert parse_numeric_date_token("15-03-24", today) == "2024-03-15"

    def test_two_digit_year_previous_century(self, today: date) -> None:
        """A 2-digit year beyond next year resolves to the previous century."""
        assert parse_numeric_date_token("01-01-99", today) == "1999-01-01"

    def test_century_rollover_near_year_end(self) -> None:
        """Next year is allowed; the year after rolls back a century and is rejected."""
        assert expand_two_digit_year(27, date(2026, 12, 31)) == 2027
        assert expand_two_digit_year(28, date(2026, 12, 31)) == 1928
        assert parse_numeric_date_token("01-01-28", date(2026, 12, 31)) is None

    @pytest.mark.parametrize("token", ["31/02/2024", "15/13/2024", "01/01/1969", "01/01/2028", "1/2", "ab/cd/efgh", ""])
    def test_invalid_dates(self, token: str, today: date) -> None:
        """Out-of-range, impossible and malformed dates are rejected."""
        assert parse_numeric_date_token(token, today) is None

    def test_safe_parse_strips_noise(self, today: date) -> None:
        """Ordinals and stray characters are removed before parsing."""
        assert safe_parse_numeric_token("15/03/2024*", today) == "2024-03-15"


class TestTextualDates:
    """Test textual date token parsing."""

    def test_day_month_year(self, today: date) -> None:
        """Test ordinal day before the month name."""
        assert parse_textual_date_token("5th March 2024", today) == "2024-03-05"

    def test_month_day_year(self, today: date) -> None:
        """Test abbreviated month first with a 2-digit year."""
        assert parse_textual_date_token("Mar 5, 24", today) == "2024-03-05"

    def test_month_lookup(self) -> None:
        """Full names and abbreviations resolve."""
        assert month_number("Sept") == 9
        assert month_number("december") == 12
        assert month_number("12") is None

    def test_without_month(self, today: date) -> None:
        """No month name means no date."""
        assert parse_textual_date_token("5 2024", today) is None


class TestNoisyText:
    """Test line-level repair helpers."""

    def test_normalize_noisy_date_string(self) -> None:
        """Confusables inside date tokens are repaired, words are kept."""
        assert normalize_noisy_date_string("Date l5/O3/2O24") == "Date 15/03/2024"
        assert normalize_noisy_date_string("12,03,2024") == "12-03-2024"
        assert normalize_noisy_date_string(None) == ""

    def test_normalize_ocr_symbols(self) -> None:
        """Pipes, bracket noise and non-ASCII characters are cleaned."""
        assert normalize_ocr_symbols("Total | 12.00 [x]") == "Total I 12.00 x"
        assert normalize_ocr_symbols("café ₹5") == "caf ₹5"

    def test_prefer_inr_rewrites_misread_rupee(self) -> None:
        """Misread rupee glyphs before digits become ₹ only when asked."""
        assert normalize_ocr_symbols("R120", prefer_inr=True) == "₹120"
        assert normalize_ocr_symbols("R120") == "R120"


class TestDateHelpers:
    """Test ISO date helpers."""

    def test_today_iso(self, today: date) -> None:
        """Test ISO rendering of the reference day."""
        assert today_iso(today) == "2026-10-19"

    def test_to_display(self) -> None:
        """Test DD-MM-YYYY rendering."""
        assert to_display("2024-03-15") == "15-03-2024"
        assert to_display(None) is None
        assert to_display("not-a-date") is None

    def test_iso_to_epoch_ms(self) -> None:
        """Test UTC midnight in milliseconds."""
        assert iso_to_epoch_ms("1970-01-02") == 86_400_000
        assert iso_to_epoch_ms("") is None
