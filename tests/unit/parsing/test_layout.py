"""Tests for bounding-box-aware amount candidates."""

from decimal import Decimal

from receipt_ocr.parsing.layout import choose_amount, cluster_words_into_lines, parse_ocr_result
from receipt_ocr.parsing.models import AmountCandidate, BoundingBox, Word


def _word(text: str, y0: float, y1: float, confidence: float | None = None) -> Word:
    return Word(text=text, bbox=BoundingBox(x0=0, y0=y0, x1=10, y1=y1), confidence=confidence)


def _candidate(value: str, score: float, has_keyword: bool = False) -> AmountCandidate:
    return AmountCandidate(
        value=Decimal(value),
        raw_token=value,
        normalized_token=value,
        line_index=0,
        has_keyword=has_keyword,
        score=score,
    )


class TestClusterWords:
    """Test grouping words into visual lines."""

    def test_clusters_by_vertical_midpoint(self) -> None:
        """Words within the tolerance share a line and keep their original order."""
        words = [_word("A", 50, 60), _word("B", 10, 20), _word("C", 12, 22), _word("D", 53, 63)]
        positioned = cluster_words_into_lines(words)
        assert [p.word.text for p in positioned] == ["A", "B", "C", "D"]
        assert [p.line_index for p in positioned] == [1, 0, 0, 1]

    def test_tolerance_is_sequential(self) -> None:
        """Each word is compared with the running line mean, not the first word."""
        words = [_word("A", 0, 10), _word("B", 7, 17), _word("C", 14, 24)]
        positioned = cluster_words_into_lines(words)
        # Midpoints 5, 12 and 19: B joins A (mean 8.5), C is 10.5 away and opens a new line
        assert [p.line_index for p in positioned] == [0, 0, 1]

    def test_empty(self) -> None:
        """No words, no lines."""
        assert cluster_words_into_lines([]) == []


class TestBoundingBox:
    """Test bounding box construction from engine dicts."""

    def test_from_mapping_variants(self) -> None:
        """Different key spellings produce the same box."""
        assert BoundingBox.from_mapping({"x0": 1, "y0": 2, "x1": 3, "y1": 4}) == BoundingBox(1, 2, 3, 4)
        assert BoundingBox.from_mapping({"left": 1, "top": 2, "width": 2, "height": 2}) == BoundingBox(1, 2, 3, 4)
        assert BoundingBox.from_mapping(None) == BoundingBox()

    def test_word_from_mapping(self) -> None:
        """Engine dicts become Word records."""
        word = Word.from_mapping({"text": "12.00", "box": {"y": 5, "h": 10}, "conf": "88"})
        assert word.text == "12.00"
        assert word.bbox.mid_y == 10
        assert word.confidence == 88.0


class TestParseOcrResult:
    """Test candidate extraction and scoring."""

    def test_keyword_line_wins(self) -> None:
        """A total line near the bottom is chosen."""
        result = parse_ocr_result("STORE\nItem 100.00\nTotal 250.00")
        assert result.chosen is not None
        assert result.chosen.value == Decimal("250.00")
        assert result.chosen.has_keyword
        assert result.vendor_candidates[0] == "STORE"
        assert result.raw_lines == ("STORE", "Item 100.00", "Total 250.00")
        assert [c.value for c in result.candidates] == [Decimal("250.00"), Decimal("100.00")]

    def test_filters_ids_and_years(self) -> None:
        """Long digit runs and years are not amounts."""
        result = parse_ocr_result("Invoice 12345678\nDate 2024\nTotal 12.00")
        assert [c.value for c in result.candidates] == [Decimal("12.00")]

    def test_word_candidates_use_visual_line_keyword(self) -> None:
        """A word on the same visual line as TOTAL carries the keyword and its confidence."""
        words = [
            {"text": "TOTAL", "bbox": {"x0": 0, "y0": 100, "x1": 50, "y1": 110}, "confidence": 95},
            {"text": "42.50", "bbox": {"x0": 60, "y0": 101, "x1": 100, "y1": 111}, "confidence": 90},
        ]
        result = parse_ocr_result("", words)
        assert result.chosen.value == Decimal("42.50")
        assert result.chosen.has_keyword
        assert result.chosen.confidence == 90.0
        assert result.chosen.line_index == 0

    def test_malformed_word_entries_are_skipped(self) -> None:
        """Entries that are not word records or mappings are ignored."""
        words = ["TOTAL", None, 42.5, {"text": "42.50", "bbox": {"x0": 0, "y0": 0, "x1": 40, "y1": 10}}]
        result = parse_ocr_result("", words)
        assert [c.value for c in result.candidates] == [Decimal("42.50")]

    def test_empty_input(self) -> None:
        """Empty input gives an empty result."""
        result = parse_ocr_result("")
        assert result.chosen is None
        assert result.candidates == ()
        assert result.vendor_candidates == ()


class TestChooseAmount:
    """Test keyword promotion."""

    def test_promotes_close_keyword_candidate(self) -> None:
        """A keyword candidate within the margin replaces the top score."""
        top = _candidate("999.00", 50.0)
        keyword = _candidate("45.00", 43.0, has_keyword=True)
        assert choose_amount([top, keyword]) is keyword

    def test_keeps_clear_winner(self) -> None:
        """A keyword candidate far behind is not promoted."""
        top = _candidate("999.00", 50.0)
        keyword = _candidate("45.00", 30.0, has_keyword=True)
        assert choose_amount([top, keyword]) is top

    def test_zero_falls_back_to_largest_positive(self) -> None:
        """A zero winner is replaced by the largest positive candidate."""
        zero = _candidate("0", 60.0)
        assert choose_amount([zero, _candidate("5.00", 10.0), _candidate("7.00", 9.0)]).value == Decimal("7.00")

    def test_empty(self) -> None:
        """Nothing to choose from."""
        assert choose_amount([]) is None
