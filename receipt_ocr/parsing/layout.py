"""Bounding-box-aware amount candidates.

Words returned by the engine are grouped into visual lines by their vertical midpoint,
then candidates from the text lines and from individual words are scored together.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
import logging
import math
import re
from typing import Any

from receipt_ocr.parsing.models import AmountCandidate, LayoutParseResult, Word
from receipt_ocr.parsing.normalize import normalize_number_token
from receipt_ocr.parsing.totals import split_lines

logger = logging.getLogger(__name__)

LINE_TOLERANCE = 8.0

AMOUNT_KEYWORD_RE = re.compile(r"\b(?:grand\s*total|total|amount|payable|due|balance)\b", re.IGNORECASE)
LINE_NUMBER_RE = re.compile(r"[₹$£€]?(?:Rs\.?)?\s*[0-9]{1,3}(?:[,\s][0-9]{3})*\.[0-9]{1,2}|[0-9]+(?:\.[0-9]{1,2})?")
NUMERIC_LINE_RE = re.compile(r"^[-+]?[\d\s,]{1,15}(?:\.\d{1,2})?$")
ID_LIKE_RE = re.compile(r"\b\d{6,12}\b")
YEAR_CONTEXT_RE = re.compile(r"\b(?:19|20)\d{2}\b")

KEYWORD_BONUS = 45.0
RECENCY_WINDOW = 6
RECENCY_STEP = 4.0
KEYWORD_PROMOTION_MARGIN = 8.0
KEYWORD_PROMOTION_RATIO = 0.7
VENDOR_SCAN_LINES = 4
MAX_VENDOR_CANDIDATES = 2


@dataclass(frozen=True)
class PositionedWord:
    """A word tagged with the visual line it was clustered into."""

    word: Word
    line_index: int
    original_index: int


def cluster_words_into_lines(words: Sequence[Word], tolerance: float = LINE_TOLERANCE) -> list[PositionedWord]:
    """Assign each word to a visual line.

    Words are visited top to bottom; a word joins the current line when its midpoint is
    within ``tolerance`` pixels of the line's running mean midpoint, otherwise it opens
    a new line. The result keeps the engine's original word order.
    """
    if not words:
        return []
    ordered = sorted(enumerate(words), key=lambda item: item[1].bbox.mid_y)

    assigned: list[PositionedWord] = []
    line_index = -1
    line_mid: float | None = None
    line_size = 0
    for original_index, word in ordered:
        mid = word.bbox.mid_y
        if line_mid is None or abs(mid - line_mid) > tolerance:
            line_index += 1
            line_mid = mid
            line_size = 1
        else:
            line_size += 1
            line_mid += (mid - line_mid) / line_size
        assigned.append(PositionedWord(word, line_index, original_index))

    assigned.sort(key=lambda positioned: positioned.original_index)
    return assigned


def _visual_line_texts(positioned: Iterable[PositionedWord]) -> dict[int, str]:
    texts: dict[int, list[str]] = {}
    for item in positioned:
        texts.setdefault(item.line_index, []).append(item.word.text)
    return {idx: " ".join(parts) for idx, parts in texts.items()}


def _is_filtered(token: str, value: Decimal, context: str) -> bool:
    """Bare 6-12 digit runs are IDs or barcodes; 4-digit years next to a year are dates."""
    if ID_LIKE_RE.search(token):
        return True
    return bool(YEAR_CONTEXT_RE.search(context)) and Decimal("1900") <= value <= Decimal("2100")


@dataclass
class _Raw:
    value: Decimal
    token: str
    line_index: int | None
    max_line: int
    keyword: bool
    confidence: float | None = None
    line_text: str | None = None


def _line_candidates(lines: list[str]) -> list[_Raw]:
    max_line = len(lines) - 1
    out = []
    for idx, line in enumerate(lines):
        keyword = bool(AMOUNT_KEYWORD_RE.search(line))
        for match in LINE_NUMBER_RE.finditer(line):
            token = match.group(0).strip()
            value = normalize_number_token(token)
            if value is None or _is_filtered(token, value, line):
                continue
            out.append(_Raw(value, token, idx, max_line, keyword, line_text=line))
        if NUMERIC_LINE_RE.match(line):
            value = normalize_number_token(line)
            if value is not None:
                out.append(_Raw(value, line, idx, max_line, keyword, line_text=line))
    return out


def _word_candidates(words: Sequence[Word]) -> list[_Raw]:
    positioned = cluster_words_into_lines(words)
    if not positioned:
        return []
    line_texts = _visual_line_texts(positioned)
    max_line = max(item.line_index for item in positioned)
    out = []
    for item in positioned:
        token = item.word.text or ""
        value = normalize_number_token(token)
        if value is None or _is_filtered(token, value, token):
            continue
        line_text = line_texts.get(item.line_index, "")
        out.append(
            _Raw(
                value,
                token,
                item.line_index,
                max_line,
                bool(AMOUNT_KEYWORD_RE.search(line_text)),
                confidence=item.word.confidence,
                line_text=line_text,
            )
        )
    return out


def score_amount_candidate(raw: _Raw) -> float:
    score = KEYWORD_BONUS if raw.keyword else 0.0
    line_index = raw.line_index if raw.line_index is not None else raw.max_line
    distance = raw.max_line - line_index
    if 0 <= distance <= RECENCY_WINDOW:
        score += (RECENCY_WINDOW - distance) * RECENCY_STEP
    if raw.confidence:
        score += min(25.0, raw.confidence / 100 * 20)
    score += min(25.0, math.log10(max(1.0, float(raw.value))) * 5)
    # Later lines win otherwise-equal candidates
    score += line_index / max(1, raw.max_line)
    return round(score, 2)


def _dedupe(candidates: list[_Raw]) -> list[_Raw]:
    seen: set[tuple] = set()
    out = []
    for candidate in candidates:
        key = (candidate.value, candidate.line_index, candidate.token[:12])
        if key not in seen:
            seen.add(key)
            out.append(candidate)
    return out


def choose_amount(scored: list[AmountCandidate]) -> AmountCandidate | None:
    """Pick the top candidate, letting a keyword-bearing one win when it is close enough."""
    if not scored:
        return None
    chosen = scored[0]
    if len(scored) > 1:
        keyword = next((candidate for candidate in scored if candidate.has_keyword), None)
        if keyword and (
            keyword.score >= chosen.score - KEYWORD_PROMOTION_MARGIN
            or keyword.score > chosen.score * KEYWORD_PROMOTION_RATIO
        ):
            chosen = keyword
    if chosen.value <= 0:
        positives = [candidate for candidate in scored if candidate.value > 0]
        if positives:
            chosen = max(positives, key=lambda candidate: candidate.value)
    return chosen


def vendor_candidates(lines: list[str]) -> tuple[str, ...]:
    """Non-numeric lines near the top of the receipt, most likely the merchant name."""
    names = [line for line in lines[:VENDOR_SCAN_LINES] if not NUMERIC_LINE_RE.match(line)]
    return tuple(names[:MAX_VENDOR_CANDIDATES])


def _coerce_words(words: Sequence[Any] | None) -> list[Word]:
    out = []
    for word in words or []:
        if not isinstance(word, (Word, Mapping)):
            logger.debug(f"Skipping malformed OCR word entry: {word!r}")
            continue
        out.append(Word.from_mapping(word))
    return out


def parse_ocr_result(text: str | None, words: Sequence[Word | dict] | None = None) -> LayoutParseResult:
    """Score amount candidates from OCR text and, when available, word boxes.

    Args:
        text: Full OCR text
        words: Engine words as ``Word`` records or engine dicts

    Returns:
        LayoutParseResult with candidates ordered by score (then value), highest first
    """
    lines = split_lines(text)
    word_list = _coerce_words(words)

    raw_candidates = _dedupe(_line_candidates(lines) + _word_candidates(word_list))
    scored = [
        AmountCandidate(
            value=raw.value,
            raw_token=raw.token,
            normalized_token=str(raw.value),
            line_index=raw.line_index,
            has_keyword=raw.keyword,
            score=score_amount_candidate(raw),
            confidence=raw.confidence,
            line_text=raw.line_text,
        )
        for raw in raw_candidates
    ]
    scored.sort(key=lambda candidate: (-candidate.score, -candidate.value))

    chosen = choose_amount(scored)
    if chosen:
        logger.debug(f"Layout amount: {chosen.value} ({chosen.raw_token!r}) score={chosen.score}")
    return LayoutParseResult(
        chosen=chosen,
        candidates=tuple(scored),
        vendor_candidates=vendor_candidates(lines),
        raw_lines=tuple(lines),
    )
