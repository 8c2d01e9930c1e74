"""Total amount extraction.

Strategies run in priority order and the first one that yields a value wins:

1. Label search: the latest line carrying a total-style label.
2. Reconciliation: subtotal plus every tax line gives an expected net amount.
3. Candidate scoring: numbers on total-ish lines (or anywhere) ranked by position,
   shape and distance to the expected net amount.
4. Gross-error repair: a ranked candidate far from the expected net amount is
   repaired (dropped digits, shifted decimal point) or replaced by the expected net.
"""

from dataclasses import dataclass
from decimal import Decimal
import logging
import re

from receipt_ocr.parsing.models import NumberMatch, TotalExtractionResult, TotalReason
from receipt_ocr.parsing.normalize import to_money
from receipt_ocr.parsing.numbers import find_loose_numbers, find_numbers_in_text

logger = logging.getLogger(__name__)

# Ordered from most to least specific. Generic "total" must not fire on subtotal or
# count/tax summary lines.
TOTAL_LABEL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(rf"\b{phrase}\b", re.IGNORECASE)
    for phrase in (
        r"grand\s*total",
        r"total\s+payable",
        r"amount\s+payable",
        r"amt\s+payable",
        r"amount\s+due",
        r"amt\s+due",
        r"amount\s+paid",
        r"amt\s+paid",
        r"net\s+payable",
        r"net\s+amount",
        r"net\s+total",
        r"net\s+amt",
        r"total\s+amount",
        r"total\s+due",
        r"balance\s+due",
        r"balance",
        r"amount\s+to\s+(?:be\s+)?paid",
        r"amount\s+to\s+pay",
        r"payable",
    )
] + [
    re.compile(r"\bamount\s*[:\-]", re.IGNORECASE),
    re.compile(
        r"(?<!sub)(?<!sub\s)(?<!sub-)\btotal\b(?!\s*(?:items?|qty|quantity|savings?|discount|tax|gst))",
        re.IGNORECASE,
    ),
]

SUBTOTAL_RE = re.compile(r"\bsub\s*-?\s*total\b", re.IGNORECASE)
TAX_RE = re.compile(r"gst|cgst|sgst|tax", re.IGNORECASE)
GSTIN_RE = re.compile(r"gstin|gst\s*no", re.IGNORECASE)
NET_KEYWORD_RE = re.compile(r"\b(?:total|amount|net|payable|due|balance)\b", re.IGNORECASE)

RELATIVE_TOLERANCE = Decimal("0.05")
ABSOLUTE_TOLERANCE = Decimal("2")


@dataclass(frozen=True)
class _Candidate:
    value: Decimal
    raw: str
    line_index: int
    score: float = 0.0


def split_lines(text: str | None) -> list[str]:
    """Split text into stripped, non-empty lines."""
    if not text:
        return []
    return [line.strip() for line in re.split(r"\r?\n|\r", text) if line.strip()]


def has_total_label(line: str) -> bool:
    return any(pattern.search(line) for pattern in TOTAL_LABEL_PATTERNS)


def tolerance_for(expected_net: Decimal) -> Decimal:
    """Accepted distance from the expected net amount: 5% of it, but never below 2."""
    return max(ABSOLUTE_TOLERANCE, expected_net * RELATIVE_TOLERANCE)


def _labelled_candidates(lines: list[str]) -> list[_Candidate]:
    candidates: list[_Candidate] = []
    for idx, line in enumerate(lines):
        if not has_total_label(line):
            continue
        numbers = find_numbers_in_text(line)
        if numbers:
            candidates.extend(_Candidate(n.value, n.raw, idx) for n in numbers)
            continue
        next_line = lines[idx + 1] if idx + 1 < len(lines) else ""
        next_numbers = find_numbers_in_text(next_line)
        if next_numbers:
            candidates.append(_Candidate(next_numbers[0].value, next_numbers[0].raw, idx + 1))
            continue
        candidates.extend(_Candidate(n.value, n.raw, idx) for n in find_loose_numbers(line))
    return candidates


def find_subtotal(lines: list[str]) -> Decimal | None:
    """Return the last number on the first subtotal line."""
    for line in lines:
        if SUBTOTAL_RE.search(line):
            numbers = find_numbers_in_text(line)
            if numbers:
                return numbers[-1].value
    return None


def _rescale_tax(number: NumberMatch) -> Decimal:
    """Integer tax values of 100 or more are read as cents that lost their separator."""
    value = number.value
    if "." not in number.raw and "," not in number.raw and value >= 100:
        scaled = value / 100
        if scaled < 10000:
            return to_money(scaled)
    return value


def find_taxes(lines: list[str]) -> list[Decimal]:
    """Collect one tax amount per tax-labelled line (its last number)."""
    taxes = []
    for line in lines:
        if not TAX_RE.search(line) or GSTIN_RE.search(line) or SUBTOTAL_RE.search(line):
            continue
        numbers = find_numbers_in_text(line)
        if numbers:
            taxes.append(_rescale_tax(numbers[-1]))
    return taxes


def _net_candidates(lines: list[str]) -> list[_Candidate]:
    candidates = [
        _Candidate(n.value, n.raw, idx)
        for idx, line in enumerate(lines)
        if NET_KEYWORD_RE.search(line)
        for n in find_numbers_in_text(line)
    ]
    if candidates:
        return candidates
    return [_Candidate(n.value, n.raw, idx) for idx, line in enumerate(lines) for n in find_numbers_in_text(line)]


def score_candidate(candidate: _Candidate, line_count: int, expected_net: Decimal | None) -> float:
    """Score a net-amount candidate; later lines, cents and closeness to the expected net win."""
    score = 100.0 - candidate.line_index
    if candidate.value != candidate.value.to_integral_value():
        score += 10
    if expected_net is not None:
        score += max(0.0, 50.0 - float(abs(candidate.value - expected_net)))
    if candidate.line_index >= line_count - 3:
        score += 10
    return score


def repeated_leading_digit_repairs(value: Decimal) -> list[Decimal]:
    """Candidates for a value whose leading digits were read twice (``2200.00`` -> ``200.00``)."""
    text = f"{value:.2f}"
    int_part, _, frac_part = text.partition(".")
    frac = f".{frac_part}" if frac_part else ""
    repairs: set[Decimal] = set()
    if len(int_part) >= 2 and int_part[0] == int_part[1]:
        repairs.add(Decimal(int_part[1:] + frac))
    if len(int_part) > 2:
        repairs.add(Decimal(int_part[1:] + frac))
        repairs.add(Decimal(int_part[2:] + frac))
    return [to_money(repair) for repair in repairs]


def cents_shift_repairs(value: Decimal) -> list[Decimal]:
    """Drop one or two leading digits of the cents representation and re-place the decimal point."""
    cents = str(int(to_money(value) * 100))
    repairs = []
    for removed in (1, 2):
        if len(cents) > removed + 2:
            shifted = cents[removed:]
            repairs.append(Decimal(f"{shifted[:-2]}.{shifted[-2:]}"))
    return repairs


def repair_grossly_wrong_candidate(value: Decimal, expected_net: Decimal) -> Decimal | None:
    """Try to bring a candidate within tolerance of the expected net amount.

    Args:
        value: The ranked candidate value
        expected_net: Subtotal plus taxes

    Returns:
        The repaired value closest to ``expected_net`` if it lies within tolerance, else None
    """
    if value <= 0:
        return None
    repairs = [to_money(value / divisor) for divisor in (10, 100, 1000)]
    repairs.extend(repeated_leading_digit_repairs(value))
    repairs.extend(cents_shift_repairs(value))
    positive = sorted({repair for repair in repairs if repair > 0}, key=lambda r: (abs(r - expected_net), r))
    if not positive:
        return None
    best = positive[0]
    if abs(best - expected_net) <= tolerance_for(expected_net):
        return best
    return None


def extract_total(text: str | None) -> TotalExtractionResult | None:
    """Extract the best-guess total from OCR text.

    Args:
        text: Full OCR text

    Returns:
        TotalExtractionResult whose ``reason`` explains its provenance, or None when the
        text holds no usable number and no subtotal. None means "unknown", never zero.
    """
    lines = split_lines(text)
    if not lines:
        return None

    labelled = _labelled_candidates(lines)
    if labelled:
        # Receipts print the payable total near the bottom; the rightmost number wins a tie
        chosen = max(enumerate(labelled), key=lambda item: (item[1].line_index, item[0]))[1]
        logger.debug(f"Total from label on line {chosen.line_index}: {chosen.value} ({chosen.raw!r})")
        return TotalExtractionResult(
            value=to_money(chosen.value), raw_token=chosen.raw, reason=TotalReason.LABEL_PRIORITY_LAST
        )

    subtotal = find_subtotal(lines)
    taxes = tuple(find_taxes(lines))
    expected_net = to_money(subtotal + sum(taxes, Decimal("0"))) if subtotal is not None else None
    logger.debug(f"Reconciliation: subtotal={subtotal} taxes={list(taxes)} expected_net={expected_net}")

    candidates = _net_candidates(lines)
    if not candidates:
        if expected_net is None:
            return None
        return TotalExtractionResult(
            value=expected_net,
            raw_token=str(expected_net),
            reason=TotalReason.COMPUTED_FROM_SUBTOTAL_AND_TAXES,
            subtotal=subtotal,
            taxes=taxes,
        )

    scored = [
        _Candidate(c.value, c.raw, c.line_index, score_candidate(c, len(lines), expected_net)) for c in candidates
    ]
    # Highest score; earlier candidates win ties
    best = max(enumerate(scored), key=lambda item: (item[1].score, -item[0]))[1]
    logger.debug(f"Ranked total candidate: {best.value} ({best.raw!r}) score={best.score:.2f}")

    if expected_net is not None and abs(best.value - expected_net) > tolerance_for(expected_net):
        repaired = repair_grossly_wrong_candidate(best.value, expected_net)
        if repaired is not None:
            logger.debug(f"Repaired total candidate {best.value} -> {repaired}")
            return TotalExtractionResult(
                value=repaired,
                raw_token=f"{best.raw} (repaired)",
                reason=TotalReason.REPAIRED_CANDIDATE_NEAR_EXPECTED,
                subtotal=subtotal,
                taxes=taxes,
            )
        return TotalExtractionResult(
            value=expected_net,
            raw_token=str(expected_net),
            reason=TotalReason.COMPUTED_FROM_SUBTOTAL_AND_TAXES,
            subtotal=subtotal,
            taxes=taxes,
        )

    return TotalExtractionResult(
        value=to_money(best.value),
        raw_token=best.raw,
        reason=TotalReason.RANKED_CANDIDATE,
        subtotal=subtotal,
        taxes=taxes,
    )
