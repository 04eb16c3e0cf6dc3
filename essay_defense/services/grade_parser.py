# essay_defense/services/grade_parser.py
"""
Grading Response Parser

Turns the AI scorer's free text into a bounded multiplier and an integrity flag.

Resolution order for the multiplier:
  1. an explicit declaration ("Final multiplier: 1.02", "Average: 3.5", "3.5 overall")
  2. the mean of the first four "Score:"/"Rating:" element lines
  3. neutral 1.00, with parse_failed set and a warning logged

Element means always go through multiplier_from_mean(), whatever arithmetic
the scorer did itself.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal

from essay_defense.schemas.score import GradeResult

logger = logging.getLogger(__name__)

MIN_MULTIPLIER = Decimal("0.90")
MAX_MULTIPLIER = Decimal("1.05")
NEUTRAL_MULTIPLIER = Decimal("1.00")
STEP_PER_POINT = Decimal("0.05")
RUBRIC_MIDPOINT = Decimal("3")
ELEMENT_COUNT = 4
ELEMENT_MIN, ELEMENT_MAX = 1.0, 5.0
INTEGRITY_MEAN_THRESHOLD = 1.5

# a bare value at or below this in a final/grade line is read as a multiplier,
# anything larger as a mean element score
_MULTIPLIER_CEILING = Decimal("1.5")

INTEGRITY_MARKER = "[INTEGRITY FLAG]"

_NUM = r"[0-9]+(?:\.[0-9]+)?"
_NUM_RE = re.compile(_NUM)

# labels count only at the start of a line, optionally after one qualifier word ("Overall grade:")
_LINE_LABEL = r"^[^\w\n]*(?:\w+[ \t]+)?"

_AVERAGE_RE = re.compile(_LINE_LABEL + r"average\b[^:=\n]{0,40}[:=]([^\n]*)", re.I | re.M)

# (kind, pattern); group 1 is the rest of the line after the label
_EXPLICIT_PATTERNS = [
    ("labeled", re.compile(_LINE_LABEL + r"(?:final|grade|multiplier)\b[^:=\n]{0,40}[:=]([^\n]*)", re.I | re.M)),
    ("mean", _AVERAGE_RE),
    ("labeled", re.compile(r"(" + _NUM + r")\s*\**\s*\(?(?:final|average|overall)\b", re.I)),
]

_ELEMENT_RE = re.compile(r"\b(?:score|rating)\b\s*[:=]\s*\**\s*(" + _NUM + r")(?:\s*/\s*[0-9]+)?", re.I)
_SUMMARY_LINE_RE = re.compile(_LINE_LABEL + r"(?:final|overall|average|mean|multiplier|total)\b", re.I)
_EXPLICIT_FLAG_RE = re.compile(r"\bintegrity\s*flag\b\s*[:=]\s*\**\s*(?:yes|true)\b", re.I)


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def clamp_multiplier(value: Decimal) -> Decimal:
    return _quantize(min(MAX_MULTIPLIER, max(MIN_MULTIPLIER, value)))


def multiplier_from_mean(mean: float | Decimal) -> Decimal:
    """clamp(1.00 + (mean - 3) * 0.05, 0.90, 1.05), rounded to 2 places."""
    mean_dec = Decimal(str(mean))
    return clamp_multiplier(NEUTRAL_MULTIPLIER + (mean_dec - RUBRIC_MIDPOINT) * STEP_PER_POINT)


def _value_from_rest(rest: str) -> Decimal | None:
    # "1.00 + (3.5 - 3) * 0.05 = 1.03": the result follows the last '='
    if "=" in rest:
        rest = rest.rsplit("=", 1)[1]
    match = _NUM_RE.search(rest)
    return Decimal(match.group(0)) if match else None


def find_explicit_value(text: str) -> tuple[str, Decimal] | None:
    """First explicit multiplier/average declaration as (kind, value)."""
    for kind, pattern in _EXPLICIT_PATTERNS:
        for match in pattern.finditer(text):
            value = _value_from_rest(match.group(1))
            if value is not None:
                return kind, value
    return None


def find_declared_mean(text: str) -> Decimal | None:
    """Value of the first "Average: N" line, used for the integrity check."""
    for match in _AVERAGE_RE.finditer(text):
        value = _value_from_rest(match.group(1))
        if value is not None:
            return value
    return None


def extract_element_scores(text: str) -> list[float]:
    """Per-element rubric scores, ignoring summary lines (final/average/total...)."""
    scores: list[float] = []
    for line in text.splitlines():
        if _SUMMARY_LINE_RE.search(line):
            continue
        for match in _ELEMENT_RE.finditer(line):
            value = float(match.group(1))
            if ELEMENT_MIN <= value <= ELEMENT_MAX:
                scores.append(value)
    return scores


def parse_grading_response(text: str | None) -> GradeResult:
    text = (text or "").strip()
    elements = extract_element_scores(text)
    four = elements[:ELEMENT_COUNT] if len(elements) >= ELEMENT_COUNT else []
    element_mean = sum(four) / ELEMENT_COUNT if four else None

    parse_failed = False
    mean_for_flag = element_mean
    if mean_for_flag is None:
        declared_mean = find_declared_mean(text)
        mean_for_flag = float(declared_mean) if declared_mean is not None else None
    explicit = find_explicit_value(text)

    if explicit is not None:
        kind, value = explicit
        if kind == "mean" or value > _MULTIPLIER_CEILING:
            multiplier = multiplier_from_mean(value)
            if mean_for_flag is None:
                mean_for_flag = float(value)
        else:
            multiplier = clamp_multiplier(value)
    elif element_mean is not None:
        multiplier = multiplier_from_mean(element_mean)
    else:
        multiplier = NEUTRAL_MULTIPLIER
        parse_failed = True
        logger.warning(
            f"Could not find a multiplier or {ELEMENT_COUNT} element scores in grading "
            f"response ({len(text)} chars), defaulting to {NEUTRAL_MULTIPLIER}"
        )

    integrity_flag = (
        any(score == ELEMENT_MIN for score in four)
        or (mean_for_flag is not None and mean_for_flag <= INTEGRITY_MEAN_THRESHOLD)
        or bool(_EXPLICIT_FLAG_RE.search(text))
    )

    comments = f"{INTEGRITY_MARKER} {text}" if integrity_flag else text

    return GradeResult(
        multiplier=multiplier,
        integrity_flag=integrity_flag,
        comments=comments,
        element_scores=four,
        parse_failed=parse_failed,
    )
