"""Range and state-group label parsing shared by grid extraction and lookup.

Grid axis labels come in a handful of syntaxes: ``>=780``, ``<= 60.00%``,
``760-779``, ``75.01 - 80.00%``, ``780+``, ``$150,001-$200,000``. They are
all reduced to a ``LabelRange`` with explicit bound inclusivity.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass

FICO_MIN = 300
FICO_MAX = 850

STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI",
    "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN",
    "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH",
    "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA",
    "WV", "WI", "WY", "PR", "GU", "VI",
})

_NUM = r"(\d+(?:\.\d+)?)"
_BETWEEN = re.compile(rf"^{_NUM}\s*(?:-|–|to)\s*{_NUM}$")
_GTE = re.compile(rf"^(?:>=|=>){_NUM}$")
_GT = re.compile(rf"^>{_NUM}$")
_LTE = re.compile(rf"^(?:<=|=<){_NUM}$")
_LT = re.compile(rf"^<{_NUM}$")
_PLUS = re.compile(rf"^{_NUM}\+$")
_SINGLE = re.compile(rf"^{_NUM}$")


@dataclass(frozen=True)
class LabelRange:
    low: float
    high: float
    low_inclusive: bool = True
    high_inclusive: bool = True

    def contains(self, value: float) -> bool:
        above = value >= self.low if self.low_inclusive else value > self.low
        below = value <= self.high if self.high_inclusive else value < self.high
        return above and below

    def distance(self, value: float) -> float:
        if self.contains(value):
            return 0.0
        if value < self.low:
            return self.low - value
        return value - self.high


def _clean(label: str) -> str:
    text = label.replace("≤", "<=").replace("≥", ">=").lower()
    text = re.sub(r"(fico|ltv|cltv|score|credit)", "", text)
    return re.sub(r"[\s%$,]", "", text)


def parse_range_label(label: str) -> LabelRange | None:
    """Parse an axis label into a numeric range; None if it isn't one."""
    text = _clean(label)
    if not text:
        return None

    m = _BETWEEN.match(text)
    if m:
        low, high = float(m.group(1)), float(m.group(2))
        if low > high:
            low, high = high, low
        return LabelRange(low, high)
    m = _GTE.match(text)
    if m:
        return LabelRange(float(m.group(1)), math.inf)
    m = _GT.match(text)
    if m:
        return LabelRange(float(m.group(1)), math.inf, low_inclusive=False)
    m = _LTE.match(text)
    if m:
        return LabelRange(-math.inf, float(m.group(1)))
    m = _LT.match(text)
    if m:
        return LabelRange(-math.inf, float(m.group(1)), high_inclusive=False)
    m = _PLUS.match(text)
    if m:
        return LabelRange(float(m.group(1)), math.inf)
    m = _SINGLE.match(text)
    if m:
        value = float(m.group(1))
        return LabelRange(value, value)
    return None


def is_fico_label(label: str) -> bool:
    """True if the label reads as a credit-score bracket."""
    rng = parse_range_label(label)
    if rng is None:
        return False
    bounds = [b for b in (rng.low, rng.high) if not math.isinf(b)]
    return bool(bounds) and all(FICO_MIN <= b <= FICO_MAX for b in bounds)


def match_range(labels: list[str], value: float) -> int | None:
    """Index of the label whose range contains ``value``.

    When no bracket contains it, the closest bracket wins. Returns None when
    no label parses as a range.
    """
    closest_idx: int | None = None
    closest_dist = math.inf
    for idx, label in enumerate(labels):
        rng = parse_range_label(label)
        if rng is None:
            continue
        if rng.contains(value):
            return idx
        dist = rng.distance(value)
        if dist < closest_dist:
            closest_idx, closest_dist = idx, dist
    return closest_idx


def extract_state_codes(text: str) -> list[str]:
    """State codes listed in a group definition like ``"Group 3; ,AK,AL,AR"``."""
    codes = []
    for part in re.split(r"[,;]", text):
        token = part.strip().upper()
        if token in STATE_CODES and part.strip().isupper():
            codes.append(token)
    return codes
