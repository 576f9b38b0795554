"""LLPA grid lookups for a borrower scenario.

Grid values are in price points and a positive value improves price. A miss
(no matching row or column, or a blank cell) contributes nothing and is left
out of the breakdown.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

from app.models.pricing import AdjustmentBreakdown, LoanParameters
from app.models.rate_sheet import AdjustmentGrid, GridLoanPurpose, GridType
from app.parsing.labels import extract_state_codes, match_range

logger = logging.getLogger(__name__)

DEFAULT_FICO = 700

_COARSE_FICO = {
    "excellent": 780,
    "good": 720,
    "fair": 680,
    "poor": 620,
}

# Lead-form dropdown ranges map to fixed representative scores rather than
# midpoints (740-759 scores as 750). Other N-M strings use the integer midpoint.
_RANGE_FICO = {
    "780+": 790,
    "760-780": 770,
    "760-779": 770,
    "740-759": 750,
    "720-739": 730,
    "700-719": 710,
    "680-699": 690,
    "660-679": 670,
    "640-679": 660,
    "620-639": 630,
    "601-619": 610,
    "580-600": 590,
}

_FICO_RANGE = re.compile(r"^(\d{3})\s*-\s*(\d{3})$")
_FICO_PLUS = re.compile(r"^(\d{3})\s*\+$")
_FICO_SINGLE = re.compile(r"^(\d{3})$")


def credit_score_to_fico(credit_score: str) -> int:
    """Representative FICO for a coarse tier or a range string like ``"740-759"``."""
    label = (credit_score or "").strip().lower()
    if label in _COARSE_FICO:
        return _COARSE_FICO[label]
    if label in _RANGE_FICO:
        return _RANGE_FICO[label]

    m = _FICO_RANGE.match(label)
    if m:
        return (int(m.group(1)) + int(m.group(2))) // 2
    m = _FICO_PLUS.match(label)
    if m:
        return int(m.group(1)) + 10
    m = _FICO_SINGLE.match(label)
    if m:
        return int(m.group(1))

    logger.debug("Unrecognized credit score %r, using %d", credit_score, DEFAULT_FICO)
    return DEFAULT_FICO


def credit_tier(credit_score: str) -> str:
    """Coarse tier (excellent/good/fair/poor) for any credit score label."""
    label = (credit_score or "").strip().lower()
    if label in _COARSE_FICO:
        return label
    fico = credit_score_to_fico(label)
    if fico >= 740:
        return "excellent"
    if fico >= 700:
        return "good"
    if fico >= 660:
        return "fair"
    return "poor"


# ---------------------------------------------------------------------------
# Purpose
# ---------------------------------------------------------------------------
_CASHOUT_WORDS = ("cash-out", "cash out", "cashout", "c/o")
_RATE_TERM_WORDS = ("rate/term", "rate and term", "rate & term", "r/t", "no cash", "refi")


def grid_purpose_for(loan_purpose: str) -> GridLoanPurpose:
    """purchase -> purchase, refinance -> rt_refi, refinance-cashout -> co_refi."""
    purpose = (loan_purpose or "").strip().lower()
    if any(word in purpose for word in ("cashout", "cash-out", "cash_out", "co_refi")):
        return GridLoanPurpose.co_refi
    if "refi" in purpose:
        return GridLoanPurpose.rt_refi
    return GridLoanPurpose.purchase


def grid_applies(grid: AdjustmentGrid, purpose: GridLoanPurpose) -> bool:
    return grid.loan_purpose in (GridLoanPurpose.all, purpose)


def _purpose_row(labels: list[str], purpose: GridLoanPurpose) -> Optional[int]:
    for idx, label in enumerate(labels):
        text = label.lower()
        cashout = any(word in text for word in _CASHOUT_WORDS)
        if purpose == GridLoanPurpose.co_refi and cashout:
            return idx
        if purpose == GridLoanPurpose.rt_refi and not cashout and any(
            word in text for word in _RATE_TERM_WORDS
        ):
            return idx
        if purpose == GridLoanPurpose.purchase and "purchase" in text:
            return idx
    return None


# ---------------------------------------------------------------------------
# Property
# ---------------------------------------------------------------------------
_STANDARD_PROPERTY = {"single_family", "single family", "single-family", "sfr", "sfh", ""}

_PROPERTY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "condo": ("condo", "condominium"),
    "townhouse": ("townhouse", "townhome"),
    "multi_family": ("2-4 unit", "2-4 units", "2 unit", "3-4 unit", "multi"),
    "manufactured": ("manufactured", "mfd home"),
    "investment": ("investment", "investor", "non-owner"),
    "second_home": ("second home", "2nd home"),
}

_PROPERTY_ALIASES = {
    "multi-family": "multi_family",
    "multifamily": "multi_family",
    "2-4 unit": "multi_family",
    "2-4_unit": "multi_family",
    "second home": "second_home",
    "second-home": "second_home",
}


def property_keywords(property_type: str) -> tuple[str, ...]:
    """Row-label keywords for a non-standard property type; empty for single-family."""
    key = (property_type or "").strip().lower()
    if key in _STANDARD_PROPERTY:
        return ()
    key = _PROPERTY_ALIASES.get(key, key.replace(" ", "_"))
    return _PROPERTY_KEYWORDS.get(key, (key.replace("_", " "),))


def _keyword_row(labels: list[str], keywords: tuple[str, ...]) -> Optional[int]:
    for idx, label in enumerate(labels):
        text = label.lower()
        if any(kw in text for kw in keywords):
            return idx
    return None


def _state_row(labels: list[str], state: str) -> Optional[int]:
    code = state.strip().upper()
    for idx, label in enumerate(labels):
        if code in extract_state_codes(label):
            return idx
    return None


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------
def _ltv_column(grid: AdjustmentGrid, ltv: float) -> Optional[int]:
    if len(grid.axes.x) == 1:
        return 0
    return match_range(grid.axes.x, ltv)


def _row_for(grid: AdjustmentGrid, params: LoanParameters, fico: int) -> Optional[int]:
    labels = grid.axes.y
    if grid.type == GridType.fico_ltv:
        return match_range(labels, fico)
    if grid.type == GridType.property:
        keywords = property_keywords(params.property_type)
        return _keyword_row(labels, keywords) if keywords else None
    if grid.type == GridType.state:
        return _state_row(labels, params.state) if params.state else None
    if grid.type == GridType.loan_amount:
        return match_range(labels, params.loan_amount)
    if grid.type == GridType.loan_purpose:
        return _purpose_row(labels, grid_purpose_for(params.loan_purpose))
    return None


def lookup_grid(
    grid: AdjustmentGrid, params: LoanParameters, fico: int, ltv: float
) -> Optional[AdjustmentBreakdown]:
    row = _row_for(grid, params, fico)
    if row is None:
        return None
    col = _ltv_column(grid, ltv)
    if col is None:
        return None
    value = grid.data[row][col]
    if value is None:
        return None
    return AdjustmentBreakdown(
        grid_name=grid.name,
        grid_type=grid.type,
        row_label=grid.axes.y[row],
        column_label=grid.axes.x[col],
        value=value,
    )


def compute_adjustments(
    grids: list[AdjustmentGrid], params: LoanParameters
) -> tuple[float, list[AdjustmentBreakdown]]:
    """Sum every applicable grid lookup; returns (total, breakdown)."""
    purpose = grid_purpose_for(params.loan_purpose)
    fico = credit_score_to_fico(params.credit_score)
    ltv = round(params.ltv, 2)

    total = 0.0
    breakdown: list[AdjustmentBreakdown] = []
    for grid in grids:
        if not grid_applies(grid, purpose):
            logger.debug("Skipping %r: purpose %s != %s", grid.name, grid.loan_purpose.value, purpose.value)
            continue
        hit = lookup_grid(grid, params, fico, ltv)
        if hit is None:
            logger.debug("No match in %r (FICO %d, LTV %.2f)", grid.name, fico, ltv)
            continue
        logger.debug("Applied %r [%s x %s] = %+.3f",
                     grid.name, hit.row_label, hit.column_label, hit.value)
        total += hit.value
        breakdown.append(hit)
    return round(total, 4), breakdown
