"""Rectangle scanning for rate tables and fixed-position LLPA grids."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from app.models.rate_sheet import (
    AdjustmentGrid,
    GridAxes,
    GridLoanPurpose,
    GridType,
    LoanTerm,
    LoanType,
    ParsedRate,
)
from app.parsing.workbook import (
    Grid,
    cell,
    col_to_index,
    is_valid_price,
    is_valid_rate,
    normalize_label,
    to_float,
)

logger = logging.getLogger(__name__)

RateNormalizer = Callable[[float], float]
PriceNormalizer = Callable[[float], float]


def _identity(value: float) -> float:
    return value


@dataclass(frozen=True)
class CellRange:
    """A rate table rectangle: zero-based rows, inclusive, and column indexes.

    A price column of ``None`` means the table has no such lock period.
    """
    start_row: int
    end_row: int
    rate_col: int
    price_15_col: Optional[int]
    price_30_col: Optional[int]
    price_45_col: Optional[int]
    loan_term: LoanTerm
    loan_type: LoanType

    @classmethod
    def from_letters(
        cls, start_row: int, end_row: int, rate: str, p15: str, p30: str, p45: str,
        loan_term: str, loan_type: str,
    ) -> "CellRange":
        return cls(
            start_row=start_row,
            end_row=end_row,
            rate_col=col_to_index(rate),
            price_15_col=col_to_index(p15),
            price_30_col=col_to_index(p30),
            price_45_col=col_to_index(p45),
            loan_term=LoanTerm(loan_term),
            loan_type=LoanType(loan_type),
        )


def build_rate(
    raw_rate: Any,
    raw_prices: tuple[Any, Any, Any],
    loan_term: LoanTerm,
    loan_type: LoanType,
    normalize_rate: RateNormalizer = _identity,
    normalize_price: PriceNormalizer = _identity,
) -> ParsedRate | None:
    """Build a ParsedRate from raw cells, or None if it falls outside the bands.

    The 15-day price must be valid. A missing or invalid 30-day price falls
    back to the 15-day price, and 45-day falls back to 30-day.
    """
    rate = to_float(raw_rate)
    if rate is None:
        return None
    rate = normalize_rate(rate)
    if not is_valid_rate(rate):
        return None

    prices: list[float | None] = []
    for raw in raw_prices:
        value = to_float(raw)
        if value is not None:
            value = normalize_price(value)
        prices.append(value if is_valid_price(value) else None)

    p15, p30, p45 = prices
    if p15 is None:
        return None
    if p30 is None:
        p30 = p15
    if p45 is None:
        p45 = p30

    return ParsedRate(
        rate=round(rate, 4),
        price_15_day=p15,
        price_30_day=p30,
        price_45_day=p45,
        loan_term=loan_term,
        loan_type=loan_type,
    )


def scan_range(
    rows: Grid,
    rng: CellRange,
    normalize_rate: RateNormalizer = _identity,
    normalize_price: PriceNormalizer = _identity,
) -> list[ParsedRate]:
    """Scan a rectangle top to bottom, keeping rows that pass the numeric bands."""
    rates: list[ParsedRate] = []
    last = min(rng.end_row, len(rows) - 1)
    for r in range(rng.start_row, last + 1):
        raw_prices = tuple(
            cell(rows, r, col) if col is not None else None
            for col in (rng.price_15_col, rng.price_30_col, rng.price_45_col)
        )
        parsed = build_rate(
            cell(rows, r, rng.rate_col), raw_prices,
            rng.loan_term, rng.loan_type,
            normalize_rate, normalize_price,
        )
        if parsed is not None:
            rates.append(parsed)
    return rates


def dedupe_rates(rates: list[ParsedRate]) -> list[ParsedRate]:
    """One entry per (rate, term, type); the highest 15-day price wins.

    First-seen order is kept so re-parsing the same bytes is stable.
    """
    best: dict[tuple, ParsedRate] = {}
    for r in rates:
        key = (r.rate, r.loan_term, r.loan_type)
        existing = best.get(key)
        if existing is None or r.price_15_day > existing.price_15_day:
            best[key] = r
    return list(best.values())


# ---------------------------------------------------------------------------
# Fixed-position LLPA grids
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class GridSpec:
    """Location of an LLPA grid on a known lender layout (zero-based rows)."""
    name: str
    grid_type: GridType
    loan_purpose: GridLoanPurpose
    header_row: int
    data_start_row: int
    data_end_row: int
    label_col: str
    data_start_col: str
    data_end_col: str


def _grid_value(raw: Any) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, str) and raw.strip().upper() in ("", "N/A", "NA"):
        return None
    return to_float(raw)


def slice_grid(rows: Grid, spec: GridSpec) -> AdjustmentGrid | None:
    """Cut a grid out of a sheet at fixed coordinates; None if it is empty."""
    if spec.header_row >= len(rows):
        return None

    first_col = col_to_index(spec.data_start_col)
    last_col = col_to_index(spec.data_end_col)
    label_col = col_to_index(spec.label_col)

    x_labels = [normalize_label(cell(rows, spec.header_row, c))
                for c in range(first_col, last_col + 1)]

    y_labels: list[str] = []
    data: list[list[float | None]] = []
    for r in range(spec.data_start_row, min(spec.data_end_row, len(rows) - 1) + 1):
        label = normalize_label(cell(rows, r, label_col))
        if not label:
            continue
        y_labels.append(label)
        data.append([_grid_value(cell(rows, r, c)) for c in range(first_col, last_col + 1)])

    if not y_labels or not any(x_labels):
        return None

    logger.info("Parsed grid %r: %d rows x %d cols", spec.name, len(y_labels), len(x_labels))
    return AdjustmentGrid(
        name=spec.name,
        type=spec.grid_type,
        loan_purpose=spec.loan_purpose,
        axes=GridAxes(y=y_labels, x=x_labels),
        data=data,
    )
