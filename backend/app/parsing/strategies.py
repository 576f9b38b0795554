"""Lender layout strategies.

Each strategy bundles lender detection, rate-table extraction and LLPA grid
extraction. ``detect_strategy`` walks the registry: sheet-tab signatures
first, then lender-name hints, then the dynamic fallback.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

from app.models.rate_sheet import (
    AdjustmentGrid,
    GridLoanPurpose,
    GridType,
    LoanTerm,
    LoanType,
    ParsedRate,
)
from app.parsing.grids import find_fico_ltv_grids, find_grids
from app.parsing.tables import (
    CellRange,
    GridSpec,
    PriceNormalizer,
    RateNormalizer,
    build_rate,
    scan_range,
    slice_grid,
)
from app.parsing.workbook import Grid, Workbook, cell

logger = logging.getLogger(__name__)

DYNAMIC_SCAN_ROWS = 50
PRICE_HEADER_SCAN_WIDTH = 6
TITLE_SCAN_ROWS = 5
SIGNED_PRICE_LIMIT = 20.0
LOCK_PERIODS = (15, 30, 45)

_LOCK_HEADER = re.compile(r"\b(15|30|45)\b")
_TERM_PATTERN = re.compile(r"\b(10|15|20|25|30)\s*-?\s*(?:yr|year)", re.IGNORECASE)
_TYPE_PATTERNS: tuple[tuple[re.Pattern, LoanType], ...] = (
    (re.compile(r"fhlmc|fnma|freddie|fannie|conventional|\bconv\b", re.IGNORECASE),
     LoanType.conventional),
    (re.compile(r"gnma|govt|\bfha\b", re.IGNORECASE), LoanType.fha),
    (re.compile(r"\bva\b", re.IGNORECASE), LoanType.va),
    (re.compile(r"usda", re.IGNORECASE), LoanType.usda),
    (re.compile(r"jumbo", re.IGNORECASE), LoanType.jumbo),
    (re.compile(r"dscr", re.IGNORECASE), LoanType.dscr),
)


def is_adjustment_sheet(sheet_name: str) -> bool:
    """Adjustment tabs never hold rate tables."""
    lower = sheet_name.lower()
    return "ADJ" in sheet_name or "adjustment" in lower or "llpa" in lower


def _identity(value: float) -> float:
    return value


def decimal_rate(rate: float) -> float:
    """Rates stored as decimals (0.07125) become percents (7.125)."""
    if 0 < rate < 1:
        return rate * 100
    return rate


def signed_price(price: float) -> float:
    """Signed deviation from par to a price: -4.0 -> 104.0, 0.5 -> 99.5."""
    if abs(price) >= SIGNED_PRICE_LIMIT:
        return price
    if price < 0:
        return 100 + abs(price)
    return 100 - price


# ---------------------------------------------------------------------------
# Context inference
# ---------------------------------------------------------------------------
def context_from_text(text: str) -> tuple[Optional[LoanTerm], Optional[LoanType]]:
    """Loan term and type named in a sheet name or title; the last type keyword wins."""
    term = None
    m = _TERM_PATTERN.search(text)
    if m:
        term = LoanTerm(f"{m.group(1)}yr")

    loan_type = None
    best_pos = -1
    for pattern, candidate in _TYPE_PATTERNS:
        for match in pattern.finditer(text):
            if match.start() > best_pos:
                best_pos, loan_type = match.start(), candidate
    return term, loan_type


def _title_context(
    rows: Grid, header_row: int, rate_col: int
) -> tuple[Optional[LoanTerm], Optional[LoanType]]:
    term = loan_type = None
    for r in range(header_row - 1, max(header_row - TITLE_SCAN_ROWS, 0) - 1, -1):
        for c in range(max(rate_col - 1, 0), rate_col + PRICE_HEADER_SCAN_WIDTH):
            value = cell(rows, r, c)
            if not isinstance(value, str):
                continue
            found_term, found_type = context_from_text(value)
            term = term or found_term
            loan_type = loan_type or found_type
        if term and loan_type:
            break
    return term, loan_type


# ---------------------------------------------------------------------------
# Dynamic header detection
# ---------------------------------------------------------------------------
def _is_rate_header(value) -> bool:
    return isinstance(value, str) and "rate" in value.lower()


def _lock_period(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value in LOCK_PERIODS else None
    text = str(value).strip().lower()
    if text in ("15", "30", "45"):
        return int(text)
    m = _LOCK_HEADER.search(text)
    if m and ("day" in text or "lock" in text):
        return int(m.group(1))
    return None


def _price_columns(row: list, rate_col: int) -> dict[int, int]:
    """Map lock period to column for the price headers right of a rate header."""
    locks: dict[int, int] = {}
    generic: list[int] = []
    for c in range(rate_col + 1, min(len(row), rate_col + 1 + PRICE_HEADER_SCAN_WIDTH)):
        value = row[c]
        if _is_rate_header(value):
            break
        period = _lock_period(value)
        if period is not None and period not in locks:
            locks[period] = c
        elif isinstance(value, str) and "price" in value.lower():
            generic.append(c)

    if not locks:
        locks = dict(zip(LOCK_PERIODS, generic))
    elif 15 not in locks:
        # The shortest lock present stands in for the 15-day price.
        shortest = min(locks)
        locks[15] = locks.pop(shortest)
    return locks


def find_rate_tables(
    rows: Grid,
    sheet_name: str,
    normalize_rate: RateNormalizer = _identity,
    normalize_price: PriceNormalizer = _identity,
) -> list[ParsedRate]:
    """Scan a sheet for ``Rate | 15 Day | 30 Day | 45 Day`` style tables."""
    sheet_term, sheet_type = context_from_text(sheet_name)
    rates: list[ParsedRate] = []

    for r, row in enumerate(rows):
        if not row:
            continue
        for c, value in enumerate(row):
            if not _is_rate_header(value):
                continue
            locks = _price_columns(row, c)
            if 15 not in locks:
                continue

            title_term, title_type = _title_context(rows, r, c)
            term = title_term or sheet_term or LoanTerm.thirty
            loan_type = title_type or sheet_type or LoanType.conventional

            found = 0
            for dr in range(r + 1, min(len(rows), r + 1 + DYNAMIC_SCAN_ROWS)):
                raw_rate = cell(rows, dr, c)
                if _is_rate_header(raw_rate):
                    break
                parsed = build_rate(
                    raw_rate,
                    (cell(rows, dr, locks.get(15, -1)),
                     cell(rows, dr, locks.get(30, -1)),
                     cell(rows, dr, locks.get(45, -1))),
                    term, loan_type, normalize_rate, normalize_price,
                )
                if parsed is not None:
                    rates.append(parsed)
                    found += 1

            if found:
                logger.info(
                    "Found rate table on %s at row %d col %d: %d rates (%s %s)",
                    sheet_name, r, c, found, term.value, loan_type.value,
                )
    return rates


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
class ParserStrategy:
    """Dynamic detection; the fallback for unrecognized lenders."""

    name = "dynamic"
    name_hints: tuple[str, ...] = ()

    def matches_sheets(self, sheet_names: list[str]) -> bool:
        return False

    def matches_lender(self, lender_name: str) -> bool:
        lower = lender_name.lower()
        return any(hint in lower for hint in self.name_hints)

    def rate_sheets(self, workbook: Workbook) -> list[str]:
        return [name for name in workbook.sheet_names if not is_adjustment_sheet(name)]

    def grid_sheets(self, workbook: Workbook) -> list[str]:
        return [name for name in workbook.sheet_names if is_adjustment_sheet(name)]

    def parse_rates(self, workbook: Workbook) -> list[ParsedRate]:
        rates: list[ParsedRate] = []
        for sheet_name in self.rate_sheets(workbook):
            rates.extend(find_rate_tables(
                workbook.rows(sheet_name), sheet_name,
                self.normalize_rate, self.normalize_price,
            ))
        return rates

    def parse_grids(self, workbook: Workbook) -> list[AdjustmentGrid]:
        grids: list[AdjustmentGrid] = []
        for sheet_name in self.grid_sheets(workbook):
            grids.extend(find_grids(workbook.rows(sheet_name), sheet_name))
        return grids

    @staticmethod
    def normalize_rate(value: float) -> float:
        return value

    @staticmethod
    def normalize_price(value: float) -> float:
        return value


class DynamicStrategy(ParserStrategy):
    pass


class WindsorStrategy(ParserStrategy):
    name = "windsor"
    name_hints = ("windsor",)

    def matches_sheets(self, sheet_names: list[str]) -> bool:
        return any("jumbo" in s and "llpa" in s for s in sheet_names)


class PrmgStrategy(ParserStrategy):
    """Decimal rates and signed-deviation prices."""

    name = "prmg"
    name_hints = ("prmg", "agency", "wholesale")
    excluded_tokens = ("ADJ", "SPEC", "NOOSH")

    def matches_sheets(self, sheet_names: list[str]) -> bool:
        return any("agency" in s or "non-qm" in s for s in sheet_names)

    def rate_sheets(self, workbook: Workbook) -> list[str]:
        return [
            name for name in workbook.sheet_names
            if not any(token in name for token in self.excluded_tokens)
            and not is_adjustment_sheet(name)
        ]

    def grid_sheets(self, workbook: Workbook) -> list[str]:
        return [name for name in workbook.sheet_names if "ADJ" in name]

    def parse_grids(self, workbook: Workbook) -> list[AdjustmentGrid]:
        grids: list[AdjustmentGrid] = []
        for sheet_name in self.grid_sheets(workbook):
            grids.extend(find_fico_ltv_grids(workbook.rows(sheet_name), sheet_name))
        return grids

    normalize_rate = staticmethod(decimal_rate)
    normalize_price = staticmethod(signed_price)


class FixedLayoutStrategy(ParserStrategy):
    """Rate tables at known rectangles, keyed by sheet tab."""

    signature: tuple[str, ...] = ()
    ranges: dict[str, tuple[CellRange, ...]] = {}

    def matches_sheets(self, sheet_names: list[str]) -> bool:
        return all(tab in sheet_names for tab in self.signature)

    def parse_rates(self, workbook: Workbook) -> list[ParsedRate]:
        rates: list[ParsedRate] = []
        for sheet_name, ranges in self.ranges.items():
            rows = workbook.find_sheet(sheet_name)
            if rows is None:
                logger.debug("%s layout: sheet %r not present", self.name, sheet_name)
                continue
            logger.info("%s layout: %s has %d rows", self.name, sheet_name, len(rows))
            for rng in ranges:
                rates.extend(scan_range(rows, rng))
        return rates


def _ranges(specs) -> tuple[CellRange, ...]:
    return tuple(CellRange.from_letters(*spec) for spec in specs)


def _gov_ranges(loan_type: str) -> tuple[CellRange, ...]:
    return _ranges([
        (6, 38, "C", "D", "E", "F", "30yr", loan_type),
        (6, 35, "H", "I", "J", "K", "25yr", loan_type),
        (6, 38, "M", "N", "O", "P", "20yr", loan_type),
        (6, 38, "R", "S", "T", "U", "15yr", loan_type),
    ])


class RocketStrategy(FixedLayoutStrategy):
    name = "rocket"
    name_hints = ("rocket",)
    signature = ("ws du & lp pricing", "ws rate sheet summary")
    pricing_sheet = "WS DU & LP Pricing"

    ranges = {
        "WS DU & LP Pricing": _ranges([
            (4, 38, "C", "D", "E", "F", "30yr", "conventional"),
            (8, 32, "H", "I", "J", "K", "25yr", "conventional"),
            (4, 38, "L", "M", "N", "O", "20yr", "conventional"),
            (4, 38, "Q", "R", "S", "T", "15yr", "conventional"),
            (40, 72, "B", "C", "D", "E", "10yr", "conventional"),
        ]),
        "FHA Full Doc Pricing": _gov_ranges("fha"),
        "VA Full Doc Pricing": _gov_ranges("va"),
    }

    def grid_sheets(self, workbook: Workbook) -> list[str]:
        return [n for n in workbook.sheet_names if "LLPA" in n or "Govy" in n]

    def parse_grids(self, workbook: Workbook) -> list[AdjustmentGrid]:
        grids = super().parse_grids(workbook)
        rows = workbook.find_sheet(self.pricing_sheet)
        if rows is not None:
            # LLPA blocks sometimes sit below the rate tables on the pricing tab.
            grids.extend(find_grids(rows, "WS DU & LP LLPA"))
        return grids


def _llpa(name, grid_type, purpose, header_row, start, end) -> GridSpec:
    return GridSpec(
        name=name,
        grid_type=GridType(grid_type),
        loan_purpose=GridLoanPurpose(purpose),
        header_row=header_row,
        data_start_row=start,
        data_end_row=end,
        label_col="A",
        data_start_col="C",
        data_end_col="K",
    )


class ELendStrategy(FixedLayoutStrategy):
    name = "elend"
    name_hints = ("elend", "e-lend")
    signature = ("gnma", "fhlmc-fnma")

    ranges = {
        "GNMA": _ranges([
            (7, 33, "A", "B", "C", "D", "30yr", "fha"),
            (7, 33, "K", "L", "M", "N", "25yr", "fha"),
            (35, 61, "A", "B", "C", "D", "15yr", "fha"),
            (35, 61, "K", "L", "M", "N", "10yr", "fha"),
            (119, 145, "A", "B", "C", "D", "30yr", "va"),
            (119, 145, "K", "L", "M", "N", "25yr", "va"),
            (119, 145, "U", "V", "W", "X", "20yr", "va"),
            (147, 173, "A", "B", "C", "D", "15yr", "va"),
            (147, 173, "K", "L", "M", "N", "10yr", "va"),
        ]),
        # Freddie Mac blocks first, then Fannie Mae.
        "FHLMC-FNMA": _ranges([
            (7, 32, "A", "B", "C", "D", "30yr", "conventional"),
            (7, 32, "U", "V", "W", "X", "20yr", "conventional"),
            (35, 60, "F", "G", "H", "I", "15yr", "conventional"),
            (63, 88, "A", "B", "C", "D", "30yr", "conventional"),
            (63, 88, "U", "V", "W", "X", "20yr", "conventional"),
            (91, 116, "A", "B", "C", "D", "15yr", "conventional"),
        ]),
    }

    grid_specs = {
        "FHLMC-FNMA LLPA": (
            _llpa("FHLMC Purchase FICO/LTV", "fico_ltv", "purchase", 7, 9, 17),
            _llpa("FHLMC Purchase Property Adjustments", "property", "purchase", 7, 19, 27),
            _llpa("FHLMC R/T Refi FICO/LTV", "fico_ltv", "rt_refi", 28, 30, 38),
            _llpa("FHLMC R/T Refi Property Adjustments", "property", "rt_refi", 28, 40, 47),
            _llpa("FHLMC C/O Refi FICO/LTV", "fico_ltv", "co_refi", 49, 51, 59),
        ),
        "GNMA LLPA": (
            _llpa("GNMA FICO/LTV", "fico_ltv", "all", 7, 9, 17),
        ),
    }

    def parse_grids(self, workbook: Workbook) -> list[AdjustmentGrid]:
        grids: list[AdjustmentGrid] = []
        for sheet_name, specs in self.grid_specs.items():
            rows = workbook.find_sheet(sheet_name)
            if rows is None:
                continue
            for spec in specs:
                grid = slice_grid(rows, spec)
                if grid is not None:
                    grids.append(grid)
        return grids


ROCKET = RocketStrategy()
ELEND = ELendStrategy()
WINDSOR = WindsorStrategy()
PRMG = PrmgStrategy()
DYNAMIC = DynamicStrategy()

# First match wins in each pass.
SIGNATURE_ORDER: tuple[ParserStrategy, ...] = (ROCKET, ELEND, WINDSOR, PRMG)
NAME_HINT_ORDER: tuple[ParserStrategy, ...] = (PRMG, WINDSOR, ELEND, ROCKET)


def detect_strategy(workbook: Workbook, lender_name: str) -> ParserStrategy:
    sheet_names = [name.strip().lower() for name in workbook.sheet_names]
    for strategy in SIGNATURE_ORDER:
        if strategy.matches_sheets(sheet_names):
            logger.info("Detected %s rate sheet structure", strategy.name)
            return strategy
    for strategy in NAME_HINT_ORDER:
        if strategy.matches_lender(lender_name):
            logger.info("Lender detected from name %r: %s", lender_name, strategy.name)
            return strategy
    logger.info("Using dynamic parser for unknown structure")
    return DYNAMIC
