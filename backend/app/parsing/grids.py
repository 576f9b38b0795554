"""Dynamic LLPA grid detection for sheets without a known layout.

Two detectors:

* FICO/LTV grids: a FICO keyword cell, at least ``MIN_LTV_BUCKETS`` LTV
  bucket headers to its right, then FICO-labelled rows below until a blank
  or non-FICO label ends the block.
* State groups: a cell listing several two-letter state codes separated by
  commas or semicolons, with its adjustment in an adjacent cell or the cell
  below.
"""
from __future__ import annotations

import logging
import re
from typing import Any

from app.models.rate_sheet import AdjustmentGrid, GridAxes, GridLoanPurpose, GridType
from app.parsing.labels import extract_state_codes, is_fico_label
from app.parsing.workbook import Grid, cell, cell_text, normalize_label, to_float

logger = logging.getLogger(__name__)

MIN_LTV_BUCKETS = 3
MIN_GRID_ROWS = 3
MAX_HEADER_SCAN_ROWS = 200
MAX_KEYWORD_COLS = 20
LTV_SCAN_WIDTH = 15
MAX_GRID_ROWS = 20
STATE_VALUE_SCAN_WIDTH = 3

_FICO_KEYWORDS = ("fico", "credit score", "score")
_LTV_RANGE = re.compile(r"\d+\.\d+\s*-\s*\d+\.\d+")


def _is_fico_keyword(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    text = value.lower()
    return any(kw in text for kw in _FICO_KEYWORDS)


def _is_ltv_bucket(value: Any) -> bool:
    if value is None:
        return False
    text = str(value)
    return (
        "%" in text or "<" in text or ">" in text or "≤" in text or "≥" in text
        or "LTV" in text.upper() or bool(_LTV_RANGE.search(text))
    )


def _grid_cell(value: Any) -> float | None:
    if isinstance(value, str) and value.strip().upper() == "N/A":
        return None
    return to_float(value)


def find_fico_ltv_grids(
    rows: Grid,
    sheet_name: str,
    loan_purpose: GridLoanPurpose = GridLoanPurpose.all,
) -> list[AdjustmentGrid]:
    grids: list[AdjustmentGrid] = []
    consumed_until = -1

    for r in range(min(len(rows), MAX_HEADER_SCAN_ROWS)):
        if r <= consumed_until or not rows[r]:
            continue
        row = rows[r]
        for c in range(min(len(row), MAX_KEYWORD_COLS)):
            if not _is_fico_keyword(row[c]):
                continue

            bucket_cols = [
                scan for scan in range(c + 1, min(len(row), c + 1 + LTV_SCAN_WIDTH))
                if _is_ltv_bucket(row[scan])
            ]
            if len(bucket_cols) < MIN_LTV_BUCKETS:
                continue

            y_labels: list[str] = []
            data: list[list[float | None]] = []
            last_row = r
            for dr in range(r + 1, min(len(rows), r + 1 + MAX_GRID_ROWS)):
                label = normalize_label(cell(rows, dr, c))
                if not is_fico_label(label):
                    if y_labels:
                        break
                    continue
                y_labels.append(label)
                data.append([_grid_cell(cell(rows, dr, col)) for col in bucket_cols])
                last_row = dr

            if len(y_labels) < MIN_GRID_ROWS:
                continue

            x_labels = [normalize_label(row[col]) for col in bucket_cols]
            grids.append(AdjustmentGrid(
                name=f"{sheet_name} FICO/LTV Grid",
                type=GridType.fico_ltv,
                loan_purpose=loan_purpose,
                axes=GridAxes(y=y_labels, x=x_labels),
                data=data,
            ))
            logger.info(
                "Found grid in %s at row %d: %d FICO x %d LTV",
                sheet_name, r, len(y_labels), len(x_labels),
            )
            consumed_until = last_row
            break

    return grids


def find_state_grid(rows: Grid, sheet_name: str) -> AdjustmentGrid | None:
    """Collect every state-group definition on a sheet into one grid."""
    labels: list[str] = []
    data: list[list[float | None]] = []

    for r, row in enumerate(rows):
        if not row:
            continue
        for c, value in enumerate(row):
            if not isinstance(value, str):
                continue
            if len(extract_state_codes(value)) < 2:
                continue

            adjustment = None
            for scan in range(c + 1, c + 1 + STATE_VALUE_SCAN_WIDTH):
                adjustment = to_float(cell(rows, r, scan))
                if adjustment is not None:
                    break
            if adjustment is None:
                adjustment = to_float(cell(rows, r + 1, c))
            if adjustment is None:
                logger.debug("State group %r on %s has no adjustment value", value, sheet_name)
                continue

            labels.append(cell_text(value))
            data.append([adjustment])

    if not labels:
        return None

    logger.info("Found %d state groups in %s", len(labels), sheet_name)
    return AdjustmentGrid(
        name=f"{sheet_name} State Adjustments",
        type=GridType.state,
        loan_purpose=GridLoanPurpose.all,
        axes=GridAxes(y=labels, x=["Adjustment"]),
        data=data,
    )


def find_grids(rows: Grid, sheet_name: str) -> list[AdjustmentGrid]:
    grids = find_fico_ltv_grids(rows, sheet_name)
    state_grid = find_state_grid(rows, sheet_name)
    if state_grid is not None:
        grids.append(state_grid)
    return grids
