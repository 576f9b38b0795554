"""Workbook loading and cell coercion for rate-sheet parsing.

Every supported tabular format is loaded into the same shape: an ordered
mapping of sheet name to a row-major grid of raw cell values. Blank rows and
cells are kept as ``None`` so fixed-layout coordinates stay valid.
"""
from __future__ import annotations

import logging
import math
import re
from io import BytesIO, StringIO
from typing import Any

logger = logging.getLogger(__name__)

Grid = list[list[Any]]

# ---------------------------------------------------------------------------
# Numeric bands
# ---------------------------------------------------------------------------
MIN_RATE = 3.0
MAX_RATE = 12.0
MIN_PRICE = 90.0   # exclusive
MAX_PRICE = 110.0  # exclusive


class RateSheetParseError(ValueError):
    """Raised by parsing internals; the facade turns it into ``parse_error``."""


class Workbook:
    """Sheets of a loaded rate-sheet file, in file order."""

    def __init__(self, sheets: dict[str, Grid]):
        self.sheets = sheets

    @property
    def sheet_names(self) -> list[str]:
        return list(self.sheets.keys())

    def rows(self, sheet_name: str) -> Grid | None:
        return self.sheets.get(sheet_name)

    def find_sheet(self, name: str) -> Grid | None:
        """Case-insensitive exact sheet lookup."""
        wanted = name.strip().lower()
        for sheet_name, rows in self.sheets.items():
            if sheet_name.strip().lower() == wanted:
                return rows
        return None


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------
def load_workbook(data: bytes, file_name: str) -> Workbook:
    """Load an .xlsx, .xls or .csv payload."""
    if not data:
        raise RateSheetParseError("Uploaded file is empty")

    lower = file_name.lower()
    if lower.endswith(".xlsx"):
        return _load_xlsx(data)
    if lower.endswith(".xls"):
        return _load_xls(data)
    if lower.endswith(".csv"):
        return _load_csv(data, file_name)
    raise RateSheetParseError(f"Unsupported file format: {file_name}")


def _load_xlsx(data: bytes) -> Workbook:
    import openpyxl

    wb = openpyxl.load_workbook(BytesIO(data), data_only=True)
    sheets: dict[str, Grid] = {}
    for ws in wb.worksheets:
        if ws.max_row == 1 and ws.max_column == 1 and ws.cell(1, 1).value is None:
            sheets[ws.title] = []
            continue
        sheets[ws.title] = [
            list(row)
            for row in ws.iter_rows(
                min_row=1, max_row=ws.max_row,
                min_col=1, max_col=ws.max_column,
                values_only=True,
            )
        ]
    wb.close()
    return Workbook(sheets)


def _load_xls(data: bytes) -> Workbook:
    import xlrd

    book = xlrd.open_workbook(file_contents=data)
    sheets: dict[str, Grid] = {}
    for sheet in book.sheets():
        rows: Grid = []
        for r in range(sheet.nrows):
            rows.append([None if v == "" else v for v in sheet.row_values(r)])
        sheets[sheet.name] = rows
    return Workbook(sheets)


def _load_csv(data: bytes, file_name: str) -> Workbook:
    import pandas as pd

    text = data.decode("utf-8-sig", errors="replace")
    if not text.strip():
        raise RateSheetParseError("Uploaded file is empty")

    # Ragged rows are common; size the frame to the widest line.
    width = max(line.count(",") for line in text.splitlines()) + 1
    df = pd.read_csv(
        StringIO(text),
        header=None,
        names=list(range(width)),
        skip_blank_lines=False,
    )
    df = df.astype(object).where(df.notna(), None)
    sheet_name = re.sub(r"\.csv$", "", file_name, flags=re.IGNORECASE) or "Sheet1"
    return Workbook({sheet_name: df.values.tolist()})


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------
def col_to_index(col: str) -> int:
    """Spreadsheet column letters to a zero-based index ('A' -> 0, 'AA' -> 26)."""
    result = 0
    for ch in col.upper():
        result = result * 26 + (ord(ch) - 64)
    return result - 1


def cell(rows: Grid, row: int, col: int) -> Any:
    if row < 0 or row >= len(rows):
        return None
    values = rows[row]
    if values is None or col < 0 or col >= len(values):
        return None
    return values[col]


def to_float(value: Any) -> float | None:
    """Coerce a cell to float; blanks, N/A markers and text give None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "").rstrip("%").strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_label(value: Any) -> str:
    """Canonicalize grid axis labels (``≤`` -> ``<=``, ``≥`` -> ``>=``)."""
    return cell_text(value).replace("≤", "<=").replace("≥", ">=").strip()


def is_valid_rate(value: float | None) -> bool:
    return value is not None and MIN_RATE <= value <= MAX_RATE


def is_valid_price(value: float | None) -> bool:
    return value is not None and MIN_PRICE < value < MAX_PRICE
