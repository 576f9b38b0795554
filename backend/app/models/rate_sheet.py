from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator


class LoanTerm(str, Enum):
    """Amortization terms that rate sheets are keyed by."""
    ten = "10yr"
    fifteen = "15yr"
    twenty = "20yr"
    twenty_five = "25yr"
    thirty = "30yr"

    @property
    def years(self) -> int:
        return int(self.value[:-2])


class LoanType(str, Enum):
    conventional = "conventional"
    fha = "fha"
    va = "va"
    usda = "usda"
    jumbo = "jumbo"
    dscr = "dscr"


class GridType(str, Enum):
    """What a grid's row axis is keyed by."""
    fico_ltv = "fico_ltv"
    state = "state"
    property = "property"
    loan_amount = "loan_amount"
    loan_purpose = "loan_purpose"
    other = "other"


class GridLoanPurpose(str, Enum):
    """Which loan purposes a grid applies to."""
    purchase = "purchase"
    rt_refi = "rt_refi"
    co_refi = "co_refi"
    all = "all"


class ParsedRate(BaseModel):
    """One point on a lender's rate/price curve. Prices are percent of par."""
    rate: float
    price_15_day: float
    price_30_day: float
    price_45_day: float
    loan_term: LoanTerm
    loan_type: LoanType

    model_config = {"frozen": True}

    def price_for_lock(self, lock_days: int) -> float:
        if lock_days >= 45:
            return self.price_45_day
        if lock_days >= 30:
            return self.price_30_day
        return self.price_15_day


class GridAxes(BaseModel):
    y: list[str]
    x: list[str]

    model_config = {"frozen": True}


class AdjustmentGrid(BaseModel):
    """An LLPA matrix. Positive values improve price; None means no data."""
    name: str
    type: GridType
    loan_purpose: GridLoanPurpose = GridLoanPurpose.all
    axes: GridAxes
    data: list[list[Optional[float]]]

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_shape(self) -> "AdjustmentGrid":
        if len(self.data) != len(self.axes.y):
            raise ValueError(
                f"Grid '{self.name}' has {len(self.data)} data rows "
                f"but {len(self.axes.y)} row labels"
            )
        width = len(self.axes.x)
        for idx, row in enumerate(self.data):
            if len(row) != width:
                raise ValueError(
                    f"Grid '{self.name}' row {idx} has {len(row)} cells, expected {width}"
                )
        return self


class ParsedRateSheet(BaseModel):
    lender_name: str
    rates: list[ParsedRate] = []
    adjustments: list[AdjustmentGrid] = []
    parse_success: bool
    parse_error: Optional[str] = None

    model_config = {"frozen": True}


class RateSheetRecord(BaseModel):
    """A stored rate-sheet upload. ``file_data`` is base64."""
    id: int
    lender_name: str
    file_name: str
    file_data: str
    is_active: bool = True
    uploaded_at: Optional[datetime] = None


class RateSheetSummary(BaseModel):
    id: int
    lender_name: str
    file_name: str
    is_active: bool
    uploaded_at: Optional[datetime] = None
    llama_cloud_sync: Optional[bool] = None


class RateSheetUpload(BaseModel):
    lender_name: str
    file_name: str
    file_data: str


class RateSheetToggle(BaseModel):
    is_active: bool


class RateSheetStatus(BaseModel):
    """Parse report for one stored sheet."""
    id: int
    lender_name: str
    file_name: str
    parse_success: bool
    rate_count: int
    grid_count: int
    parse_error: Optional[str] = None
