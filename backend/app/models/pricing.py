from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.models.rate_sheet import GridType, LoanTerm, LoanType


class SolveDirection(str, Enum):
    """Which side of the par rate a target may pick from."""
    closest = "closest"
    lower = "lower"
    higher = "higher"


class AprMethod(str, Enum):
    newton = "newton"
    simple = "simple"


class QuoteSource(str, Enum):
    """Which tier of the fallback chain produced a result."""
    rate_sheets = "rate_sheets"
    external = "external"
    mock = "mock"


class PriceTarget(BaseModel):
    name: str
    label: str
    price: float
    direction: SolveDirection = SolveDirection.closest

    model_config = {"frozen": True}


DEFAULT_TARGETS = (
    PriceTarget(name="par", label="Par Rate (No Points)", price=100.0,
                direction=SolveDirection.closest),
    PriceTarget(name="buydown", label="Pay Points (Lower Rate)", price=98.5,
                direction=SolveDirection.lower),
    PriceTarget(name="credit", label="Receive Lender Credit", price=100.5,
                direction=SolveDirection.higher),
)


class PricingConfig(BaseModel):
    """Immutable engine configuration. The margin is never shown to borrowers."""
    lender_margin: float = 2.50
    targets: tuple[PriceTarget, ...] = DEFAULT_TARGETS
    lock_period_days: int = 15
    base_closing_costs: float = 1500.0
    apr_method: AprMethod = AprMethod.newton
    external_min_rates: int = 5
    validation_rate_epsilon: float = 0.001
    validation_payment_epsilon: float = 0.01

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings) -> "PricingConfig":
        return cls(
            lender_margin=settings.LENDER_MARGIN,
            lock_period_days=settings.LOCK_PERIOD_DAYS,
            base_closing_costs=settings.BASE_CLOSING_COSTS,
            apr_method=AprMethod(settings.APR_METHOD),
            external_min_rates=settings.EXTERNAL_MIN_RATES,
        )


class LoanParameters(BaseModel):
    """Borrower scenario driving a quote.

    ``credit_score`` is either a coarse tier (excellent/good/fair/poor) or a
    FICO range string such as ``"740-759"``.
    """
    loan_amount: float = Field(gt=0)
    property_value: float = Field(gt=0)
    loan_term: LoanTerm = LoanTerm.thirty
    loan_type: LoanType = LoanType.conventional
    property_type: str = "single_family"
    credit_score: str = "good"
    loan_purpose: str = "purchase"
    state: Optional[str] = None

    @property
    def ltv(self) -> float:
        return self.loan_amount * 100.0 / self.property_value


class AdjustmentBreakdown(BaseModel):
    """One grid lookup that contributed to the adjustment total."""
    grid_name: str
    grid_type: GridType
    row_label: str
    column_label: str
    value: float


class PricingScenario(BaseModel):
    rate: float
    apr: float
    monthly_payment: float
    points_percent: float
    points_dollar: float
    is_credit: bool
    scenario_label: str
    net_price: float
    adjustment_breakdown: list[AdjustmentBreakdown] = []


class LenderQuote(BaseModel):
    lender_name: str
    scenarios: list[PricingScenario]
    base_price: float
    adjusted_price: float
    total_adjustments: float = 0.0


class PricingResult(BaseModel):
    quotes: list[LenderQuote] = []
    best_quote: Optional[LenderQuote] = None
    validation_passed: bool = True
    parse_errors: list[str] = []
    source: QuoteSource = QuoteSource.rate_sheets
