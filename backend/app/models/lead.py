from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.pricing import AdjustmentBreakdown
from app.models.rate_sheet import LoanTerm, LoanType


class LeadCreate(BaseModel):
    """Validated borrower form input."""
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(min_length=10)
    zip_code: str = Field(min_length=5)
    loan_amount: float = Field(gt=0)
    property_value: float = Field(gt=0)
    loan_purpose: str = "purchase"
    refinance_type: Optional[str] = None
    credit_score: str
    loan_term: LoanTerm = LoanTerm.thirty
    loan_type: LoanType = LoanType.conventional
    property_type: str = "single_family"
    state: Optional[str] = None
    annual_income: float = 0
    is_first_time_buyer: bool = False


class Lead(LeadCreate):
    id: int
    quoted_rates: Optional[str] = None
    created_at: Optional[datetime] = None


class QuotedRate(BaseModel):
    """A single rate option as shown to the borrower."""
    lender: str
    rate: float
    apr: float
    monthly_payment: float
    processing_fee: float
    underwriting_fee: float
    lender_fee: Optional[float] = None
    lender_credit: Optional[float] = None
    note: Optional[str] = None
    net_price: Optional[float] = None
    adjustment_breakdown: list[AdjustmentBreakdown] = []


class LeadResponse(BaseModel):
    lead: Lead
    rates: list[QuotedRate]
