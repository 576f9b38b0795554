"""Pricing numerics: amortization, LLPA lookups and the per-lender rate solver."""
from app.pricing.amortization import calculate_apr, calculate_monthly_payment
from app.pricing.adjustments import compute_adjustments, credit_score_to_fico
from app.pricing.solver import generate_quote_from_rate_sheet, sort_quotes
from app.pricing.mock_quotes import generate_mock_quotes
from app.pricing.validation import validate_pricing_result

__all__ = [
    "calculate_apr",
    "calculate_monthly_payment",
    "compute_adjustments",
    "credit_score_to_fico",
    "generate_quote_from_rate_sheet",
    "sort_quotes",
    "generate_mock_quotes",
    "validate_pricing_result",
]
