"""Last-resort illustrative quotes when no rate data is available.

A fixed base rate is nudged by credit tier, LTV, loan type and term, then
three mock lenders each offer four points/credit variations around it.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.models.pricing import LenderQuote, LoanParameters, PricingScenario
from app.models.rate_sheet import LoanTerm, LoanType
from app.pricing.adjustments import credit_tier
from app.pricing.amortization import calculate_monthly_payment

MOCK_BASE_RATE = 6.5

_CREDIT_ADJ = {"excellent": -0.375, "good": -0.125, "fair": 0.25, "poor": 0.625}
_TYPE_ADJ = {LoanType.fha: -0.25, LoanType.va: -0.375, LoanType.jumbo: 0.25}
_TERM_ADJ = {LoanTerm.fifteen: -0.5, LoanTerm.twenty: -0.25}

MOCK_LENDERS = (("Lender A", 0.0), ("Lender B", 0.125), ("Lender C", 0.0625))


@dataclass(frozen=True)
class _MockOffer:
    label: str
    rate_delta: float
    apr_delta: float
    points: float  # negative is a credit


_OFFERS = (
    _MockOffer("Best Available Rate (Par)", 0.0, 0.15, 0.0),
    _MockOffer("Pay 1 Point (Lower Rate)", -0.25, -0.1, 1.0),
    _MockOffer("Pay 1.5 Points (Lowest Rate)", -0.375, -0.225, 1.5),
    _MockOffer("Receive 0.5 Point Credit", 0.125, 0.275, -0.5),
)


def mock_base_rate(params: LoanParameters) -> float:
    rate = MOCK_BASE_RATE
    rate += _CREDIT_ADJ[credit_tier(params.credit_score)]
    ltv = params.ltv
    if ltv > 80:
        rate += 0.125
    if ltv > 90:
        rate += 0.125
    rate += _TYPE_ADJ.get(params.loan_type, 0.0)
    rate += _TERM_ADJ.get(params.loan_term, 0.0)
    return rate


def generate_mock_quotes(params: LoanParameters) -> list[LenderQuote]:
    base_rate = mock_base_rate(params)
    term_months = params.loan_term.years * 12

    quotes = []
    for lender_name, offset in MOCK_LENDERS:
        lender_rate = base_rate + offset
        scenarios = []
        for offer in _OFFERS:
            rate = lender_rate + offer.rate_delta
            scenarios.append(PricingScenario(
                rate=round(rate, 3),
                apr=round(lender_rate + offer.apr_delta, 3),
                monthly_payment=round(calculate_monthly_payment(params.loan_amount, rate, term_months), 2),
                points_percent=abs(offer.points),
                points_dollar=round(params.loan_amount * abs(offer.points) / 100.0, 2),
                is_credit=offer.points < 0,
                scenario_label=offer.label,
                net_price=100.0 - offer.points,
            ))
        quotes.append(LenderQuote(
            lender_name=lender_name, scenarios=scenarios, base_price=100.0, adjusted_price=100.0,
        ))
    return quotes
