"""Lead intake: price the borrower's scenario and snapshot the rates shown."""
from __future__ import annotations

import json
import logging

from app.models.lead import Lead, LeadCreate, LeadResponse, QuotedRate
from app.models.pricing import LoanParameters, PricingResult
from app.services.pricing_service import PricingEngine

logger = logging.getLogger(__name__)

PROCESSING_FEE = 895.0
UNDERWRITING_FEE = 1245.0
MAX_QUOTED_RATES = 7
RATES_PER_MASKED_LENDER = 4


def loan_parameters_for(lead: LeadCreate) -> LoanParameters:
    purpose = lead.loan_purpose
    if purpose == "refinance" and lead.refinance_type in ("cash_out", "cashout", "cash-out"):
        purpose = "refinance-cashout"
    return LoanParameters(
        loan_amount=lead.loan_amount,
        property_value=lead.property_value,
        loan_term=lead.loan_term,
        loan_type=lead.loan_type,
        property_type=lead.property_type,
        credit_score=lead.credit_score,
        loan_purpose=purpose,
        state=lead.state,
    )


def build_quoted_rates(result: PricingResult) -> list[QuotedRate]:
    """Flatten every lender scenario, keep the lowest rates."""
    rates = []
    for quote in result.quotes:
        for s in quote.scenarios:
            rates.append(QuotedRate(
                lender=quote.lender_name,
                rate=s.rate,
                apr=s.apr,
                monthly_payment=s.monthly_payment,
                processing_fee=PROCESSING_FEE,
                underwriting_fee=UNDERWRITING_FEE,
                lender_fee=round(s.points_dollar) if not s.is_credit and s.points_dollar > 0 else None,
                lender_credit=round(s.points_dollar) if s.is_credit else None,
                note=s.scenario_label,
                net_price=s.net_price,
                adjustment_breakdown=s.adjustment_breakdown,
            ))
    rates.sort(key=lambda r: r.rate)
    return rates[:MAX_QUOTED_RATES]


def snapshot_json(rates: list[QuotedRate]) -> str:
    """Audit snapshot stored on the lead; keeps the real lender names."""
    return json.dumps([
        {**r.model_dump(mode="json"), "option_number": i + 1, "actual_lender": r.lender}
        for i, r in enumerate(rates)
    ])


def mask_lenders(rates: list[QuotedRate]) -> list[QuotedRate]:
    """Borrowers see "Lender A", "Lender B", ... with one letter per four options."""
    return [
        r.model_copy(update={"lender": f"Lender {chr(65 + i // RATES_PER_MASKED_LENDER)}"})
        for i, r in enumerate(rates)
    ]


async def create_lead_with_quotes(lead: LeadCreate, storage, engine: PricingEngine) -> LeadResponse:
    result = await engine.calculate_rates(loan_parameters_for(lead))
    if not result.validation_passed:
        logger.warning("Lead quote priced with a validation mismatch")

    rates = build_quoted_rates(result)
    stored: Lead = storage.create_lead(lead, snapshot_json(rates))
    logger.info("Created lead %d with %d quoted rates (source %s)",
                stored.id, len(rates), result.source.value)
    return LeadResponse(lead=stored, rates=mask_lenders(rates))
