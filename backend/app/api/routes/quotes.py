from fastapi import APIRouter, Depends

from app.api.deps import get_pricing_engine
from app.models.pricing import LoanParameters, PricingResult
from app.services.pricing_service import PricingEngine

router = APIRouter(tags=["quotes"])


@router.post("/quotes", response_model=PricingResult)
async def create_quote(params: LoanParameters, engine: PricingEngine = Depends(get_pricing_engine)):
    """Price a borrower scenario against every active rate sheet."""
    return await engine.calculate_rates(params)
