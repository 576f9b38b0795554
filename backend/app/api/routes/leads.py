from fastapi import APIRouter, Depends

from app.api.deps import get_pricing_engine
from app.db.storage import Storage, get_storage
from app.models.lead import Lead, LeadCreate, LeadResponse
from app.services.lead_service import create_lead_with_quotes
from app.services.pricing_service import PricingEngine

router = APIRouter(tags=["leads"])


@router.post("/leads", response_model=LeadResponse)
async def create_lead(
    lead: LeadCreate,
    storage: Storage = Depends(get_storage),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    """Price the lead's scenario, store it with a rate snapshot, return masked rates."""
    return await create_lead_with_quotes(lead, storage, engine)


@router.get("/leads", response_model=list[Lead])
def get_leads(storage: Storage = Depends(get_storage)):
    return storage.get_leads()
