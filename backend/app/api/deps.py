from fastapi import Depends

from app.config import settings
from app.db.storage import Storage, get_storage
from app.models.pricing import PricingConfig
from app.services.llama_cloud import LlamaCloudClient
from app.services.pricing_service import PricingEngine


def get_rate_client() -> LlamaCloudClient:
    return LlamaCloudClient.from_settings(settings)


def get_pricing_engine(
    storage: Storage = Depends(get_storage),
    rate_client: LlamaCloudClient = Depends(get_rate_client),
) -> PricingEngine:
    """FastAPI dependency that builds an engine over the current store."""
    return PricingEngine(PricingConfig.from_settings(settings), storage, rate_client)
