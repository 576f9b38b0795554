from fastapi import APIRouter, Depends

from app.api.deps import get_rate_client
from app.db.connection import db_pool
from app.db.storage import Storage, get_storage
from app.services.llama_cloud import LlamaCloudClient

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(
    storage: Storage = Depends(get_storage),
    rate_client: LlamaCloudClient = Depends(get_rate_client),
):
    llama_cloud = {"configured": rate_client.is_configured}
    if rate_client.is_configured:
        llama_cloud["index"] = rate_client.check_index_status().model_dump()
    return {
        "status": "ok",
        "database": db_pool.test_connection(),
        "storage": type(storage).__name__,
        "active_rate_sheets": len(storage.get_active_rate_sheets()),
        "llama_cloud": llama_cloud,
    }
