from fastapi.testclient import TestClient

from app.api.deps import get_rate_client
from app.db.storage import InMemoryStorage, get_storage
from app.main import app
from app.services.llama_cloud import LlamaCloudClient

client = TestClient(app)


def test_health_returns_200():
    storage = InMemoryStorage()
    storage.create_rate_sheet("Acme", "acme.xlsx", "AAAA")
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_rate_client] = lambda: LlamaCloudClient("", "http://localhost", "idx")
    try:
        response = client.get("/api/health")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"]["status"] in ("not_configured", "connected", "error", "unavailable")
    assert data["storage"] == "InMemoryStorage"
    assert data["active_rate_sheets"] == 1
    assert data["llama_cloud"] == {"configured": False}


def test_quote_no_body_returns_422():
    response = client.post("/api/quotes")
    assert response.status_code == 422
