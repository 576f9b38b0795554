"""Tests for the rate sheet, quote and lead endpoints."""
import base64
import io
import json

import pytest
import requests
from fastapi.testclient import TestClient
from openpyxl import Workbook

from app.api.deps import get_rate_client
from app.db.storage import InMemoryStorage, get_storage
from app.main import app
from app.services.llama_cloud import LlamaCloudClient, UploadResult

client = TestClient(app)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _make_excel_bytes(rates=None):
    """A dynamic-layout rate sheet spanning enough rates to price any margin."""
    if rates is None:
        rates = [(5.5 + i * 0.125, 97.0 + i * 0.4) for i in range(17)]
    wb = Workbook()
    ws = wb.active
    ws.title = "Conventional 30 Year"
    ws.append(["Rate", "15 Day", "30 Day", "45 Day"])
    for rate, price in rates:
        ws.append([rate, price, price - 0.125, price - 0.25])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _upload_body(lender="Acme", file_name="acme.xlsx", data=None):
    raw = _make_excel_bytes() if data is None else data
    return {
        "lender_name": lender,
        "file_name": file_name,
        "file_data": base64.b64encode(raw).decode("ascii"),
    }


def _lead_body(**overrides):
    body = {
        "first_name": "Dana",
        "last_name": "Reyes",
        "email": "dana@example.com",
        "phone": "5125550100",
        "zip_code": "78701",
        "loan_amount": 350000,
        "property_value": 450000,
        "loan_purpose": "purchase",
        "credit_score": "excellent",
        "loan_term": "30yr",
        "loan_type": "conventional",
    }
    body.update(overrides)
    return body


class _SyncingClient:
    is_configured = True

    def __init__(self):
        self.uploads = []

    def upload_rate_sheet(self, file_data, file_name, lender_name):
        self.uploads.append((file_name, lender_name))
        return UploadResult(success=True, document_id="doc-1")

    def query_external_rates(self, params):
        return []


@pytest.fixture(autouse=True)
def storage():
    store = InMemoryStorage()
    app.dependency_overrides[get_storage] = lambda: store
    app.dependency_overrides[get_rate_client] = lambda: LlamaCloudClient("", "http://localhost", "idx")
    yield store
    app.dependency_overrides.clear()


class TestRateSheetRoutes:
    def test_create_and_list(self):
        response = client.post("/api/rate-sheets", json=_upload_body())
        assert response.status_code == 200
        sheet = response.json()
        assert sheet["id"] == 1
        assert sheet["lender_name"] == "Acme"
        assert sheet["is_active"] is True
        assert sheet["llama_cloud_sync"] is None
        assert "file_data" not in sheet

        listed = client.get("/api/rate-sheets").json()
        assert [s["file_name"] for s in listed] == ["acme.xlsx"]

    def test_multipart_upload(self):
        response = client.post(
            "/api/rate-sheets/upload",
            files={"file": ("bravo.xlsx", io.BytesIO(_make_excel_bytes()), XLSX_MIME)},
            data={"lender_name": "Bravo"},
        )
        assert response.status_code == 200
        assert response.json()["lender_name"] == "Bravo"

        parsed = client.get(f"/api/rate-sheets/{response.json()['id']}/parsed").json()
        assert parsed["parse_success"] is True
        assert len(parsed["rates"]) == 17

    def test_unsupported_extension_rejected(self):
        response = client.post("/api/rate-sheets", json=_upload_body(file_name="rates.txt"))
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["detail"]

    def test_invalid_base64_rejected(self, storage):
        body = _upload_body()
        body["file_data"] = "%%% not base64 %%%"
        response = client.post("/api/rate-sheets", json=body)
        assert response.status_code == 400
        assert storage.get_rate_sheets() == []

    def test_sheet_limit(self):
        for i in range(5):
            assert client.post("/api/rate-sheets", json=_upload_body(lender=f"L{i}")).status_code == 200
        response = client.post("/api/rate-sheets", json=_upload_body(lender="L5"))
        assert response.status_code == 400
        assert "Maximum of 5 rate sheets" in response.json()["detail"]

    def test_llama_cloud_sync(self):
        syncing = _SyncingClient()
        app.dependency_overrides[get_rate_client] = lambda: syncing
        response = client.post("/api/rate-sheets", json=_upload_body())
        assert response.json()["llama_cloud_sync"] is True
        assert syncing.uploads == [("acme.xlsx", "Acme")]

    def test_status_report(self):
        client.post("/api/rate-sheets", json=_upload_body())
        client.post("/api/rate-sheets", json=_upload_body(lender="Empty", data=_make_excel_bytes([])))
        report = client.get("/api/rate-sheets/status").json()
        assert [r["lender_name"] for r in report] == ["Acme", "Empty"]
        assert report[0]["parse_success"] is True
        assert report[0]["rate_count"] == 17
        assert report[1]["parse_success"] is False
        assert report[1]["parse_error"] == "No valid rates found in Excel file"

    def test_toggle(self):
        sheet_id = client.post("/api/rate-sheets", json=_upload_body()).json()["id"]
        response = client.patch(f"/api/rate-sheets/{sheet_id}", json={"is_active": False})
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert client.get("/api/rate-sheets/status").json() == []

    def test_delete(self):
        sheet_id = client.post("/api/rate-sheets", json=_upload_body()).json()["id"]
        response = client.delete(f"/api/rate-sheets/{sheet_id}")
        assert response.status_code == 200
        assert response.json() == {"deleted": True, "id": sheet_id}
        assert client.get("/api/rate-sheets").json() == []

    @pytest.mark.parametrize("method,path,kwargs", [
        ("get", "/api/rate-sheets/42/parsed", {}),
        ("patch", "/api/rate-sheets/42", {"json": {"is_active": True}}),
        ("delete", "/api/rate-sheets/42", {}),
    ])
    def test_missing_sheet_404(self, method, path, kwargs):
        response = getattr(client, method)(path, **kwargs)
        assert response.status_code == 404


class TestQuoteRoute:
    def test_quotes_from_uploaded_sheet(self):
        client.post("/api/rate-sheets", json=_upload_body())
        response = client.post("/api/quotes", json={
            "loan_amount": 350000, "property_value": 450000, "credit_score": "740-759",
        })
        assert response.status_code == 200
        result = response.json()
        assert result["source"] == "rate_sheets"
        assert result["validation_passed"] is True
        assert result["best_quote"]["lender_name"] == "Acme"
        labels = [s["scenario_label"] for s in result["best_quote"]["scenarios"]]
        assert labels[0] == "Par Rate (No Points)"

    def test_mock_when_no_sheets(self):
        response = client.post("/api/quotes", json={"loan_amount": 300000, "property_value": 400000})
        assert response.status_code == 200
        result = response.json()
        assert result["source"] == "mock"
        assert len(result["quotes"]) == 3

    def test_invalid_params(self):
        response = client.post("/api/quotes", json={"loan_amount": -5, "property_value": 400000})
        assert response.status_code == 422


class TestLeadRoutes:
    def test_lead_rates_are_masked(self, storage):
        client.post("/api/rate-sheets", json=_upload_body())
        response = client.post("/api/leads", json=_lead_body())
        assert response.status_code == 200
        data = response.json()
        assert data["lead"]["id"] == 1
        assert data["rates"]
        assert {r["lender"] for r in data["rates"]} == {"Lender A"}
        assert all(r["processing_fee"] == 895 and r["underwriting_fee"] == 1245 for r in data["rates"])

        snapshot = json.loads(storage.get_leads()[0].quoted_rates)
        assert {s["actual_lender"] for s in snapshot} == {"Acme"}
        assert [s["option_number"] for s in snapshot] == list(range(1, len(snapshot) + 1))

    def test_mock_lead_capped_at_seven(self):
        data = client.post("/api/leads", json=_lead_body()).json()
        rates = data["rates"]
        assert len(rates) == 7
        assert [r["rate"] for r in rates] == sorted(r["rate"] for r in rates)
        assert [r["lender"] for r in rates] == ["Lender A"] * 4 + ["Lender B"] * 3

    def test_cash_out_refinance(self):
        response = client.post("/api/leads", json=_lead_body(loan_purpose="refinance", refinance_type="cash_out"))
        assert response.status_code == 200
        assert response.json()["lead"]["refinance_type"] == "cash_out"

    def test_list_leads(self):
        client.post("/api/leads", json=_lead_body())
        leads = client.get("/api/leads").json()
        assert len(leads) == 1
        assert leads[0]["email"] == "dana@example.com"

    def test_invalid_email(self):
        response = client.post("/api/leads", json=_lead_body(email="not-an-email"))
        assert response.status_code == 422


class _StubResponse:
    status_code = 200

    def __init__(self, payload):
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


def _configured_client():
    return LlamaCloudClient("llx-test", "https://api.cloud.example/api/v1", "rate-sheets")


class TestLlamaCloudResponseShapes:
    def test_numeric_document_id_still_stores(self, monkeypatch, storage):
        monkeypatch.setattr(requests, "post", lambda *a, **k: _StubResponse({"id": 123}))
        app.dependency_overrides[get_rate_client] = _configured_client
        response = client.post("/api/rate-sheets", json=_upload_body())
        assert response.status_code == 200
        assert response.json()["llama_cloud_sync"] is True
        assert len(storage.get_rate_sheets()) == 1

    def test_non_numeric_index_counts(self, monkeypatch):
        monkeypatch.setattr(
            requests, "get",
            lambda *a, **k: _StubResponse({"success_count": "n/a", "pending_count": 2}),
        )
        app.dependency_overrides[get_rate_client] = _configured_client
        response = client.get("/api/health")
        assert response.status_code == 200
        index = response.json()["llama_cloud"]["index"]
        assert index == {"ready": False, "success_count": 0, "pending_count": 2, "error_count": 0}

    def test_line_wrapped_base64_accepted(self, storage):
        body = _upload_body()
        body["file_data"] = base64.encodebytes(_make_excel_bytes()).decode("ascii")
        response = client.post("/api/rate-sheets", json=body)
        assert response.status_code == 200
        parsed = client.get(f"/api/rate-sheets/{response.json()['id']}/parsed").json()
        assert parsed["parse_success"] is True
