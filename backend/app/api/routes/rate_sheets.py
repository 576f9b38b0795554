import base64
import logging

from fastapi import APIRouter, Depends, Form, HTTPException, UploadFile

from app.api.deps import get_rate_client
from app.config import settings
from app.db.storage import Storage, get_storage
from app.models.rate_sheet import (
    ParsedRateSheet,
    RateSheetRecord,
    RateSheetStatus,
    RateSheetSummary,
    RateSheetToggle,
    RateSheetUpload,
)
from app.parsing.workbook import RateSheetParseError
from app.services.llama_cloud import LlamaCloudClient
from app.services.rate_sheet_parser import SUPPORTED_EXTENSIONS, decode_file_data, parse_rate_sheet

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rate-sheets"])


def _summary(record: RateSheetRecord, llama_cloud_sync=None) -> RateSheetSummary:
    return RateSheetSummary(
        id=record.id,
        lender_name=record.lender_name,
        file_name=record.file_name,
        is_active=record.is_active,
        uploaded_at=record.uploaded_at,
        llama_cloud_sync=llama_cloud_sync,
    )


def _require_sheet(storage: Storage, sheet_id: int) -> RateSheetRecord:
    record = storage.get_rate_sheet(sheet_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Rate sheet {sheet_id} not found")
    return record


def _store(
    storage: Storage, rate_client: LlamaCloudClient, upload: RateSheetUpload
) -> RateSheetSummary:
    if not upload.file_name.lower().endswith(SUPPORTED_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{upload.file_name}'. "
                   f"Please upload {', '.join(SUPPORTED_EXTENSIONS)}",
        )
    if storage.count_rate_sheets() >= settings.MAX_RATE_SHEETS:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum of {settings.MAX_RATE_SHEETS} rate sheets allowed. "
                   "Delete one before uploading another.",
        )
    try:
        decode_file_data(upload.file_data)
    except RateSheetParseError as e:
        raise HTTPException(status_code=400, detail=str(e))

    record = storage.create_rate_sheet(upload.lender_name, upload.file_name, upload.file_data)

    sync = None
    if rate_client.is_configured:
        sync = rate_client.upload_rate_sheet(record.file_data, record.file_name, record.lender_name).success
    return _summary(record, llama_cloud_sync=sync)


@router.get("/rate-sheets", response_model=list[RateSheetSummary])
def list_rate_sheets(storage: Storage = Depends(get_storage)):
    return [_summary(r) for r in storage.get_rate_sheets()]


@router.post("/rate-sheets", response_model=RateSheetSummary)
def create_rate_sheet(
    upload: RateSheetUpload,
    storage: Storage = Depends(get_storage),
    rate_client: LlamaCloudClient = Depends(get_rate_client),
):
    """Store a base64-encoded rate sheet."""
    return _store(storage, rate_client, upload)


@router.post("/rate-sheets/upload", response_model=RateSheetSummary)
async def upload_rate_sheet(
    file: UploadFile,
    lender_name: str = Form(...),
    storage: Storage = Depends(get_storage),
    rate_client: LlamaCloudClient = Depends(get_rate_client),
):
    """Store a rate sheet uploaded as multipart form data."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")
    data = await file.read()
    upload = RateSheetUpload(
        lender_name=lender_name,
        file_name=file.filename,
        file_data=base64.b64encode(data).decode("ascii"),
    )
    return _store(storage, rate_client, upload)


@router.get("/rate-sheets/status", response_model=list[RateSheetStatus])
def rate_sheet_status(storage: Storage = Depends(get_storage)):
    """Parse every active sheet and report what came out of it."""
    report = []
    for record in storage.get_active_rate_sheets():
        parsed = parse_rate_sheet(record.file_data, record.file_name, record.lender_name)
        report.append(RateSheetStatus(
            id=record.id,
            lender_name=record.lender_name,
            file_name=record.file_name,
            parse_success=parsed.parse_success,
            rate_count=len(parsed.rates),
            grid_count=len(parsed.adjustments),
            parse_error=parsed.parse_error,
        ))
    return report


@router.get("/rate-sheets/{sheet_id}/parsed", response_model=ParsedRateSheet)
def get_parsed_rate_sheet(sheet_id: int, storage: Storage = Depends(get_storage)):
    record = _require_sheet(storage, sheet_id)
    return parse_rate_sheet(record.file_data, record.file_name, record.lender_name)


@router.patch("/rate-sheets/{sheet_id}", response_model=RateSheetSummary)
def toggle_rate_sheet(
    sheet_id: int, body: RateSheetToggle, storage: Storage = Depends(get_storage)
):
    record = storage.toggle_rate_sheet(sheet_id, body.is_active)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Rate sheet {sheet_id} not found")
    logger.info("Rate sheet %d set active=%s", sheet_id, body.is_active)
    return _summary(record)


@router.delete("/rate-sheets/{sheet_id}")
def delete_rate_sheet(sheet_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_rate_sheet(sheet_id):
        raise HTTPException(status_code=404, detail=f"Rate sheet {sheet_id} not found")
    logger.info("Deleted rate sheet %d", sheet_id)
    return {"deleted": True, "id": sheet_id}
