"""Turn a stored rate-sheet upload into a ParsedRateSheet.

``parse_rate_sheet`` never raises: unsupported formats, corrupt files and
sheets with no usable rates all come back as ``parse_success=False`` with a
human-readable ``parse_error``, so one bad lender never blocks the others.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from collections import Counter

from app.models.rate_sheet import ParsedRateSheet
from app.parsing.pdf import extract_pdf_text, parse_pdf_text
from app.parsing.strategies import detect_strategy
from app.parsing.tables import dedupe_rates
from app.parsing.workbook import RateSheetParseError, load_workbook

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls", ".csv")
PDF_EXTENSIONS = (".pdf",)
SUPPORTED_EXTENSIONS = SPREADSHEET_EXTENSIONS + PDF_EXTENSIONS

_DATA_URL_PREFIX = re.compile(r"^data:.*?;base64,")


def decode_file_data(file_data: bytes | str) -> bytes:
    """Raw bytes from an upload payload; strings are base64, optionally a data URL."""
    if isinstance(file_data, bytes):
        return file_data
    payload = "".join(_DATA_URL_PREFIX.sub("", file_data.strip()).split())
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise RateSheetParseError(f"File data is not valid base64: {exc}") from exc


def _failed(lender_name: str, error: str) -> ParsedRateSheet:
    return ParsedRateSheet(
        lender_name=lender_name, rates=[], adjustments=[],
        parse_success=False, parse_error=error,
    )


def parse_rate_sheet(file_data: bytes | str, file_name: str, lender_name: str) -> ParsedRateSheet:
    lower = file_name.lower()
    if lower.endswith(SPREADSHEET_EXTENSIONS):
        return _parse_spreadsheet(file_data, file_name, lender_name)
    if lower.endswith(PDF_EXTENSIONS):
        return _parse_pdf(file_data, lender_name)
    logger.warning("%s: unsupported rate sheet format %r", lender_name, file_name)
    return _failed(lender_name, f"Unsupported file format: {file_name}")


def _parse_spreadsheet(file_data: bytes | str, file_name: str, lender_name: str) -> ParsedRateSheet:
    try:
        workbook = load_workbook(decode_file_data(file_data), file_name)
        logger.info("Parsing %s for %s, sheets: %s",
                    file_name, lender_name, ", ".join(workbook.sheet_names))
        strategy = detect_strategy(workbook, lender_name)
        rates = dedupe_rates(strategy.parse_rates(workbook))
        adjustments = strategy.parse_grids(workbook)
    except Exception as exc:
        logger.exception("%s: Excel parse error", lender_name)
        return _failed(lender_name, f"Excel parse error: {exc}")

    summary = Counter(f"{r.loan_term.value} {r.loan_type.value}" for r in rates)
    logger.info("%s: found %d valid rates %s", lender_name, len(rates), dict(summary))
    logger.info("%s: found %d adjustment grids", lender_name, len(adjustments))

    if not rates:
        return ParsedRateSheet(
            lender_name=lender_name, rates=[], adjustments=adjustments,
            parse_success=False, parse_error="No valid rates found in Excel file",
        )
    return ParsedRateSheet(
        lender_name=lender_name, rates=rates, adjustments=adjustments, parse_success=True,
    )


def _parse_pdf(file_data: bytes | str, lender_name: str) -> ParsedRateSheet:
    try:
        rates = parse_pdf_text(extract_pdf_text(decode_file_data(file_data)))
    except Exception as exc:
        logger.exception("%s: PDF parse error", lender_name)
        return _failed(lender_name, f"PDF parse error: {exc}. Please use Excel format.")

    logger.info("%s: found %d valid rates in PDF", lender_name, len(rates))
    if not rates:
        return _failed(lender_name, "No valid rates found in PDF. Please upload Excel version.")
    return ParsedRateSheet(lender_name=lender_name, rates=rates, adjustments=[], parse_success=True)
