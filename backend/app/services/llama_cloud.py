"""LlamaCloud retrieval client: the fallback rate source when local sheets yield nothing.

The retrieval API returns free text, so rate tuples are scraped out of it
with a ``rate price`` regex and any embedded JSON objects carrying a rate
key. The scraping is best-effort: every failure at the client boundary logs
a warning and yields an empty list.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

import requests
from pydantic import BaseModel, ValidationError

from app.models.pricing import LoanParameters
from app.models.rate_sheet import LoanTerm, LoanType, ParsedRate
from app.parsing.workbook import is_valid_price, is_valid_rate, to_float
from app.pricing.adjustments import credit_score_to_fico

logger = logging.getLogger(__name__)

SIMILARITY_TOP_K = 50

_RATE_PRICE = re.compile(r"(\d+\.\d{2,3})%?\s*[,|\s]+(\d{2,3}\.\d{2,3})")
_JSON_FRAGMENT = re.compile(r"\{[^{}]*\"(?:interest_?rate|rate)\":\s*[\d.]+[^{}]*\}", re.IGNORECASE)
_DATA_URL_PREFIX = re.compile(r"^data:.*?;base64,")


class LlamaCloudError(Exception):
    pass


class ExternalRate(BaseModel):
    """A rate tuple scraped from retrieval output."""
    rate: float
    price_15_day: float
    price_30_day: Optional[float] = None
    price_45_day: Optional[float] = None
    loan_term: LoanTerm
    loan_type: LoanType
    min_fico: Optional[int] = None
    max_ltv: Optional[float] = None
    lender_name: Optional[str] = None

    def to_parsed_rate(self) -> ParsedRate:
        p30 = self.price_30_day or self.price_15_day
        return ParsedRate(
            rate=self.rate,
            price_15_day=self.price_15_day,
            price_30_day=p30,
            price_45_day=self.price_45_day or p30,
            loan_term=self.loan_term,
            loan_type=self.loan_type,
        )


class UploadResult(BaseModel):
    success: bool
    document_id: Optional[str] = None
    error: Optional[str] = None


class IndexStatus(BaseModel):
    ready: bool = False
    success_count: int = 0
    pending_count: int = 0
    error_count: int = 0


# ---------------------------------------------------------------------------
# Scraping
# ---------------------------------------------------------------------------
def _first(obj: dict, *keys: str) -> Any:
    for key in keys:
        value = obj.get(key)
        if value not in (None, ""):
            return value
    return None


def _coerce_term(value: Any, default: LoanTerm) -> LoanTerm:
    if value is None:
        return default
    text = str(value).strip().lower()
    if text.isdigit():
        text = f"{text}yr"
    try:
        return LoanTerm(text)
    except ValueError:
        return default


def _coerce_type(value: Any, default: LoanType) -> LoanType:
    if value is None:
        return default
    try:
        return LoanType(str(value).strip().lower())
    except ValueError:
        return default


def _band_price(value: Any) -> Optional[float]:
    price = to_float(value)
    return price if is_valid_price(price) else None


def _count(value: Any) -> int:
    number = to_float(value)
    return int(number) if number is not None else 0


def _make_rate(**fields) -> Optional[ExternalRate]:
    try:
        return ExternalRate(**fields)
    except ValidationError as exc:
        logger.debug("Skipping malformed rate tuple: %s", exc.errors()[:1])
        return None


def extract_rates_from_text(
    text: str,
    metadata: dict,
    loan_term: LoanTerm,
    loan_type: LoanType,
) -> list[ExternalRate]:
    if not isinstance(text, str):
        return []
    if not isinstance(metadata, dict):
        metadata = {}
    term = _coerce_term(_first(metadata, "loanTerm", "loan_term"), loan_term)
    kind = _coerce_type(_first(metadata, "loanType", "loan_type"), loan_type)
    lender = _first(metadata, "lenderName", "lender_name")

    candidates: list[Optional[ExternalRate]] = []
    for m in _RATE_PRICE.finditer(text):
        rate, price = float(m.group(1)), float(m.group(2))
        if is_valid_rate(rate) and is_valid_price(price):
            candidates.append(_make_rate(
                rate=rate, price_15_day=price, loan_term=term, loan_type=kind, lender_name=lender,
            ))

    for fragment in _JSON_FRAGMENT.findall(text):
        try:
            obj = json.loads(fragment)
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable JSON fragment: %s", fragment[:80])
            continue
        if not isinstance(obj, dict):
            continue
        rate = to_float(_first(obj, "interest_rate", "interestRate", "rate"))
        price = _band_price(_first(obj, "price_15_day", "price15Day", "price", "price_15day"))
        if not is_valid_rate(rate) or price is None:
            continue
        min_fico = to_float(_first(obj, "min_fico", "minFico"))
        candidates.append(_make_rate(
            rate=rate,
            price_15_day=price,
            price_30_day=_band_price(_first(obj, "price_30_day", "price30Day")),
            price_45_day=_band_price(_first(obj, "price_45_day", "price45Day")),
            loan_term=_coerce_term(_first(obj, "loan_term", "loanTerm"), term),
            loan_type=_coerce_type(_first(obj, "loan_type", "loanType"), kind),
            min_fico=int(min_fico) if min_fico else None,
            max_ltv=to_float(_first(obj, "max_ltv", "maxLtv")),
            lender_name=_first(obj, "lender_name", "lenderName") or lender,
        ))
    return [r for r in candidates if r is not None]


def parse_rates_from_response(response: Any, params: LoanParameters) -> list[ExternalRate]:
    """Scrape, filter, dedupe and sort rate tuples from a retrieve response."""
    if not isinstance(response, dict):
        raise LlamaCloudError(f"Unexpected response type: {type(response).__name__}")

    nodes = response.get("nodes") or response.get("retrieval_nodes")
    rates: list[ExternalRate] = []
    if isinstance(nodes, list):
        for item in nodes:
            if not isinstance(item, dict):
                continue
            node = item.get("node", item)
            if not isinstance(node, dict):
                continue
            text = node.get("text") or node.get("content") or ""
            rates.extend(extract_rates_from_text(
                text, node.get("metadata") or {}, params.loan_term, params.loan_type,
            ))
    elif isinstance(response.get("text"), str):
        rates = extract_rates_from_text(response["text"], {}, params.loan_term, params.loan_type)

    fico = credit_score_to_fico(params.credit_score)
    ltv = params.ltv
    unique: dict[tuple, ExternalRate] = {}
    for r in rates:
        if r.min_fico and fico < r.min_fico:
            continue
        if r.max_ltv and ltv > r.max_ltv:
            continue
        unique.setdefault((r.rate, r.loan_term, r.loan_type), r)
    return sorted(unique.values(), key=lambda r: r.rate)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------
class LlamaCloudClient:
    """Thin wrapper around the LlamaCloud index endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        index_name: str,
        enabled: bool = True,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.index_name = index_name
        self.enabled = enabled
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "LlamaCloudClient":
        return cls(
            api_key=settings.LLAMA_CLOUD_API_KEY,
            base_url=settings.LLAMA_CLOUD_BASE_URL,
            index_name=settings.LLAMA_CLOUD_INDEX,
            enabled=settings.USE_LLAMA_CLOUD,
            timeout=settings.LLAMA_CLOUD_TIMEOUT,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.enabled

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, endpoint: str, body: dict | None = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            if method == "POST":
                resp = requests.post(url, headers=self._headers(), json=body, timeout=self.timeout)
            else:
                resp = requests.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise LlamaCloudError(f"LlamaCloud request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise LlamaCloudError(f"LlamaCloud API error {resp.status_code}: {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError as exc:
            raise LlamaCloudError("LlamaCloud returned a non-JSON body") from exc

    def build_query(self, params: LoanParameters) -> str:
        fico = credit_score_to_fico(params.credit_score)
        return (
            f"Find all mortgage rates for a {params.loan_type.value} {params.loan_term.value} "
            f"loan with LTV of {params.ltv:.1f}% and FICO score {fico}. "
            f"Purpose: {params.loan_purpose}. Return the interest rate, 15-day lock price, "
            f"30-day lock price, 45-day lock price, loan term, and loan type for each "
            f"matching rate row."
        )

    def query_external_rates(self, params: LoanParameters) -> list[ExternalRate]:
        """Rate tuples for the scenario, or [] when the service is unusable."""
        if not self.is_configured:
            return []

        query = self.build_query(params)
        logger.info("LlamaCloud query: %s", query)
        try:
            response = self._request("POST", f"/indices/{self.index_name}/retrieve", {
                "query": query,
                "similarity_top_k": SIMILARITY_TOP_K,
                "retrieval_mode": "dense",
                "filters": {
                    "loanType": params.loan_type.value,
                    "loanTerm": params.loan_term.value,
                },
            })
            rates = parse_rates_from_response(response, params)
        except (LlamaCloudError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("LlamaCloud query failed: %s", exc)
            return []

        logger.info("LlamaCloud returned %d usable rates", len(rates))
        return rates

    def upload_rate_sheet(self, file_data: str, file_name: str, lender_name: str) -> UploadResult:
        """Push a sheet into the index. Best-effort; failures are reported, not raised."""
        if not self.is_configured:
            return UploadResult(success=False, error="LLAMA_CLOUD_API_KEY not configured")

        try:
            result = self._request("POST", f"/indices/{self.index_name}/documents", {
                "file": {
                    "content": _DATA_URL_PREFIX.sub("", file_data),
                    "filename": file_name,
                    "encoding": "base64",
                },
                "metadata": {
                    "lenderName": lender_name,
                    "uploadedAt": datetime.now(timezone.utc).isoformat(),
                    "fileType": file_name.rsplit(".", 1)[-1].lower(),
                },
            })
        except LlamaCloudError as exc:
            logger.warning("LlamaCloud upload of %s failed: %s", file_name, exc)
            return UploadResult(success=False, error=str(exc))

        document_id = None
        if isinstance(result, dict):
            raw_id = _first(result, "id", "document_id")
            document_id = str(raw_id) if raw_id is not None else None
        logger.info("LlamaCloud upload of %s succeeded (%s)", file_name, document_id)
        return UploadResult(success=True, document_id=document_id)

    def check_index_status(self) -> IndexStatus:
        if not self.is_configured:
            return IndexStatus()
        try:
            result = self._request("GET", f"/indices/{self.index_name}/status")
        except LlamaCloudError as exc:
            logger.warning("LlamaCloud status check failed: %s", exc)
            return IndexStatus()
        if not isinstance(result, dict):
            return IndexStatus()

        success = _count(result.get("success_count"))
        return IndexStatus(
            ready=success >= 1,
            success_count=success,
            pending_count=_count(result.get("pending_count")),
            error_count=_count(result.get("error_count")),
        )
