"""Pricing orchestrator: active rate sheets -> lender quotes.

Each pass prefers local parsing of the stored sheets. When that produces no
quote it tries the external retrieval client, then falls back to mock
quotes, so a borrower always sees something. ``calculate_rates`` runs the
pass twice and flags any disagreement between the runs.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Optional, Protocol

from app.models.pricing import (
    LenderQuote,
    LoanParameters,
    PricingConfig,
    PricingResult,
    QuoteSource,
)
from app.models.rate_sheet import ParsedRateSheet, RateSheetRecord
from app.pricing.mock_quotes import generate_mock_quotes
from app.pricing.solver import generate_quote_from_rate_sheet, sort_quotes
from app.pricing.validation import validate_pricing_result
from app.services.llama_cloud import ExternalRate, LlamaCloudClient
from app.services.rate_sheet_parser import parse_rate_sheet

logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_LENDER = "Lender"


class RateSheetSource(Protocol):
    def get_active_rate_sheets(self) -> list[RateSheetRecord]: ...


def _result(quotes: list[LenderQuote], source: QuoteSource, parse_errors: list[str]) -> PricingResult:
    quotes = sort_quotes(quotes)
    return PricingResult(
        quotes=quotes,
        best_quote=quotes[0] if quotes else None,
        validation_passed=True,
        parse_errors=parse_errors,
        source=source,
    )


class PricingEngine:
    def __init__(
        self,
        config: PricingConfig,
        storage: RateSheetSource,
        rate_client: Optional[LlamaCloudClient] = None,
    ):
        self.config = config
        self.storage = storage
        self.rate_client = rate_client

    async def calculate_rates(self, params: LoanParameters) -> PricingResult:
        # Passes run sequentially; a sheet edit between them shows up as a mismatch.
        first = await self.run_pricing_pass(params)
        second = await self.run_pricing_pass(params)

        passed = validate_pricing_result(first, second, self.config)
        if not passed:
            logger.error("Pricing validation failed: results differ between passes")
        return first.model_copy(update={"validation_passed": passed})

    async def run_pricing_pass(self, params: LoanParameters) -> PricingResult:
        local = await asyncio.to_thread(self.run_local_pass, params)
        if local.quotes:
            logger.info("Local parsing produced %d lender quotes", len(local.quotes))
            return local

        external = await self.run_external_pass(params)
        if external is not None and external.quotes:
            return external.model_copy(update={"parse_errors": local.parse_errors})

        logger.info("No rate data available, using mock quotes")
        return _result(generate_mock_quotes(params), QuoteSource.mock, local.parse_errors)

    def run_local_pass(self, params: LoanParameters) -> PricingResult:
        quotes: list[LenderQuote] = []
        parse_errors: list[str] = []
        for record in self.storage.get_active_rate_sheets():
            parsed = parse_rate_sheet(record.file_data, record.file_name, record.lender_name)
            if not parsed.parse_success:
                parse_errors.append(f"{record.lender_name}: {parsed.parse_error}")
                continue
            quote = generate_quote_from_rate_sheet(parsed, params, self.config)
            if quote is not None:
                quotes.append(quote)
        return _result(quotes, QuoteSource.rate_sheets, parse_errors)

    async def run_external_pass(self, params: LoanParameters) -> Optional[PricingResult]:
        if self.rate_client is None or not self.rate_client.is_configured:
            return None

        logger.info("No local quotes, querying external rate source")
        try:
            rates = await asyncio.to_thread(self.rate_client.query_external_rates, params)
        except Exception:
            logger.warning("External rate query raised", exc_info=True)
            return None

        if len(rates) < self.config.external_min_rates:
            logger.info("External source returned %d rates (threshold %d), ignoring",
                        len(rates), self.config.external_min_rates)
            return None
        return self.price_external_rates(rates, params)

    def price_external_rates(self, rates: list[ExternalRate], params: LoanParameters) -> PricingResult:
        by_lender: dict[str, list[ExternalRate]] = defaultdict(list)
        for rate in rates:
            by_lender[rate.lender_name or DEFAULT_EXTERNAL_LENDER].append(rate)

        quotes = []
        for lender_name, lender_rates in by_lender.items():
            sheet = ParsedRateSheet(
                lender_name=lender_name,
                rates=[r.to_parsed_rate() for r in lender_rates],
                parse_success=True,
            )
            quote = generate_quote_from_rate_sheet(sheet, params, self.config)
            if quote is not None:
                quotes.append(quote)
        logger.info("External source produced %d lender quotes", len(quotes))
        return _result(quotes, QuoteSource.external, [])
