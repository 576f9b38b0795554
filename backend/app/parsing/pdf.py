"""PDF rate sheets: text extraction plus a line-oriented number scan.

PDF tables don't survive text extraction with their structure intact, so
only rate/price pairs are recovered. PDFs never yield LLPA grids.
"""
from __future__ import annotations

import logging
import re
from io import BytesIO

from app.models.rate_sheet import LoanTerm, LoanType, ParsedRate
from app.parsing.tables import dedupe_rates
from app.parsing.workbook import RateSheetParseError, is_valid_price, is_valid_rate

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"\d+\.\d{2,3}")
_TERM = re.compile(r"\b(10|15|20|25|30)\s*-?\s*year", re.IGNORECASE)
_TYPE_KEYWORDS: tuple[tuple[re.Pattern, LoanType], ...] = (
    (re.compile(r"conventional", re.IGNORECASE), LoanType.conventional),
    (re.compile(r"\bfha\b", re.IGNORECASE), LoanType.fha),
    (re.compile(r"\bva\b", re.IGNORECASE), LoanType.va),
    (re.compile(r"\busda\b", re.IGNORECASE), LoanType.usda),
    (re.compile(r"jumbo", re.IGNORECASE), LoanType.jumbo),
)


def extract_pdf_text(data: bytes) -> str:
    import pdfplumber

    with pdfplumber.open(BytesIO(data)) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    text = "\n".join(pages)
    if not text.strip():
        raise RateSheetParseError("PDF contains no extractable text")
    return text


def _update_context(line: str, term: LoanTerm, loan_type: LoanType) -> tuple[LoanTerm, LoanType]:
    for m in _TERM.finditer(line):
        term = LoanTerm(f"{m.group(1)}yr")
    for pattern, candidate in _TYPE_KEYWORDS:
        if pattern.search(line):
            loan_type = candidate
    return term, loan_type


def _rate_from_numbers(
    numbers: list[float], term: LoanTerm, loan_type: LoanType
) -> ParsedRate | None:
    rate_idx = next((i for i, n in enumerate(numbers) if is_valid_rate(n)), None)
    if rate_idx is None:
        return None
    prices = [n for n in numbers[rate_idx + 1:] if is_valid_price(n)]
    if not prices:
        return None

    p15 = prices[0]
    p30 = prices[1] if len(prices) > 1 else p15
    p45 = prices[2] if len(prices) > 2 else p30
    return ParsedRate(
        rate=round(numbers[rate_idx], 4),
        price_15_day=p15,
        price_30_day=p30,
        price_45_day=p45,
        loan_term=term,
        loan_type=loan_type,
    )


def parse_pdf_text(text: str) -> list[ParsedRate]:
    """Pull (rate, price) rows out of extracted PDF text.

    Term and type context comes from keywords seen so far; the last one wins.
    """
    term, loan_type = LoanTerm.thirty, LoanType.conventional
    rates: list[ParsedRate] = []

    for line in text.splitlines():
        term, loan_type = _update_context(line, term, loan_type)
        numbers = [float(n) for n in _NUMBER.findall(line)]
        if len(numbers) < 2:
            continue
        parsed = _rate_from_numbers(numbers, term, loan_type)
        if parsed is not None:
            rates.append(parsed)

    rates = dedupe_rates(rates)
    logger.debug("PDF text scan found %d rates", len(rates))
    return rates
