"""Rate-sheet ingestion: workbook loading, lender layout strategies and PDF text."""
from app.parsing.workbook import RateSheetParseError, Workbook, load_workbook
from app.parsing.strategies import ParserStrategy, detect_strategy
from app.parsing.pdf import extract_pdf_text, parse_pdf_text

__all__ = [
    "RateSheetParseError",
    "Workbook",
    "load_workbook",
    "ParserStrategy",
    "detect_strategy",
    "extract_pdf_text",
    "parse_pdf_text",
]
