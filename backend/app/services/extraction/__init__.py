"""Banking metadata extraction (pypdf + OpenAI)."""

from app.services.extraction.banking_extractor import (
    BankingExtractor,
    extract_pdf_text,
    get_banking_extractor,
)

__all__ = [
    "BankingExtractor",
    "extract_pdf_text",
    "get_banking_extractor",
]
