"""Presentation helpers for numbered documents.

Display names are derived text only; nothing in numbering depends on them.
"""

from pathlib import PurePath

from app.models.document import DocumentCategory

UNKNOWN_ACCOUNT_SUFFIX = "XXXX"
UNKNOWN_BANK = "UNKNOWN"

# Words that carry no information in an institution's initials
_GENERIC_BANK_WORDS = frozenset(
    {"bank", "banking", "group", "corporation", "ltd", "limited", "australia", "australian"}
)


def last_four(account_number: str | None) -> str:
    """Last four characters of an account number, ``XXXX`` when unknown."""
    if not account_number or not account_number.strip():
        return UNKNOWN_ACCOUNT_SUFFIX
    return account_number.strip()[-4:]


def strip_extension(filename: str) -> str:
    return PurePath(filename).stem if "." in filename else filename


def banking_display_name(
    document_number: str,
    bank_abbreviation: str | None,
    account_number: str | None,
) -> str:
    return f"{document_number} {bank_abbreviation or UNKNOWN_BANK} {last_four(account_number)}"


def standard_display_name(document_number: str, original_name: str) -> str:
    return f"{document_number} {strip_extension(original_name)}"


def display_name_for(
    category: DocumentCategory,
    document_number: str,
    original_name: str,
    bank_abbreviation: str | None = None,
    account_number: str | None = None,
) -> str:
    """Display name for a freshly numbered document."""
    if category is DocumentCategory.BANKING:
        return banking_display_name(document_number, bank_abbreviation, account_number)
    return standard_display_name(document_number, original_name)


def fallback_bank_abbreviation(institution: str | None) -> str:
    """Initials of the distinctive words of an institution name.

    Generic words and single letters are dropped, then up to four initials
    are kept: "Bendigo and Adelaide Bank" -> "BAA", "Westpac Banking
    Corporation" -> "W". Used when no stored or generated abbreviation
    exists.
    """
    if not institution or not institution.strip():
        return UNKNOWN_BANK

    cleaned = institution.strip()
    words = [
        word
        for word in cleaned.lower().split()
        if len(word) > 1 and word not in _GENERIC_BANK_WORDS
    ]
    if not words:
        return cleaned[:3].upper()
    return "".join(word[0] for word in words[:4]).upper()
