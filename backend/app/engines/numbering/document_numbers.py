"""Hierarchical document numbers.

Banking documents are numbered within their account group ("B1.1",
"B1.2", ...). Every other category uses a flat per-category sequence
behind a fixed prefix ("A1", "A2", ...).

Both calculators are total: a malformed historical number is logged and
skipped, it never stops the next number from being produced. The
``last_issued`` floor comes from the persisted counter so a sequence value
freed by a deletion is not handed out again.
"""

import re
from collections.abc import Iterable

import structlog

from app.models.document import Document, DocumentCategory
from app.services.exceptions import ValidationError

logger = structlog.get_logger(__name__)

CATEGORY_PREFIXES: dict[DocumentCategory, str] = {
    DocumentCategory.REAL_PROPERTY: "A",
    DocumentCategory.BANKING: "B",
    DocumentCategory.TAXATION: "C",
    DocumentCategory.SUPERANNUATION: "D",
    DocumentCategory.EMPLOYMENT: "E",
    DocumentCategory.SHARES_INVESTMENTS: "F",
    DocumentCategory.VEHICLES: "G",
}

FALLBACK_PREFIX = "X"

_NUMBER_CHUNK = re.compile(r"\d+|\D+")


def category_prefix(category: DocumentCategory) -> str:
    """Fixed numbering prefix for a category."""
    return CATEGORY_PREFIXES.get(category, FALLBACK_PREFIX)


def category_order(category: DocumentCategory) -> int:
    """Position of a category in listings (prefix order)."""
    order = sorted(CATEGORY_PREFIXES, key=CATEGORY_PREFIXES.__getitem__)
    return order.index(category) if category in order else len(order)


def _sequence_pattern(scope: str, separator: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(scope)}{re.escape(separator)}(\d+)$")


def parse_sequence(document_number: str | None, scope: str, separator: str = "") -> int | None:
    """Extract the sequence from ``{scope}{separator}{n}``, or None if it does not match."""
    if not document_number:
        return None
    match = _sequence_pattern(scope, separator).match(document_number)
    return int(match.group(1)) if match else None


def _max_sequence(
    docs: Iterable[Document],
    scope: str,
    separator: str,
    last_issued: int,
) -> int:
    pattern = _sequence_pattern(scope, separator)
    highest = max(last_issued, 0)

    for doc in docs:
        if doc.document_number is None:
            continue
        match = pattern.match(doc.document_number)
        if match is None:
            logger.warning(
                "document_number_inconsistent",
                document_id=doc.id,
                document_number=doc.document_number,
                expected_scope=scope,
            )
            continue
        highest = max(highest, int(match.group(1)))

    return highest


def next_document_number(
    group_docs: Iterable[Document],
    group_number: str,
    last_issued: int = 0,
) -> str:
    """Next number inside a banking group: ``{group}.{max+1}``.

    Raises:
        ValidationError: If ``group_number`` is empty.
    """
    if not group_number:
        raise ValidationError("Account group number is required")
    return f"{group_number}.{_max_sequence(group_docs, group_number, '.', last_issued) + 1}"


def next_standard_number(
    existing_docs: Iterable[Document],
    prefix: str,
    last_issued: int = 0,
) -> str:
    """Next flat number for a non-banking category: ``{prefix}{max+1}``."""
    if not prefix:
        raise ValidationError("Category prefix is required")
    return f"{prefix}{_max_sequence(existing_docs, prefix, '', last_issued) + 1}"


def document_number_sort_key(document_number: str | None) -> tuple:
    """Numeric-aware sort key: A2 < A10, B1.2 < B1.10, B2 < B10.

    Unnumbered documents sort last.
    """
    if document_number is None:
        return (1, ())
    chunks = tuple(
        (0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk)
        for chunk in _NUMBER_CHUNK.findall(document_number)
    )
    return (0, chunks)
