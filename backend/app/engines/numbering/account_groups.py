"""Account holder grouping for banking documents.

Banking documents are grouped per account holder. The first document seen
for a holder mints the next group number (B1, B2, ...); later documents for
the same holder, compared after trimming and case-folding, join that group.

Everything here is pure. The numbering service re-reads the case's
documents and group registry under the case lock before calling in, and
supplies the persisted high-water mark so a group number is never minted
twice even after every document of a group has been deleted.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from app.models.document import Document
from app.services.exceptions import InvalidHolderNameError

logger = structlog.get_logger(__name__)

GROUP_PREFIX = "B"
GROUP_NUMBER_PATTERN = re.compile(rf"^{GROUP_PREFIX}(\d+)$")


@dataclass(frozen=True)
class KnownGroup:
    """Registry entry for a group minted in a case."""

    group_number: str
    account_holder_name: str

    @property
    def holder_key(self) -> str:
        return normalize_holder_name(self.account_holder_name)


def normalize_holder_name(name: str | None) -> str:
    """Comparison key for an account holder name. Never stored as display text."""
    return (name or "").strip().casefold()


def parse_group_number(group_number: str | None) -> int | None:
    """Return the numeric suffix of a group number, or None if malformed."""
    if not group_number:
        return None
    match = GROUP_NUMBER_PATTERN.match(group_number)
    return int(match.group(1)) if match else None


def find_group(
    existing_docs: Iterable[Document],
    candidate_holder_name: str,
    known_groups: Iterable[KnownGroup] = (),
) -> str | None:
    """Find the group an account holder already belongs to, if any."""
    key = normalize_holder_name(candidate_holder_name)

    for group in known_groups:
        if group.holder_key == key:
            return group.group_number

    for doc in existing_docs:
        if doc.account_group_number and normalize_holder_name(doc.account_holder_name) == key:
            return doc.account_group_number

    return None


def next_group_number(
    existing_docs: Iterable[Document],
    known_groups: Iterable[KnownGroup] = (),
    last_issued: int = 0,
) -> str:
    """Compute the next group number: ``B{max+1}``.

    The max is taken over every well-formed group number on the documents
    and in the registry, floored by ``last_issued``. Malformed values are
    skipped and logged.
    """
    highest = max(last_issued, 0)
    candidates = [(doc.account_group_number, doc.id) for doc in existing_docs]
    candidates.extend((group.group_number, None) for group in known_groups)

    for value, document_id in candidates:
        if value is None:
            continue
        parsed = parse_group_number(value)
        if parsed is None:
            logger.warning(
                "account_group_number_inconsistent",
                group_number=value,
                document_id=document_id,
            )
            continue
        highest = max(highest, parsed)

    return f"{GROUP_PREFIX}{highest + 1}"


def resolve_group(
    existing_banking_docs: Iterable[Document],
    candidate_holder_name: str | None,
    known_groups: Iterable[KnownGroup] = (),
    last_issued: int = 0,
) -> str:
    """Return the group a banking document belongs to, minting one if needed.

    Args:
        existing_banking_docs: The case's BANKING documents, read fresh.
        candidate_holder_name: Confirmed account holder name.
        known_groups: Persisted group registry for the case.
        last_issued: Highest group suffix ever issued in the case.

    Returns:
        Existing group number on a holder match, otherwise the next one.

    Raises:
        InvalidHolderNameError: If the holder name is empty or blank.
    """
    if not normalize_holder_name(candidate_holder_name):
        raise InvalidHolderNameError()

    docs = list(existing_banking_docs)
    groups = list(known_groups)

    existing = find_group(docs, candidate_holder_name, groups)
    if existing is not None:
        return existing

    return next_group_number(docs, groups, last_issued)
