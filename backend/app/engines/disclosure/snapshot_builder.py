"""Disclosure listing builder.

Turns a case's numbered documents into the ordered, flagged rows of a
disclosure report:

    A       REAL PROPERTY
    A1      deed
    B       BANKING
    B1      Jane Doe
            Westpac              (only when B1 spans several institutions)
    B1.1    statement.pdf - Account Ending 1234
    ...

A document row is new when it was created after the previous snapshot. The
very first report is the baseline, so nothing on it is new.

Pure: the disclosure service reads documents and snapshot history under the
case lock and passes them in.
"""

from bisect import bisect_left
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

import structlog

from app.engines.numbering.account_groups import parse_group_number
from app.engines.numbering.display_names import last_four
from app.engines.numbering.document_numbers import (
    category_order,
    category_prefix,
    document_number_sort_key,
)
from app.models.disclosure import DisclosureListing, DisclosureRow, DisclosureRowKind
from app.models.document import Document, DocumentCategory

logger = structlog.get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

DATE_FORMAT = "%d.%m.%Y"

CATEGORY_LABELS: dict[DocumentCategory, str] = {
    DocumentCategory.REAL_PROPERTY: "REAL PROPERTY",
    DocumentCategory.BANKING: "BANKING",
    DocumentCategory.TAXATION: "TAXATION",
    DocumentCategory.SUPERANNUATION: "SUPERANNUATION",
    DocumentCategory.EMPLOYMENT: "EMPLOYMENT",
    DocumentCategory.SHARES_INVESTMENTS: "SHARES AND INVESTMENTS",
    DocumentCategory.VEHICLES: "VEHICLES",
}

UNKNOWN_HOLDER_LABEL = "Unknown Account Holder"
UNKNOWN_INSTITUTION_LABEL = "Miscellaneous Banking"


# =============================================================================
# Date formatting
# =============================================================================


def format_date(value: date | datetime) -> str:
    """dd.MM.yyyy"""
    return value.strftime(DATE_FORMAT)


def format_dated(
    date_from: date | None,
    date_to: date | None,
    uploaded_at: datetime,
) -> str:
    """The "Dated" column for a document.

    A transaction range collapses to one date when both ends are equal and
    falls back to the upload date when neither end is known.
    """
    if date_from and date_to:
        if date_from == date_to:
            return format_date(date_from)
        return f"{format_date(date_from)} - {format_date(date_to)}"
    if date_from:
        return f"from {format_date(date_from)}"
    if date_to:
        return f"until {format_date(date_to)}"
    return format_date(uploaded_at)


# =============================================================================
# Row building
# =============================================================================


def _listable_since(doc: Document) -> datetime:
    """When the document became eligible for a report.

    A document only reaches a report once it is numbered, so a banking
    statement confirmed after a report was generated belongs to a later one.
    """
    if doc.numbered_at is not None and doc.numbered_at > doc.created_at:
        return doc.numbered_at
    return doc.created_at


def _is_new(doc: Document, baseline: datetime | None) -> bool:
    return baseline is not None and _listable_since(doc) > baseline


def _disclosed_on(doc: Document, history: list[datetime], as_of: datetime) -> str:
    """Date of the first report that listed the document."""
    index = bisect_left(history, _listable_since(doc))
    return format_date(history[index] if index < len(history) else as_of)


def _description(doc: Document) -> str:
    if doc.category is DocumentCategory.BANKING and doc.account_number:
        return f"{doc.original_name} - Account Ending {last_four(doc.account_number)}"
    return doc.original_name


def _group_sort_key(group_number: str | None) -> tuple:
    parsed = parse_group_number(group_number)
    if parsed is not None:
        return (0, parsed, "")
    return (1, 0, group_number or "")


@dataclass
class _Builder:
    baseline: datetime | None
    as_of: datetime
    history: list[datetime]
    rows: list[DisclosureRow] = field(default_factory=list)
    new_count: int = 0
    document_count: int = 0

    def header(
        self,
        kind: DisclosureRowKind,
        item: str,
        description: str,
        category: DocumentCategory,
    ) -> None:
        self.rows.append(
            DisclosureRow(kind=kind, item=item, description=description, category=category)
        )

    def document(self, doc: Document) -> None:
        is_new = _is_new(doc, self.baseline)
        self.rows.append(
            DisclosureRow(
                kind=DisclosureRowKind.DOCUMENT,
                item=doc.document_number or "",
                description=_description(doc),
                category=doc.category,
                dated=format_dated(
                    doc.transaction_date_from, doc.transaction_date_to, doc.created_at
                ),
                date_disclosed=_disclosed_on(doc, self.history, self.as_of),
                is_new=is_new,
                document_id=doc.id,
            )
        )
        self.document_count += 1
        self.new_count += int(is_new)


def _by_number(docs: Iterable[Document]) -> list[Document]:
    return sorted(docs, key=lambda d: (document_number_sort_key(d.document_number), d.id))


def _emit_banking(
    builder: _Builder,
    docs: list[Document],
    group_names: Mapping[str, str],
) -> None:
    groups: dict[str | None, list[Document]] = {}
    for doc in _by_number(docs):
        groups.setdefault(doc.account_group_number, []).append(doc)

    for group_number in sorted(groups, key=_group_sort_key):
        group_docs = groups[group_number]
        if group_number is None:
            logger.warning(
                "disclosure_banking_document_without_group",
                document_ids=[d.id for d in group_docs],
            )
        holder = (
            group_names.get(group_number or "")
            or next((d.account_holder_name for d in group_docs if d.account_holder_name), None)
            or UNKNOWN_HOLDER_LABEL
        )
        builder.header(
            DisclosureRowKind.ACCOUNT_HOLDER, group_number or "", holder, DocumentCategory.BANKING
        )

        # Institutions in first-seen order, i.e. by their earliest document number
        institutions: dict[str, list[Document]] = {}
        for doc in group_docs:
            key = (doc.financial_institution or "").strip() or UNKNOWN_INSTITUTION_LABEL
            institutions.setdefault(key, []).append(doc)

        if len(institutions) == 1:
            for doc in group_docs:
                builder.document(doc)
            continue

        for institution, institution_docs in institutions.items():
            builder.header(
                DisclosureRowKind.INSTITUTION, "", institution, DocumentCategory.BANKING
            )
            for doc in institution_docs:
                builder.document(doc)


def build_disclosure(
    case_id: int,
    documents: Iterable[Document],
    last_snapshot_generated_at: datetime | None,
    *,
    as_of: datetime | None = None,
    snapshot_history: Iterable[datetime] = (),
    group_names: Mapping[str, str] | None = None,
) -> DisclosureListing:
    """Build the ordered, flagged disclosure listing for a case.

    Args:
        case_id: Case the listing belongs to.
        documents: All of the case's documents; unnumbered ones and those
            created after ``as_of`` are left out.
        last_snapshot_generated_at: Baseline for new-item flags, None when
            the case has never had a report.
        as_of: Point in time the report describes (defaults to now).
        snapshot_history: generated_at of every earlier snapshot, used for
            the "date disclosed" column.
        group_names: Registered display name per banking group.

    Returns:
        DisclosureListing with rows in report order and the new-item count.
    """
    as_of = as_of or datetime.now(UTC)
    builder = _Builder(
        baseline=last_snapshot_generated_at,
        as_of=as_of,
        history=sorted(snapshot_history),
    )

    by_category: dict[DocumentCategory, list[Document]] = {}
    for doc in documents:
        if doc.document_number is None or doc.created_at > as_of:
            continue
        by_category.setdefault(doc.category, []).append(doc)

    for category in sorted(by_category, key=category_order):
        docs = by_category[category]
        builder.header(
            DisclosureRowKind.CATEGORY,
            category_prefix(category),
            CATEGORY_LABELS.get(category, category.value.replace("_", " ")),
            category,
        )
        if category is DocumentCategory.BANKING:
            _emit_banking(builder, docs, group_names or {})
        else:
            for doc in _by_number(docs):
                builder.document(doc)

    logger.debug(
        "disclosure_listing_built",
        case_id=case_id,
        document_count=builder.document_count,
        new_count=builder.new_count,
        has_baseline=last_snapshot_generated_at is not None,
    )

    return DisclosureListing(
        case_id=case_id,
        as_of=as_of,
        baseline_generated_at=last_snapshot_generated_at,
        rows=builder.rows,
        new_count=builder.new_count,
        document_count=builder.document_count,
    )
