"""Tests for the disclosure listing builder."""

from datetime import UTC, date, datetime, timedelta
from typing import Any

from app.engines.disclosure import build_disclosure, format_date, format_dated
from app.models.disclosure import DisclosureRowKind
from app.models.document import Document, DocumentCategory

K = DisclosureRowKind

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def _doc(doc_id: int, number: str | None, **overrides: Any) -> Document:
    values: dict[str, Any] = {
        "id": doc_id,
        "case_id": 1,
        "filename": f"doc-{doc_id}.pdf",
        "original_name": f"doc-{doc_id}.pdf",
        "category": DocumentCategory.REAL_PROPERTY,
        "created_at": T0,
        "document_number": number,
    }
    values.update(overrides)
    return Document(**values)


def _bank(doc_id: int, number: str, group: str, **overrides: Any) -> Document:
    return _doc(
        doc_id,
        number,
        category=DocumentCategory.BANKING,
        account_group_number=group,
        **overrides,
    )


class TestFormatting:
    def test_format_date(self) -> None:
        assert format_date(date(2024, 3, 5)) == "05.03.2024"

    def test_range(self) -> None:
        assert format_dated(date(2024, 1, 1), date(2024, 1, 31), T0) == "01.01.2024 - 31.01.2024"

    def test_collapsed_range(self) -> None:
        assert format_dated(date(2024, 1, 1), date(2024, 1, 1), T0) == "01.01.2024"

    def test_open_ranges(self) -> None:
        assert format_dated(date(2024, 1, 1), None, T0) == "from 01.01.2024"
        assert format_dated(None, date(2024, 1, 31), T0) == "until 31.01.2024"

    def test_upload_date_fallback(self) -> None:
        assert format_dated(None, None, T0) == "01.03.2024"


class TestOrdering:
    def test_categories_in_prefix_order_with_headers(self) -> None:
        docs = [
            _doc(1, "C1", category=DocumentCategory.TAXATION),
            _doc(2, "A1"),
            _bank(3, "B1.1", "B1", account_holder_name="Jane Doe"),
        ]

        listing = build_disclosure(1, docs, None, as_of=T0 + timedelta(days=1))

        assert [(r.kind, r.item) for r in listing.rows] == [
            (K.CATEGORY, "A"),
            (K.DOCUMENT, "A1"),
            (K.CATEGORY, "B"),
            (K.ACCOUNT_HOLDER, "B1"),
            (K.DOCUMENT, "B1.1"),
            (K.CATEGORY, "C"),
            (K.DOCUMENT, "C1"),
        ]
        assert listing.rows[0].description == "REAL PROPERTY"

    def test_numeric_order_within_category(self) -> None:
        docs = [_doc(1, "A10"), _doc(2, "A2"), _doc(3, "A1")]

        listing = build_disclosure(1, docs, None, as_of=T0)

        assert [r.item for r in listing.document_rows] == ["A1", "A2", "A10"]

    def test_unnumbered_documents_excluded(self) -> None:
        docs = [_doc(1, "A1"), _doc(2, None)]

        listing = build_disclosure(1, docs, None, as_of=T0)

        assert listing.document_count == 1

    def test_documents_after_as_of_excluded(self) -> None:
        docs = [_doc(1, "A1"), _doc(2, "A2", created_at=T0 + timedelta(hours=2))]

        listing = build_disclosure(1, docs, None, as_of=T0 + timedelta(hours=1))

        assert [r.item for r in listing.document_rows] == ["A1"]

    def test_empty_case(self) -> None:
        listing = build_disclosure(1, [], None, as_of=T0)

        assert listing.rows == []
        assert listing.document_count == 0


class TestBankingGroups:
    def test_groups_in_numeric_order_with_registered_names(self) -> None:
        docs = [
            _bank(1, "B10.1", "B10", account_holder_name="Zed"),
            _bank(2, "B2.1", "B2", account_holder_name="john smith"),
        ]

        listing = build_disclosure(
            1, docs, None, as_of=T0, group_names={"B2": "John Smith"}
        )

        headers = [(r.item, r.description) for r in listing.rows if r.kind is K.ACCOUNT_HOLDER]
        assert headers == [("B2", "John Smith"), ("B10", "Zed")]

    def test_institution_headers_only_for_mixed_groups(self) -> None:
        docs = [
            _bank(1, "B1.1", "B1", financial_institution="Westpac"),
            _bank(2, "B1.2", "B1", financial_institution="ANZ"),
            _bank(3, "B1.3", "B1", financial_institution="Westpac"),
            _bank(4, "B2.1", "B2", financial_institution="NAB"),
        ]

        listing = build_disclosure(1, docs, None, as_of=T0)

        assert [(r.kind, r.item or r.description) for r in listing.rows[1:]] == [
            (K.ACCOUNT_HOLDER, "B1"),
            (K.INSTITUTION, "Westpac"),
            (K.DOCUMENT, "B1.1"),
            (K.DOCUMENT, "B1.3"),
            (K.INSTITUTION, "ANZ"),
            (K.DOCUMENT, "B1.2"),
            (K.ACCOUNT_HOLDER, "B2"),
            (K.DOCUMENT, "B2.1"),
        ]

    def test_unknown_holder_label(self) -> None:
        listing = build_disclosure(1, [_bank(1, "B1.1", "B1")], None, as_of=T0)

        holder = next(r for r in listing.rows if r.kind is K.ACCOUNT_HOLDER)
        assert holder.description == "Unknown Account Holder"

    def test_banking_description_shows_account_ending(self) -> None:
        docs = [_bank(1, "B1.1", "B1", original_name="march.pdf", account_number="12345678")]

        listing = build_disclosure(1, docs, None, as_of=T0)

        assert listing.document_rows[0].description == "march.pdf - Account Ending 5678"


class TestNewFlags:
    def test_first_report_has_nothing_new(self) -> None:
        docs = [_doc(1, "A1"), _doc(2, "A2")]

        listing = build_disclosure(1, docs, None, as_of=T0 + timedelta(days=1))

        assert listing.new_count == 0
        assert not any(r.is_new for r in listing.rows)

    def test_documents_after_baseline_are_new(self) -> None:
        baseline = T0 + timedelta(days=1)
        docs = [
            _doc(1, "A1"),
            _doc(2, "A2", created_at=baseline + timedelta(hours=1)),
        ]

        listing = build_disclosure(
            1,
            docs,
            baseline,
            as_of=baseline + timedelta(days=1),
            snapshot_history=[baseline],
        )

        assert [(r.item, r.is_new) for r in listing.document_rows] == [("A1", False), ("A2", True)]
        assert listing.new_count == 1
        assert listing.baseline_generated_at == baseline

    def test_numbered_after_baseline_is_new(self) -> None:
        # Uploaded before the last report but only numbered after it
        baseline = T0 + timedelta(days=1)
        confirmed = _bank(1, "B1.1", "B1", numbered_at=T0 + timedelta(days=2))
        listed = _doc(2, "A1", numbered_at=T0)

        listing = build_disclosure(
            1,
            [confirmed, listed],
            baseline,
            as_of=T0 + timedelta(days=2, hours=1),
            snapshot_history=[baseline],
        )

        assert [(r.item, r.is_new) for r in listing.document_rows] == [
            ("A1", False),
            ("B1.1", True),
        ]
        assert listing.new_count == 1

    def test_headers_are_never_new(self) -> None:
        baseline = T0 - timedelta(days=1)

        listing = build_disclosure(1, [_doc(1, "A1")], baseline, as_of=T0 + timedelta(hours=1))

        assert not any(r.is_new for r in listing.rows if r.kind is not K.DOCUMENT)


class TestDateDisclosed:
    def test_dated_by_first_report_listing_it(self) -> None:
        first = T0 + timedelta(days=1)
        second = T0 + timedelta(days=10)
        docs = [
            _doc(1, "A1"),
            _doc(2, "A2", created_at=T0 + timedelta(days=5)),
            _doc(3, "A3", created_at=T0 + timedelta(days=12)),
        ]
        as_of = T0 + timedelta(days=20)

        listing = build_disclosure(
            1, docs, second, as_of=as_of, snapshot_history=[second, first]
        )

        assert [r.date_disclosed for r in listing.document_rows] == [
            format_date(first),
            format_date(second),
            format_date(as_of),
        ]

    def test_numbering_after_a_report_moves_the_date(self) -> None:
        first = T0 + timedelta(days=1)
        doc = _bank(
            1,
            "B1.1",
            "B1",
            numbered_at=T0 + timedelta(days=3),
        )
        as_of = T0 + timedelta(days=4)

        listing = build_disclosure(1, [doc], first, as_of=as_of, snapshot_history=[first])

        assert listing.document_rows[0].date_disclosed == format_date(as_of)

    def test_dated_column_uses_transaction_range(self) -> None:
        doc = _bank(
            1,
            "B1.1",
            "B1",
            transaction_date_from=date(2023, 7, 1),
            transaction_date_to=date(2023, 12, 31),
        )

        listing = build_disclosure(1, [doc], None, as_of=T0)

        assert listing.document_rows[0].dated == "01.07.2023 - 31.12.2023"
