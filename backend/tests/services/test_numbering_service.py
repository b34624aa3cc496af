"""Tests for NumberingService: locking, counters and conflict retries."""

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from app.models.audit import AuditEventType
from app.models.document import Document, DocumentCategory
from app.services.audit_service import AuditService
from app.services.document_service import CounterAdvance, DocumentService
from app.services.exceptions import ConflictError, DatabaseError, InvalidHolderNameError
from app.services.numbering_service import (
    ACCOUNT_GROUPS_TABLE,
    COUNTERS_TABLE,
    NumberingService,
)


def _result(data: list[dict[str, Any]]) -> MagicMock:
    return MagicMock(data=data)


class FakeNumberingDb:
    """Supabase stand-in exposing the two numbering tables as MagicMock chains.

    Numbering only reads these tables; every write goes through
    DocumentService.assign_number in one transaction.
    """

    def __init__(
        self,
        groups: list[dict[str, Any]] | None = None,
        counters: list[dict[str, Any]] | None = None,
    ) -> None:
        self.groups = MagicMock()
        self.groups.select.return_value.eq.return_value.execute.return_value = _result(groups or [])

        self.counters = MagicMock()
        self.counters.select.return_value.eq.return_value.execute.return_value = _result(
            counters or []
        )

        self.client = MagicMock()
        self.client.table.side_effect = {
            ACCOUNT_GROUPS_TABLE: self.groups,
            COUNTERS_TABLE: self.counters,
        }.__getitem__

    def assert_no_direct_writes(self) -> None:
        for table in (self.groups, self.counters):
            table.insert.assert_not_called()
            table.update.assert_not_called()


@pytest.fixture
def fast_settings() -> Any:
    settings = MagicMock()
    settings.numbering_max_attempts = 3
    settings.numbering_retry_base_delay = 0
    settings.numbering_retry_max_delay = 0
    with patch("app.services.numbering_service.get_settings", return_value=settings):
        yield settings


@pytest.fixture
def redis_client() -> MagicMock:
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True
    return client


@pytest.fixture
def documents() -> MagicMock:
    service = MagicMock(spec=DocumentService)
    service.assign_number.side_effect = _numbered
    return service


@pytest.fixture
def audit() -> MagicMock:
    return MagicMock(spec=AuditService)


def _numbered(document_id: int, **fields: Any) -> Document:
    return Document(
        id=document_id,
        case_id=10,
        filename="f.pdf",
        original_name="f.pdf",
        category=DocumentCategory.BANKING
        if fields["account_group_number"]
        else DocumentCategory.REAL_PROPERTY,
        created_at="2024-03-01T09:00:00Z",
        account_group_number=fields["account_group_number"],
        document_number=fields["document_number"],
        display_name=fields["display_name"],
    )


def _service(
    db: FakeNumberingDb,
    documents: MagicMock,
    audit: MagicMock,
    redis_client: MagicMock,
) -> NumberingService:
    return NumberingService(db.client, documents=documents, audit=audit, redis_client=redis_client)


class TestStandardNumbering:
    def test_first_document_in_category(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        documents.get_document.return_value = make_document(original_name="title deed.pdf")
        documents.list_case_documents.return_value = []

        result = _service(db, documents, audit, redis_client).assign_number(1)

        assert result.document_number == "A1"
        documents.assign_number.assert_called_once_with(
            1,
            account_group_number=None,
            document_number="A1",
            display_name="A1 title deed",
            bank_abbreviation=None,
            counters=[CounterAdvance("A", None, 1)],
            register_group_holder=None,
        )
        db.assert_no_direct_writes()
        redis_client.lock.assert_called_once()
        assert redis_client.lock.call_args.args[0] == "case_lock:10"
        redis_client.lock.return_value.release.assert_called_once()

    def test_deleted_numbers_are_not_reused(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        # A2 and A3 were deleted; the counter still remembers A3
        db = FakeNumberingDb(counters=[{"scope": "A", "last_value": 3}])
        documents.get_document.return_value = make_document(id=5)
        documents.list_case_documents.return_value = [
            make_document(id=1, document_number="A1")
        ]

        result = _service(db, documents, audit, redis_client).assign_number(5)

        assert result.document_number == "A4"
        assert documents.assign_number.call_args.kwargs["counters"] == [CounterAdvance("A", 3, 4)]

    def test_already_numbered_is_returned_without_locking(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        existing = make_document(document_number="A7")
        documents.get_document.return_value = existing

        result = _service(db, documents, audit, redis_client).assign_number(1)

        assert result is existing
        redis_client.lock.assert_not_called()
        documents.assign_number.assert_not_called()
        audit.log_case_event.assert_not_called()

    def test_numbering_is_audited(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        documents.get_document.return_value = make_document()
        documents.list_case_documents.return_value = []

        _service(db, documents, audit, redis_client).assign_number(1)

        audit.log_case_event.assert_called_once()
        assert audit.log_case_event.call_args.args[0] is AuditEventType.DOCUMENT_NUMBERED


class TestBankingNumbering:
    def test_new_holder_gets_next_group(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb(
            groups=[{"group_number": "B1", "account_holder_name": "Jane Doe"}],
            counters=[{"scope": "groups", "last_value": 1}, {"scope": "B1", "last_value": 1}],
        )
        documents.get_document.return_value = make_document(
            id=2,
            category=DocumentCategory.BANKING,
            account_holder_name="John Smith",
            account_number="11112222",
        )
        documents.list_case_documents.return_value = [
            make_document(
                id=1,
                category=DocumentCategory.BANKING,
                account_holder_name="Jane Doe",
                account_group_number="B1",
                document_number="B1.1",
            )
        ]

        result = _service(db, documents, audit, redis_client).assign_number(2, "CBA")

        assert result.document_number == "B2.1"
        assert result.account_group_number == "B2"
        kwargs = documents.assign_number.call_args.kwargs
        assert kwargs["register_group_holder"] == "John Smith"
        assert kwargs["counters"] == [
            CounterAdvance("groups", 1, 2),
            CounterAdvance("B2", None, 1),
        ]
        db.assert_no_direct_writes()
        assert documents.assign_number.call_args.kwargs["display_name"] == "B2.1 CBA 2222"

    def test_existing_holder_joins_group_case_insensitively(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb(
            groups=[{"group_number": "B1", "account_holder_name": "Jane Doe"}],
            counters=[{"scope": "groups", "last_value": 1}, {"scope": "B1", "last_value": 1}],
        )
        documents.get_document.return_value = make_document(
            id=2, category=DocumentCategory.BANKING, account_holder_name="  JANE doe "
        )
        documents.list_case_documents.return_value = [
            make_document(
                id=1,
                category=DocumentCategory.BANKING,
                account_holder_name="Jane Doe",
                account_group_number="B1",
                document_number="B1.1",
            )
        ]

        result = _service(db, documents, audit, redis_client).assign_number(2)

        assert result.document_number == "B1.2"
        kwargs = documents.assign_number.call_args.kwargs
        assert kwargs["register_group_holder"] is None
        assert kwargs["counters"] == [CounterAdvance("B1", 1, 2)]

    def test_blank_holder_is_rejected_without_retry(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        documents.get_document.return_value = make_document(
            category=DocumentCategory.BANKING, account_holder_name="   "
        )
        documents.list_case_documents.return_value = []

        with pytest.raises(InvalidHolderNameError):
            _service(db, documents, audit, redis_client).assign_number(1)

        assert redis_client.lock.call_count == 1
        documents.assign_number.assert_not_called()
        redis_client.lock.return_value.release.assert_called_once()


def _failing_first(error: Exception) -> Callable[..., Document]:
    calls = {"count": 0}

    def commit(document_id: int, **fields: Any) -> Document:
        calls["count"] += 1
        if calls["count"] == 1:
            raise error
        return _numbered(document_id, **fields)

    return commit


class TestConflicts:
    def test_counter_race_is_retried(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb(counters=[{"scope": "A", "last_value": 1}])
        documents.assign_number.side_effect = _failing_first(
            ConflictError("Numbering state changed concurrently")
        )
        documents.get_document.return_value = make_document(id=2)
        documents.list_case_documents.return_value = [make_document(id=1, document_number="A1")]

        result = _service(db, documents, audit, redis_client).assign_number(2)

        assert result.document_number == "A2"
        assert redis_client.lock.call_count == 2
        assert documents.assign_number.call_count == 2
        audit.log_case_event.assert_called_once()

    def test_failed_commit_leaves_first_number_in_new_group(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        documents.assign_number.side_effect = _failing_first(
            ConflictError("Document number already taken in this case")
        )
        documents.get_document.return_value = make_document(
            id=1, category=DocumentCategory.BANKING, account_holder_name="Jane Doe"
        )
        documents.list_case_documents.return_value = []

        result = _service(db, documents, audit, redis_client).assign_number(1)

        assert result.document_number == "B1.1"
        first, retry = documents.assign_number.call_args_list
        assert first.kwargs == retry.kwargs
        assert retry.kwargs["register_group_holder"] == "Jane Doe"
        assert retry.kwargs["counters"] == [
            CounterAdvance("groups", None, 1),
            CounterAdvance("B1", None, 1),
        ]
        db.assert_no_direct_writes()

    def test_database_error_is_not_retried(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        documents.assign_number.side_effect = DatabaseError("connection reset")
        documents.get_document.return_value = make_document()
        documents.list_case_documents.return_value = []

        with pytest.raises(DatabaseError):
            _service(db, documents, audit, redis_client).assign_number(1)

        assert documents.assign_number.call_count == 1
        redis_client.lock.return_value.release.assert_called_once()
        db.assert_no_direct_writes()
        audit.log_case_event.assert_not_called()

    def test_conflict_surfaces_after_attempts_exhausted(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb(counters=[{"scope": "A", "last_value": 1}])
        documents.assign_number.side_effect = ConflictError("Numbering state changed concurrently")
        documents.get_document.return_value = make_document(id=2)
        documents.list_case_documents.return_value = [make_document(id=1, document_number="A1")]

        with pytest.raises(ConflictError):
            _service(db, documents, audit, redis_client).assign_number(2)

        assert redis_client.lock.call_count == fast_settings.numbering_max_attempts
        assert documents.assign_number.call_count == fast_settings.numbering_max_attempts
        audit.log_case_event.assert_not_called()

    def test_lock_timeout_is_a_conflict(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        redis_client.lock.return_value.acquire.return_value = False
        documents.get_document.return_value = make_document()

        with pytest.raises(ConflictError):
            _service(db, documents, audit, redis_client).assign_number(1)

        documents.list_case_documents.assert_not_called()

    def test_document_numbered_concurrently_is_returned(
        self,
        fast_settings: Any,
        documents: MagicMock,
        audit: MagicMock,
        redis_client: MagicMock,
        make_document: Callable[..., Document],
    ) -> None:
        db = FakeNumberingDb()
        numbered = make_document(document_number="A3")
        documents.get_document.side_effect = [make_document(), numbered]

        result = _service(db, documents, audit, redis_client).assign_number(1)

        assert result is numbered
        documents.assign_number.assert_not_called()
        db.assert_no_direct_writes()
