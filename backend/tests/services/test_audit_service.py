"""Tests for the audit service."""

from unittest.mock import MagicMock

import pytest

from app.models.audit import AuditEventType
from app.models.document import DocumentStatus
from app.services.audit_service import ACTIVITY_LOG_TABLE, STATUS_AUDIT_TABLE, AuditService
from app.services.exceptions import DatabaseError


class TestLogCaseEvent:
    def test_inserts_activity_row(self) -> None:
        db = MagicMock()

        AuditService(db).log_case_event(
            AuditEventType.DOCUMENT_NUMBERED, 10, "user-1", {"document_number": "A1"}
        )

        db.table.assert_called_once_with(ACTIVITY_LOG_TABLE)
        row = db.table.return_value.insert.call_args.args[0]
        assert row["case_id"] == 10
        assert row["user_id"] == "user-1"
        assert row["action"] == "document_numbered"
        assert row["details"] == {"document_number": "A1"}

    def test_insert_failure_does_not_raise(self) -> None:
        db = MagicMock()
        db.table.return_value.insert.return_value.execute.side_effect = Exception("down")

        AuditService(db).log_case_event(AuditEventType.CASE_CREATED, 10, "user-1")

    def test_without_database(self) -> None:
        AuditService().log_case_event(AuditEventType.CASE_CREATED, 10, None)


class TestListStatusHistory:
    def _query(self, db: MagicMock) -> MagicMock:
        return db.table.return_value.select.return_value.eq.return_value.order.return_value.order

    def test_oldest_first(self) -> None:
        db = MagicMock()
        self._query(db).return_value.execute.return_value = MagicMock(
            data=[
                {
                    "id": 1,
                    "document_id": 5,
                    "case_id": 10,
                    "actor_id": "user-1",
                    "from_status": "UPLOADED",
                    "to_status": "READYFORREVIEW",
                    "created_at": "2024-03-01T09:00:00+00:00",
                },
                {
                    "id": 2,
                    "document_id": 5,
                    "case_id": 10,
                    "actor_id": "user-2",
                    "from_status": "READYFORREVIEW",
                    "to_status": "REVIEWED",
                    "created_at": "2024-03-02T09:00:00+00:00",
                },
            ]
        )

        history = AuditService(db).list_status_history(5)

        db.table.assert_called_once_with(STATUS_AUDIT_TABLE)
        assert [h.to_status for h in history] == [
            DocumentStatus.READYFORREVIEW,
            DocumentStatus.REVIEWED,
        ]
        self._query(db).assert_called_once_with("id")

    def test_query_failure(self) -> None:
        db = MagicMock()
        self._query(db).return_value.execute.side_effect = Exception("timeout")

        with pytest.raises(DatabaseError):
            AuditService(db).list_status_history(5)

    def test_without_database(self) -> None:
        with pytest.raises(DatabaseError):
            AuditService().list_status_history(5)
