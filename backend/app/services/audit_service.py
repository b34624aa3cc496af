"""Audit trail for case activity and document status changes.

Status transitions are audit-grade: their ``document_status_audit`` row is
written in the same transaction as the status change (see
DocumentService.transition_status). This service reads that trail back and
records the looser case activity log (uploads, numbering, membership
changes, generated reports) to structured logs and the ``activity_log``
table.
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from supabase import Client

from app.models.audit import AuditEventType, CaseActivityEntry, StatusAuditEntry
from app.models.document import DocumentStatus
from app.services.exceptions import DatabaseError

logger = structlog.get_logger(__name__)

STATUS_AUDIT_TABLE = "document_status_audit"
ACTIVITY_LOG_TABLE = "activity_log"


class AuditService:
    """Service for recording and querying audit trails."""

    def __init__(self, db: Client | None = None):
        """Initialize the audit service.

        Args:
            db: Optional Supabase client. Without one, case activity only
                goes to structured logs.
        """
        self.db = db

    def log_status_change(
        self,
        document_id: int,
        case_id: int,
        actor_id: str,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
    ) -> None:
        logger.info(
            "audit_event",
            event_type="document_status_changed",
            document_id=document_id,
            case_id=case_id,
            user_id=actor_id,
            from_status=from_status.value,
            to_status=to_status.value,
        )

    def log_case_event(
        self,
        event_type: AuditEventType,
        case_id: int,
        user_id: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record a case activity event.

        A failed activity-log insert is logged and does not fail the request.
        """
        entry = CaseActivityEntry(
            event_type=event_type,
            case_id=case_id,
            user_id=user_id,
            details=details,
            timestamp=datetime.now(UTC),
        )
        logger.info("audit_event", **entry.model_dump(mode="json", exclude_none=True))

        if self.db is None:
            return

        try:
            self.db.table(ACTIVITY_LOG_TABLE).insert(
                {
                    "case_id": entry.case_id,
                    "user_id": entry.user_id,
                    "action": entry.event_type,
                    "details": entry.details,
                    "created_at": entry.timestamp.isoformat(),
                }
            ).execute()
        except Exception as e:
            logger.error(
                "audit_database_log_failed",
                error=str(e),
                event_type=entry.event_type,
                case_id=case_id,
            )

    def list_status_history(self, document_id: int) -> list[StatusAuditEntry]:
        """Status transitions of a document, oldest first."""
        if self.db is None:
            raise DatabaseError("Database client not configured")

        try:
            result = (
                self.db.table(STATUS_AUDIT_TABLE)
                .select("id, document_id, case_id, actor_id, from_status, to_status, created_at")
                .eq("document_id", document_id)
                .order("created_at")
                .order("id")
                .execute()
            )
        except Exception as e:
            logger.error("status_history_query_failed", document_id=document_id, error=str(e))
            raise DatabaseError(f"Failed to load status history: {e!s}") from e

        return [StatusAuditEntry.model_validate(row) for row in result.data or []]
