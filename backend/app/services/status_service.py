"""Document status transitions.

A transition is validated against the caller's case roles and written as a
compare-and-set on the current status, together with its audit row (see
DocumentService.transition_status). Only the document itself is contended,
so no case lock is taken. When another writer moved the status first the
document is re-read and the request re-validated against the new status.
"""

import structlog
from supabase import Client
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.engines.lifecycle import can_transition, can_view, parse_status
from app.models.audit import StatusAuditEntry
from app.models.document import Document, DocumentStatus
from app.services.audit_service import AuditService
from app.services.case_service import CaseService
from app.services.document_service import DocumentService
from app.services.exceptions import (
    ConflictError,
    DocumentNotFoundError,
    ForbiddenError,
)

logger = structlog.get_logger(__name__)

STATUS_MAX_ATTEMPTS = 3


class StatusService:
    """Applies role-checked status transitions."""

    def __init__(
        self,
        db: Client | None,
        documents: DocumentService | None = None,
        cases: CaseService | None = None,
        audit: AuditService | None = None,
    ):
        self.documents = documents or DocumentService(db)
        self.audit = audit or AuditService(db)
        self.cases = cases or CaseService(db, audit=self.audit)

    def apply_transition(self, document_id: int, requested: object, actor_id: str) -> Document:
        """Move a document to ``requested`` on behalf of ``actor_id``.

        Requesting the current status is a no-op for callers allowed to make
        it and writes no audit row.

        Raises:
            InvalidStatusError: ``requested`` is not a status.
            DocumentNotFoundError: Missing, or invisible to the caller.
            ForbiddenError: The caller's roles do not permit the edge.
            ConflictError: Status kept changing underneath the request.
        """
        new_status = parse_status(requested)

        for attempt in Retrying(
            stop=stop_after_attempt(STATUS_MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=0.05, max=0.5),
            retry=retry_if_exception_type(ConflictError),
            reraise=True,
        ):
            with attempt:
                document = self._apply_once(document_id, new_status, actor_id)
        return document

    def _apply_once(
        self,
        document_id: int,
        new_status: DocumentStatus,
        actor_id: str,
    ) -> Document:
        document = self.documents.get_document(document_id)
        roles = self.cases.get_user_roles(document.case_id, actor_id)
        if not can_view(document.status, roles):
            raise DocumentNotFoundError(document_id)

        current = document.status
        if not can_transition(current, new_status, roles):
            logger.warning(
                "document_status_change_forbidden",
                document_id=document_id,
                case_id=document.case_id,
                from_status=current.value,
                to_status=new_status.value,
                roles=sorted(r.value for r in roles),
            )
            raise ForbiddenError(
                f"move a document from {current.value} to {new_status.value}",
                {"currentStatus": current.value, "requestedStatus": new_status.value},
            )

        if new_status is current:
            return document

        updated = self.documents.transition_status(document_id, current, new_status, actor_id)
        self.audit.log_status_change(document_id, document.case_id, actor_id, current, new_status)
        logger.info(
            "document_status_changed",
            document_id=document_id,
            case_id=document.case_id,
            from_status=current.value,
            to_status=new_status.value,
        )
        return updated

    def history(self, document_id: int, actor_id: str) -> list[StatusAuditEntry]:
        """Status transitions of a document the actor can see, oldest first."""
        document = self.documents.get_document(document_id)
        roles = self.cases.get_user_roles(document.case_id, actor_id)
        if not can_view(document.status, roles):
            raise DocumentNotFoundError(document_id)
        return self.audit.list_status_history(document_id)
