"""Audit trail models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.document import DocumentStatus


class AuditEventType(str, Enum):
    """Types of auditable case events."""

    CASE_CREATED = "case_created"
    MEMBER_ROLES_CHANGED = "member_roles_changed"
    MEMBER_REMOVED = "member_removed"
    MEMBER_INVITED = "member_invited"
    INVITATION_ACCEPTED = "invitation_accepted"
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_NUMBERED = "document_numbered"
    DOCUMENT_DELETED = "document_deleted"
    DISCLOSURE_GENERATED = "disclosure_generated"


class StatusAuditEntry(BaseModel):
    """Append-only record of one document status transition."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    document_id: int = Field(..., alias="documentId")
    case_id: int = Field(..., alias="caseId")
    actor_id: str = Field(..., alias="actorId")
    from_status: DocumentStatus = Field(..., alias="fromStatus")
    to_status: DocumentStatus = Field(..., alias="toStatus")
    created_at: datetime = Field(..., alias="createdAt")


class CaseActivityEntry(BaseModel):
    """Case activity log entry (uploads, numbering, membership, reports)."""

    event_type: AuditEventType
    case_id: int
    user_id: str | None
    details: dict[str, Any] | None = None
    timestamp: datetime

    model_config = ConfigDict(use_enum_values=True)


class StatusHistoryResponse(BaseModel):
    data: list[StatusAuditEntry]
