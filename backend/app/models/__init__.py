"""Pydantic models module."""

from app.models.audit import AuditEventType, CaseActivityEntry, StatusAuditEntry
from app.models.auth import AuthenticatedUser
from app.models.case import (
    Case,
    CaseCreate,
    CaseInvitation,
    CaseInvitationCreate,
    CaseMember,
    CaseMemberUpdate,
    CaseRole,
    CaseStatus,
    InvitationStatus,
)
from app.models.disclosure import (
    DisclosureListing,
    DisclosureRow,
    DisclosureRowKind,
    DisclosureSnapshot,
)
from app.models.document import (
    BankingConfirmation,
    BankingDetails,
    BankingExtraction,
    Document,
    DocumentCategory,
    DocumentStatus,
)

__all__ = [
    # Audit models
    "AuditEventType",
    "CaseActivityEntry",
    "StatusAuditEntry",
    # Auth models
    "AuthenticatedUser",
    # Case models
    "Case",
    "CaseCreate",
    "CaseInvitation",
    "CaseInvitationCreate",
    "CaseMember",
    "CaseMemberUpdate",
    "CaseRole",
    "CaseStatus",
    "InvitationStatus",
    # Disclosure models
    "DisclosureListing",
    "DisclosureRow",
    "DisclosureRowKind",
    "DisclosureSnapshot",
    # Document models
    "BankingConfirmation",
    "BankingDetails",
    "BankingExtraction",
    "Document",
    "DocumentCategory",
    "DocumentStatus",
]
