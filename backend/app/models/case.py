"""Case models for the role-per-case authorization system.

A user may hold several roles on one case at the same time; membership is
stored one row per (case, user, role) in ``case_users`` and surfaced here as
a role list.

All response models use camelCase aliases to match the frontend types.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CaseRole(str, Enum):
    """Role types for case membership.

    Permissions:
    - DISCLOSER: uploads documents, moves them into review, generates reports
    - REVIEWER: reviews documents and withdraws/reinstates them
    - DISCLOSEE: opposing party, sees REVIEWED documents only
    - CASEADMIN: manages members and may make any status transition
    """

    DISCLOSER = "DISCLOSER"
    REVIEWER = "REVIEWER"
    DISCLOSEE = "DISCLOSEE"
    CASEADMIN = "CASEADMIN"


class CaseStatus(str, Enum):
    """Status types for cases."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


def _dedupe_roles(roles: list[CaseRole]) -> list[CaseRole]:
    return sorted(set(roles), key=lambda r: list(CaseRole).index(r))


class CaseCreate(BaseModel):
    """Request model for creating a new case."""

    model_config = ConfigDict(populate_by_name=True)

    case_number: str = Field(..., alias="caseNumber", min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=255, description="Case title")

    @field_validator("case_number", "title")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class Case(BaseModel):
    """Complete case model returned from API."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="Case ID")
    case_number: str = Field(..., alias="caseNumber")
    title: str
    status: CaseStatus = Field(default=CaseStatus.ACTIVE)
    created_by: str | None = Field(None, alias="createdBy")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")
    roles: list[CaseRole] = Field(
        default_factory=list, description="Current user's roles on this case"
    )


class CaseMember(BaseModel):
    """A member of a case with their role set."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    email: str | None = None
    full_name: str | None = Field(None, alias="fullName")
    roles: list[CaseRole] = Field(default_factory=list)


class CaseMemberUpdate(BaseModel):
    """Request model replacing a member's role set."""

    roles: list[CaseRole] = Field(..., min_length=1)

    @field_validator("roles")
    @classmethod
    def _unique(cls, roles: list[CaseRole]) -> list[CaseRole]:
        return _dedupe_roles(roles)


class CaseInvitationCreate(BaseModel):
    """Request model for inviting someone to a case."""

    email: str = Field(..., min_length=3, max_length=320)
    roles: list[CaseRole] = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, email: str) -> str:
        email = email.strip().lower()
        if "@" not in email:
            raise ValueError("must be an email address")
        return email

    @field_validator("roles")
    @classmethod
    def _unique(cls, roles: list[CaseRole]) -> list[CaseRole]:
        return _dedupe_roles(roles)


class CaseInvitation(BaseModel):
    """Pending or settled invitation to join a case."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    case_id: int = Field(..., alias="caseId")
    email: str
    roles: list[CaseRole]
    token: str | None = Field(None, description="Only returned to the inviting admin")
    invited_by: str | None = Field(None, alias="invitedBy")
    status: InvitationStatus = InvitationStatus.PENDING
    expires_at: datetime = Field(..., alias="expiresAt")
    accepted_at: datetime | None = Field(None, alias="acceptedAt")
    created_at: datetime | None = Field(None, alias="createdAt")


class CaseResponse(BaseModel):
    """API response wrapper for a single case."""

    data: Case


class CaseListResponse(BaseModel):
    """API response wrapper for case list."""

    data: list[Case]


class MemberListResponse(BaseModel):
    data: list[CaseMember]


class MemberResponse(BaseModel):
    data: CaseMember


class InvitationResponse(BaseModel):
    data: CaseInvitation
