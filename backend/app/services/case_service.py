"""Case service for the role-per-case authorization system.

Membership is stored one row per (case, user, role) in ``case_users``; a
user's role set on a case is the union of their rows. The creator of a
case becomes its CASEADMIN, other members join through invitations.
"""

import secrets
from datetime import UTC, datetime, timedelta

import structlog
from supabase import Client

from app.core.config import get_settings
from app.models.audit import AuditEventType
from app.models.auth import AuthenticatedUser
from app.models.case import (
    Case,
    CaseCreate,
    CaseInvitation,
    CaseInvitationCreate,
    CaseMember,
    CaseRole,
    InvitationStatus,
)
from app.services.audit_service import AuditService
from app.services.document_service import is_unique_violation, require_client
from app.services.exceptions import (
    CaseNotFoundError,
    ConflictError,
    DatabaseError,
    ForbiddenError,
    InvitationNotFoundError,
    ServiceError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

CASES_TABLE = "cases"
CASE_USERS_TABLE = "case_users"
INVITATIONS_TABLE = "case_invitations"

CASE_SELECT_FIELDS = "id, case_number, title, status, created_by, created_at, updated_at"


class LastCaseAdminError(ValidationError):
    """A case must keep at least one CASEADMIN."""

    code = "LAST_CASE_ADMIN"

    def __init__(self) -> None:
        super().__init__("A case must keep at least one CASEADMIN")


class CaseService:
    """Service for case, membership and invitation operations."""

    def __init__(self, db: Client | None, audit: AuditService | None = None):
        """Initialize case service.

        Args:
            db: Supabase client for database operations.
            audit: Audit service; defaults to one sharing ``db``.
        """
        self.db = db
        self.audit = audit or AuditService(db)

    @property
    def _client(self) -> Client:
        return require_client(self.db)

    # =========================================================================
    # Cases
    # =========================================================================

    def create_case(self, user_id: str, data: CaseCreate) -> Case:
        """Create a case and make its creator the CASEADMIN.

        Raises:
            ConflictError: If the case number is already in use.
        """
        logger.info("creating_case", user_id=user_id, case_number=data.case_number)

        try:
            result = self._client.table(CASES_TABLE).insert(
                {
                    "case_number": data.case_number,
                    "title": data.title,
                    "created_by": user_id,
                }
            ).execute()
        except Exception as e:
            if is_unique_violation(e):
                raise ConflictError(
                    f"Case number {data.case_number} is already in use",
                    {"caseNumber": data.case_number},
                ) from e
            logger.error("case_create_failed", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to create case: {e!s}") from e

        if not result.data:
            raise DatabaseError("Failed to create case record")

        row = result.data[0]
        self._insert_roles(row["id"], user_id, {CaseRole.CASEADMIN})

        self.audit.log_case_event(AuditEventType.CASE_CREATED, row["id"], user_id)
        logger.info("case_created", case_id=row["id"], user_id=user_id)

        return Case.model_validate({**row, "roles": [CaseRole.CASEADMIN]})

    def get_case(self, case_id: int, user_id: str) -> Case:
        """Get a case the user is a member of.

        Raises:
            CaseNotFoundError: If the case does not exist or the user is not a member.
        """
        roles = self.get_user_roles(case_id, user_id)
        if not roles:
            raise CaseNotFoundError(case_id)

        result = (
            self._client.table(CASES_TABLE)
            .select(CASE_SELECT_FIELDS)
            .eq("id", case_id)
            .execute()
        )
        if not result.data:
            raise CaseNotFoundError(case_id)

        return Case.model_validate({**result.data[0], "roles": _ordered(roles)})

    def list_user_cases(self, user_id: str) -> list[Case]:
        """List every case the user holds at least one role on, newest first."""
        memberships = (
            self._client.table(CASE_USERS_TABLE)
            .select("case_id, role")
            .eq("user_id", user_id)
            .execute()
        )

        roles_by_case: dict[int, set[CaseRole]] = {}
        for row in memberships.data or []:
            roles_by_case.setdefault(row["case_id"], set()).add(CaseRole(row["role"]))

        if not roles_by_case:
            return []

        result = (
            self._client.table(CASES_TABLE)
            .select(CASE_SELECT_FIELDS)
            .in_("id", list(roles_by_case))
            .order("created_at", desc=True)
            .execute()
        )
        return [
            Case.model_validate({**row, "roles": _ordered(roles_by_case[row["id"]])})
            for row in result.data or []
        ]

    # =========================================================================
    # Membership
    # =========================================================================

    def get_user_roles(self, case_id: int, user_id: str) -> set[CaseRole]:
        """The user's role set on a case (empty when not a member)."""
        try:
            result = (
                self._client.table(CASE_USERS_TABLE)
                .select("role")
                .eq("case_id", case_id)
                .eq("user_id", user_id)
                .execute()
            )
        except ServiceError:
            raise
        except Exception as e:
            logger.error("case_roles_query_failed", case_id=case_id, user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to load case roles: {e!s}") from e

        return {CaseRole(row["role"]) for row in result.data or []}

    def get_members(self, case_id: int) -> list[CaseMember]:
        result = (
            self._client.table(CASE_USERS_TABLE)
            .select("user_id, role")
            .eq("case_id", case_id)
            .execute()
        )

        roles_by_user: dict[str, set[CaseRole]] = {}
        for row in result.data or []:
            roles_by_user.setdefault(row["user_id"], set()).add(CaseRole(row["role"]))

        user_info = self._batch_fetch_user_info(list(roles_by_user))
        return [
            CaseMember(
                user_id=user_id,
                email=user_info.get(user_id, {}).get("email"),
                full_name=user_info.get(user_id, {}).get("full_name"),
                roles=_ordered(roles),
            )
            for user_id, roles in roles_by_user.items()
        ]

    def set_member_roles(
        self,
        case_id: int,
        actor_id: str,
        user_id: str,
        roles: list[CaseRole],
    ) -> CaseMember:
        """Replace a member's role set.

        Raises:
            CaseNotFoundError: If the user is not a member of the case.
            LastCaseAdminError: If this would leave the case without a CASEADMIN.
        """
        current = self.get_user_roles(case_id, user_id)
        if not current:
            raise CaseNotFoundError(case_id)

        wanted = set(roles)
        if CaseRole.CASEADMIN in current and CaseRole.CASEADMIN not in wanted:
            self._ensure_other_admin(case_id, user_id)

        removed = current - wanted
        if removed:
            (
                self._client.table(CASE_USERS_TABLE)
                .delete()
                .eq("case_id", case_id)
                .eq("user_id", user_id)
                .in_("role", [r.value for r in removed])
                .execute()
            )
        self._insert_roles(case_id, user_id, wanted - current)

        self.audit.log_case_event(
            AuditEventType.MEMBER_ROLES_CHANGED,
            case_id,
            actor_id,
            {
                "member_id": user_id,
                "from": [r.value for r in _ordered(current)],
                "to": [r.value for r in _ordered(wanted)],
            },
        )
        return CaseMember(user_id=user_id, roles=_ordered(wanted))

    def remove_member(self, case_id: int, actor_id: str, user_id: str) -> None:
        """Remove a user from a case.

        Raises:
            CaseNotFoundError: If the user is not a member of the case.
            LastCaseAdminError: If the user is the case's only CASEADMIN.
        """
        current = self.get_user_roles(case_id, user_id)
        if not current:
            raise CaseNotFoundError(case_id)
        if CaseRole.CASEADMIN in current:
            self._ensure_other_admin(case_id, user_id)

        (
            self._client.table(CASE_USERS_TABLE)
            .delete()
            .eq("case_id", case_id)
            .eq("user_id", user_id)
            .execute()
        )
        self.audit.log_case_event(
            AuditEventType.MEMBER_REMOVED, case_id, actor_id, {"member_id": user_id}
        )

    # =========================================================================
    # Invitations
    # =========================================================================

    def create_invitation(
        self,
        case_id: int,
        invited_by: str,
        data: CaseInvitationCreate,
    ) -> CaseInvitation:
        expires_at = datetime.now(UTC) + timedelta(days=get_settings().invitation_expiry_days)
        token = secrets.token_urlsafe(32)

        result = self._client.table(INVITATIONS_TABLE).insert(
            {
                "case_id": case_id,
                "email": data.email,
                "roles": [r.value for r in data.roles],
                "token": token,
                "invited_by": invited_by,
                "status": InvitationStatus.PENDING.value,
                "expires_at": expires_at.isoformat(),
            }
        ).execute()
        if not result.data:
            raise DatabaseError("Failed to create invitation")

        self.audit.log_case_event(
            AuditEventType.MEMBER_INVITED,
            case_id,
            invited_by,
            {"roles": [r.value for r in data.roles]},
        )
        return CaseInvitation.model_validate(result.data[0])

    def accept_invitation(self, token: str, user: AuthenticatedUser) -> Case:
        """Join a case through an invitation token.

        Raises:
            InvitationNotFoundError: Unknown token.
            ValidationError: Invitation already used or expired.
            ForbiddenError: Invitation was addressed to another email.
        """
        result = (
            self._client.table(INVITATIONS_TABLE)
            .select("*")
            .eq("token", token)
            .execute()
        )
        if not result.data:
            raise InvitationNotFoundError(token)

        invitation = CaseInvitation.model_validate(result.data[0])

        if invitation.status is not InvitationStatus.PENDING:
            raise ValidationError(f"Invitation has already been {invitation.status.value}")

        now = datetime.now(UTC)
        if invitation.expires_at <= now:
            (
                self._client.table(INVITATIONS_TABLE)
                .update({"status": InvitationStatus.EXPIRED.value})
                .eq("id", invitation.id)
                .execute()
            )
            raise ValidationError("Invitation has expired")

        if user.email and user.email.lower() != invitation.email.lower():
            raise ForbiddenError("accept an invitation addressed to someone else")

        current = self.get_user_roles(invitation.case_id, user.id)
        self._insert_roles(invitation.case_id, user.id, set(invitation.roles) - current)

        (
            self._client.table(INVITATIONS_TABLE)
            .update({"status": InvitationStatus.ACCEPTED.value, "accepted_at": now.isoformat()})
            .eq("id", invitation.id)
            .execute()
        )
        self.audit.log_case_event(
            AuditEventType.INVITATION_ACCEPTED, invitation.case_id, user.id
        )
        return self.get_case(invitation.case_id, user.id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _insert_roles(self, case_id: int, user_id: str, roles: set[CaseRole]) -> None:
        if not roles:
            return
        self._client.table(CASE_USERS_TABLE).insert(
            [
                {"case_id": case_id, "user_id": user_id, "role": role.value}
                for role in _ordered(roles)
            ]
        ).execute()

    def _ensure_other_admin(self, case_id: int, user_id: str) -> None:
        result = (
            self._client.table(CASE_USERS_TABLE)
            .select("user_id")
            .eq("case_id", case_id)
            .eq("role", CaseRole.CASEADMIN.value)
            .neq("user_id", user_id)
            .execute()
        )
        if not result.data:
            raise LastCaseAdminError()

    def _batch_fetch_user_info(self, user_ids: list[str]) -> dict[str, dict[str, str | None]]:
        if not user_ids:
            return {}
        result = (
            self._client.table("users")
            .select("id, email, full_name")
            .in_("id", user_ids)
            .execute()
        )
        return {
            user["id"]: {"email": user.get("email"), "full_name": user.get("full_name")}
            for user in result.data or []
        }


def _ordered(roles: set[CaseRole]) -> list[CaseRole]:
    return [role for role in CaseRole if role in roles]
