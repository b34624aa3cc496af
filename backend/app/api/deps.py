"""Dependency injection for API routes.

This module provides FastAPI dependencies for:
- Database access (Supabase)
- Authentication (JWT-based)
- Case membership and role checks
- Service construction

Every case-scoped route uses `require_case_roles`; document-scoped routes
resolve the case from the document inside the service layer.
"""

from collections.abc import AsyncGenerator, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import Depends, Path

from app.core.exceptions import CaseNotFoundError, InsufficientPermissionsError
from app.core.security import get_current_user
from app.models.auth import AuthenticatedUser
from app.models.case import CaseRole
from app.services.audit_service import AuditService
from app.services.case_lock import get_redis_client
from app.services.case_service import CaseService
from app.services.disclosure_service import DisclosureService
from app.services.intake_service import DocumentIntakeService
from app.services.numbering_service import NumberingService
from app.services.status_service import StatusService
from app.services.supabase.client import get_supabase_client

logger = structlog.get_logger(__name__)

ANY_CASE_ROLE: frozenset[CaseRole] = frozenset(CaseRole)


async def get_db() -> AsyncGenerator[Any, None]:
    """Get database client (Supabase).

    Yields:
        Supabase client instance, or None when not configured.
    """
    client = get_supabase_client()
    if client is None:
        logger.warning("supabase_not_configured")
    yield client


# =============================================================================
# Services
# =============================================================================


def get_audit_service(db: Any = Depends(get_db)) -> AuditService:
    return AuditService(db)


def get_case_service(
    db: Any = Depends(get_db),
    audit: AuditService = Depends(get_audit_service),
) -> CaseService:
    return CaseService(db, audit=audit)


def get_status_service(
    db: Any = Depends(get_db),
    cases: CaseService = Depends(get_case_service),
) -> StatusService:
    return StatusService(db, cases=cases, audit=cases.audit)


def get_intake_service(
    db: Any = Depends(get_db),
    cases: CaseService = Depends(get_case_service),
) -> DocumentIntakeService:
    numbering = NumberingService(db, audit=cases.audit, redis_client=get_redis_client())
    return DocumentIntakeService(db, cases=cases, numbering=numbering, audit=cases.audit)


def get_disclosure_service(
    db: Any = Depends(get_db),
    cases: CaseService = Depends(get_case_service),
) -> DisclosureService:
    return DisclosureService(db, cases=cases, audit=cases.audit, redis_client=get_redis_client())


# =============================================================================
# Case membership
# =============================================================================


@dataclass
class CaseMembership:
    """A user's role set on a case."""

    case_id: int
    user_id: str
    roles: set[CaseRole] = field(default_factory=set)


def require_case_roles(
    allowed_roles: Iterable[CaseRole] = ANY_CASE_ROLE,
) -> Callable[..., Any]:
    """Create a dependency that requires one of ``allowed_roles`` on the case.

    Non-members get 404 so case ids are not disclosed; members without an
    allowed role get 403.

    Example:
        @router.delete("/cases/{case_id}/members/{user_id}")
        async def remove_member(
            membership: CaseMembership = Depends(require_case_roles([CaseRole.CASEADMIN])),
        ):
            ...
    """
    allowed = frozenset(allowed_roles)

    async def case_role_checker(
        case_id: int = Path(..., description="Case ID"),
        user: AuthenticatedUser = Depends(get_current_user),
        case_service: CaseService = Depends(get_case_service),
    ) -> CaseMembership:
        roles = case_service.get_user_roles(case_id, user.id)

        if not roles:
            logger.warning(
                "case_access_denied",
                user_id=user.id,
                case_id=case_id,
                reason="no_membership",
            )
            raise CaseNotFoundError(case_id)

        if not roles & allowed:
            logger.warning(
                "case_access_denied",
                user_id=user.id,
                case_id=case_id,
                user_roles=sorted(r.value for r in roles),
                required_roles=sorted(r.value for r in allowed),
            )
            raise InsufficientPermissionsError(
                "perform this action; it requires one of these roles: "
                + ", ".join(sorted(r.value for r in allowed))
            )

        return CaseMembership(case_id=case_id, user_id=user.id, roles=roles)

    return case_role_checker
