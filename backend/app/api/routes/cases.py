"""Case API routes: cases, membership and invitations."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response, status

from app.api.deps import (
    CaseMembership,
    get_case_service,
    require_case_roles,
)
from app.core.rate_limit import READONLY_RATE_LIMIT, STANDARD_RATE_LIMIT, limiter
from app.core.security import get_current_user
from app.models.auth import AuthenticatedUser
from app.models.case import (
    CaseCreate,
    CaseInvitationCreate,
    CaseListResponse,
    CaseMemberUpdate,
    CaseResponse,
    CaseRole,
    InvitationResponse,
    MemberListResponse,
    MemberResponse,
)
from app.services.case_service import CaseService
from app.services.exceptions import ServiceError

router = APIRouter(prefix="/cases", tags=["cases"])
invitations_router = APIRouter(prefix="/invitations", tags=["cases"])
logger = structlog.get_logger(__name__)


def _handle_service_error(error: ServiceError) -> HTTPException:
    """Convert service errors to HTTP exceptions."""
    return HTTPException(
        status_code=error.status_code,
        detail={
            "error": {
                "code": error.code,
                "message": error.message,
                "details": error.details,
            }
        },
    )


@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(STANDARD_RATE_LIMIT)
async def create_case(
    request: Request,  # Required for rate limiter
    data: CaseCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service),
) -> CaseResponse:
    """Create a new case. The creating user becomes its CASEADMIN."""
    try:
        case = case_service.create_case(user.id, data)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return CaseResponse(data=case)


@router.get("", response_model=CaseListResponse)
@limiter.limit(READONLY_RATE_LIMIT)
async def list_cases(
    request: Request,  # Required for rate limiter
    user: AuthenticatedUser = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service),
) -> CaseListResponse:
    """List every case the user holds a role on."""
    try:
        cases = case_service.list_user_cases(user.id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return CaseListResponse(data=cases)


@router.get("/{case_id}", response_model=CaseResponse)
@limiter.limit(READONLY_RATE_LIMIT)
async def get_case(
    request: Request,  # Required for rate limiter
    membership: CaseMembership = Depends(require_case_roles()),
    case_service: CaseService = Depends(get_case_service),
) -> CaseResponse:
    try:
        case = case_service.get_case(membership.case_id, membership.user_id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return CaseResponse(data=case)


# =============================================================================
# Members
# =============================================================================


@router.get("/{case_id}/members", response_model=MemberListResponse)
@limiter.limit(READONLY_RATE_LIMIT)
async def list_members(
    request: Request,  # Required for rate limiter
    membership: CaseMembership = Depends(require_case_roles()),
    case_service: CaseService = Depends(get_case_service),
) -> MemberListResponse:
    try:
        members = case_service.get_members(membership.case_id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return MemberListResponse(data=members)


@router.put("/{case_id}/members/{user_id}", response_model=MemberResponse)
@limiter.limit(STANDARD_RATE_LIMIT)
async def update_member_roles(
    request: Request,  # Required for rate limiter
    data: CaseMemberUpdate,
    user_id: str = Path(..., description="Member user ID"),
    membership: CaseMembership = Depends(require_case_roles([CaseRole.CASEADMIN])),
    case_service: CaseService = Depends(get_case_service),
) -> MemberResponse:
    """Replace a member's role set. Requires CASEADMIN.

    A case always keeps at least one CASEADMIN.
    """
    try:
        member = case_service.set_member_roles(
            membership.case_id, membership.user_id, user_id, data.roles
        )
    except ServiceError as e:
        raise _handle_service_error(e) from e

    logger.info(
        "case_member_roles_updated",
        case_id=membership.case_id,
        member_id=user_id,
        roles=[r.value for r in member.roles],
    )
    return MemberResponse(data=member)


@router.delete("/{case_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(STANDARD_RATE_LIMIT)
async def remove_member(
    request: Request,  # Required for rate limiter
    user_id: str = Path(..., description="Member user ID"),
    membership: CaseMembership = Depends(require_case_roles([CaseRole.CASEADMIN])),
    case_service: CaseService = Depends(get_case_service),
) -> Response:
    try:
        case_service.remove_member(membership.case_id, membership.user_id, user_id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Invitations
# =============================================================================


@router.post(
    "/{case_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(STANDARD_RATE_LIMIT)
async def invite_member(
    request: Request,  # Required for rate limiter
    data: CaseInvitationCreate,
    membership: CaseMembership = Depends(require_case_roles([CaseRole.CASEADMIN])),
    case_service: CaseService = Depends(get_case_service),
) -> InvitationResponse:
    """Invite someone to the case with a role set. Requires CASEADMIN."""
    try:
        invitation = case_service.create_invitation(membership.case_id, membership.user_id, data)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return InvitationResponse(data=invitation)


@invitations_router.post("/{token}/accept", response_model=CaseResponse)
@limiter.limit(STANDARD_RATE_LIMIT)
async def accept_invitation(
    request: Request,  # Required for rate limiter
    token: str = Path(..., min_length=16),
    user: AuthenticatedUser = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service),
) -> CaseResponse:
    try:
        case = case_service.accept_invitation(token, user)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return CaseResponse(data=case)
