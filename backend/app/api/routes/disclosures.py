"""Disclosure report routes."""

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import (
    CaseMembership,
    get_disclosure_service,
    require_case_roles,
)
from app.core.rate_limit import CRITICAL_RATE_LIMIT, READONLY_RATE_LIMIT, limiter
from app.models.case import CaseRole
from app.models.disclosure import (
    DisclosureGenerateResponse,
    DisclosureSnapshotListResponse,
)
from app.services.disclosure_service import DisclosureService
from app.services.exceptions import ServiceError

router = APIRouter(prefix="/cases/{case_id}", tags=["disclosures"])
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


@router.post("/generate-disclosure-pdf", response_model=DisclosureGenerateResponse)
@limiter.limit(CRITICAL_RATE_LIMIT)
async def generate_disclosure_pdf(
    request: Request,  # Required for rate limiter
    membership: CaseMembership = Depends(
        require_case_roles([CaseRole.CASEADMIN, CaseRole.DISCLOSER])
    ),
    disclosure_service: DisclosureService = Depends(get_disclosure_service),
) -> DisclosureGenerateResponse:
    """Generate the disclosure list PDF and record it as the new baseline.

    Documents added since the previous report are flagged as new. The
    response carries the snapshot and a signed download URL.
    """
    try:
        # Takes the case lock and uploads; keep it off the event loop
        result = await asyncio.to_thread(
            disclosure_service.generate, membership.case_id, membership.user_id
        )
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return DisclosureGenerateResponse(data=result)


@router.get("/disclosures", response_model=DisclosureSnapshotListResponse)
@limiter.limit(READONLY_RATE_LIMIT)
async def list_disclosures(
    request: Request,  # Required for rate limiter
    membership: CaseMembership = Depends(require_case_roles()),
    disclosure_service: DisclosureService = Depends(get_disclosure_service),
) -> DisclosureSnapshotListResponse:
    """Snapshots of previously generated reports, newest first."""
    try:
        snapshots = disclosure_service.list_snapshots(membership.case_id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return DisclosureSnapshotListResponse(data=snapshots)
