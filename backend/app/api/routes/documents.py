"""Document API routes: upload, listing, banking confirmation, status and deletion.

Case-scoped routes live under ``/cases/{case_id}/documents``; routes on a
single document live under ``/documents/{document_id}`` and resolve the
case (and the caller's roles on it) from the document.
"""

import json

import structlog
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Path,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import (
    CaseMembership,
    get_intake_service,
    get_status_service,
    require_case_roles,
)
from app.core.rate_limit import (
    CRITICAL_RATE_LIMIT,
    READONLY_RATE_LIMIT,
    STANDARD_RATE_LIMIT,
    limiter,
)
from app.core.security import get_current_user
from app.models.audit import StatusHistoryResponse
from app.models.auth import AuthenticatedUser
from app.models.document import (
    BankingConfirmation,
    BankingDetails,
    DocumentCategory,
    DocumentListResponse,
    DocumentResponse,
    DocumentStatusUpdate,
    DocumentUploadResponse,
)
from app.services.exceptions import ServiceError
from app.services.intake_service import DocumentIntakeService
from app.services.status_service import StatusService

case_documents_router = APIRouter(prefix="/cases/{case_id}/documents", tags=["documents"])
router = APIRouter(prefix="/documents", tags=["documents"])
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


def _parse_banking(raw: str | None) -> BankingDetails | None:
    """Banking fields sent as a JSON form field alongside the file."""
    if not raw:
        return None
    try:
        return BankingDetails.model_validate(json.loads(raw))
    except (ValueError, PydanticValidationError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": {
                    "code": "INVALID_BANKING_DETAILS",
                    "message": "bankingDetails must be a JSON object of banking fields",
                    "details": {"reason": str(e)},
                }
            },
        ) from e


# =============================================================================
# Case documents
# =============================================================================


@case_documents_router.post(
    "",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(CRITICAL_RATE_LIMIT)
async def upload_document(
    request: Request,  # Required for rate limiter
    file: UploadFile = File(...),
    category: DocumentCategory = Form(...),
    banking_details: str | None = Form(None, alias="bankingDetails"),
    confirmed: bool = Form(False),
    membership: CaseMembership = Depends(require_case_roles()),
    intake: DocumentIntakeService = Depends(get_intake_service),
) -> DocumentUploadResponse:
    """Upload a PDF to a case.

    Non-banking documents are numbered straight away. Banking documents
    are numbered when ``confirmed`` is true and ``bankingDetails`` carries
    an account holder name; otherwise the response proposes extracted
    banking details for confirmation.
    """
    banking = _parse_banking(banking_details)
    content = await file.read()

    try:
        result = await intake.upload(
            membership.case_id,
            membership.user_id,
            filename=file.filename or "document.pdf",
            content=content,
            content_type=file.content_type,
            category=category,
            banking=banking,
            confirmed=confirmed,
        )
    except ServiceError as e:
        raise _handle_service_error(e) from e

    return DocumentUploadResponse(data=result)


@case_documents_router.get("", response_model=DocumentListResponse)
@limiter.limit(READONLY_RATE_LIMIT)
async def list_documents(
    request: Request,  # Required for rate limiter
    category: DocumentCategory | None = Query(None, description="Filter by category"),
    membership: CaseMembership = Depends(require_case_roles()),
    intake: DocumentIntakeService = Depends(get_intake_service),
) -> DocumentListResponse:
    """Documents the caller may see, each with the status moves available to them."""
    try:
        documents = intake.list_visible(membership.case_id, membership.user_id, category)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return DocumentListResponse(data=documents)


# =============================================================================
# Single document
# =============================================================================


@router.get("/{document_id}", response_model=DocumentResponse)
@limiter.limit(READONLY_RATE_LIMIT)
async def get_document(
    request: Request,  # Required for rate limiter
    document_id: int = Path(..., description="Document ID"),
    user: AuthenticatedUser = Depends(get_current_user),
    intake: DocumentIntakeService = Depends(get_intake_service),
) -> DocumentResponse:
    try:
        document = intake.get_visible_document(document_id, user.id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return DocumentResponse(data=document)


@router.patch("/{document_id}/status", response_model=DocumentResponse)
@limiter.limit(STANDARD_RATE_LIMIT)
async def update_document_status(
    request: Request,  # Required for rate limiter
    data: DocumentStatusUpdate,
    document_id: int = Path(..., description="Document ID"),
    user: AuthenticatedUser = Depends(get_current_user),
    status_service: StatusService = Depends(get_status_service),
) -> DocumentResponse:
    """Move a document through the review lifecycle.

    Returns 400 for an unknown status, 403 when the caller's roles do not
    permit the move and 409 when the status keeps changing concurrently.
    """
    try:
        document = status_service.apply_transition(document_id, data.status, user.id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return DocumentResponse(data=document)


@router.get("/{document_id}/status-history", response_model=StatusHistoryResponse)
@limiter.limit(READONLY_RATE_LIMIT)
async def get_status_history(
    request: Request,  # Required for rate limiter
    document_id: int = Path(..., description="Document ID"),
    user: AuthenticatedUser = Depends(get_current_user),
    status_service: StatusService = Depends(get_status_service),
) -> StatusHistoryResponse:
    try:
        entries = status_service.history(document_id, user.id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return StatusHistoryResponse(data=entries)


@router.post("/{document_id}/confirm-banking", response_model=DocumentResponse)
@limiter.limit(STANDARD_RATE_LIMIT)
async def confirm_banking(
    request: Request,  # Required for rate limiter
    data: BankingConfirmation,
    document_id: int = Path(..., description="Document ID"),
    user: AuthenticatedUser = Depends(get_current_user),
    intake: DocumentIntakeService = Depends(get_intake_service),
) -> DocumentResponse:
    """Store confirmed banking details and assign the document its number."""
    try:
        document = await intake.confirm_banking(document_id, user.id, data)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return DocumentResponse(data=document)


@router.post("/{document_id}/reject-banking", response_model=DocumentResponse)
@limiter.limit(STANDARD_RATE_LIMIT)
async def reject_banking(
    request: Request,  # Required for rate limiter
    document_id: int = Path(..., description="Document ID"),
    user: AuthenticatedUser = Depends(get_current_user),
    intake: DocumentIntakeService = Depends(get_intake_service),
) -> DocumentResponse:
    try:
        document = intake.reject_banking(document_id, user.id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return DocumentResponse(data=document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(STANDARD_RATE_LIMIT)
async def delete_document(
    request: Request,  # Required for rate limiter
    document_id: int = Path(..., description="Document ID"),
    user: AuthenticatedUser = Depends(get_current_user),
    intake: DocumentIntakeService = Depends(get_intake_service),
) -> Response:
    """Delete a document. Requires CASEADMIN or DISCLOSER.

    Remaining documents keep their numbers.
    """
    try:
        intake.delete(document_id, user.id)
    except ServiceError as e:
        raise _handle_service_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
