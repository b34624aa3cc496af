"""Document intake: upload, banking confirmation, listing and deletion.

Orchestrates the pieces around numbering. File storage, extraction and
bank abbreviation lookups are external calls and always happen before
NumberingService takes the case lock.

Banking documents cannot be numbered until a holder name is known, so an
upload without confirmed banking fields runs the extraction oracle and
returns its proposal; the number is assigned on confirm-banking.
"""

import asyncio

import structlog
from supabase import Client

from app.core.config import get_settings
from app.engines.lifecycle import available_transitions, can_view, visible_statuses
from app.models.audit import AuditEventType
from app.models.case import CaseRole
from app.models.document import (
    BankingConfirmation,
    BankingDetails,
    BankingExtraction,
    Document,
    DocumentCategory,
    DocumentListItem,
    DocumentUploadResult,
)
from app.services.audit_service import AuditService
from app.services.bank_abbreviation_service import BankAbbreviationService
from app.services.case_service import CaseService
from app.services.document_service import DocumentService
from app.services.exceptions import (
    CaseNotFoundError,
    ConflictError,
    DocumentNotFoundError,
    ExternalServiceError,
    ForbiddenError,
    ServiceError,
    ValidationError,
)
from app.services.extraction import BankingExtractor, get_banking_extractor
from app.services.numbering_service import NumberingService
from app.services.storage_service import UPLOADS_FOLDER, StorageError, StorageService

logger = structlog.get_logger(__name__)

PDF_MIME_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF"
REJECTED_EXTRACTION_MESSAGE = "Extracted banking details rejected; enter them manually"

MANAGE_ROLES: frozenset[CaseRole] = frozenset({CaseRole.CASEADMIN, CaseRole.DISCLOSER})


class InvalidFileError(ValidationError):
    """Upload is not an acceptable PDF."""

    code = "INVALID_FILE"

    def __init__(self, message: str) -> None:
        super().__init__(message, field_errors=[{"field": "file", "message": message}])


class DocumentIntakeService:
    """Document workflows that span storage, extraction and numbering."""

    def __init__(
        self,
        db: Client | None,
        documents: DocumentService | None = None,
        cases: CaseService | None = None,
        numbering: NumberingService | None = None,
        storage: StorageService | None = None,
        extractor: BankingExtractor | None = None,
        abbreviations: BankAbbreviationService | None = None,
        audit: AuditService | None = None,
    ):
        self.documents = documents or DocumentService(db)
        self.audit = audit or AuditService(db)
        self.cases = cases or CaseService(db, audit=self.audit)
        self.numbering = numbering or NumberingService(db, documents=self.documents, audit=self.audit)
        self.storage = storage or StorageService(db)
        self._extractor = extractor
        self.abbreviations = abbreviations or BankAbbreviationService(db)

    @property
    def extractor(self) -> BankingExtractor:
        if self._extractor is None:
            self._extractor = get_banking_extractor()
        return self._extractor

    # =========================================================================
    # Access
    # =========================================================================

    def _roles(self, case_id: int, actor_id: str) -> set[CaseRole]:
        roles = self.cases.get_user_roles(case_id, actor_id)
        if not roles:
            raise CaseNotFoundError(case_id)
        return roles

    def _require_manage(self, case_id: int, actor_id: str, action: str) -> set[CaseRole]:
        roles = self._roles(case_id, actor_id)
        if not roles & MANAGE_ROLES:
            raise ForbiddenError(action)
        return roles

    def _managed_document(self, document_id: int, actor_id: str, action: str) -> Document:
        document = self.documents.get_document(document_id)
        roles = self.cases.get_user_roles(document.case_id, actor_id)
        if not roles or not can_view(document.status, roles):
            raise DocumentNotFoundError(document_id)
        if not roles & MANAGE_ROLES:
            raise ForbiddenError(action)
        return document

    def get_visible_document(self, document_id: int, actor_id: str) -> DocumentListItem:
        """A single document, if the actor's roles let them see it."""
        document = self.documents.get_document(document_id)
        roles = self.cases.get_user_roles(document.case_id, actor_id)
        if not roles or not can_view(document.status, roles):
            raise DocumentNotFoundError(document_id)
        return _list_item(document, roles)

    def list_visible(
        self,
        case_id: int,
        actor_id: str,
        category: DocumentCategory | None = None,
    ) -> list[DocumentListItem]:
        """Documents of a case the actor may see, each with its available transitions."""
        roles = self._roles(case_id, actor_id)
        documents = self.documents.list_case_documents(
            case_id, category=category, statuses=visible_statuses(roles)
        )
        return [_list_item(doc, roles) for doc in documents]

    # =========================================================================
    # Upload
    # =========================================================================

    async def upload(
        self,
        case_id: int,
        actor_id: str,
        *,
        filename: str,
        content: bytes,
        content_type: str | None,
        category: DocumentCategory,
        banking: BankingDetails | None = None,
        confirmed: bool = False,
    ) -> DocumentUploadResult:
        """Store an uploaded PDF and number it when possible.

        Raises:
            CaseNotFoundError: Actor is not a member of the case.
            ForbiddenError: Actor is neither CASEADMIN nor DISCLOSER.
            InvalidFileError: Not a PDF, empty or too large.
            StorageError: Upload to storage failed.
        """
        self._require_manage(case_id, actor_id, "upload documents to this case")
        self._validate_file(content, content_type)

        storage_path = self.storage.upload_file(case_id, UPLOADS_FOLDER, content, filename)
        stored_name = storage_path.rsplit("/", 1)[-1]

        try:
            document = self.documents.create_document(
                case_id=case_id,
                filename=stored_name,
                original_name=filename,
                category=category,
                storage_path=storage_path,
                file_size=len(content),
                mime_type=PDF_MIME_TYPE,
                uploaded_by=actor_id,
                banking=banking if category is DocumentCategory.BANKING else None,
            )
        except ServiceError:
            self._discard_file(storage_path)
            raise

        self.audit.log_case_event(
            AuditEventType.DOCUMENT_UPLOADED,
            case_id,
            actor_id,
            {"document_id": document.id, "category": category.value},
        )

        if category is not DocumentCategory.BANKING:
            return DocumentUploadResult(document=await self._number(document))

        if confirmed and banking is not None and banking.account_holder_name:
            return DocumentUploadResult(document=await self._number(document))

        return await self._propose_banking(document, content, banking)

    def _validate_file(self, content: bytes, content_type: str | None) -> None:
        max_bytes = get_settings().file_size_max_mb * 1024 * 1024
        if content_type and content_type != PDF_MIME_TYPE:
            raise InvalidFileError("Only PDF documents can be uploaded")
        if not content:
            raise InvalidFileError("File is empty")
        if not content.startswith(PDF_MAGIC):
            raise InvalidFileError("File is not a valid PDF")
        if len(content) > max_bytes:
            raise InvalidFileError(
                f"File exceeds the {get_settings().file_size_max_mb}MB upload limit"
            )

    async def _propose_banking(
        self,
        document: Document,
        content: bytes,
        provided: BankingDetails | None,
    ) -> DocumentUploadResult:
        try:
            extraction = await self.extractor.extract(content)
        except ExternalServiceError as e:
            logger.warning(
                "banking_extraction_unavailable",
                document_id=document.id,
                error=e.message,
            )
            document = self.documents.record_processing_error(document.id, e.message)
            return DocumentUploadResult(document=document, requires_confirmation=True)

        document = self.documents.update_banking_details(
            document.id,
            _merge_proposal(extraction, provided),
            ai_processed=True,
        )
        return DocumentUploadResult(
            document=document,
            extracted_banking_info=extraction,
            requires_confirmation=True,
        )

    async def _number(self, document: Document) -> Document:
        abbreviation = None
        if document.category is DocumentCategory.BANKING:
            abbreviation = await self.abbreviations.get_or_create(document.financial_institution)
        return await asyncio.to_thread(self.numbering.assign_number, document.id, abbreviation)

    # =========================================================================
    # Banking confirmation
    # =========================================================================

    async def confirm_banking(
        self,
        document_id: int,
        actor_id: str,
        confirmation: BankingConfirmation,
    ) -> Document:
        """Store confirmed banking fields and number the document.

        Raises:
            ValidationError: Not a banking document.
            ConflictError: Already numbered; its holder can no longer change.
        """
        document = self._managed_document(document_id, actor_id, "confirm banking details")
        if document.category is not DocumentCategory.BANKING:
            raise ValidationError("Only banking documents carry banking details")
        if document.is_numbered:
            raise ConflictError(
                "Document is already numbered; its banking details are fixed",
                {"documentId": document_id, "documentNumber": document.document_number},
            )

        document = self.documents.update_banking_details(
            document_id,
            confirmation,
            ai_processed=document.ai_processed,
        )
        logger.info("banking_details_confirmed", document_id=document_id, case_id=document.case_id)
        return await self._number(document)

    def reject_banking(self, document_id: int, actor_id: str) -> Document:
        document = self._managed_document(document_id, actor_id, "reject banking details")
        if document.category is not DocumentCategory.BANKING:
            raise ValidationError("Only banking documents carry banking details")

        document = self.documents.record_processing_error(document_id, REJECTED_EXTRACTION_MESSAGE)
        logger.info("banking_details_rejected", document_id=document_id, case_id=document.case_id)
        return document

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete(self, document_id: int, actor_id: str) -> None:
        """Delete a document and its file.

        Other documents keep their numbers, and the numbering counters are
        untouched, so the deleted number is never handed out again.
        """
        document = self._managed_document(document_id, actor_id, "delete documents in this case")
        self.documents.delete_document(document_id)
        if document.storage_path:
            self._discard_file(document.storage_path)

        self.audit.log_case_event(
            AuditEventType.DOCUMENT_DELETED,
            document.case_id,
            actor_id,
            {"document_id": document_id, "document_number": document.document_number},
        )

    def _discard_file(self, storage_path: str) -> None:
        try:
            self.storage.delete_file(storage_path)
        except StorageError as e:
            logger.warning("document_file_delete_failed", storage_path=storage_path, error=e.message)


def _list_item(document: Document, roles: set[CaseRole]) -> DocumentListItem:
    return DocumentListItem(
        **document.model_dump(),
        available_transitions=available_transitions(document.status, roles),
    )


def _merge_proposal(extraction: BankingExtraction, provided: BankingDetails | None) -> BankingDetails:
    """Extraction results, with any field the uploader already supplied taking precedence."""
    date_from, date_to = extraction.date_from, extraction.date_to
    if date_from and date_to and date_from > date_to:
        date_from, date_to = date_to, date_from

    proposal = BankingDetails(
        account_holder_name=extraction.account_holder_name,
        account_name=extraction.account_name,
        financial_institution=extraction.financial_institution,
        account_number=extraction.account_number,
        bsb_sort_code=extraction.bsb_sort_code,
        transaction_date_from=date_from,
        transaction_date_to=date_to,
    )
    if provided is None:
        return proposal
    return proposal.model_copy(update=provided.model_dump(exclude_none=True))
