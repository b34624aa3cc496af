"""Document service for database operations.

Handles document rows in the ``documents`` table. File bytes live in
storage (see StorageService); numbering writes go through
NumberingService and status writes through StatusService, both via the
transactional database function wrappers below.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from supabase import Client

from app.models.document import (
    BankingDetails,
    Document,
    DocumentCategory,
    DocumentStatus,
)
from app.services.exceptions import (
    ConflictError,
    DatabaseError,
    DocumentNotFoundError,
    ServiceError,
)
from app.services.supabase.client import get_supabase_client

logger = structlog.get_logger(__name__)

DOCUMENTS_TABLE = "documents"

DOCUMENT_SELECT_FIELDS = (
    "id, case_id, filename, original_name, category, status, file_size, mime_type, "
    "storage_path, uploaded_by, created_at, account_holder_name, account_name, "
    "financial_institution, bank_abbreviation, account_number, bsb_sort_code, "
    "transaction_date_from, transaction_date_to, account_group_number, "
    "document_number, numbered_at, display_name, ai_processed, processing_error"
)


def is_unique_violation(error: Exception) -> bool:
    """Whether a Supabase/PostgREST error is a unique constraint violation."""
    if getattr(error, "code", None) == "23505":
        return True
    text = str(error).lower()
    return "23505" in text or "duplicate key" in text or "unique constraint" in text


def is_serialization_failure(error: Exception) -> bool:
    """Whether a database function rejected a stale compare-and-set (SQLSTATE 40001)."""
    if getattr(error, "code", None) == "40001":
        return True
    return "40001" in str(error)


@dataclass(frozen=True)
class CounterAdvance:
    """Move a numbering counter from the value read to ``value``.

    ``expected`` is None when the counter row did not exist yet.
    """

    scope: str
    expected: int | None
    value: int

    def as_payload(self) -> dict[str, Any]:
        return {"scope": self.scope, "expected": self.expected, "value": self.value}


def require_client(client: Client | None) -> Client:
    if client is None:
        raise DatabaseError("Database client not configured", {"reason": "DATABASE_NOT_CONFIGURED"})
    return client


class DocumentService:
    """Service for document database operations."""

    def __init__(self, client: Client | None = None):
        """Initialize document service.

        Args:
            client: Optional Supabase client. Uses default client if not provided.
        """
        self.client = client or get_supabase_client()

    @property
    def db(self) -> Client:
        return require_client(self.client)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_document(self, document_id: int) -> Document:
        """Get a document by ID.

        Raises:
            DocumentNotFoundError: If document doesn't exist.
            DatabaseError: If the query fails.
        """
        try:
            result = (
                self.db.table(DOCUMENTS_TABLE)
                .select(DOCUMENT_SELECT_FIELDS)
                .eq("id", document_id)
                .execute()
            )
        except ServiceError:
            raise
        except Exception as e:
            logger.error("document_get_failed", document_id=document_id, error=str(e))
            raise DatabaseError(f"Failed to load document: {e!s}") from e

        if not result.data:
            raise DocumentNotFoundError(document_id)
        return Document.model_validate(result.data[0])

    def list_case_documents(
        self,
        case_id: int,
        category: DocumentCategory | None = None,
        statuses: set[DocumentStatus] | frozenset[DocumentStatus] | None = None,
    ) -> list[Document]:
        """List a case's documents, oldest first.

        Args:
            case_id: Case ID.
            category: Only documents in this category.
            statuses: Only documents in one of these statuses. An empty set
                returns nothing without querying.
        """
        if statuses is not None and not statuses:
            return []

        try:
            query = (
                self.db.table(DOCUMENTS_TABLE)
                .select(DOCUMENT_SELECT_FIELDS)
                .eq("case_id", case_id)
            )
            if category is not None:
                query = query.eq("category", category.value)
            if statuses is not None:
                query = query.in_("status", sorted(s.value for s in statuses))
            result = query.order("created_at").order("id").execute()
        except ServiceError:
            raise
        except Exception as e:
            logger.error("document_list_failed", case_id=case_id, error=str(e))
            raise DatabaseError(f"Failed to list documents: {e!s}") from e

        return [Document.model_validate(row) for row in result.data or []]

    # =========================================================================
    # Writes
    # =========================================================================

    def create_document(
        self,
        case_id: int,
        filename: str,
        original_name: str,
        category: DocumentCategory,
        storage_path: str,
        file_size: int,
        mime_type: str,
        uploaded_by: str,
        banking: BankingDetails | None = None,
    ) -> Document:
        """Insert a freshly uploaded document with status UPLOADED and no number."""
        row: dict[str, Any] = {
            "case_id": case_id,
            "filename": filename,
            "original_name": original_name,
            "category": category.value,
            "status": DocumentStatus.UPLOADED.value,
            "storage_path": storage_path,
            "file_size": file_size,
            "mime_type": mime_type,
            "uploaded_by": uploaded_by,
        }
        if banking is not None:
            row.update(banking.model_dump(mode="json"))

        logger.info(
            "document_create_starting",
            case_id=case_id,
            filename=filename,
            category=category.value,
            file_size=file_size,
        )

        try:
            result = self.db.table(DOCUMENTS_TABLE).insert(row).execute()
        except ServiceError:
            raise
        except Exception as e:
            logger.error("document_create_failed", case_id=case_id, filename=filename, error=str(e))
            raise DatabaseError(f"Failed to create document: {e!s}") from e

        if not result.data:
            raise DatabaseError("Failed to create document record")

        document = Document.model_validate(result.data[0])
        logger.info("document_create_complete", document_id=document.id, case_id=case_id)
        return document

    def update_banking_details(
        self,
        document_id: int,
        banking: BankingDetails,
        *,
        ai_processed: bool,
        processing_error: str | None = None,
    ) -> Document:
        """Store banking metadata on a document that has not been numbered yet.

        Raises:
            ConflictError: If the document was numbered in the meantime;
                numbering is immutable and so is the holder it was grouped by.
        """
        fields = banking.model_dump(mode="json")
        fields["ai_processed"] = ai_processed
        fields["processing_error"] = processing_error
        return self._update_unnumbered(document_id, fields, "banking_details")

    def record_processing_error(self, document_id: int, message: str) -> Document:
        return self._update_unnumbered(
            document_id,
            {"ai_processed": False, "processing_error": message},
            "processing_error",
        )

    def assign_number(
        self,
        document_id: int,
        *,
        account_group_number: str | None,
        document_number: str,
        display_name: str,
        bank_abbreviation: str | None,
        counters: list[CounterAdvance],
        register_group_holder: str | None = None,
    ) -> Document:
        """Write a document's number together with the numbering state it consumes.

        The document update, the optional account group registration and
        every counter advance run in one transaction inside the
        ``commit_document_number`` database function, so a failed attempt
        leaves no number, group or counter behind.

        Raises:
            ConflictError: If the document already has a number, the number
                or group is taken, or a counter moved since it was read.
        """
        try:
            result = self.db.rpc(
                "commit_document_number",
                {
                    "p_document_id": document_id,
                    "p_document_number": document_number,
                    "p_account_group_number": account_group_number,
                    "p_display_name": display_name,
                    "p_bank_abbreviation": bank_abbreviation,
                    "p_numbered_at": datetime.now(UTC).isoformat(),
                    "p_register_group_holder": register_group_holder,
                    "p_counters": [c.as_payload() for c in counters],
                },
            ).execute()
        except ServiceError:
            raise
        except Exception as e:
            if is_unique_violation(e) or is_serialization_failure(e):
                logger.warning("document_number_conflict", document_id=document_id, error=str(e))
                raise ConflictError(
                    "Numbering state changed concurrently",
                    {"documentId": document_id, "documentNumber": document_number},
                ) from e
            logger.error("document_number_write_failed", document_id=document_id, error=str(e))
            raise DatabaseError(f"Failed to assign document number: {e!s}") from e

        if not result.data:
            raise ConflictError(
                "Document has already been numbered",
                {"documentId": document_id},
            )
        return Document.model_validate(result.data[0])

    def transition_status(
        self,
        document_id: int,
        expected: DocumentStatus,
        new_status: DocumentStatus,
        actor_id: str,
    ) -> Document:
        """Compare-and-set a document's status and append its audit row.

        Both writes happen in one transaction inside the
        ``apply_document_status_transition`` database function.

        Raises:
            ConflictError: If the status is no longer ``expected``.
        """
        try:
            result = self.db.rpc(
                "apply_document_status_transition",
                {
                    "p_document_id": document_id,
                    "p_expected_status": expected.value,
                    "p_new_status": new_status.value,
                    "p_actor_id": actor_id,
                },
            ).execute()
        except ServiceError:
            raise
        except Exception as e:
            logger.error("document_status_update_failed", document_id=document_id, error=str(e))
            raise DatabaseError(f"Failed to update document status: {e!s}") from e

        if not result.data:
            raise ConflictError(
                "Document status changed concurrently",
                {"documentId": document_id, "expectedStatus": expected.value},
            )
        return Document.model_validate(result.data[0])

    def delete_document(self, document_id: int) -> None:
        try:
            self.db.table(DOCUMENTS_TABLE).delete().eq("id", document_id).execute()
        except ServiceError:
            raise
        except Exception as e:
            logger.error("document_delete_failed", document_id=document_id, error=str(e))
            raise DatabaseError(f"Failed to delete document: {e!s}") from e

    def _update_unnumbered(
        self,
        document_id: int,
        fields: dict[str, Any],
        what: str,
    ) -> Document:
        try:
            result = (
                self.db.table(DOCUMENTS_TABLE)
                .update(fields)
                .eq("id", document_id)
                .is_("document_number", "null")
                .execute()
            )
        except ServiceError:
            raise
        except Exception as e:
            if is_unique_violation(e):
                logger.warning("document_number_duplicate", document_id=document_id, error=str(e))
                raise ConflictError(
                    "Document number already taken in this case",
                    {"documentId": document_id},
                ) from e
            logger.error("document_update_failed", document_id=document_id, field=what, error=str(e))
            raise DatabaseError(f"Failed to update document {what}: {e!s}") from e

        if not result.data:
            raise ConflictError(
                "Document has already been numbered",
                {"documentId": document_id},
            )
        return Document.model_validate(result.data[0])
