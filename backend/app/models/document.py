"""Document models for disclosure numbering and review.

Numbering fields (``account_group_number``, ``document_number``) are empty
until the document is numbered and never change afterwards.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DocumentCategory(str, Enum):
    """Disclosure category. Each category owns one numbering prefix.

    Only BANKING documents are grouped by account holder; every other
    category is numbered with a flat sequence.
    """

    REAL_PROPERTY = "REAL_PROPERTY"
    BANKING = "BANKING"
    TAXATION = "TAXATION"
    SUPERANNUATION = "SUPERANNUATION"
    EMPLOYMENT = "EMPLOYMENT"
    SHARES_INVESTMENTS = "SHARES_INVESTMENTS"
    VEHICLES = "VEHICLES"


class DocumentStatus(str, Enum):
    """Review status of a disclosed document.

    States:
    - UPLOADED: initial state after upload
    - READYFORREVIEW: discloser has finished preparing the document
    - REVIEWED: reviewed and visible to the disclosee
    - WITHDRAWN: withdrawn from disclosure, can be reinstated to REVIEWED
    """

    UPLOADED = "UPLOADED"
    READYFORREVIEW = "READYFORREVIEW"
    REVIEWED = "REVIEWED"
    WITHDRAWN = "WITHDRAWN"


class BankingDetails(BaseModel):
    """Banking metadata attached to a BANKING document."""

    model_config = ConfigDict(populate_by_name=True)

    account_holder_name: str | None = Field(None, alias="accountHolderName", max_length=255)
    account_name: str | None = Field(None, alias="accountName", max_length=255)
    financial_institution: str | None = Field(None, alias="financialInstitution", max_length=255)
    account_number: str | None = Field(None, alias="accountNumber", max_length=64)
    bsb_sort_code: str | None = Field(None, alias="bsbSortCode", max_length=32)
    transaction_date_from: date | None = Field(None, alias="transactionDateFrom")
    transaction_date_to: date | None = Field(None, alias="transactionDateTo")

    @field_validator(
        "account_holder_name",
        "account_name",
        "financial_institution",
        "account_number",
        "bsb_sort_code",
    )
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def _check_range(self) -> "BankingDetails":
        if (
            self.transaction_date_from
            and self.transaction_date_to
            and self.transaction_date_from > self.transaction_date_to
        ):
            raise ValueError("transactionDateFrom must not be after transactionDateTo")
        return self


class BankingConfirmation(BankingDetails):
    """User-confirmed banking metadata; the holder name becomes mandatory."""

    account_holder_name: str = Field(..., alias="accountHolderName", min_length=1, max_length=255)


class BankingExtraction(BaseModel):
    """Structured record proposed by the extraction oracle for confirmation."""

    model_config = ConfigDict(populate_by_name=True)

    account_holder_name: str | None = Field(None, alias="accountHolderName")
    account_name: str | None = Field(None, alias="accountName")
    financial_institution: str | None = Field(None, alias="financialInstitution")
    account_number: str | None = Field(None, alias="accountNumber")
    bsb_sort_code: str | None = Field(None, alias="bsbSortCode")
    date_from: date | None = Field(None, alias="dateFrom")
    date_to: date | None = Field(None, alias="dateTo")
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class Document(BaseModel):
    """Complete document model returned from API."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    case_id: int = Field(..., alias="caseId")
    filename: str
    original_name: str = Field(..., alias="originalName")
    category: DocumentCategory
    status: DocumentStatus = DocumentStatus.UPLOADED
    file_size: int | None = Field(None, alias="fileSize")
    mime_type: str | None = Field(None, alias="mimeType")
    storage_path: str | None = Field(None, alias="storagePath")
    uploaded_by: str | None = Field(None, alias="uploadedBy")
    created_at: datetime = Field(..., alias="createdAt")

    account_holder_name: str | None = Field(None, alias="accountHolderName")
    account_name: str | None = Field(None, alias="accountName")
    financial_institution: str | None = Field(None, alias="financialInstitution")
    bank_abbreviation: str | None = Field(None, alias="bankAbbreviation")
    account_number: str | None = Field(None, alias="accountNumber")
    bsb_sort_code: str | None = Field(None, alias="bsbSortCode")
    transaction_date_from: date | None = Field(None, alias="transactionDateFrom")
    transaction_date_to: date | None = Field(None, alias="transactionDateTo")

    account_group_number: str | None = Field(None, alias="accountGroupNumber")
    document_number: str | None = Field(None, alias="documentNumber")
    numbered_at: datetime | None = Field(None, alias="numberedAt")
    display_name: str | None = Field(None, alias="displayName")

    ai_processed: bool = Field(False, alias="aiProcessed")
    processing_error: str | None = Field(None, alias="processingError")

    @property
    def is_numbered(self) -> bool:
        return self.document_number is not None


class DocumentListItem(Document):
    """Document plus the status moves the current caller may make."""

    available_transitions: list[DocumentStatus] = Field(
        default_factory=list, alias="availableTransitions"
    )


class DocumentStatusUpdate(BaseModel):
    """Request body for a status change.

    ``status`` accepts any JSON value so that anything outside the enum,
    including empty and non-string values, is reported as a 400 by the
    lifecycle rules rather than a generic schema error.
    """

    status: Any = Field(...)


class DocumentUploadResult(BaseModel):
    """Outcome of an upload: the stored document plus any extraction proposal."""

    model_config = ConfigDict(populate_by_name=True)

    document: Document
    extracted_banking_info: BankingExtraction | None = Field(None, alias="extractedBankingInfo")
    requires_confirmation: bool = Field(False, alias="requiresConfirmation")


class DocumentResponse(BaseModel):
    data: Document


class DocumentListResponse(BaseModel):
    data: list[DocumentListItem]


class DocumentUploadResponse(BaseModel):
    data: DocumentUploadResult
