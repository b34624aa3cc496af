"""Disclosure listing and snapshot models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.models.document import DocumentCategory


class DisclosureRowKind(str, Enum):
    """Row types in a disclosure listing.

    - CATEGORY: one header per category ("A  REAL PROPERTY")
    - ACCOUNT_HOLDER: one header per banking group ("B1  Jane Doe")
    - INSTITUTION: sub-header, only when a group spans several institutions
    - DOCUMENT: a disclosed document
    """

    CATEGORY = "CATEGORY"
    ACCOUNT_HOLDER = "ACCOUNT_HOLDER"
    INSTITUTION = "INSTITUTION"
    DOCUMENT = "DOCUMENT"


class DisclosureRow(BaseModel):
    """One line of the disclosure listing, in report order."""

    model_config = ConfigDict(populate_by_name=True)

    kind: DisclosureRowKind
    item: str = Field("", description="Hierarchical number or header label")
    description: str = ""
    category: DocumentCategory | None = None
    dated: str | None = None
    date_disclosed: str | None = Field(None, alias="dateDisclosed")
    is_new: bool = Field(False, alias="isNew")
    document_id: int | None = Field(None, alias="documentId")


class DisclosureListing(BaseModel):
    """Ordered, flagged rows for one disclosure report."""

    model_config = ConfigDict(populate_by_name=True)

    case_id: int = Field(..., alias="caseId")
    as_of: datetime = Field(..., alias="asOf")
    baseline_generated_at: datetime | None = Field(None, alias="baselineGeneratedAt")
    rows: list[DisclosureRow] = Field(default_factory=list)
    new_count: int = Field(0, alias="newCount")
    document_count: int = Field(0, alias="documentCount")

    @property
    def document_rows(self) -> list[DisclosureRow]:
        return [row for row in self.rows if row.kind is DisclosureRowKind.DOCUMENT]


class DisclosureSnapshot(BaseModel):
    """Immutable record of a generated disclosure report.

    The most recent snapshot's ``generated_at`` is the baseline against
    which the next report marks new documents.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    case_id: int = Field(..., alias="caseId")
    generated_at: datetime = Field(..., alias="generatedAt")
    document_count: int = Field(..., alias="documentCount")
    new_count: int = Field(0, alias="newCount")
    filename: str | None = None
    storage_path: str | None = Field(None, alias="storagePath")
    generated_by: str | None = Field(None, alias="generatedBy")


class DisclosureGenerateResult(BaseModel):
    """Snapshot metadata returned after generating a report."""

    model_config = ConfigDict(populate_by_name=True)

    snapshot: DisclosureSnapshot
    new_count: int = Field(..., alias="newCount")
    download_url: str | None = Field(None, alias="downloadUrl")


class DisclosureGenerateResponse(BaseModel):
    data: DisclosureGenerateResult


class DisclosureSnapshotListResponse(BaseModel):
    data: list[DisclosureSnapshot]
