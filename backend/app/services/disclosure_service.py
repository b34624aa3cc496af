"""Disclosure report generation and snapshot history.

Generating a report runs in three phases so the case lock is never held
across rendering or storage I/O:

1. under the case lock: fix ``as_of``, read documents, snapshot history
   and group names, build the listing
2. unlocked: render the PDF and upload it to ``{case_id}/exports``
3. under the case lock: check no other snapshot was written since phase 1,
   then insert the snapshot with ``generated_at = as_of``

A snapshot written by someone else in between raises ConflictError and
the whole sequence is retried. Render or upload failures leave no
snapshot behind, so the baseline for new-item flags only moves when a
report actually exists.
"""

from datetime import datetime
from typing import Any

import redis
import structlog
from supabase import Client
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import get_settings
from app.engines.disclosure import build_disclosure
from app.models.audit import AuditEventType
from app.models.case import Case, CaseRole
from app.models.disclosure import (
    DisclosureGenerateResult,
    DisclosureListing,
    DisclosureSnapshot,
)
from app.services.audit_service import AuditService
from app.services.case_lock import CaseLock
from app.services.case_service import CaseService
from app.services.document_service import DocumentService, require_client
from app.services.exceptions import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    ServiceError,
)
from app.services.export import DisclosurePDFRenderer, disclosure_filename
from app.services.numbering_service import ACCOUNT_GROUPS_TABLE
from app.services.storage_service import EXPORTS_FOLDER, StorageError, StorageService

logger = structlog.get_logger(__name__)

SNAPSHOTS_TABLE = "disclosure_snapshots"
SNAPSHOT_SELECT_FIELDS = (
    "id, case_id, generated_at, document_count, new_count, filename, storage_path, generated_by"
)

GENERATE_ROLES: frozenset[CaseRole] = frozenset({CaseRole.CASEADMIN, CaseRole.DISCLOSER})


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "disclosure_conflict_retrying",
        attempt=retry_state.attempt_number,
        error=str(error) if error else None,
    )


class DisclosureService:
    """Builds disclosure listings and records generated reports."""

    def __init__(
        self,
        db: Client | None,
        documents: DocumentService | None = None,
        cases: CaseService | None = None,
        storage: StorageService | None = None,
        renderer: DisclosurePDFRenderer | None = None,
        audit: AuditService | None = None,
        redis_client: redis.Redis | None = None,
    ):
        self.db = db
        self.documents = documents or DocumentService(db)
        self.audit = audit or AuditService(db)
        self.cases = cases or CaseService(db, audit=self.audit)
        self.storage = storage or StorageService(db)
        self.renderer = renderer or DisclosurePDFRenderer()
        self.redis_client = redis_client

    @property
    def _client(self) -> Client:
        return require_client(self.db)

    # =========================================================================
    # Snapshot history
    # =========================================================================

    def list_snapshots(self, case_id: int) -> list[DisclosureSnapshot]:
        """A case's snapshots, newest first."""
        try:
            result = (
                self._client.table(SNAPSHOTS_TABLE)
                .select(SNAPSHOT_SELECT_FIELDS)
                .eq("case_id", case_id)
                .order("generated_at", desc=True)
                .execute()
            )
        except ServiceError:
            raise
        except Exception as e:
            logger.error("disclosure_snapshots_query_failed", case_id=case_id, error=str(e))
            raise DatabaseError(f"Failed to load disclosure snapshots: {e!s}") from e
        return [DisclosureSnapshot.model_validate(row) for row in result.data or []]

    def get_latest_snapshot(self, case_id: int) -> DisclosureSnapshot | None:
        try:
            result = (
                self._client.table(SNAPSHOTS_TABLE)
                .select(SNAPSHOT_SELECT_FIELDS)
                .eq("case_id", case_id)
                .order("generated_at", desc=True)
                .limit(1)
                .execute()
            )
        except ServiceError:
            raise
        except Exception as e:
            logger.error("disclosure_latest_snapshot_query_failed", case_id=case_id, error=str(e))
            raise DatabaseError(f"Failed to load latest disclosure snapshot: {e!s}") from e
        return DisclosureSnapshot.model_validate(result.data[0]) if result.data else None

    # =========================================================================
    # Listing
    # =========================================================================

    def build_listing(self, case_id: int, as_of: datetime | None = None) -> DisclosureListing:
        """Current listing for a case. Callers generating a report hold the case lock."""
        snapshots = self.list_snapshots(case_id)
        latest = snapshots[0].generated_at if snapshots else None
        return build_disclosure(
            case_id,
            self.documents.list_case_documents(case_id),
            latest,
            as_of=as_of,
            snapshot_history=[s.generated_at for s in snapshots],
            group_names=self._group_names(case_id),
        )

    def _group_names(self, case_id: int) -> dict[str, str]:
        try:
            result = (
                self._client.table(ACCOUNT_GROUPS_TABLE)
                .select("group_number, account_holder_name")
                .eq("case_id", case_id)
                .execute()
            )
        except ServiceError:
            raise
        except Exception as e:
            logger.error("account_groups_query_failed", case_id=case_id, error=str(e))
            raise DatabaseError(f"Failed to load account groups: {e!s}") from e
        return {row["group_number"]: row["account_holder_name"] for row in result.data or []}

    # =========================================================================
    # Generation
    # =========================================================================

    def generate(self, case_id: int, actor_id: str) -> DisclosureGenerateResult:
        """Generate, store and record a disclosure report.

        Raises:
            CaseNotFoundError: Case missing or the actor is not a member.
            ForbiddenError: Actor is neither CASEADMIN nor DISCLOSER.
            ConflictError: Another report kept landing first.
            StorageError: Upload failed; no snapshot was recorded.
        """
        case = self.cases.get_case(case_id, actor_id)
        if not set(case.roles) & GENERATE_ROLES:
            raise ForbiddenError("generate disclosure reports for this case")

        settings = get_settings()
        retrying = Retrying(
            stop=stop_after_attempt(settings.numbering_max_attempts),
            wait=wait_exponential(
                multiplier=settings.numbering_retry_base_delay,
                max=settings.numbering_retry_max_delay,
            ),
            retry=retry_if_exception_type(ConflictError),
            before_sleep=_log_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                snapshot = self._generate_once(case, actor_id)

        download_url = None
        if snapshot.storage_path:
            try:
                download_url = self.storage.get_signed_url(
                    snapshot.storage_path, expires_in=settings.disclosure_download_url_expiry
                )
            except StorageError as e:
                logger.warning(
                    "disclosure_download_url_failed",
                    case_id=case_id,
                    snapshot_id=snapshot.id,
                    error=e.message,
                )

        self.audit.log_case_event(
            AuditEventType.DISCLOSURE_GENERATED,
            case_id,
            actor_id,
            {
                "snapshot_id": snapshot.id,
                "document_count": snapshot.document_count,
                "new_count": snapshot.new_count,
            },
        )
        return DisclosureGenerateResult(
            snapshot=snapshot,
            new_count=snapshot.new_count,
            download_url=download_url,
        )

    def _generate_once(self, case: Case, actor_id: str) -> DisclosureSnapshot:
        with CaseLock(case.id, client=self.redis_client):
            listing = self.build_listing(case.id)

        pdf = self.renderer.render(listing, case.title)
        filename = disclosure_filename(case.case_number, listing.as_of)
        storage_path = self.storage.upload_file(case.id, EXPORTS_FOLDER, pdf, filename)

        try:
            with CaseLock(case.id, client=self.redis_client):
                latest = self.get_latest_snapshot(case.id)
                current_baseline = latest.generated_at if latest else None
                if current_baseline != listing.baseline_generated_at:
                    raise ConflictError(
                        "Another disclosure report was generated concurrently",
                        {"caseId": case.id},
                    )
                snapshot = self._insert_snapshot(listing, filename, storage_path, actor_id)
        except ServiceError:
            self._discard_upload(storage_path)
            raise

        logger.info(
            "disclosure_generated",
            case_id=case.id,
            snapshot_id=snapshot.id,
            document_count=snapshot.document_count,
            new_count=snapshot.new_count,
        )
        return snapshot

    def _insert_snapshot(
        self,
        listing: DisclosureListing,
        filename: str,
        storage_path: str,
        actor_id: str,
    ) -> DisclosureSnapshot:
        row: dict[str, Any] = {
            "case_id": listing.case_id,
            "generated_at": listing.as_of.isoformat(),
            "document_count": listing.document_count,
            "new_count": listing.new_count,
            "filename": filename,
            "storage_path": storage_path,
            "generated_by": actor_id,
        }
        try:
            result = self._client.table(SNAPSHOTS_TABLE).insert(row).execute()
        except ServiceError:
            raise
        except Exception as e:
            logger.error("disclosure_snapshot_insert_failed", case_id=listing.case_id, error=str(e))
            raise DatabaseError(f"Failed to record disclosure snapshot: {e!s}") from e

        if not result.data:
            raise DatabaseError("Failed to record disclosure snapshot")
        return DisclosureSnapshot.model_validate(result.data[0])

    def _discard_upload(self, storage_path: str) -> None:
        try:
            self.storage.delete_file(storage_path)
        except StorageError as e:
            logger.warning("disclosure_orphan_upload", storage_path=storage_path, error=e.message)
