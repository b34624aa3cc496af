"""Document numbering under the case lock.

Assigning a number is one read-compute-write sequence per case:

1. take the CaseLock
2. re-read the document, the case's documents in its category, the group
   registry and the high-water counters
3. resolve the account group (banking) and compute the next number
4. commit the new group registry row, the counter advances and the
   document number in one database transaction (``commit_document_number``),
   conditional on the document still being unnumbered and every counter
   still holding the value read in step 2

Any ConflictError (lock not acquired, counter moved, number taken) restarts
the whole sequence, at most ``numbering_max_attempts`` times.

Counters (``numbering_counters``) keep the highest value ever issued per
scope: "groups" for account group numbers, the category prefix ("A") for
flat sequences and the group number ("B1") for banking sequences. Deleting
documents never lowers them, so numbers are never reused.
"""

from dataclasses import dataclass

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
from app.engines.numbering.account_groups import (
    KnownGroup,
    parse_group_number,
    resolve_group,
)
from app.engines.numbering.display_names import display_name_for
from app.engines.numbering.document_numbers import (
    category_prefix,
    next_document_number,
    next_standard_number,
    parse_sequence,
)
from app.models.audit import AuditEventType
from app.models.document import Document, DocumentCategory
from app.services.audit_service import AuditService
from app.services.case_lock import CaseLock
from app.services.document_service import (
    CounterAdvance,
    DocumentService,
    require_client,
)
from app.services.exceptions import ConflictError, DatabaseError, ServiceError

logger = structlog.get_logger(__name__)

ACCOUNT_GROUPS_TABLE = "account_groups"
COUNTERS_TABLE = "numbering_counters"
GROUP_COUNTER_SCOPE = "groups"


@dataclass(frozen=True)
class NumberingPlan:
    """Values computed inside the critical section, committed together."""

    document_number: str
    sequence_scope: str
    sequence_value: int
    account_group_number: str | None = None
    register_group: bool = False
    group_value: int | None = None


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "numbering_conflict_retrying",
        attempt=retry_state.attempt_number,
        error=str(error) if error else None,
    )


class NumberingService:
    """Assigns hierarchical document numbers."""

    def __init__(
        self,
        db: Client | None,
        documents: DocumentService | None = None,
        audit: AuditService | None = None,
        redis_client: redis.Redis | None = None,
    ):
        self.db = db
        self.documents = documents or DocumentService(db)
        self.audit = audit or AuditService(db)
        self.redis_client = redis_client

    @property
    def _client(self) -> Client:
        return require_client(self.db)

    def assign_number(
        self,
        document_id: int,
        bank_abbreviation: str | None = None,
    ) -> Document:
        """Number a document, or return it unchanged if it already has one.

        Args:
            document_id: Document to number.
            bank_abbreviation: Abbreviation for banking display names,
                resolved by the caller before this call.

        Raises:
            InvalidHolderNameError: Banking document without a holder name.
            ConflictError: Still conflicting after the retry budget.
            DocumentNotFoundError: Document does not exist.
        """
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

        try:
            for attempt in retrying:
                with attempt:
                    document, numbered_now = self._assign_once(document_id, bank_abbreviation)
        except ConflictError:
            logger.error(
                "numbering_conflict_exhausted",
                document_id=document_id,
                attempts=settings.numbering_max_attempts,
            )
            raise

        if numbered_now:
            self.audit.log_case_event(
                AuditEventType.DOCUMENT_NUMBERED,
                document.case_id,
                None,
                {"document_id": document.id, "document_number": document.document_number},
            )
        return document

    # =========================================================================
    # Critical section
    # =========================================================================

    def _assign_once(
        self,
        document_id: int,
        bank_abbreviation: str | None,
    ) -> tuple[Document, bool]:
        document = self.documents.get_document(document_id)
        if document.is_numbered:
            return document, False

        with CaseLock(document.case_id, client=self.redis_client):
            document = self.documents.get_document(document_id)
            if document.is_numbered:
                return document, False

            counters = self._load_counters(document.case_id)
            if document.category is DocumentCategory.BANKING:
                plan = self._plan_banking(document, counters)
            else:
                plan = self._plan_standard(document, counters)

            numbered = self._commit(document, plan, counters, bank_abbreviation)

        logger.info(
            "document_number_assigned",
            case_id=numbered.case_id,
            document_id=numbered.id,
            document_number=numbered.document_number,
            account_group_number=numbered.account_group_number,
            new_group=plan.register_group,
        )
        return numbered, True

    def _plan_banking(self, document: Document, counters: dict[str, int]) -> NumberingPlan:
        case_docs = self.documents.list_case_documents(document.case_id, DocumentCategory.BANKING)
        groups = self._load_groups(document.case_id)

        group_number = resolve_group(
            case_docs,
            document.account_holder_name,
            groups,
            last_issued=counters.get(GROUP_COUNTER_SCOPE, 0),
        )

        group_docs = [d for d in case_docs if d.account_group_number == group_number]
        document_number = next_document_number(
            group_docs, group_number, last_issued=counters.get(group_number, 0)
        )

        return NumberingPlan(
            document_number=document_number,
            sequence_scope=group_number,
            sequence_value=parse_sequence(document_number, group_number, ".") or 0,
            account_group_number=group_number,
            register_group=group_number not in {g.group_number for g in groups},
            group_value=parse_group_number(group_number),
        )

    def _plan_standard(self, document: Document, counters: dict[str, int]) -> NumberingPlan:
        prefix = category_prefix(document.category)
        case_docs = self.documents.list_case_documents(document.case_id, document.category)
        document_number = next_standard_number(
            case_docs, prefix, last_issued=counters.get(prefix, 0)
        )
        return NumberingPlan(
            document_number=document_number,
            sequence_scope=prefix,
            sequence_value=parse_sequence(document_number, prefix) or 0,
        )

    def _commit(
        self,
        document: Document,
        plan: NumberingPlan,
        counters: dict[str, int],
        bank_abbreviation: str | None,
    ) -> Document:
        advances: list[CounterAdvance] = []
        if plan.group_value is not None and plan.group_value > counters.get(GROUP_COUNTER_SCOPE, 0):
            advances.append(
                CounterAdvance(GROUP_COUNTER_SCOPE, counters.get(GROUP_COUNTER_SCOPE), plan.group_value)
            )
        if plan.sequence_value > counters.get(plan.sequence_scope, 0):
            advances.append(
                CounterAdvance(plan.sequence_scope, counters.get(plan.sequence_scope), plan.sequence_value)
            )

        return self.documents.assign_number(
            document.id,
            account_group_number=plan.account_group_number,
            document_number=plan.document_number,
            display_name=display_name_for(
                document.category,
                plan.document_number,
                document.original_name,
                bank_abbreviation=bank_abbreviation or document.bank_abbreviation,
                account_number=document.account_number,
            ),
            bank_abbreviation=bank_abbreviation,
            counters=advances,
            register_group_holder=(document.account_holder_name or "").strip()
            if plan.register_group
            else None,
        )

    # =========================================================================
    # Registry and counters
    # =========================================================================

    def _load_groups(self, case_id: int) -> list[KnownGroup]:
        result = self._query(
            lambda: self._client.table(ACCOUNT_GROUPS_TABLE)
            .select("group_number, account_holder_name")
            .eq("case_id", case_id)
            .execute(),
            "account_groups_query_failed",
            case_id,
        )
        return [
            KnownGroup(group_number=row["group_number"], account_holder_name=row["account_holder_name"])
            for row in result.data or []
        ]

    def _load_counters(self, case_id: int) -> dict[str, int]:
        result = self._query(
            lambda: self._client.table(COUNTERS_TABLE)
            .select("scope, last_value")
            .eq("case_id", case_id)
            .execute(),
            "numbering_counters_query_failed",
            case_id,
        )
        return {row["scope"]: int(row["last_value"]) for row in result.data or []}

    @staticmethod
    def _query(run, event: str, case_id: int):
        try:
            return run()
        except ServiceError:
            raise
        except Exception as e:
            logger.error(event, case_id=case_id, error=str(e))
            raise DatabaseError(f"Failed to read numbering state: {e!s}") from e
