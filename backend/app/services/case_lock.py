"""Per-case exclusive locking using Redis.

Numbering (group resolution + number assignment) and disclosure snapshot
writes run as read-compute-write sequences over a case's documents. Two
writers interleaving on the same case could hand out one number twice or
skip a group, so each sequence runs inside a CaseLock.

The lock expires on its own after ``case_lock_timeout_seconds`` so a
crashed worker cannot wedge a case; the unique constraints on
``documents(case_id, document_number)`` and ``account_groups`` catch the
rare write that outlives its lock. No external call (extraction, PDF
rendering, storage upload) is made while a CaseLock is held.
"""

from functools import lru_cache
from types import TracebackType

import redis
import structlog
from redis.exceptions import LockError

from app.core.config import get_settings
from app.services.exceptions import ConflictError, ServiceError

logger = structlog.get_logger(__name__)

CASE_LOCK_KEY_PATTERN = "case_lock:{case_id}"


class CaseLockUnavailableError(ServiceError):
    """Redis could not be reached to take a case lock."""

    code = "CASE_LOCK_UNAVAILABLE"
    status_code = 503
    is_retryable = True


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """Get the synchronous Redis client used for case locks."""
    settings = get_settings()
    client = redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=5.0,
    )
    logger.info(
        "redis_client_initialized",
        url=settings.redis_url[:30] + "..." if len(settings.redis_url) > 30 else settings.redis_url,
    )
    return client


class CaseLock:
    """Context manager holding the exclusive lock for one case.

    Blocks for at most ``blocking_timeout`` seconds. Failing to get the lock
    in that window is a ConflictError, which the calling service retries.

    Example:
        >>> with CaseLock(case_id):
        ...     docs = repo.list_documents(case_id)
        ...     repo.assign(...)
    """

    def __init__(
        self,
        case_id: int,
        timeout: int | None = None,
        blocking_timeout: float | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        settings = get_settings()
        self.case_id = case_id
        self.timeout = timeout if timeout is not None else settings.case_lock_timeout_seconds
        self.blocking_timeout = (
            blocking_timeout
            if blocking_timeout is not None
            else settings.case_lock_blocking_timeout_seconds
        )
        self.lock_key = CASE_LOCK_KEY_PATTERN.format(case_id=case_id)

        self._redis_client = client or get_redis_client()
        self._lock = self._redis_client.lock(
            self.lock_key,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        self._acquired = False

    def acquire(self) -> None:
        """Acquire the lock.

        Raises:
            ConflictError: If another writer holds the lock past blocking_timeout.
            CaseLockUnavailableError: If Redis is unreachable.
        """
        try:
            self._acquired = bool(self._lock.acquire(blocking=True))
        except redis.RedisError as e:
            logger.error("case_lock_error", case_id=self.case_id, error=str(e))
            raise CaseLockUnavailableError(
                "Case lock service is unavailable", {"caseId": self.case_id}
            ) from e

        if not self._acquired:
            logger.warning(
                "case_lock_not_acquired",
                case_id=self.case_id,
                blocking_timeout=self.blocking_timeout,
            )
            raise ConflictError(
                "Another change to this case is in progress",
                {"caseId": self.case_id},
            )

        logger.debug("case_lock_acquired", case_id=self.case_id)

    def release(self) -> None:
        """Release the lock if held."""
        if not self._acquired:
            return
        self._acquired = False
        try:
            self._lock.release()
            logger.debug("case_lock_released", case_id=self.case_id)
        except LockError as e:
            # Expired while held; the database constraints still guard the writes
            logger.warning("case_lock_release_failed", case_id=self.case_id, error=str(e))
        except redis.RedisError as e:
            logger.error("case_lock_release_error", case_id=self.case_id, error=str(e))

    @property
    def acquired(self) -> bool:
        return self._acquired

    def __enter__(self) -> "CaseLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()
