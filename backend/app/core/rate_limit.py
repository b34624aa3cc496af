"""Rate limiting for API endpoints.

Uses slowapi. Limits are kept in memory unless ``rate_limit_use_redis`` is
set, in which case they are shared through ``redis_url``; an unreachable
Redis falls back to memory with a warning.

Tiers (per minute, from settings):
- CRITICAL: uploads that may call the extraction model, report generation
- STANDARD: other writes
- READONLY: listings and reads
- HEALTH: monitoring probes
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import redis
import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import get_settings
from app.core.correlation import get_correlation_id

if TYPE_CHECKING:
    from starlette.requests import Request as StarletteRequest

logger = structlog.get_logger(__name__)

MEMORY_STORAGE = "memory://"
RETRY_AFTER_SECONDS = 60

settings = get_settings()


def _get_rate_limit_key(request: StarletteRequest) -> str:
    """Per-user key when authenticated, client IP otherwise."""
    ctx = structlog.contextvars.get_contextvars()
    if ctx.get("user_id"):
        return f"user:{ctx['user_id']}"
    return get_remote_address(request)


def _storage_uri() -> str:
    if not settings.rate_limit_use_redis or not settings.redis_url:
        return MEMORY_STORAGE
    try:
        redis.from_url(settings.redis_url, socket_connect_timeout=2).ping()
    except redis.RedisError as e:
        logger.warning("rate_limiter_redis_unavailable", error=str(e), fallback="memory")
        return MEMORY_STORAGE
    logger.info("rate_limiter_storage", storage="redis")
    return settings.redis_url


limiter = Limiter(
    key_func=_get_rate_limit_key,
    storage_uri=_storage_uri(),
    default_limits=["1000/hour"],
)

CRITICAL_RATE_LIMIT = f"{settings.rate_limit_critical}/minute"
STANDARD_RATE_LIMIT = f"{settings.rate_limit_default}/minute"
READONLY_RATE_LIMIT = f"{settings.rate_limit_readonly}/minute"
HEALTH_RATE_LIMIT = f"{settings.rate_limit_health}/minute"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the API's structured error format, with a Retry-After header."""
    reset_at = datetime.fromtimestamp(
        datetime.now(UTC).timestamp() + RETRY_AFTER_SECONDS, tz=UTC
    ).isoformat()

    logger.warning(
        "rate_limit_exceeded",
        endpoint=request.url.path,
        method=request.method,
        limit=str(exc.detail),
        client_ip=get_remote_address(request),
        correlation_id=get_correlation_id(),
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Try again in {RETRY_AFTER_SECONDS} seconds.",
                "details": {"limit": str(exc.detail), "reset_at": reset_at},
            }
        },
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )
