"""Health check endpoints."""

from typing import Any

import redis
import structlog
from fastapi import APIRouter, Depends, Request

from app.api.deps import get_db
from app.core.config import Settings, get_settings
from app.core.rate_limit import HEALTH_RATE_LIMIT, limiter
from app.core.security import get_current_user
from app.models.auth import AuthenticatedUser
from app.services.case_lock import get_redis_client

router = APIRouter(prefix="/health", tags=["health"])
logger = structlog.get_logger(__name__)


@router.get("")
@limiter.limit(HEALTH_RATE_LIMIT)
async def health_check(request: Request) -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "data": {
            "status": "healthy",
            "service": "disclosure-manager-backend",
        }
    }


@router.get("/ready")
@limiter.limit(HEALTH_RATE_LIMIT)
async def readiness_check(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Any = Depends(get_db),
) -> dict[str, Any]:
    """Readiness check with dependency status.

    Numbering and report generation need the case lock, so Redis counts
    as a required dependency alongside Supabase.
    """
    try:
        redis_ok = bool(get_redis_client().ping())
    except redis.RedisError as e:
        logger.warning("readiness_redis_unavailable", error=str(e))
        redis_ok = False

    checks: dict[str, bool] = {
        "supabase_configured": settings.is_configured,
        "supabase_connected": db is not None,
        "redis_connected": redis_ok,
    }
    all_healthy = all(checks.values())

    logger.debug("readiness_check", checks=checks, healthy=all_healthy)

    return {
        "data": {
            "status": "ready" if all_healthy else "not_ready",
            "checks": checks,
        }
    }


@router.get("/live")
async def liveness_check() -> dict[str, Any]:
    return {"data": {"status": "alive"}}


@router.get("/me")
async def get_authenticated_user(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> dict[str, Any]:
    """Return the caller's identity from the JWT. Used to check the auth flow."""
    return {
        "data": {
            "user_id": current_user.id,
            "email": current_user.email,
            "role": current_user.role,
        }
    }
