"""Security utilities for Supabase JWT validation."""

from functools import lru_cache

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import PyJWTError

from app.core.config import Settings, get_settings
from app.models.auth import AuthenticatedUser

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

JWT_AUDIENCE = "authenticated"


@lru_cache(maxsize=4)
def _get_jwks_client(supabase_url: str) -> jwt.PyJWKClient:
    """Get a JWKS client for the project's ES256 signing keys."""
    jwks_url = f"{supabase_url}/auth/v1/.well-known/jwks.json"
    return jwt.PyJWKClient(jwks_url, cache_keys=True)


def _decode_jwt(token: str, settings: Settings) -> dict:
    """Decode a Supabase access token.

    ES256 tokens are verified against the project's JWKS; everything else is
    treated as a legacy HS256 token signed with the JWT secret.

    Raises:
        PyJWTError: If token validation fails.
        ValueError: If the HS256 secret is not configured.
    """
    algorithm = jwt.get_unverified_header(token).get("alg", "HS256")

    if algorithm == "ES256":
        signing_key = _get_jwks_client(settings.supabase_url).get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            audience=JWT_AUDIENCE,
        )

    if not settings.supabase_jwt_secret:
        raise ValueError("JWT secret not configured for HS256 tokens")
    return jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=["HS256"],
        audience=JWT_AUDIENCE,
    )


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": code, "message": message, "details": {}}},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    """Validate the bearer token and extract the calling user.

    Args:
        credentials: HTTP Bearer token credentials.
        settings: Application settings containing JWT secret.

    Returns:
        AuthenticatedUser with user information from JWT claims.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if credentials is None:
        logger.debug("jwt_validation_failed", reason="missing_token")
        raise _unauthorized("UNAUTHORIZED", "Missing authentication token")

    if not settings.supabase_url:
        logger.error("jwt_validation_failed", reason="missing_supabase_url")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": {
                    "code": "SERVER_ERROR",
                    "message": "Authentication service misconfigured",
                    "details": {},
                }
            },
        )

    try:
        payload = _decode_jwt(credentials.credentials, settings)
    except jwt.ExpiredSignatureError:
        logger.warning("jwt_validation_failed", reason="token_expired")
        raise _unauthorized("TOKEN_EXPIRED", "Authentication token has expired") from None
    except (PyJWTError, ValueError) as e:
        logger.warning(
            "jwt_validation_failed",
            reason="invalid_token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired token") from None

    if "sub" not in payload:
        logger.warning("jwt_validation_failed", reason="missing_subject")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired token")

    user = AuthenticatedUser(
        id=payload["sub"],
        email=payload.get("email"),
        role=payload.get("role", JWT_AUDIENCE),
        session_id=payload.get("session_id"),
    )

    # Do not log the email address
    structlog.contextvars.bind_contextvars(user_id=user.id)
    logger.debug("jwt_validation_success", user_id=user.id, has_email=bool(user.email))

    return user
