"""Tests for Supabase JWT validation."""

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.core.security import get_current_user

from conftest import TEST_JWT_SECRET, TEST_USER_EMAIL, TEST_USER_ID, get_test_settings


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def _token(secret: str = TEST_JWT_SECRET, **claims: Any) -> str:
    payload: dict[str, Any] = {
        "sub": TEST_USER_ID,
        "email": TEST_USER_EMAIL,
        "role": "authenticated",
        "aud": "authenticated",
        "exp": datetime.now(UTC) + timedelta(hours=1),
    }
    payload.update(claims)
    return jwt.encode(
        {k: v for k, v in payload.items() if v is not None}, secret, algorithm="HS256"
    )


async def _error_code(token: str | None, settings: Any = None) -> tuple[int, str]:
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(
            _credentials(token) if token is not None else None,
            settings or get_test_settings(),
        )
    return exc_info.value.status_code, exc_info.value.detail["error"]["code"]


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_valid_token(self) -> None:
        user = await get_current_user(
            _credentials(_token(session_id="session-1")), get_test_settings()
        )

        assert user.id == TEST_USER_ID
        assert user.email == TEST_USER_EMAIL
        assert user.session_id == "session-1"

    @pytest.mark.asyncio
    async def test_missing_token(self) -> None:
        assert await _error_code(None) == (401, "UNAUTHORIZED")

    @pytest.mark.asyncio
    async def test_expired_token(self) -> None:
        token = _token(exp=datetime.now(UTC) - timedelta(minutes=5))

        assert await _error_code(token) == (401, "TOKEN_EXPIRED")

    @pytest.mark.asyncio
    async def test_wrong_secret(self) -> None:
        token = _token(secret="another-secret-that-is-long-enough-for-hs256")

        assert await _error_code(token) == (401, "INVALID_TOKEN")

    @pytest.mark.asyncio
    async def test_wrong_audience(self) -> None:
        assert await _error_code(_token(aud="anon")) == (401, "INVALID_TOKEN")

    @pytest.mark.asyncio
    async def test_missing_subject(self) -> None:
        assert await _error_code(_token(sub=None)) == (401, "INVALID_TOKEN")

    @pytest.mark.asyncio
    async def test_garbage_token(self) -> None:
        assert await _error_code("not.a.jwt") == (401, "INVALID_TOKEN")

    @pytest.mark.asyncio
    async def test_missing_jwt_secret(self) -> None:
        settings = get_test_settings()
        settings.supabase_jwt_secret = ""

        assert await _error_code(_token(), settings) == (401, "INVALID_TOKEN")

    @pytest.mark.asyncio
    async def test_missing_supabase_url(self) -> None:
        settings = get_test_settings()
        settings.supabase_url = ""

        assert await _error_code(_token(), settings) == (500, "SERVER_ERROR")
