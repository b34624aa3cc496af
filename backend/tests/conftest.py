"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings, get_settings
from app.core.rate_limit import limiter
from app.main import app
from app.models.document import Document, DocumentCategory, DocumentStatus

# Test JWT secret for testing purposes only
TEST_JWT_SECRET = "test-secret-key-for-testing-only-do-not-use-in-production"

TEST_USER_ID = "test-user-id-12345"
TEST_USER_EMAIL = "test@example.com"


def get_test_settings() -> Settings:
    """Settings stub used in place of get_settings for API tests."""
    settings = MagicMock(spec=Settings)
    settings.supabase_jwt_secret = TEST_JWT_SECRET
    settings.supabase_url = "https://test.supabase.co"
    settings.supabase_key = "test-anon-key"
    settings.is_configured = True
    settings.debug = False
    return settings


def create_test_token(
    user_id: str = TEST_USER_ID,
    email: str | None = TEST_USER_EMAIL,
) -> str:
    """Create a valid HS256 Supabase-style access token."""
    payload: dict[str, Any] = {
        "sub": user_id,
        "role": "authenticated",
        "aud": "authenticated",
        "exp": datetime.now(UTC) + timedelta(hours=1),
        "iat": datetime.now(UTC),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def anyio_backend() -> str:
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture(autouse=True)
def disable_rate_limits() -> Generator[None, None, None]:
    """Rate limits are exercised in test_rate_limit.py only."""
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def override_settings() -> Generator[None, None, None]:
    app.dependency_overrides[get_settings] = get_test_settings
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client.

    Yields:
        Configured AsyncClient for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_test_token()}"}


@pytest.fixture
def make_document() -> Callable[..., Document]:
    """Factory for Document models with sensible defaults."""

    def _make(**overrides: Any) -> Document:
        values: dict[str, Any] = {
            "id": 1,
            "case_id": 10,
            "filename": "statement_abcd1234.pdf",
            "original_name": "statement.pdf",
            "category": DocumentCategory.REAL_PROPERTY,
            "status": DocumentStatus.UPLOADED,
            "storage_path": "10/uploads/statement_abcd1234.pdf",
            "uploaded_by": TEST_USER_ID,
            "created_at": datetime(2024, 3, 1, 9, 0, tzinfo=UTC),
        }
        values.update(overrides)
        return Document.model_validate(values)

    return _make
