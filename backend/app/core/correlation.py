"""Correlation ID middleware for request tracing.

Every request gets a correlation id, taken from the X-Correlation-ID header
when the client supplies one and generated otherwise. It is bound to
structlog's contextvars for the duration of the request and echoed back in
the response headers.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to all logs emitted while handling a request."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())

        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            # Context must not leak into the next request on this worker
            structlog.contextvars.unbind_contextvars("correlation_id", "user_id")


def get_correlation_id() -> str | None:
    """Get the current correlation_id from context.

    Returns:
        The current correlation_id, or None if not in a request context.
    """
    return structlog.contextvars.get_contextvars().get("correlation_id")
