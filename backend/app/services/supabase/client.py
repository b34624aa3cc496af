"""Supabase client configuration and initialization.

The backend talks to Supabase with the service role key, which bypasses
row level security. Authorization happens in the application layer: the
FastAPI dependencies resolve the caller's case roles and every service
query is scoped by case_id.

Uses HTTP/1.1 with a retrying transport; HTTP/2 multiplexing through
Cloudflare drops connections under load.
"""

from functools import lru_cache

import httpx
import structlog
from supabase import Client, create_client
from supabase.lib.client_options import SyncClientOptions

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

_HTTP_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
_HTTP_LIMITS = httpx.Limits(max_keepalive_connections=5, max_connections=10)
_HTTP_RETRIES = 3


def _create_http_client() -> httpx.Client:
    transport = httpx.HTTPTransport(retries=_HTTP_RETRIES, http2=False)
    return httpx.Client(
        transport=transport,
        timeout=_HTTP_TIMEOUT,
        limits=_HTTP_LIMITS,
        http2=False,
    )


@lru_cache(maxsize=1)
def get_supabase_client() -> Client | None:
    """Get the cached Supabase client.

    Returns:
        Supabase client, or None if Supabase is not configured or the
        client could not be created.
    """
    settings = get_settings()
    key = settings.supabase_service_key or settings.supabase_key

    if not settings.supabase_url or not key:
        logger.warning(
            "supabase_not_configured",
            has_url=bool(settings.supabase_url),
            has_key=bool(key),
        )
        return None

    try:
        client = create_client(
            supabase_url=settings.supabase_url,
            supabase_key=key,
            options=SyncClientOptions(httpx_client=_create_http_client()),
        )
    except Exception as e:
        logger.error("supabase_client_creation_failed", error=str(e))
        return None

    logger.info(
        "supabase_client_created",
        using_service_key=bool(settings.supabase_service_key),
        http_version="1.1",
        retries=_HTTP_RETRIES,
    )
    return client
