"""Pooled httpx client shared by the proxy routes.

The app lifespan opens one client for its whole lifetime; code running
outside the lifespan (tests, scripts, the session services) builds its own
with :func:`create_http_client` using the same timeouts and pool limits.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx

from aceai.app.core.config import settings

_shared_http_client: Optional[httpx.AsyncClient] = None


def upstream_timeout() -> httpx.Timeout:
    # read covers the gap between SSE frames, which can be long during generation
    return httpx.Timeout(
        connect=settings.httpx_connect_timeout,
        read=settings.httpx_read_timeout,
        write=settings.httpx_write_timeout,
        pool=settings.httpx_pool_timeout,
    )


def upstream_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=settings.httpx_max_connections,
        max_keepalive_connections=settings.httpx_max_keepalive_connections,
        keepalive_expiry=settings.httpx_keepalive_expiry,
    )


def get_http_client() -> httpx.AsyncClient:
    """Return the lifespan-scoped client.

    Raises:
        RuntimeError: Outside the application lifespan.
    """
    if _shared_http_client is None:
        raise RuntimeError("Shared HTTP client is only available inside the app lifespan")
    return _shared_http_client


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Open the shared client for the duration of the block and close it after."""
    global _shared_http_client

    client = httpx.AsyncClient(timeout=upstream_timeout(), limits=upstream_limits())
    _shared_http_client = client
    try:
        yield client
    finally:
        _shared_http_client = None
        await client.aclose()


def create_http_client(timeout: Optional[float] = None, **kwargs) -> httpx.AsyncClient:
    """Build a standalone client; the caller owns it and must close it.

    Args:
        timeout: Single value replacing every granular timeout
        **kwargs: Passed to ``httpx.AsyncClient``
    """
    kwargs.setdefault("limits", upstream_limits())
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout) if timeout is not None else upstream_timeout(),
        **kwargs,
    )
