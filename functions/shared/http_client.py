"""
Shared HTTP client for outbound lookups.

Provides a reusable httpx.AsyncClient so geolocation calls within one
execution context share connections.

Testing:
    Set USE_CONNECTION_POOLING=false to get a fresh client per call, which
    lets tests patch get_http_client with an httpx.MockTransport client.
"""

import asyncio
import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_client: Optional[httpx.AsyncClient] = None
_client_loop: Optional[asyncio.AbstractEventLoop] = None  # Event loop the client was created on

DEFAULT_TIMEOUT = httpx.Timeout(
    10.0,
    connect=3.0,
)

DEFAULT_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30.0,
)

USER_AGENT = "FunnelGate/1.0"


def _use_connection_pooling() -> bool:
    """Check if connection pooling is enabled (runtime check)."""
    return os.environ.get("USE_CONNECTION_POOLING", "true").lower() == "true"


def _new_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=DEFAULT_TIMEOUT,
        limits=DEFAULT_LIMITS,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )


def get_http_client() -> httpx.AsyncClient:
    """
    Get an HTTP client for making requests.

    With pooling enabled the shared client is reused, and recreated when the
    event loop changes (Lambda may run a new loop per invocation while
    reusing the execution context).

    Returns:
        httpx.AsyncClient configured for the environment
    """
    global _client, _client_loop

    if not _use_connection_pooling():
        return _new_client()

    try:
        current_loop = asyncio.get_running_loop()
    except RuntimeError:
        current_loop = None

    # Compare the loop object itself; ids of closed loops get reused
    if _client is not None and (
        _client_loop is not current_loop
        or (_client_loop is not None and _client_loop.is_closed())
    ):
        logger.debug("Event loop changed, recreating HTTP client")
        _client = None

    if _client is None:
        logger.debug("Initializing shared HTTP client with connection pooling")
        _client = _new_client()
        _client_loop = current_loop

    return _client


async def close_http_client() -> None:
    """Close the shared HTTP client."""
    global _client, _client_loop

    if _client is not None:
        await _client.aclose()
        _client = None
        _client_loop = None
        logger.debug("Closed shared HTTP client")
