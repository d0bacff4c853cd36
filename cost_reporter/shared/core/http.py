"""
Async HTTP Client Shared Infrastructure

Keeps one httpx.AsyncClient per process so webhook deliveries reuse
connection pools instead of opening a socket per attempt.
"""

from typing import Optional
import httpx
import structlog

logger = structlog.get_logger()

_client: Optional[httpx.AsyncClient] = None


def get_http_client(timeout: Optional[float] = None) -> httpx.AsyncClient:
    """
    Returns the shared httpx.AsyncClient, creating it on first use.

    The timeout applies per request, which bounds each webhook attempt.
    """
    global _client

    if _client is None:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or 10.0, connect=5.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            headers={"User-Agent": "cost-reporter/0.1"},
        )
        logger.info("http_client_initialized", timeout_seconds=timeout or 10.0)

    return _client


async def close_http_client() -> None:
    """Closes the shared client and flushes its connection pool."""
    global _client
    if _client is None:
        return
    await _client.aclose()
    _client = None
    logger.info("http_client_closed")
