"""
HTTP client with connection pooling for provider communication.

Builds the long-lived httpx AsyncClient the provider SDK sends its
requests through. Reusing one pooled client avoids a TLS handshake per
completion request.

Configuration (see chat_api.config.ServiceSettings):
    HTTP_MAX_CONNECTIONS: Maximum total connections in pool (default 100)
    HTTP_MAX_KEEPALIVE: Maximum keep-alive connections (default 20)
    HTTP_TIMEOUT_CONNECT: Connection timeout in seconds (default 5.0)
    HTTP_TIMEOUT_READ: Read timeout in seconds (default 120.0)
    HTTP_TIMEOUT_WRITE: Write timeout in seconds (default 30.0)
    HTTP_TIMEOUT_POOL: Pool timeout in seconds (default 10.0)

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
import structlog

import httpx

from chat_api.config import ServiceSettings

logger = structlog.get_logger(__name__)


def _create_limits(settings: ServiceSettings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=settings.http_max_connections,
        max_keepalive_connections=settings.http_max_keepalive,
        keepalive_expiry=5.0,  # Close idle connections after 5 seconds
    )


def _create_timeout(settings: ServiceSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.http_timeout_connect,
        read=settings.http_timeout_read,
        write=settings.http_timeout_write,
        pool=settings.http_timeout_pool,
    )


def create_http_client(settings: ServiceSettings) -> httpx.AsyncClient:
    """
    Create the pooled HTTP client used for provider calls.

    Args:
        settings: Service settings with pool and timeout configuration

    Returns:
        httpx.AsyncClient: New client; the caller owns it and must aclose() it
    """
    logger.info(
        "http_client.init",
        max_connections=settings.http_max_connections,
        max_keepalive=settings.http_max_keepalive,
    )
    return httpx.AsyncClient(
        limits=_create_limits(settings),
        timeout=_create_timeout(settings),
        http2=True,
    )


async def close_http_client(client: httpx.AsyncClient) -> None:
    """Close the client and release all pooled connections."""
    if client.is_closed:
        return
    logger.info("Closing HTTP client")
    await client.aclose()
    logger.info("HTTP client closed")
