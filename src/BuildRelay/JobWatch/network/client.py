# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.network.client",
#   "purpose": "HTTPX client factory shared by the job backends.",
#   "sections": [
#     {"id": "get-http-client", "name": "get_http_client", "anchor": "function-get-http-client", "kind": "function"},
#     {"id": "configure-http-client", "name": "configure_http_client", "anchor": "function-configure-http-client", "kind": "function"},
#     {"id": "close-http-client", "name": "close_http_client", "anchor": "function-close-http-client", "kind": "function"},
#     {"id": "reset-http-client", "name": "reset_http_client", "anchor": "function-reset-http-client", "kind": "function"},
#     {"id": "create-http-client", "name": "create_http_client", "anchor": "function-create-http-client", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client factory shared by the job backends.

Key design:
- **Lazy initialization**: Client created on first use, not at import time.
- **PID-aware**: If the process forks, the child rebuilds the client on first
  use to avoid sharing sockets with the parent.
- **Thread-safe**: Concurrent watches share one pooled client behind a lock.
- **Injectable**: Tests install a client backed by ``httpx.MockTransport`` via
  :func:`configure_http_client`.

Example:
    >>> from BuildRelay.JobWatch.network import get_http_client, close_http_client
    >>> client = get_http_client()
    >>> close_http_client()  # at process shutdown or test cleanup
"""

from __future__ import annotations

import logging
import os
import ssl
import threading
from typing import Optional

import certifi
import httpx

from ..settings import HttpSettings, get_settings
from .instrumentation import create_http_event_hooks
from .policy import (
    FOLLOW_REDIRECTS,
    KEEPALIVE_EXPIRY,
    MAX_KEEPALIVE_CONNECTIONS,
    TLS_VERIFY_ENABLED,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Global Client State
# ============================================================================

_client: Optional[httpx.Client] = None
_client_lock = threading.Lock()
_client_bind_pid: Optional[int] = None


# ============================================================================
# Public API
# ============================================================================


def get_http_client(settings: Optional[HttpSettings] = None) -> httpx.Client:
    """Get or create the shared HTTPX client.

    Args:
        settings: HTTP settings used when the client has to be built. Ignored
            once a client exists for this process.
    """
    global _client, _client_bind_pid

    if _client is not None and _client_bind_pid == os.getpid():
        return _client

    with _client_lock:
        if _client is not None and _client_bind_pid == os.getpid():
            return _client

        if _client is not None:
            logger.debug("Process forked; closing old HTTP client and rebuilding.")
            try:
                _client.close()
            except httpx.HTTPError as exc:
                logger.debug("Error closing old client: %s", exc)
            _client = None

        _client = create_http_client(settings or get_settings().http)
        _client_bind_pid = os.getpid()
        return _client


def configure_http_client(client: httpx.Client) -> None:
    """Install ``client`` as the shared client for this process."""
    global _client, _client_bind_pid

    with _client_lock:
        _client = client
        _client_bind_pid = os.getpid()


def close_http_client() -> None:
    """Close the HTTP client and release resources.

    Safe to call multiple times or when no client has been created.
    """
    global _client

    with _client_lock:
        if _client is not None:
            try:
                _client.close()
                logger.debug("HTTP client closed")
            finally:
                _client = None


def reset_http_client() -> None:
    """Reset the HTTP client (primarily for testing)."""
    global _client_bind_pid

    close_http_client()
    _client_bind_pid = None


# ============================================================================
# Implementation Details
# ============================================================================


def _create_ssl_context() -> ssl.SSLContext:
    """Create an SSL context backed by the certifi bundle."""
    if not TLS_VERIFY_ENABLED:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        logger.warning("TLS verification DISABLED (development only!)")
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def create_http_client(settings: HttpSettings) -> httpx.Client:
    """Create an HTTPX client configured from ``settings``.

    Configuration:
    - Timeouts: per-phase (connect, read, write, pool)
    - Transport: bounded connect retries only; status queries are retried by the watch loop
    - Redirects: disabled
    - Hooks: request/response logging
    """
    ssl_ctx = _create_ssl_context()

    transport = httpx.HTTPTransport(
        retries=settings.connect_retries,
        verify=ssl_ctx,
    )

    client = httpx.Client(
        transport=transport,
        timeout=httpx.Timeout(
            connect=settings.timeout_connect,
            read=settings.timeout_read,
            write=settings.timeout_write,
            pool=settings.timeout_pool,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=KEEPALIVE_EXPIRY,
        ),
        headers={"User-Agent": settings.user_agent},
        follow_redirects=FOLLOW_REDIRECTS,
        trust_env=settings.trust_env,
        event_hooks=create_http_event_hooks(),
    )

    logger.debug(
        "HTTPX client created",
        extra={
            "stage": "http",
            "extra_fields": {
                "max_connections": settings.max_connections,
                "connect_retries": settings.connect_retries,
            },
        },
    )
    return client


__all__ = [
    "get_http_client",
    "configure_http_client",
    "close_http_client",
    "reset_http_client",
    "create_http_client",
]
