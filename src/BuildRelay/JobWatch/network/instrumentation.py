# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.network.instrumentation",
#   "purpose": "HTTP request/response logging hooks.",
#   "sections": [
#     {"id": "create-http-event-hooks", "name": "create_http_event_hooks", "anchor": "function-create-http-event-hooks", "kind": "function"},
#     {"id": "redact-url", "name": "redact_url", "anchor": "function-redact-url", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""HTTP request/response logging hooks.

Logs one ``net.request`` line per HTTP exchange with method, redacted URL,
status and elapsed time. Throttling and server errors are logged at WARNING so
they stand out between the routine status queries of a long watch.
"""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from .policy import RETRYABLE_STATUS_CODES

logger = logging.getLogger(__name__)


def create_http_event_hooks() -> dict:
    """Create HTTPX event hooks for request logging.

    Usage:
        >>> import httpx
        >>> hooks = create_http_event_hooks()
        >>> client = httpx.Client(event_hooks=hooks)
    """
    request_start_time: dict[int, float] = {}

    def on_request(request: Any) -> None:
        request_start_time[id(request)] = time.perf_counter()

    def on_response(response: Any) -> None:
        start_time = request_start_time.pop(id(response.request), None)
        if start_time is None:
            return

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        level = logging.WARNING if response.status_code in RETRYABLE_STATUS_CODES else logging.DEBUG
        logger.log(
            level,
            "%s %s -> %s (%.0f ms)",
            response.request.method,
            redact_url(str(response.request.url)),
            response.status_code,
            elapsed_ms,
            extra={
                "stage": "net.request",
                "extra_fields": {
                    "method": response.request.method,
                    "host": response.request.url.host or "unknown",
                    "status": response.status_code,
                    "elapsed_ms": round(elapsed_ms, 1),
                },
            },
        )

    return {
        "request": [on_request],
        "response": [on_response],
    }


def redact_url(url: str) -> str:
    """Strip query string and fragment, keeping scheme, host and path."""
    parsed = urlsplit(url)
    return urlunsplit((parsed.scheme, parsed.netloc, parsed.path, "", ""))


__all__ = ["create_http_event_hooks", "redact_url"]
