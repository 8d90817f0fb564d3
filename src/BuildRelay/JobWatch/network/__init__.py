"""Network subsystem: HTTP client factory, request logging and lookup retries.

Modules:
- client: HTTPX client factory with lazy singleton pattern
- policy: HTTP policy constants (pooling, redirects, status classification)
- instrumentation: Request/response hooks for structured logging
- retry: Tenacity policy for bounded post-trigger lookups
"""

from BuildRelay.JobWatch.network.client import (
    close_http_client,
    configure_http_client,
    create_http_client,
    get_http_client,
    reset_http_client,
)
from BuildRelay.JobWatch.network.instrumentation import create_http_event_hooks, redact_url
from BuildRelay.JobWatch.network.policy import (
    FOLLOW_REDIRECTS,
    NOT_FOUND_STATUS_CODES,
    RETRYABLE_STATUS_CODES,
)
from BuildRelay.JobWatch.network.retry import create_lookup_retry_policy

__all__ = [
    # Client lifecycle
    "get_http_client",
    "configure_http_client",
    "create_http_client",
    "close_http_client",
    "reset_http_client",
    # Instrumentation
    "create_http_event_hooks",
    "redact_url",
    # Policy
    "FOLLOW_REDIRECTS",
    "NOT_FOUND_STATUS_CODES",
    "RETRYABLE_STATUS_CODES",
    # Retry policies
    "create_lookup_retry_policy",
]
