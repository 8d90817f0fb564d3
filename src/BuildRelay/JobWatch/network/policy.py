# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.network.policy",
#   "purpose": "HTTP policy constants and defaults.",
#   "sections": []
# }
# === /NAVMAP ===

"""HTTP policy constants and defaults.

Tunable values (timeouts, pool size, user agent) live in
:class:`~BuildRelay.JobWatch.settings.HttpSettings`; the constants here are the
fixed parts of the policy shared by every backend.
"""

# ============================================================================
# Connection Pooling
# ============================================================================

#: Maximum connections to keep open per host
MAX_KEEPALIVE_CONNECTIONS = 5

#: How long to keep idle connections alive (seconds)
#: Poll intervals are usually far longer, so idle sockets are dropped early
KEEPALIVE_EXPIRY = 5.0


# ============================================================================
# Security & Compliance
# ============================================================================

#: Require TLS verification for all HTTPS connections
TLS_VERIFY_ENABLED = True

#: Build service APIs answer directly; a redirect usually means a wrong base URL
FOLLOW_REDIRECTS = False


# ============================================================================
# Status Classification
# ============================================================================

#: Statuses that mark a status query as transiently failed
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})

#: Statuses that mean the remote service does not know the job
NOT_FOUND_STATUS_CODES = frozenset({404, 410})


__all__ = [
    "MAX_KEEPALIVE_CONNECTIONS",
    "KEEPALIVE_EXPIRY",
    "TLS_VERIFY_ENABLED",
    "FOLLOW_REDIRECTS",
    "RETRYABLE_STATUS_CODES",
    "NOT_FOUND_STATUS_CODES",
]
