"""
Structured Logging Utilities

This module centralizes logging setup for the job watcher. It provides helpers
for masking credentials, emitting JSON log records, and managing the correlation
identifier that ties together every line written for one trigger-and-watch run.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional

from .settings import LoggingSettings

LOGGER_NAME = "BuildRelay.JobWatch"

_SENSITIVE_KEYS = {
    "authorization",
    "x-auth-token",
    "api_key",
    "api_token",
    "token",
    "secret",
    "password",
}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Examples:
        >>> mask_sensitive_data({"x-auth-token": "secret", "status": "ok"})
        {'x-auth-token': '***masked***', 'status': 'ok'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Create a twelve character identifier linking the log lines of one run."""
    return uuid.uuid4().hex[:12]


class CorrelationFilter(logging.Filter):
    """Stamp every record passing through a handler with a correlation id."""

    def __init__(self, correlation_id: Optional[str] = None) -> None:
        super().__init__()
        self.correlation_id = correlation_id or generate_correlation_id()

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = self.correlation_id
        return True


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "job_id": getattr(record, "job_id", None),
            "stage": getattr(record, "stage", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            log_obj.update(record.extra_fields)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    config: LoggingSettings, *, correlation_id: Optional[str] = None
) -> logging.Logger:
    """Configure console and optional file handlers for the job watcher.

    Handlers installed by an earlier call are replaced, so calling this twice
    (for example once per CLI invocation under a test runner) does not
    duplicate output.

    Examples:
        >>> logger = setup_logging(LoggingSettings(level="INFO"))
        >>> logger.name
        'BuildRelay.JobWatch'
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.level_int())

    for handler in list(logger.handlers):
        if getattr(handler, "_jobwatch_managed", False):
            logger.removeHandler(handler)
            handler.close()

    correlation = CorrelationFilter(correlation_id)

    stream_handler = logging.StreamHandler(sys.stderr)
    if config.emit_json_logs:
        stream_handler.setFormatter(JSONFormatter())
    else:
        stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler.addFilter(correlation)
    stream_handler._jobwatch_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=int(config.max_log_size_mb * 1024 * 1024),
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(correlation)
        file_handler._jobwatch_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


__all__ = [
    "LOGGER_NAME",
    "CorrelationFilter",
    "JSONFormatter",
    "generate_correlation_id",
    "mask_sensitive_data",
    "setup_logging",
]
