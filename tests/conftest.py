"""Shared pytest configuration for the job watcher suite."""

from __future__ import annotations

import logging
import os

import pytest

from BuildRelay.JobWatch.logging_config import LOGGER_NAME
from BuildRelay.JobWatch.network import reset_http_client
from BuildRelay.JobWatch.settings import reset_settings


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch):
    """Drop cached settings, the shared HTTP client, and managed log handlers."""

    for name in list(os.environ):
        if name.upper().startswith("JOBWATCH_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    reset_settings()
    reset_http_client()
    yield
    reset_settings()
    reset_http_client()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_jobwatch_managed", False):
            logger.removeHandler(handler)
            handler.close()
