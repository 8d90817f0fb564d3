# === NAVMAP v1 ===
# {
#   "module": "tests.job_watch.test_network",
#   "purpose": "Tests for the shared HTTP client, request logging hooks, and lookup retries.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Tests for the shared HTTP client, request logging hooks, and lookup retries."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx
import pytest

from BuildRelay.JobWatch.network import (
    configure_http_client,
    create_http_client,
    create_http_event_hooks,
    create_lookup_retry_policy,
    get_http_client,
    redact_url,
    reset_http_client,
)
from BuildRelay.JobWatch.settings import HttpSettings
from BuildRelay.JobWatch.testing import use_mock_http_client

HOOK_LOGGER = "BuildRelay.JobWatch.network.instrumentation"


def test_shared_client_is_reused_until_reset() -> None:
    first = get_http_client()
    assert get_http_client() is first

    reset_http_client()

    assert first.is_closed
    assert get_http_client() is not first


def test_configure_http_client_installs_injected_client() -> None:
    injected = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
    configure_http_client(injected)

    assert get_http_client() is injected


def test_use_mock_http_client_resets_afterwards() -> None:
    with use_mock_http_client(lambda request: httpx.Response(200, json={"ok": True})) as client:
        assert get_http_client() is client
        assert get_http_client().get("https://api.example.test/ping").json() == {"ok": True}
    assert client.is_closed


def test_created_client_applies_settings() -> None:
    settings = HttpSettings(timeout_read=12.0, user_agent="jobwatch-tests")
    client = create_http_client(settings)
    try:
        assert client.timeout.read == 12.0
        assert client.headers["User-Agent"] == "jobwatch-tests"
        assert client.follow_redirects is False
    finally:
        client.close()


def test_redact_url_strips_query_and_fragment() -> None:
    assert (
        redact_url("https://api.github.com/repos/a/b/actions/runs?created=%3E2026&token=x#top")
        == "https://api.github.com/repos/a/b/actions/runs"
    )


@pytest.mark.parametrize(("status_code", "level"), [(200, logging.DEBUG), (503, logging.WARNING)])
def test_event_hooks_log_each_exchange(
    caplog: pytest.LogCaptureFixture, status_code: int, level: int
) -> None:
    caplog.set_level(logging.DEBUG, logger=HOOK_LOGGER)
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(status_code)),
        event_hooks=create_http_event_hooks(),
    )

    client.get("https://api.codemagic.io/builds/b-1?secret=1")

    (record,) = [r for r in caplog.records if r.name == HOOK_LOGGER]
    assert record.levelno == level
    assert "secret" not in record.getMessage()
    assert record.extra_fields["status"] == status_code


def test_lookup_policy_returns_first_result() -> None:
    sleeps: List[float] = []
    answers = iter([None, None, "run-3"])
    policy = create_lookup_retry_policy(5, 2.0, sleep=sleeps.append)

    assert policy(lambda: next(answers)) == "run-3"
    assert sleeps == [2.0, 2.0]


def test_lookup_policy_gives_up_with_none() -> None:
    calls: List[Optional[str]] = []

    def lookup() -> Optional[str]:
        calls.append(None)
        return None

    policy = create_lookup_retry_policy(3, 0.0, sleep=lambda seconds: None)

    assert policy(lookup) is None
    assert len(calls) == 3


def test_lookup_policy_propagates_exceptions() -> None:
    policy = create_lookup_retry_policy(3, 0.0, sleep=lambda seconds: None)

    def lookup() -> Optional[str]:
        raise KeyError("boom")

    with pytest.raises(KeyError):
        policy(lookup)
