"""GitHub workflow_dispatch backend against a mocked Actions API."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List

import httpx
import pytest

from BuildRelay.JobWatch.backends.github import (
    GitHubDispatchBackend,
    map_github_run,
    workflow_inputs,
)
from BuildRelay.JobWatch.errors import ConfigurationError, NotFound, PollError, TriggerError
from BuildRelay.JobWatch.models import JobHandle, JobRequest, JobStatus
from BuildRelay.JobWatch.settings import GitHubSettings

DISPATCHED_AT = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
ACTIONS = "https://api.github.com/repos/acme/builder/actions"


def _settings(**overrides) -> GitHubSettings:
    values = dict(
        token="ghp-secret",
        owner="acme",
        repo="builder",
        source_repo="acme/app",
        run_lookup_attempts=3,
        run_lookup_delay=0.0,
    )
    values.update(overrides)
    return GitHubSettings(**values)


def _backend(handler, *, sleeps: List[float] | None = None, **overrides) -> GitHubDispatchBackend:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    recorder = sleeps if sleeps is not None else []
    return GitHubDispatchBackend(
        _settings(**overrides),
        client,
        now=lambda: DISPATCHED_AT,
        lookup_sleep=recorder.append,
    )


def _runs(*runs) -> httpx.Response:
    return httpx.Response(200, json={"total_count": len(runs), "workflow_runs": list(runs)})


REQUEST = JobRequest(job_type="android", ref="feature/login", target="staging")


def test_dispatch_with_run_id_in_response_skips_lookup() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"workflow_run_id": 987654})

    handle = _backend(handler).trigger(REQUEST)

    assert handle.job_id == "987654"
    assert handle.service == "github"
    (sent,) = seen
    assert str(sent.url) == f"{ACTIONS}/workflows/android.yaml/dispatches"
    assert sent.headers["Authorization"] == "Bearer ghp-secret"
    assert sent.headers["Accept"] == "application/vnd.github+json"
    assert sent.headers["X-GitHub-Api-Version"] == "2022-11-28"
    assert json.loads(sent.content) == {
        "ref": "main",
        "inputs": {"repo": "acme/app", "branch": "feature/login", "environment": "staging"},
    }


def test_dispatch_without_run_id_looks_up_newest_recent_run() -> None:
    lookups: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(204)
        lookups.append(request)
        return _runs(
            {"id": 10, "created_at": "2026-03-01T11:00:00Z"},
            {"id": 11, "created_at": "2026-03-01T12:00:02Z"},
            {"id": 12, "created_at": "2026-03-01T12:00:04Z"},
        )

    handle = _backend(handler).trigger(REQUEST)

    assert handle.job_id == "12"
    (lookup,) = lookups
    assert lookup.url.path == "/repos/acme/builder/actions/workflows/android.yaml/runs"
    assert lookup.url.params["event"] == "workflow_dispatch"
    assert lookup.url.params["created"] == ">=2026-03-01T11:59:30Z"


def test_lookup_retries_until_run_appears() -> None:
    responses = iter([_runs(), httpx.Response(502), _runs({"id": 77, "created_at": "2026-03-01T12:00:01Z"})])
    sleeps: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(204)
        return next(responses)

    handle = _backend(handler, sleeps=sleeps).trigger(REQUEST)

    assert handle.job_id == "77"
    assert len(sleeps) == 2


def test_lookup_exhaustion_is_trigger_error_and_not_redispatched() -> None:
    posts: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            posts.append(request)
            return httpx.Response(204)
        return _runs()

    with pytest.raises(TriggerError) as excinfo:
        _backend(handler).trigger(REQUEST)

    assert "no workflow run appeared" in str(excinfo.value)
    assert len(posts) == 1


@pytest.mark.parametrize(
    "body",
    [
        {"workflow_runs": [{"id": "abc", "created_at": "2026-03-01T12:00:01Z"}]},
        {"workflow_runs": ["not-a-run", 42, None]},
        {"workflow_runs": [{"created_at": "2026-03-01T12:00:01Z"}]},
        {"workflow_runs": [{"id": 5, "created_at": "yesterday"}]},
        {"workflow_runs": "unexpected"},
        ["not", "an", "object"],
    ],
)
def test_malformed_run_list_exhausts_lookup_as_trigger_error(body) -> None:
    lookups: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(204)
        lookups.append(request)
        return httpx.Response(200, json=body)

    with pytest.raises(TriggerError):
        _backend(handler).trigger(REQUEST)
    assert len(lookups) == 3


def test_malformed_entries_are_skipped_in_favour_of_valid_runs() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(204)
        return _runs(
            "garbage",
            {"id": "abc", "created_at": "2026-03-01T12:00:09Z"},
            {"id": 21, "created_at": "2026-03-01T12:00:03"},
        )

    assert _backend(handler).trigger(REQUEST).job_id == "21"


@pytest.mark.parametrize("status_code", [401, 404, 422, 500])
def test_dispatch_rejection_is_trigger_error(status_code: int) -> None:
    backend = _backend(lambda request: httpx.Response(status_code, json={"message": "nope"}))
    with pytest.raises(TriggerError) as excinfo:
        backend.trigger(REQUEST)
    assert excinfo.value.status_code == status_code


def test_explicit_workflow_file_name_is_kept() -> None:
    assert GitHubDispatchBackend.workflow_file("ios.yml") == "ios.yml"
    assert GitHubDispatchBackend.workflow_file("ios") == "ios.yaml"


def test_workflow_inputs_merges_parameters_and_drops_empty_values() -> None:
    request = JobRequest(job_type="macos", ref="main", parameters={"arch": "universal", "build_name": ""})

    assert workflow_inputs(request) == {"branch": "main", "arch": "universal"}


def test_poll_reads_run_and_maps_conclusion() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/builder/actions/runs/55"
        return httpx.Response(
            200,
            json={
                "id": 55,
                "status": "completed",
                "conclusion": "success",
                "html_url": "https://github.com/acme/builder/actions/runs/55",
            },
        )

    report = _backend(handler).poll(JobHandle(job_id="55", service="github"))

    assert report.status is JobStatus.FINISHED
    assert report.success is True
    assert report.url == "https://github.com/acme/builder/actions/runs/55"


def test_poll_missing_run_is_not_found() -> None:
    with pytest.raises(NotFound):
        _backend(lambda request: httpx.Response(404)).poll(JobHandle(job_id="1", service="github"))


def test_poll_server_error_is_poll_error() -> None:
    with pytest.raises(PollError) as excinfo:
        _backend(lambda request: httpx.Response(500, text="oops")).poll(
            JobHandle(job_id="1", service="github")
        )
    assert excinfo.value.retryable


@pytest.mark.parametrize(
    "body",
    [{"message": "weird"}, {"status": ""}, {"status": None}, {"status": 3}],
)
def test_poll_without_run_status_is_poll_error(body) -> None:
    handle = JobHandle(job_id="1", service="github")
    with pytest.raises(PollError) as excinfo:
        _backend(lambda request: httpx.Response(200, json=body)).poll(handle)
    assert excinfo.value.handle == handle


@pytest.mark.parametrize(
    ("run", "status", "success"),
    [
        ({"status": "queued"}, JobStatus.PENDING, None),
        ({"status": "waiting"}, JobStatus.PENDING, None),
        ({"status": "in_progress"}, JobStatus.RUNNING, None),
        ({"status": "completed", "conclusion": "success"}, JobStatus.FINISHED, True),
        ({"status": "completed", "conclusion": "neutral"}, JobStatus.FINISHED, False),
        ({"status": "completed", "conclusion": "failure"}, JobStatus.FAILED, None),
        ({"status": "completed", "conclusion": "timed_out"}, JobStatus.FAILED, None),
        ({"status": "completed", "conclusion": "cancelled"}, JobStatus.ERROR, None),
        ({"status": "completed", "conclusion": None}, JobStatus.ERROR, None),
    ],
)
def test_run_mapping(run, status: JobStatus, success) -> None:
    report = map_github_run(run)
    assert report.status is status
    assert report.success is success


@pytest.mark.parametrize(
    "overrides",
    [{"token": None}, {"owner": None}, {"repo": None}],
)
def test_missing_configuration_is_rejected(overrides) -> None:
    with pytest.raises(ConfigurationError):
        GitHubDispatchBackend(_settings(**overrides))
