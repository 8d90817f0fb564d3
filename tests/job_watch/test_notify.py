"""Outcome payloads and the bundled notifiers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from BuildRelay.JobWatch.errors import WatchTimeout
from BuildRelay.JobWatch.models import JobHandle, JobRequest, JobResult, JobStatus
from BuildRelay.JobWatch.notify import GitHubOutputNotifier, JsonReportNotifier, Outcome

REQUEST = JobRequest(job_type="ios-workflow", ref="main")
HANDLE = JobHandle(job_id="b-1", service="codemagic", request=REQUEST)


def _finished(success: bool = True) -> Outcome:
    return Outcome.from_result(
        REQUEST,
        JobResult(status=JobStatus.FINISHED, success=success, url="https://cm/b-1", handle=HANDLE),
    )


def test_outcome_from_error_keeps_follow_up_context() -> None:
    exc = WatchTimeout("gave up", handle=HANDLE, last_status=JobStatus.RUNNING)
    outcome = Outcome.from_error(REQUEST, None, exc)

    assert outcome.job_id == "b-1"
    assert outcome.service == "codemagic"
    assert outcome.status == "running"
    assert outcome.error == "gave up"
    assert outcome.error_reason == "timeout"
    assert not outcome.succeeded


def test_github_output_for_finished_job(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    output = tmp_path / "github_output"
    output.write_text("earlier=1\n", encoding="utf-8")
    monkeypatch.setenv("GITHUB_OUTPUT", str(output))

    GitHubOutputNotifier().notify(_finished())

    assert output.read_text(encoding="utf-8").splitlines() == [
        "earlier=1",
        "build_id=b-1",
        "status=finished",
        "success=true",
        "build_url=https://cm/b-1",
    ]


def test_github_output_for_failed_job_omits_success_and_url(tmp_path: Path) -> None:
    output = tmp_path / "out"
    outcome = Outcome.from_result(REQUEST, JobResult(status=JobStatus.FAILED, handle=HANDLE))

    GitHubOutputNotifier(output).notify(outcome)

    assert output.read_text(encoding="utf-8").splitlines() == ["build_id=b-1", "status=failed"]


def test_github_output_for_error_without_status(tmp_path: Path) -> None:
    output = tmp_path / "out"
    outcome = Outcome(request=REQUEST, status=None, error="rejected", error_reason="TriggerError")

    GitHubOutputNotifier(output).notify(outcome)

    assert output.read_text(encoding="utf-8") == "status=error\n"


def test_github_output_is_noop_outside_actions(tmp_path: Path) -> None:
    notifier = GitHubOutputNotifier()
    assert notifier.path is None
    notifier.notify(_finished())
    assert list(tmp_path.iterdir()) == []


def test_json_report_notifier_writes_outcome(tmp_path: Path) -> None:
    report = tmp_path / "reports" / "build.json"

    JsonReportNotifier(report).notify(_finished(success=False))

    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["status"] == "finished"
    assert payload["success"] is False
    assert payload["url"] == "https://cm/b-1"
    assert payload["request"]["job_type"] == "ios-workflow"
    assert payload["error"] is None
