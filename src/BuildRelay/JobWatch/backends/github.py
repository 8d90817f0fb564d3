# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.backends.github",
#   "purpose": "GitHub Actions workflow_dispatch backend",
#   "sections": [
#     {"id": "platform-presets", "name": "PLATFORM_PRESETS", "anchor": "const-platform-presets", "kind": "constant"},
#     {"id": "map-github-run", "name": "map_github_run", "anchor": "function-map-github-run", "kind": "function"},
#     {"id": "githubdispatchbackend", "name": "GitHubDispatchBackend", "anchor": "class-githubdispatchbackend", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""GitHub Actions ``workflow_dispatch`` backend.

Dispatches a workflow file in a builder repository and follows the resulting
workflow run. The dispatch endpoint historically answers ``204 No Content``
without a run id, so when the response does not carry ``workflow_run_id`` the
backend lists recent ``workflow_dispatch`` runs of that workflow and takes the
newest one created since the dispatch.

Known limitation: two dispatches of the same workflow within the lookup
window may resolve to the same run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from ..errors import ConfigurationError, PollError, TriggerError
from ..models import JobHandle, JobRequest, JobStatus, StatusReport
from ..network import create_lookup_retry_policy
from ..settings import GitHubSettings
from .base import HttpJobBackend, json_object

logger = logging.getLogger(__name__)

#: Extra workflow inputs implied by the target platform.
PLATFORM_PRESETS: Dict[str, Dict[str, str]] = {
    "android": {"build_type": "apk"},
    "ios": {},
    "macos": {"arch": "universal"},
    "windows": {},
    "linux": {},
}

_PENDING_RUN_STATUSES = frozenset({"queued", "requested", "waiting", "pending"})
_FINISHED_CONCLUSIONS = frozenset({"success", "neutral", "skipped"})
_FAILED_CONCLUSIONS = frozenset({"failure", "timed_out", "startup_failure", "action_required"})

# Allowance for clock skew between this host and GitHub when matching runs.
_CREATED_SKEW = timedelta(seconds=30)


def map_github_run(run: Mapping[str, Any]) -> StatusReport:
    """Translate a workflow run object into a :class:`StatusReport`."""

    raw_status = str(run.get("status") or "")
    if raw_status in _PENDING_RUN_STATUSES:
        return StatusReport(status=JobStatus.PENDING, remote_status=raw_status)
    if raw_status != "completed":
        return StatusReport(status=JobStatus.RUNNING, remote_status=raw_status)

    conclusion = str(run.get("conclusion") or "")
    remote = f"completed/{conclusion}"
    if conclusion in _FINISHED_CONCLUSIONS:
        url = run.get("html_url")
        return StatusReport(
            status=JobStatus.FINISHED,
            success=conclusion == "success",
            url=url if isinstance(url, str) else None,
            remote_status=remote,
        )
    if conclusion in _FAILED_CONCLUSIONS:
        return StatusReport(status=JobStatus.FAILED, remote_status=remote)
    return StatusReport(status=JobStatus.ERROR, remote_status=remote)


def workflow_inputs(
    request: JobRequest, *, source_repo: Optional[str] = None
) -> Dict[str, str]:
    """Build the ``inputs`` object for a dispatch, dropping empty values."""

    inputs: Dict[str, Optional[str]] = {
        "repo": source_repo,
        "branch": request.ref,
        "environment": request.target,
    }
    inputs.update(request.parameters)
    return {key: str(value) for key, value in inputs.items() if value not in (None, "")}


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GitHubDispatchBackend(HttpJobBackend):
    """Trigger builds by dispatching a workflow in a builder repository."""

    name = "github"

    def __init__(
        self,
        settings: GitHubSettings,
        client: Optional[httpx.Client] = None,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        lookup_sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        super().__init__(client)
        if settings.token is None or not settings.token.get_secret_value():
            raise ConfigurationError("github: token is not configured")
        if not settings.owner or not settings.repo:
            raise ConfigurationError("github: owner and repo must be configured")
        self.settings = settings
        self._repo_url = (
            f"{settings.api_url.rstrip('/')}/repos/{settings.owner}/{settings.repo}/actions"
        )
        self._now = now
        self._lookup_sleep = lookup_sleep

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.settings.token.get_secret_value()}",
            "X-GitHub-Api-Version": self.settings.api_version,
        }

    @staticmethod
    def workflow_file(job_type: str) -> str:
        if job_type.endswith((".yaml", ".yml")):
            return job_type
        return f"{job_type}.yaml"

    def build_payload(self, request: JobRequest) -> Dict[str, Any]:
        return {
            "ref": self.settings.workflow_ref,
            "inputs": workflow_inputs(request, source_repo=self.settings.source_repo),
        }

    def trigger(self, request: JobRequest) -> JobHandle:
        workflow = self.workflow_file(request.job_type)
        dispatched_at = self._now()
        payload = self.build_payload(request)
        logger.debug(
            "Dispatching workflow %s",
            workflow,
            extra={"stage": "trigger", "extra_fields": {"params": payload}},
        )
        response = self._send_trigger(
            "POST", f"{self._repo_url}/workflows/{workflow}/dispatches", json=payload
        )

        run_id: Optional[str] = None
        if response.status_code == 200 and response.content:
            body = json_object(response, TriggerError, service=self.name)
            if body.get("workflow_run_id") is not None:
                run_id = str(body["workflow_run_id"])

        if run_id is None:
            policy = create_lookup_retry_policy(
                self.settings.run_lookup_attempts,
                self.settings.run_lookup_delay,
                sleep=self._lookup_sleep,
            )
            run_id = policy(self._find_dispatched_run, workflow, dispatched_at)

        if run_id is None:
            raise TriggerError(
                f"{self.name}: dispatch of {workflow} was accepted but no workflow run "
                f"appeared after {self.settings.run_lookup_attempts} lookups",
                status_code=response.status_code,
            )
        return JobHandle(job_id=run_id, service=self.name, request=request)

    def _find_dispatched_run(self, workflow: str, dispatched_at: datetime) -> Optional[str]:
        since = dispatched_at - _CREATED_SKEW
        params = {
            "event": "workflow_dispatch",
            "per_page": 20,
            "created": f">={since.strftime('%Y-%m-%dT%H:%M:%SZ')}",
        }
        try:
            response = self.client.get(
                f"{self._repo_url}/workflows/{workflow}/runs",
                headers=self._headers(),
                params=params,
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Workflow run lookup failed: %s", exc, extra={"stage": "trigger"}
            )
            return None

        runs = body.get("workflow_runs") if isinstance(body, Mapping) else None
        candidates = []
        for run in runs if isinstance(runs, list) else []:
            if not isinstance(run, Mapping):
                continue
            created = _parse_timestamp(run.get("created_at"))
            if created is None or created < since:
                continue
            try:
                run_id = int(run["id"])
            except (KeyError, TypeError, ValueError):
                continue
            candidates.append((created, run_id))
        if not candidates:
            return None
        return str(max(candidates)[1])

    def poll(self, handle: JobHandle) -> StatusReport:
        run = self._send_poll(f"{self._repo_url}/runs/{handle.job_id}", handle)
        status = run.get("status")
        if not isinstance(status, str) or not status:
            raise PollError(f"{self.name}: response did not include a run status", handle=handle)
        return map_github_run(run)


__all__ = [
    "PLATFORM_PRESETS",
    "GitHubDispatchBackend",
    "map_github_run",
    "workflow_inputs",
]
