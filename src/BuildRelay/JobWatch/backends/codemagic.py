# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.backends.codemagic",
#   "purpose": "Codemagic builds API backend",
#   "sections": [
#     {"id": "map-codemagic-status", "name": "map_codemagic_status", "anchor": "function-map-codemagic-status", "kind": "function"},
#     {"id": "strip-subaction-commands", "name": "strip_subaction_commands", "anchor": "function-strip-subaction-commands", "kind": "function"},
#     {"id": "codemagicbackend", "name": "CodemagicBackend", "anchor": "class-codemagicbackend", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Codemagic builds API backend.

Starts a build with ``POST /builds`` and follows it with ``GET /builds/{id}``.
The build status lives at ``build.status``; ``success`` and ``buildUrl`` are
read from the top level of the payload first, then from the ``build`` object.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..errors import ConfigurationError, PollError, TriggerError
from ..models import JobHandle, JobRequest, JobStatus, StatusReport
from ..settings import CodemagicSettings
from .base import HttpJobBackend, json_object

logger = logging.getLogger(__name__)

_ERROR_STATUSES = frozenset({"canceled", "cancelled", "timeout", "skipped"})
_PENDING_STATUSES = frozenset({"queued"})


def map_codemagic_status(raw: str) -> JobStatus:
    """Translate a Codemagic build status into a :class:`JobStatus`.

    Codemagic reports many intermediate phases (``preparing``, ``fetching``,
    ``building``, ``publishing`` ...); all of them count as running.
    """
    value = raw.strip().lower()
    if value == "finished":
        return JobStatus.FINISHED
    if value == "failed":
        return JobStatus.FAILED
    if value in _ERROR_STATUSES:
        return JobStatus.ERROR
    if value in _PENDING_STATUSES:
        return JobStatus.PENDING
    return JobStatus.RUNNING


def strip_subaction_commands(payload: Any) -> Any:
    """Return ``payload`` without the shell commands embedded in build subactions.

    Build step commands can be long and may echo secrets, so they are dropped
    before a status payload is written to the log.
    """
    if isinstance(payload, Mapping):
        cleaned: Dict[str, Any] = {}
        for key, value in payload.items():
            if key == "subactions" and isinstance(value, list):
                cleaned[key] = [
                    {k: v for k, v in item.items() if k != "command"}
                    if isinstance(item, Mapping)
                    else item
                    for item in value
                ]
            else:
                cleaned[key] = strip_subaction_commands(value)
        return cleaned
    if isinstance(payload, list):
        return [strip_subaction_commands(item) for item in payload]
    return payload


def _coerce_success(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in {"true", "false"}:
        return value.lower() == "true"
    return None


class CodemagicBackend(HttpJobBackend):
    """Trigger and follow builds through the Codemagic REST API."""

    name = "codemagic"

    def __init__(self, settings: CodemagicSettings, client: Optional[httpx.Client] = None) -> None:
        super().__init__(client)
        if settings.api_token is None or not settings.api_token.get_secret_value():
            raise ConfigurationError("codemagic: api_token is not configured")
        if not settings.app_id:
            raise ConfigurationError("codemagic: app_id is not configured")
        self.settings = settings
        self._base_url = settings.base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-auth-token": self.settings.api_token.get_secret_value(),
        }

    def build_payload(self, request: JobRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "appId": self.settings.app_id,
            "workflowId": request.job_type,
            "branch": request.ref,
        }
        environment: Dict[str, Any] = {}
        if request.target:
            environment["groups"] = [request.target]
        if request.parameters:
            environment["variables"] = dict(request.parameters)
        if environment:
            payload["environment"] = environment
        return payload

    def trigger(self, request: JobRequest) -> JobHandle:
        response = self._send_trigger(
            "POST", f"{self._base_url}/builds", json=self.build_payload(request)
        )
        body = json_object(response, TriggerError, service=self.name)
        build_id = body.get("buildId")
        if not isinstance(build_id, str) or not build_id.strip():
            raise TriggerError(
                f"{self.name}: response did not include a buildId",
                status_code=response.status_code,
            )
        return JobHandle(job_id=build_id.strip(), service=self.name, request=request)

    def poll(self, handle: JobHandle) -> StatusReport:
        payload = self._send_poll(f"{self._base_url}/builds/{handle.job_id}", handle)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Codemagic build payload",
                extra={
                    "stage": "poll",
                    "job_id": handle.job_id,
                    "extra_fields": {"payload": strip_subaction_commands(payload)},
                },
            )

        build = payload.get("build")
        if not isinstance(build, Mapping) or not isinstance(build.get("status"), str):
            raise PollError(f"{self.name}: response did not include build.status", handle=handle)

        raw_status = build["status"]
        status = map_codemagic_status(raw_status)
        if status is not JobStatus.FINISHED:
            return StatusReport(status=status, remote_status=raw_status)

        success = _coerce_success(payload.get("success"))
        if success is None:
            success = _coerce_success(build.get("success"))
        # A missing flag stays None; only an explicit true counts as success.
        url = payload.get("buildUrl") or build.get("buildUrl")
        if not isinstance(url, str) or not url:
            url = self.build_url(handle.job_id)
        return StatusReport(status=status, success=success, url=url, remote_status=raw_status)

    def build_url(self, build_id: str) -> str:
        return f"{self.settings.web_url.rstrip('/')}/app/{self.settings.app_id}/build/{build_id}"


__all__ = ["CodemagicBackend", "map_codemagic_status", "strip_subaction_commands"]
