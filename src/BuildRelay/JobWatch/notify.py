"""Hand terminal outcomes to downstream collaborators.

The watcher does not format or deliver messages. It builds an :class:`Outcome`
and passes it to every configured :class:`Notifier`; chat integrations and
dashboards read that payload. Two notifiers ship with the package: one appends
step outputs for GitHub Actions, the other writes a JSON report.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from .errors import JobWatchError
from .models import JobHandle, JobRequest, JobResult

logger = logging.getLogger(__name__)

GITHUB_OUTPUT_ENV = "GITHUB_OUTPUT"


@dataclass(frozen=True)
class Outcome:
    """Terminal state of one trigger-and-watch run."""

    request: Optional[JobRequest]
    status: Optional[str]
    success: Optional[bool] = None
    url: Optional[str] = None
    job_id: Optional[str] = None
    service: Optional[str] = None
    error: Optional[str] = None
    error_reason: Optional[str] = None

    @classmethod
    def from_result(cls, request: Optional[JobRequest], result: JobResult) -> "Outcome":
        handle = result.handle
        return cls(
            request=request,
            status=result.status.value,
            success=result.success,
            url=result.url,
            job_id=handle.job_id if handle else None,
            service=handle.service if handle else None,
        )

    @classmethod
    def from_error(
        cls, request: Optional[JobRequest], handle: Optional[JobHandle], exc: JobWatchError
    ) -> "Outcome":
        handle = handle or exc.handle
        return cls(
            request=request,
            status=exc.last_status.value if exc.last_status is not None else None,
            job_id=handle.job_id if handle else None,
            service=handle.service if handle else None,
            error=str(exc),
            error_reason=getattr(exc, "reason", type(exc).__name__),
        )

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.status == "finished" and bool(self.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "success": self.success,
            "url": self.url,
            "job_id": self.job_id,
            "service": self.service,
            "error": self.error,
            "error_reason": self.error_reason,
            "request": self.request.to_dict() if self.request is not None else None,
        }


class Notifier(Protocol):
    def notify(self, outcome: Outcome) -> None:
        ...


class GitHubOutputNotifier:
    """Append ``key=value`` step outputs to the file named by ``$GITHUB_OUTPUT``.

    Writes ``build_id``, ``status``, ``success`` and ``build_url``; the last
    two only for finished jobs. Does nothing outside GitHub Actions.
    """

    def __init__(self, path: Union[str, Path, None] = None) -> None:
        self._path = path

    @property
    def path(self) -> Optional[Path]:
        raw = self._path if self._path is not None else os.environ.get(GITHUB_OUTPUT_ENV)
        return Path(raw) if raw else None

    def notify(self, outcome: Outcome) -> None:
        path = self.path
        if path is None:
            logger.debug("GITHUB_OUTPUT not set; skipping step outputs")
            return

        lines = []
        if outcome.job_id:
            lines.append(f"build_id={outcome.job_id}")
        lines.append(f"status={outcome.status or 'error'}")
        if outcome.status == "finished":
            lines.append(f"success={'true' if outcome.success else 'false'}")
            lines.append(f"build_url={outcome.url or ''}")
        with path.open("a", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")


class JsonReportNotifier:
    """Write the outcome as a JSON document."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def notify(self, outcome: Outcome) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(outcome.to_dict(), indent=2) + "\n", encoding="utf-8")


__all__ = [
    "GITHUB_OUTPUT_ENV",
    "Outcome",
    "Notifier",
    "GitHubOutputNotifier",
    "JsonReportNotifier",
]
