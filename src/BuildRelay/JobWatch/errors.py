# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.errors",
#   "purpose": "Define the exception hierarchy raised while triggering and watching remote jobs",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "trigger", "name": "Trigger & Poll Errors", "anchor": "TRG", "kind": "api"},
#     {"id": "watch", "name": "Watch Failures", "anchor": "WAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
"""Exception hierarchy shared by the job backends, the watcher, and the CLI.

A watch touches three failure surfaces: submitting the job, querying its
status, and the bounded loop that waits for a terminal state. The classes below
keep those categories apart so callers can tell a rejected submission from a
transient status query failure, and a vanished job from a watch that simply ran
out of time. Every error carries the handle and the last status observed so an
operator can follow up on the remote service by hand.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .models import JobHandle, JobStatus

__all__ = [
    "JobWatchError",
    "ConfigurationError",
    "TriggerError",
    "PollError",
    "NotFound",
    "WatchError",
    "WatchTimeout",
    "WatchCancelled",
]


class JobWatchError(RuntimeError):
    """Base exception for remote job trigger and watch failures."""

    def __init__(
        self,
        message: str,
        *,
        handle: Optional["JobHandle"] = None,
        last_status: Optional["JobStatus"] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.handle = handle
        self.last_status = last_status
        self.status_code = status_code

    def context(self) -> dict[str, object]:
        """Return the follow-up context attached to this error."""

        return {
            "job_id": self.handle.job_id if self.handle is not None else None,
            "service": self.handle.service if self.handle is not None else None,
            "last_status": self.last_status.value if self.last_status is not None else None,
            "status_code": self.status_code,
        }


class ConfigurationError(JobWatchError):
    """Raised when settings or CLI inputs cannot describe a usable backend."""


class TriggerError(JobWatchError):
    """Raised when the remote service rejects or never acknowledges a job submission."""


class PollError(JobWatchError):
    """Raised when a status query fails transiently (network, throttling, bad payload)."""

    retryable = True


class NotFound(JobWatchError):
    """Raised when the remote service reports the job handle as unknown."""

    retryable = False


class WatchError(JobWatchError):
    """Raised when a watch ends without observing a terminal status."""

    reason = "retries_exhausted"


class WatchTimeout(WatchError):
    """Raised when the watch deadline passes before a terminal status."""

    reason = "timeout"


class WatchCancelled(WatchError):
    """Raised when a watch is cancelled externally."""

    reason = "cancelled"
