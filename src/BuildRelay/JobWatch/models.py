"""Value objects exchanged between the backends, the watcher, and notifiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

__all__ = [
    "JobStatus",
    "JobRequest",
    "JobHandle",
    "StatusReport",
    "JobResult",
]


class JobStatus(str, Enum):
    """Normalised lifecycle states reported by every backend."""

    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({JobStatus.FINISHED, JobStatus.FAILED, JobStatus.ERROR})


@dataclass(frozen=True)
class JobRequest:
    """Description of the remote job to submit.

    Attributes:
        job_type: Opaque job-type identifier (a Codemagic workflow id or a
            GitHub workflow file stem).
        ref: Branch or ref the job builds.
        target: Optional target-environment identifier.
        parameters: Extra string inputs forwarded to the remote service.
    """

    job_type: str
    ref: str
    target: Optional[str] = None
    parameters: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.job_type:
            raise ValueError("job_type must be a non-empty string")
        if not self.ref:
            raise ValueError("ref must be a non-empty string")
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_type": self.job_type,
            "ref": self.ref,
            "target": self.target,
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True)
class JobHandle:
    """Identifier returned by a successful trigger call."""

    job_id: str
    service: str
    request: Optional[JobRequest] = field(default=None, compare=False)

    def __str__(self) -> str:
        return f"{self.service}:{self.job_id}"


@dataclass(frozen=True)
class StatusReport:
    """Everything a single status query observed."""

    status: JobStatus
    success: Optional[bool] = None
    url: Optional[str] = None
    remote_status: Optional[str] = None


@dataclass(frozen=True)
class JobResult:
    """Terminal outcome of a watch.

    ``success`` and ``url`` are only populated when ``status`` is
    :attr:`JobStatus.FINISHED`.
    """

    status: JobStatus
    success: Optional[bool] = None
    url: Optional[str] = None
    handle: Optional[JobHandle] = field(default=None, compare=False)
    polls: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        if not self.status.is_terminal:
            raise ValueError(f"JobResult requires a terminal status, got {self.status.value!r}")
        if self.status is not JobStatus.FINISHED and (
            self.success is not None or self.url is not None
        ):
            raise ValueError("success and url are only meaningful for finished jobs")

    @classmethod
    def from_report(
        cls, report: StatusReport, *, handle: Optional[JobHandle] = None, polls: int = 0
    ) -> "JobResult":
        if report.status is JobStatus.FINISHED:
            return cls(
                status=report.status,
                success=report.success,
                url=report.url,
                handle=handle,
                polls=polls,
            )
        return cls(status=report.status, handle=handle, polls=polls)

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.FINISHED and bool(self.success)
