# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch",
#   "purpose": "Package initialization for BuildRelay.JobWatch",
#   "sections": []
# }
# === /NAVMAP ===

"""Public API for triggering remote build jobs and watching them to completion.

The facade re-exports the watcher, the value objects it exchanges, the error
hierarchy, and the backend factory so callers rarely need the submodules:

    >>> from BuildRelay.JobWatch import JobRequest, RemoteJobWatcher, build_backend, get_settings
    >>> watcher = RemoteJobWatcher(build_backend("codemagic", get_settings()))
    >>> result = watcher.run(JobRequest(job_type="ios-workflow", ref="main"))
"""

from __future__ import annotations

__version__ = "0.1.0"

from .backends import Service, build_backend
from .cancellation import CancellationToken, CancellationTokenGroup
from .errors import (
    ConfigurationError,
    JobWatchError,
    NotFound,
    PollError,
    TriggerError,
    WatchCancelled,
    WatchError,
    WatchTimeout,
)
from .models import JobHandle, JobRequest, JobResult, JobStatus, StatusReport
from .notify import GitHubOutputNotifier, JsonReportNotifier, Notifier, Outcome
from .settings import JobWatchSettings, get_settings, load_settings
from .watcher import RemoteJobWatcher

__all__ = [
    "__version__",
    "RemoteJobWatcher",
    "Service",
    "build_backend",
    "CancellationToken",
    "CancellationTokenGroup",
    "JobRequest",
    "JobHandle",
    "JobStatus",
    "JobResult",
    "StatusReport",
    "Outcome",
    "Notifier",
    "GitHubOutputNotifier",
    "JsonReportNotifier",
    "JobWatchSettings",
    "get_settings",
    "load_settings",
    "JobWatchError",
    "ConfigurationError",
    "TriggerError",
    "PollError",
    "NotFound",
    "WatchError",
    "WatchTimeout",
    "WatchCancelled",
]
