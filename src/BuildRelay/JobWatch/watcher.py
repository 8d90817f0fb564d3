# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.watcher",
#   "purpose": "Trigger remote jobs and watch them until a terminal status",
#   "sections": [
#     {"id": "remotejobwatcher", "name": "RemoteJobWatcher", "anchor": "class-remotejobwatcher", "kind": "class"},
#     {"id": "watch", "name": "RemoteJobWatcher.watch", "anchor": "method-watch", "kind": "function"},
#     {"id": "run", "name": "RemoteJobWatcher.run", "anchor": "method-run", "kind": "function"},
#     {"id": "watch-many", "name": "RemoteJobWatcher.watch_many", "anchor": "method-watch-many", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Trigger remote jobs and watch them until a terminal status.

:class:`RemoteJobWatcher` wraps a :class:`~BuildRelay.JobWatch.backends.JobBackend`
with the watch policy:

- status queries are issued at a fixed interval, and the pause between them
  waits on the cancellation token so a cancel wakes the watch immediately;
- up to ``retry_budget`` consecutive transient ``PollError`` failures are
  absorbed, the next one ends the watch with :class:`WatchError`;
- ``NotFound`` ends the watch at once;
- the deadline is checked before every query, so a watch never outlives its
  timeout by more than one in-flight request.

Example:
    >>> watcher = RemoteJobWatcher(backend)
    >>> handle = watcher.trigger(JobRequest(job_type="ios-workflow", ref="main"))
    >>> result = watcher.watch(handle, interval=60, timeout=3600)
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from .backends import JobBackend
from .cancellation import CancellationToken, CancellationTokenGroup
from .errors import (
    JobWatchError,
    NotFound,
    PollError,
    TriggerError,
    WatchCancelled,
    WatchError,
    WatchTimeout,
)
from .models import JobHandle, JobRequest, JobResult, JobStatus, StatusReport
from .notify import Notifier, Outcome
from .settings import WatchSettings

logger = logging.getLogger(__name__)


class RemoteJobWatcher:
    """Trigger a job on a remote service and follow it to completion.

    Args:
        backend: Service adapter used for trigger and status calls.
        settings: Default interval, timeout and retry budget.
        notifiers: Receivers of the :class:`Outcome` produced by :meth:`run`.
        clock: Monotonic clock in seconds.
        sleep: Optional pause override. When given it is called instead of
            waiting on the cancellation token; the token is checked right after.
    """

    def __init__(
        self,
        backend: JobBackend,
        settings: Optional[WatchSettings] = None,
        *,
        notifiers: Sequence[Notifier] = (),
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or WatchSettings()
        self.notifiers: List[Notifier] = list(notifiers)
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Single calls
    # ------------------------------------------------------------------

    def trigger(self, request: JobRequest) -> JobHandle:
        """Submit ``request``; never retried because every call creates a job."""

        logger.info(
            "Triggering %s job %s on %s",
            self.backend.name,
            request.job_type,
            request.ref,
            extra={"stage": "trigger", "extra_fields": {"request": request.to_dict()}},
        )
        handle = self.backend.trigger(request)
        if not isinstance(handle, JobHandle) or not handle.job_id:
            raise TriggerError(f"{self.backend.name}: trigger returned no job handle")
        logger.info(
            "Triggered %s job %s",
            self.backend.name,
            handle.job_id,
            extra={"stage": "trigger", "job_id": handle.job_id},
        )
        return handle

    def poll(self, handle: JobHandle) -> JobStatus:
        return self.poll_report(handle).status

    def poll_report(self, handle: JobHandle) -> StatusReport:
        return self.backend.poll(handle)

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    def watch(
        self,
        handle: JobHandle,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
        retry_budget: Optional[int] = None,
    ) -> JobResult:
        """Poll ``handle`` until it reaches a terminal status.

        Raises:
            NotFound: The remote service does not know the job.
            WatchTimeout: ``timeout`` elapsed first; the job is left unresolved.
            WatchCancelled: ``cancel_token`` was cancelled.
            WatchError: More than ``retry_budget`` consecutive polls failed.
        """
        interval = self.settings.interval if interval is None else interval
        timeout = self.settings.timeout if timeout is None else timeout
        budget = self.settings.retry_budget if retry_budget is None else retry_budget
        if interval <= 0:
            raise ValueError("interval must be positive")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if budget < 0:
            raise ValueError("retry_budget must be >= 0")

        token = cancel_token or CancellationToken()
        deadline = self._clock() + timeout
        polls = 0
        failures = 0
        last_status: Optional[JobStatus] = None
        log_extra = {"stage": "watch", "job_id": handle.job_id}

        while True:
            if token.is_cancelled():
                raise WatchCancelled(
                    f"Watch of {handle} cancelled after {polls} polls",
                    handle=handle,
                    last_status=last_status,
                )
            if self._clock() >= deadline:
                raise WatchTimeout(
                    f"Watch of {handle} timed out after {timeout:g}s; job left unresolved",
                    handle=handle,
                    last_status=last_status,
                )

            polls += 1
            try:
                report = self.backend.poll(handle)
            except NotFound as exc:
                exc.handle = exc.handle or handle
                exc.last_status = last_status
                logger.error("Job %s not found; aborting watch", handle, extra=log_extra)
                raise
            except PollError as exc:
                failures += 1
                if failures > budget:
                    raise WatchError(
                        f"Watch of {handle} gave up after {failures} consecutive poll "
                        f"failures: {exc}",
                        handle=handle,
                        last_status=last_status,
                        status_code=exc.status_code,
                    ) from exc
                logger.warning(
                    "Poll %d of %s failed (%d/%d): %s",
                    polls,
                    handle,
                    failures,
                    budget,
                    exc,
                    extra=log_extra,
                )
            else:
                failures = 0
                if report.status is not last_status:
                    logger.info(
                        "Job %s is %s (remote: %s)",
                        handle,
                        report.status.value,
                        report.remote_status,
                        extra=log_extra,
                    )
                last_status = report.status
                if report.status.is_terminal:
                    return JobResult.from_report(report, handle=handle, polls=polls)

            remaining = deadline - self._clock()
            if remaining > 0:
                self._pause(min(interval, remaining), token)

    def _pause(self, seconds: float, token: CancellationToken) -> bool:
        """Wait ``seconds``; return True if cancellation was requested."""

        if self._sleep is not None:
            self._sleep(seconds)
            return token.is_cancelled()
        return token.wait(seconds)

    # ------------------------------------------------------------------
    # Composite operations
    # ------------------------------------------------------------------

    def run(
        self,
        request: JobRequest,
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
        retry_budget: Optional[int] = None,
    ) -> JobResult:
        """Trigger ``request``, watch it, and hand the outcome to the notifiers.

        Errors propagate after the notifiers received an outcome describing them.
        """
        handle: Optional[JobHandle] = None
        try:
            handle = self.trigger(request)
            result = self.watch(
                handle,
                interval,
                timeout,
                cancel_token=cancel_token,
                retry_budget=retry_budget,
            )
        except JobWatchError as exc:
            self._notify(Outcome.from_error(request, handle, exc), primary_error=True)
            raise
        self._notify(Outcome.from_result(request, result))
        return result

    def resume(
        self,
        handle: JobHandle,
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
        retry_budget: Optional[int] = None,
    ) -> JobResult:
        """Watch an existing job and notify, as :meth:`run` does after triggering."""

        request = handle.request
        try:
            result = self.watch(
                handle,
                interval,
                timeout,
                cancel_token=cancel_token,
                retry_budget=retry_budget,
            )
        except JobWatchError as exc:
            self._notify(Outcome.from_error(request, handle, exc), primary_error=True)
            raise
        self._notify(Outcome.from_result(request, result))
        return result

    def watch_many(
        self,
        handles: Iterable[JobHandle],
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        retry_budget: Optional[int] = None,
        group: Optional[CancellationTokenGroup] = None,
    ) -> Dict[JobHandle, Union[JobResult, JobWatchError]]:
        """Watch several jobs concurrently, one thread per handle.

        Each watch gets its own token from ``group``; cancelling the group
        cancels every watch. Errors are returned per handle, not raised.
        Handles naming the same job are watched once.
        """
        handles = list(dict.fromkeys(handles))
        if not handles:
            return {}
        group = group or CancellationTokenGroup()

        def _watch_one(handle: JobHandle) -> Union[JobResult, JobWatchError]:
            token = group.create_token()
            try:
                return self.watch(
                    handle,
                    interval,
                    timeout,
                    cancel_token=token,
                    retry_budget=retry_budget,
                )
            except JobWatchError as exc:
                return exc
            finally:
                group.remove_token(token)

        with ThreadPoolExecutor(max_workers=len(handles), thread_name_prefix="jobwatch") as pool:
            outcomes = list(pool.map(_watch_one, handles))
        return dict(zip(handles, outcomes))

    def _notify(self, outcome: Outcome, *, primary_error: bool = False) -> None:
        first_failure: Optional[Exception] = None
        for notifier in self.notifiers:
            try:
                notifier.notify(outcome)
            except Exception as exc:
                logger.exception(
                    "Notifier %s failed", type(notifier).__name__, extra={"stage": "notify"}
                )
                if first_failure is None:
                    first_failure = exc
        if first_failure is not None and not primary_error:
            raise first_failure


__all__ = ["RemoteJobWatcher"]
