"""Testing utilities for exercising the job watcher without a remote service.

Provides a scripted in-memory backend, a manual clock, and a helper that
installs an HTTPX client backed by ``httpx.MockTransport`` as the shared
client.
"""

from __future__ import annotations

import contextlib
import itertools
from collections import deque
from typing import Callable, Deque, Iterable, Iterator, List, Optional, Union

import httpx

from ..cancellation import CancellationToken
from ..errors import JobWatchError
from ..models import JobHandle, JobRequest, JobStatus, StatusReport
from ..network import configure_http_client, reset_http_client

__all__ = [
    "ManualClock",
    "ScriptedBackend",
    "use_mock_http_client",
]

PollStep = Union[StatusReport, JobStatus, JobWatchError]


@contextlib.contextmanager
def use_mock_http_client(
    handler: Union[httpx.BaseTransport, Callable[[httpx.Request], httpx.Response]],
    **client_kwargs,
) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client answering through ``handler``."""

    transport = handler if isinstance(handler, httpx.BaseTransport) else httpx.MockTransport(handler)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client)
    try:
        yield client
    finally:
        reset_http_client()


class ManualClock:
    """Monotonic clock advanced only by :meth:`sleep`.

    Pass ``clock`` and ``sleep`` to :class:`RemoteJobWatcher` to run a watch
    without real waiting. ``on_sleep`` hooks let a test act between polls, for
    example cancelling a token.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []
        self.on_sleep: List[Callable[[float], None]] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        for hook in self.on_sleep:
            hook(seconds)

    def cancel_after(self, token: CancellationToken, sleeps: int) -> None:
        """Cancel ``token`` during the ``sleeps``-th pause."""

        counter = itertools.count(1)

        def _hook(_: float) -> None:
            if next(counter) == sleeps:
                token.cancel()

        self.on_sleep.append(_hook)


class ScriptedBackend:
    """In-memory backend replaying a script of poll outcomes.

    Each script step is a :class:`StatusReport`, a bare :class:`JobStatus`,
    or an exception instance to raise. Once the script runs out the last step
    repeats.
    """

    name = "scripted"

    def __init__(
        self,
        steps: Iterable[PollStep] = (),
        *,
        trigger_error: Optional[JobWatchError] = None,
        job_id: str = "job-1",
    ) -> None:
        self._steps: Deque[PollStep] = deque(steps)
        self._last: Optional[PollStep] = None
        self.trigger_error = trigger_error
        self.job_id = job_id
        self.triggered: List[JobRequest] = []
        self.polls: List[JobHandle] = []

    def trigger(self, request: JobRequest) -> JobHandle:
        if self.trigger_error is not None:
            raise self.trigger_error
        self.triggered.append(request)
        return JobHandle(
            job_id=f"{self.job_id}-{len(self.triggered)}" if len(self.triggered) > 1 else self.job_id,
            service=self.name,
            request=request,
        )

    def poll(self, handle: JobHandle) -> StatusReport:
        self.polls.append(handle)
        step = self._steps.popleft() if self._steps else self._last
        if step is None:
            raise AssertionError("ScriptedBackend has no poll steps")
        self._last = step
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, JobStatus):
            return StatusReport(status=step, remote_status=step.value)
        return step

    @property
    def poll_count(self) -> int:
        return len(self.polls)
