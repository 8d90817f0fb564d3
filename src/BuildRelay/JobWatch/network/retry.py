"""Tenacity policies for the bounded lookups performed after a trigger.

The watch loop owns retry semantics for status queries (a fixed interval and a
consecutive-failure budget). Tenacity is used for the one place that needs a
short, bounded retry: finding the workflow run created by a GitHub
``workflow_dispatch``, which the API acknowledges before the run is listed.

Example:
    >>> policy = create_lookup_retry_policy(attempts=5, delay=2.0)
    >>> run_id = policy(find_run)  # None if no run appeared in time
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)


def create_lookup_retry_policy(
    attempts: int,
    delay: float,
    *,
    sleep: Optional[Callable[[float], None]] = None,
) -> Retrying:
    """Retry a lookup while it returns ``None``.

    Args:
        attempts: Total number of lookup calls.
        delay: Fixed wait between calls (seconds).
        sleep: Optional sleep override (tests pass a no-op).

    Returns:
        Retrying object; calling it returns the first non-``None`` result, or
        ``None`` once ``attempts`` calls came back empty. Exceptions raised by
        the lookup propagate unchanged.
    """
    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda value: value is None),
        retry_error_callback=lambda retry_state: None,
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
        **kwargs,
    )


__all__ = ["create_lookup_retry_policy"]
