"""Cooperative cancellation primitives shared by concurrent watches.

Each watch owns a :class:`CancellationToken` and checks it between status
queries. The inter-poll pause waits on the token itself, so a cancel request
wakes the sleeping watch immediately instead of after a full poll interval.
:class:`CancellationTokenGroup` broadcasts cancellation across a batch of
watches (for example, every job started by a single CLI invocation).
"""

from __future__ import annotations

import threading
from typing import Optional


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.wait(60)
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block for up to ``timeout`` seconds or until cancelled.

        Returns:
            True if cancellation was requested before the timeout elapsed.
        """
        if timeout is not None and timeout <= 0:
            return self._is_cancelled.is_set()
        return self._is_cancelled.wait(timeout)

    def reset(self) -> None:
        """Reset the token to its initial state.

        This should only be used for testing or when reusing tokens
        in controlled scenarios.
        """
        with self._lock:
            self._is_cancelled.clear()


class CancellationTokenGroup:
    """A group of cancellation tokens that can be cancelled together."""

    def __init__(self) -> None:
        self._tokens: list[CancellationToken] = []
        self._lock = threading.Lock()
        self._cancelled = False

    def add_token(self, token: CancellationToken) -> None:
        """Add ``token`` to the group, cancelling it if the group already was."""
        with self._lock:
            self._tokens.append(token)
            if self._cancelled:
                token.cancel()

    def create_token(self) -> CancellationToken:
        token = CancellationToken()
        self.add_token(token)
        return token

    def remove_token(self, token: CancellationToken) -> None:
        """Remove ``token`` from this group if it is present."""
        with self._lock:
            if token in self._tokens:
                self._tokens.remove(token)

    def cancel_all(self) -> None:
        with self._lock:
            self._cancelled = True
            for token in self._tokens:
                token.cancel()

    def is_any_cancelled(self) -> bool:
        with self._lock:
            return any(token.is_cancelled() for token in self._tokens)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


__all__ = ["CancellationToken", "CancellationTokenGroup"]
