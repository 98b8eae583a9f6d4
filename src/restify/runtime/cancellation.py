"""Cooperative cancellation for in-flight calls.

A :class:`CancellationToken` is handed to :meth:`ApiCaller.call` and checked
at call start, before every transport attempt and before every backoff sleep.
Sleeping through the token lets a cancel from another thread wake the waiting
call immediately instead of after the full delay.
"""

from __future__ import annotations

import threading
from concurrent.futures import CancelledError


class CallCancelledError(CancelledError):
    """Raised when a call observes cancellation.

    Not a :class:`~restify.runtime.errors.RestifyError`: the caller never
    wraps it and retry policies never retry it.
    """


class CancellationToken:
    """Thread-safe cancellation token.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`CallCancelledError` when cancellation was requested."""
        if self._event.is_set():
            raise CallCancelledError("call was cancelled")

    def sleep(self, seconds: float) -> None:
        """Block for ``seconds`` unless cancelled first.

        Raises:
            CallCancelledError: if the token is cancelled before or while
                waiting.
        """
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        if self._event.wait(seconds):
            raise CallCancelledError("call was cancelled during backoff")
