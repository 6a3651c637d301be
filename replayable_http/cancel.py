"""Cooperative cancellation for retry loops and their waits."""

from __future__ import annotations

import threading
import time
from typing import Optional

from replayable_http.errors import Cancelled, DeadlineExceeded


class CancellationToken:
    """A one-way signal that interrupts waits and stops attempt loops.

    A token is done once ``cancel()`` has been called or its deadline (a
    ``time.monotonic()`` value) has passed. Once done it stays done and
    ``error`` holds the terminal error. Tokens are safe to share between
    threads.

    Usage:
        token = CancellationToken.with_timeout(5.0)
        do(fetch, cancellation=token)
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        self._deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        return cls(deadline=time.monotonic() + seconds)

    @classmethod
    def with_deadline(cls, deadline: float) -> "CancellationToken":
        return cls(deadline=deadline)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self, error: Optional[BaseException] = None) -> None:
        """Mark the token done. Only the first call sets the error."""
        self._finish(error if error is not None else Cancelled())

    @property
    def done(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._finish(DeadlineExceeded())
            return True
        return False

    @property
    def error(self) -> Optional[BaseException]:
        """The terminal error, or None while the token is not done."""
        if not self.done:
            return None
        return self._error

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block for up to ``timeout`` seconds or until the token is done.

        Returns True if the token is done, False if the timeout elapsed
        first. ``None`` waits until the token is done. Timeouts longer than
        ``threading.TIMEOUT_MAX`` are waited in ``TIMEOUT_MAX`` slices.
        """
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if timeout is None or remaining <= timeout:
                # The deadline comes first, so this wait always ends done.
                while not self.done:
                    self._event.wait(_clamp(self._deadline - time.monotonic()))
                return True
        if timeout is None:
            self._event.wait()
            return self.done
        end = time.monotonic() + max(timeout, 0.0)
        while not self._event.wait(_clamp(end - time.monotonic())):
            if time.monotonic() >= end:
                break
        return self.done

    def _finish(self, error: BaseException) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._error = error
            self._event.set()

    def __repr__(self) -> str:
        return f"CancellationToken(done={self.done}, deadline={self._deadline!r})"


def _clamp(seconds: float) -> float:
    return min(max(seconds, 0.0), threading.TIMEOUT_MAX)
