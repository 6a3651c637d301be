"""Limiters decide how long a ``ThrottledTransport`` waits before each send.

``delay()`` is called exactly once per send, right before it. Limiters may
keep state; the ones here are safe to share between threads.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@runtime_checkable
class Limiter(Protocol):
    def delay(self) -> float:
        """Seconds to wait before the next send."""
        ...


@dataclass(frozen=True)
class ConstantLimiter:
    """Wait ``interval`` seconds before every send."""

    interval: float

    def delay(self) -> float:
        return self.interval


@dataclass
class TokenBucketLimiter:
    """Token bucket: steady ``rate`` sends per second with bursts up to ``capacity``.

    Each ``delay()`` call reserves one token. When the bucket is empty the
    token is borrowed from the future and the returned delay is the time
    until it will have been refilled.

    Attributes:
        rate: Tokens added per second
        capacity: Maximum tokens (burst size)
    """

    rate: float
    capacity: float

    _tokens: float = field(default=0.0, init=False)
    _last_update: float = field(default=0.0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._tokens = self.capacity
        self._last_update = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_update
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last_update = now

    def delay(self) -> float:
        with self._lock:
            self._refill()
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate
