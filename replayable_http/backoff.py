"""Backoff strategies: attempt number in, seconds to wait out."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    """Wait the same ``delay`` seconds before every retry."""

    delay: float

    def __call__(self, attempt: int) -> float:
        return self.delay


@dataclass(frozen=True, slots=True)
class ExponentialRandomBackoff:
    """Exponential backoff with full jitter.

    For attempt ``n >= 1`` the wait is ``unit * r`` where ``r`` is a uniform
    random integer in ``[0, 2**min(n, max_exponent))``. The longest possible
    wait is therefore bounded by ``unit * 2**max_exponent`` however many
    attempts are made. Attempt 0 waits nothing.

    Attributes:
        unit: Wait per jitter slot in seconds
        max_exponent: Exponent at which the slot count stops growing
    """

    unit: float
    max_exponent: int

    def __post_init__(self) -> None:
        if self.max_exponent < 0:
            raise ValueError("max_exponent must be non-negative")

    def __call__(self, attempt: int) -> float:
        if attempt == 0:
            return 0.0
        exponent = min(attempt, self.max_exponent)
        return self.unit * random.randrange(1 << exponent)


NO_BACKOFF = ConstantBackoff(0.0)

Backoff = Callable[[int], float]
