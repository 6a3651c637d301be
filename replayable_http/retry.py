"""Generic retry executor with backoff, cancellation and error classification."""

from __future__ import annotations

import functools
from typing import Any, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from replayable_http.backoff import ConstantBackoff
from replayable_http.cancel import CancellationToken

T = TypeVar("T")

logger = structlog.get_logger(__name__)

DEFAULT_ATTEMPTS = 10
DEFAULT_BACKOFF_SECONDS = 0.1


def always_retry(error: Exception) -> bool:
    return True


def _ignore_retry(try_count: int, error: Exception) -> None:
    return None


class RetryConfig(BaseModel):
    """Options for :func:`do`.

    ``attempts`` counts retries in addition to the first try, so
    ``attempts=0`` runs the operation exactly once. A config without a
    ``cancellation`` token is never cancelled.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    attempts: int = Field(default=DEFAULT_ATTEMPTS, ge=0)
    backoff: Callable[[int], float] = ConstantBackoff(DEFAULT_BACKOFF_SECONDS)
    error_classifier: Callable[[Exception], bool] = always_retry
    on_retry: Callable[[int, Exception], None] = _ignore_retry
    cancellation: Optional[CancellationToken] = None

    def merged(self, **overrides: Any) -> "RetryConfig":
        """Return a validated copy with ``overrides`` applied."""
        if not overrides:
            return self
        return RetryConfig(**{**dict(self), **overrides})


DEFAULT_RETRY_CONFIG = RetryConfig()


def do(
    operation: Callable[[], T],
    config: Optional[RetryConfig] = None,
    **overrides: Any,
) -> T:
    """Run ``operation`` until it succeeds, retrying failures with backoff.

    The operation is called up to ``attempts + 1`` times. Before every
    attempt the cancellation token is checked; before every retry
    ``on_retry(tries, last_error)`` is called. A failure for which
    ``error_classifier`` returns False is raised at once.

    Args:
        operation: Zero-argument callable; raising means failure.
        config: Base options, ``DEFAULT_RETRY_CONFIG`` when omitted.
        **overrides: Individual ``RetryConfig`` fields applied on top of ``config``.

    Returns:
        The value returned by the first successful call.

    Raises:
        The last failure once attempts are exhausted, the backoff wait is
        cancelled, or the failure is classified as fatal. If the token is
        already done before the first attempt, the token's error.
    """
    cfg = (config or DEFAULT_RETRY_CONFIG).merged(**overrides)
    token = cfg.cancellation or CancellationToken()
    last_error: Optional[Exception] = None
    tries = 0

    for i in range(cfg.attempts + 1):
        if i > 0:
            cfg.on_retry(tries, last_error)

        if token.done:
            if last_error is None:
                raise token.error
            raise last_error

        try:
            return operation()
        except Exception as e:
            tries += 1
            last_error = e
            if not cfg.error_classifier(e):
                logger.debug("retry.fatal_error", tries=tries, error=repr(e))
                raise

        if i == cfg.attempts:
            break

        delay = cfg.backoff(tries)
        logger.debug("retry.attempt_failed", tries=tries, delay=delay, error=repr(last_error))
        if token.wait(delay):
            raise last_error

    logger.warning("retry.exhausted", tries=tries, error=repr(last_error))
    assert last_error is not None
    raise last_error


def retrying(
    config: Optional[RetryConfig] = None, **overrides: Any
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator factory running every call of the wrapped function through :func:`do`.

    Example:
        >>> @retrying(attempts=3, backoff=ExponentialRandomBackoff(0.1, 5))
        ... def fetch_quote():
        ...     return call_api()
    """
    cfg = (config or DEFAULT_RETRY_CONFIG).merged(**overrides)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return do(functools.partial(func, *args, **kwargs), cfg)

        return wrapper

    return decorator
