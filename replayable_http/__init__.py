"""replayable-http -- retry, replay and throttling for httpx requests."""

from replayable_http.auth import (
    AuthorizedTransport,
    basic_authorizer,
    bearer_authorizer,
    header_authorizer,
)
from replayable_http.backoff import NO_BACKOFF, ConstantBackoff, ExponentialRandomBackoff
from replayable_http.body import (
    BodyKind,
    ReplayableBody,
    assert_replayable,
    build_request,
    close_body,
    is_replayable,
    replay_body,
)
from replayable_http.cancel import CancellationToken
from replayable_http.context import try_count, with_cancellation
from replayable_http.errors import (
    BodyBuildError,
    Cancelled,
    DeadlineExceeded,
    HTTPResponseError,
    NotReplayableError,
    ReplayableHTTPError,
    UnreplayableRequestError,
)
from replayable_http.limiters import ConstantLimiter, Limiter, TokenBucketLimiter
from replayable_http.logging_transport import LoggingTransport
from replayable_http.retry import DEFAULT_RETRY_CONFIG, RetryConfig, do, retrying
from replayable_http.testers import (
    ResponseOutcome,
    default_response_tester,
    with_status_code_overrides,
)
from replayable_http.transports import (
    RetryAfterTransport,
    RetryBackoffTransport,
    ThrottledTransport,
)

__version__ = "0.1.0"

__all__ = [
    "AuthorizedTransport",
    "BodyBuildError",
    "BodyKind",
    "CancellationToken",
    "Cancelled",
    "ConstantBackoff",
    "ConstantLimiter",
    "DEFAULT_RETRY_CONFIG",
    "DeadlineExceeded",
    "ExponentialRandomBackoff",
    "HTTPResponseError",
    "Limiter",
    "LoggingTransport",
    "NO_BACKOFF",
    "NotReplayableError",
    "ReplayableBody",
    "ReplayableHTTPError",
    "ResponseOutcome",
    "RetryAfterTransport",
    "RetryBackoffTransport",
    "RetryConfig",
    "ThrottledTransport",
    "TokenBucketLimiter",
    "UnreplayableRequestError",
    "assert_replayable",
    "basic_authorizer",
    "bearer_authorizer",
    "build_request",
    "close_body",
    "default_response_tester",
    "do",
    "header_authorizer",
    "is_replayable",
    "replay_body",
    "retrying",
    "try_count",
    "with_cancellation",
    "with_status_code_overrides",
]
