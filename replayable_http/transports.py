"""httpx transports that retry, honour Retry-After hints and throttle sends.

Each transport wraps another ``httpx.BaseTransport`` and can be stacked or
mounted on an ``httpx.Client``:

    transport = RetryBackoffTransport(
        ThrottledTransport(limiter=ConstantLimiter(0.1)),
        attempts=5,
        backoff=ExponentialRandomBackoff(0.1, 5),
    )
    with httpx.Client(transport=transport) as client:
        client.send(build_request("POST", "https://example.com/orders", b"{}"))

The cancellation token and try count travel in ``request.extensions``
(see ``replayable_http.context``).
"""

from __future__ import annotations

import re
import threading
from typing import Iterable, Optional

import httpx
import structlog

from replayable_http.backoff import NO_BACKOFF, Backoff
from replayable_http.body import assert_replayable, close_body, replay_body
from replayable_http.context import cancellation_of, try_count, with_try_count
from replayable_http.limiters import Limiter
from replayable_http.retry import DEFAULT_ATTEMPTS
from replayable_http.testers import ResponseTester, default_response_tester

logger = structlog.get_logger(__name__)

RETRY_AFTER_HEADER = "Retry-After"
DEFAULT_RETRY_AFTER_STATUS_CODES = frozenset({429})

_DELAY_SECONDS = re.compile(r"[0-9]+")


class WrappingTransport(httpx.BaseTransport):
    """Base for transports that delegate sends to an inner transport they own."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._transport = transport if transport is not None else httpx.HTTPTransport()

    @property
    def transport(self) -> httpx.BaseTransport:
        return self._transport

    def close(self) -> None:
        self._transport.close()


class RetryBackoffTransport(WrappingTransport):
    """Retry a request with backoff, replaying its body between attempts.

    Each outcome is classified by ``response_tester``: success returns the
    response, an error is raised immediately, anything else is retried after
    ``backoff(try)`` seconds. After ``attempts`` retries the last response is
    returned (or the last transport error raised) without classification.
    The request body is closed when the call returns; the try count starts
    at 0 on every call.

    Args:
        transport: Transport performing each attempt. Defaults to ``httpx.HTTPTransport()``.
        attempts: Retries in addition to the first attempt. 0 sends once.
        backoff: Seconds to wait before retry ``n`` (1-based). Defaults to no wait.
        response_tester: Outcome classifier. Defaults to ``default_response_tester``.
    """

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        *,
        attempts: int = DEFAULT_ATTEMPTS,
        backoff: Optional[Backoff] = None,
        response_tester: Optional[ResponseTester] = None,
    ) -> None:
        super().__init__(transport)
        if attempts < 0:
            raise ValueError("attempts must be non-negative")
        self.attempts = attempts
        self.backoff = backoff or NO_BACKOFF
        self.response_tester = response_tester or default_response_tester

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        assert_replayable(request)
        try:
            return self._attempt(request)
        finally:
            close_body(request)

    def _attempt(self, request: httpx.Request) -> httpx.Response:
        token = cancellation_of(request)
        response: Optional[httpx.Response] = None
        error: Optional[httpx.TransportError] = None
        with_try_count(request, 0)

        for i in range(self.attempts + 1):
            response, error = self._send(request)
            outcome = self.response_tester(response, error)
            if outcome.success:
                return response
            if outcome.error is not None:
                raise outcome.error
            if i == self.attempts:
                break

            if response is not None:
                response.close()
            delay = self.backoff(i + 1)
            logger.debug(
                "transport.retry",
                method=request.method,
                url=str(request.url),
                try_count=i,
                status_code=response.status_code if response is not None else None,
                error=repr(error) if error is not None else None,
                delay=delay,
            )
            if token.wait(delay):
                raise token.error
            replay_body(request)
            with_try_count(request, i + 1)

        logger.warning(
            "transport.retries_exhausted",
            method=request.method,
            url=str(request.url),
            attempts=self.attempts + 1,
        )
        if error is not None:
            raise error
        assert response is not None
        return response

    def _send(
        self, request: httpx.Request
    ) -> tuple[Optional[httpx.Response], Optional[httpx.TransportError]]:
        try:
            return self._transport.handle_request(request), None
        except httpx.TransportError as e:
            return None, e


class RetryAfterTransport(WrappingTransport):
    """Resend a request for as long as the server answers with a Retry-After hint.

    Only responses whose status code is in ``status_codes`` are considered.
    The hint must be a whole number of seconds; a missing or malformed hint
    makes the response final. There is no attempt limit.

    The same request object is resent without replaying its body. The body
    is closed once the final response is returned.

    Args:
        transport: Transport performing each send. Defaults to ``httpx.HTTPTransport()``.
        status_codes: Status codes that carry a hint. Defaults to ``{429}``.
        header_name: Header holding the delay in seconds. Defaults to ``Retry-After``.
    """

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        *,
        status_codes: Optional[Iterable[int]] = None,
        header_name: str = RETRY_AFTER_HEADER,
    ) -> None:
        super().__init__(transport)
        codes = frozenset(status_codes or ())
        self.status_codes = codes or DEFAULT_RETRY_AFTER_STATUS_CODES
        self.header_name = header_name or RETRY_AFTER_HEADER

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        assert_replayable(request)
        try:
            return self._resend(request)
        finally:
            close_body(request)

    def _resend(self, request: httpx.Request) -> httpx.Response:
        token = cancellation_of(request)
        while True:
            response = self._transport.handle_request(request)
            if response.status_code not in self.status_codes:
                return response
            value = response.headers.get(self.header_name)
            if value is None:
                return response
            delay = parse_delay(value)
            if delay is None:
                return response

            response.close()
            logger.debug(
                "transport.retry_after",
                method=request.method,
                url=str(request.url),
                status_code=response.status_code,
                delay=delay,
            )
            if token.wait(delay):
                raise token.error


def parse_delay(value: str) -> Optional[float]:
    """Parse a delay-seconds header value.

    Returns None unless the value is a non-negative integer no larger than
    the longest wait ``threading`` supports.
    """
    if not _DELAY_SECONDS.fullmatch(value):
        return None
    seconds = int(value)
    if seconds > threading.TIMEOUT_MAX:
        return None
    return float(seconds)


class ThrottledTransport(WrappingTransport):
    """Wait ``limiter.delay()`` seconds before every send.

    If the request's cancellation token fires during the wait, its error is
    raised and nothing is sent.
    """

    def __init__(
        self, transport: Optional[httpx.BaseTransport] = None, *, limiter: Limiter
    ) -> None:
        super().__init__(transport)
        self.limiter = limiter

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        token = cancellation_of(request)
        delay = self.limiter.delay()
        if token.wait(delay):
            logger.debug(
                "transport.throttle_cancelled",
                method=request.method,
                url=str(request.url),
                try_count=try_count(request),
            )
            raise token.error
        return self._transport.handle_request(request)
