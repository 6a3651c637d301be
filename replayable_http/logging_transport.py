"""Request/response logging around another transport."""

from __future__ import annotations

import time
from typing import Callable, Optional

import httpx
import structlog

from replayable_http.context import try_count
from replayable_http.transports import WrappingTransport

logger = structlog.get_logger(__name__)

RequestLogger = Callable[[httpx.Request], None]
ResponseLogger = Callable[[httpx.Response, httpx.Request, float], None]


def log_request(request: httpx.Request) -> None:
    logger.info(
        "http.request",
        method=request.method,
        url=str(request.url),
        try_count=try_count(request),
    )


def log_response(response: httpx.Response, request: httpx.Request, elapsed: float) -> None:
    logger.info(
        "http.response",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        try_count=try_count(request),
        elapsed=round(elapsed, 6),
    )


class LoggingTransport(WrappingTransport):
    """Log each request before it is sent and each response once it arrives.

    ``response_logger`` gets the response, the request and the seconds the
    send took. It is not called when the send raises. Both loggers default
    to structlog ``http.request``/``http.response`` events.

    Wrap a retrying transport's inner transport with this to log every
    attempt together with its try count.
    """

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        *,
        request_logger: Optional[RequestLogger] = log_request,
        response_logger: Optional[ResponseLogger] = log_response,
    ) -> None:
        super().__init__(transport)
        self.request_logger = request_logger
        self.response_logger = response_logger

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if self.request_logger is not None:
            self.request_logger(request)
        started = time.monotonic()
        response = self._transport.handle_request(request)
        if self.response_logger is not None:
            self.response_logger(response, request, time.monotonic() - started)
        return response
