"""Error types raised by the retry engine and its HTTP transports."""

from __future__ import annotations

from typing import Optional

import httpx

ERROR_PREFIX = "replayable_http: "
HTTP_ERROR_PREFIX = "replayable_http.http"

# Default maximum number of response body bytes captured by HTTPResponseError.
ERROR_BODY_LIMIT = 1_000_000


class ReplayableHTTPError(Exception):
    """Base class for every error raised by this package."""


class Cancelled(ReplayableHTTPError):
    """A cancellation token fired before the work could finish."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(Cancelled):
    """A cancellation token's deadline passed."""

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


class NotReplayableError(ReplayableHTTPError):
    """The given body source cannot be read more than once."""

    def __init__(self, source: object) -> None:
        super().__init__(
            f"{ERROR_PREFIX}body is not re-readable: {type(source).__name__}"
        )
        self.source = source


class BodyBuildError(ReplayableHTTPError):
    """Serializing an in-memory body source failed."""


class UnreplayableRequestError(ReplayableHTTPError, RuntimeError):
    """A request with a non-empty, one-shot body was handed to a retrying transport.

    This is a programming error: retrying such a request would send a
    consumed body on the second attempt.
    """

    def __init__(self) -> None:
        super().__init__(
            f"{ERROR_PREFIX}request with non-empty body is not retryable; "
            "build it with build_request()"
        )


class HTTPResponseError(ReplayableHTTPError):
    """An HTTP response converted into an error."""

    def __init__(
        self,
        status_code: int,
        body: bytes = b"",
        response: Optional[httpx.Response] = None,
    ) -> None:
        self.status_code = status_code
        self.reason = httpx.codes.get_reason_phrase(status_code)
        self.body = body
        self.response = response
        super().__init__(self._format())

    @classmethod
    def from_response(
        cls, response: httpx.Response, limit: int = ERROR_BODY_LIMIT
    ) -> "HTTPResponseError":
        """Create HTTPResponseError from a response, reading at most ``limit`` body bytes.

        A ``limit`` of zero or less reads the whole body. The response is
        closed afterwards. If the body cannot be read the error carries the
        status code only.
        """
        try:
            body = _read_limited(response, limit)
        except (httpx.StreamError, httpx.TransportError):
            body = b""
        finally:
            response.close()
        return cls(response.status_code, body=body, response=response)

    def _format(self) -> str:
        status = f"{HTTP_ERROR_PREFIX}: {self.status_code} {self.reason}".rstrip()
        if self.body:
            return f"{status}; {self.body.decode('utf-8', errors='replace')}"
        return status

    def __repr__(self) -> str:
        return f"HTTPResponseError(status_code={self.status_code}, body_bytes={len(self.body)})"


def _read_limited(response: httpx.Response, limit: int) -> bytes:
    if limit <= 0:
        return response.read()
    buf = bytearray()
    for chunk in response.iter_bytes():
        buf.extend(chunk)
        if len(buf) >= limit:
            break
    return bytes(buf[:limit])
