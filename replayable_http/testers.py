"""Response testers: classify a send outcome as success, retry or fatal."""

from __future__ import annotations

from typing import Callable, Mapping, NamedTuple, Optional

import httpx

from replayable_http.errors import ERROR_BODY_LIMIT, HTTPResponseError


class ResponseOutcome(NamedTuple):
    """``(True, None)`` succeeds, ``(False, None)`` retries, ``(False, error)`` stops."""

    success: bool
    error: Optional[Exception] = None


ResponseTester = Callable[
    [Optional[httpx.Response], Optional[Exception]], ResponseOutcome
]


def default_response_tester(
    response: Optional[httpx.Response], error: Optional[Exception]
) -> ResponseOutcome:
    """Succeed on status codes 200-399 and retry anything else.

    A transport error is passed through as fatal.
    """
    if error is not None:
        return ResponseOutcome(False, error)
    assert response is not None
    return ResponseOutcome(200 <= response.status_code < 400)


def with_status_code_overrides(
    tester: Optional[ResponseTester], status_codes: Mapping[int, bool]
) -> ResponseTester:
    """Wrap ``tester`` with explicit per-status-code decisions.

    A status code found in ``status_codes`` succeeds or retries exactly as
    mapped; no error is produced for it. Everything else goes to ``tester``.
    Without a ``tester``:

    - transport errors are fatal
    - unmatched status codes become a fatal ``HTTPResponseError`` holding up
      to ``ERROR_BODY_LIMIT`` body bytes; the response is closed
    """
    codes = dict(status_codes)

    def test(
        response: Optional[httpx.Response], error: Optional[Exception]
    ) -> ResponseOutcome:
        if error is not None:
            if tester is not None:
                return tester(response, error)
            return ResponseOutcome(False, error)
        assert response is not None
        if response.status_code in codes:
            return ResponseOutcome(codes[response.status_code])
        if tester is not None:
            return tester(response, error)
        return ResponseOutcome(
            False, HTTPResponseError.from_response(response, ERROR_BODY_LIMIT)
        )

    return test
