"""Per-request side channel carried in ``httpx.Request.extensions``."""

from __future__ import annotations

import httpx

from replayable_http.cancel import CancellationToken

TRY_COUNT_EXTENSION = "try_count"
CANCELLATION_EXTENSION = "cancellation"


def try_count(request: httpx.Request) -> int:
    """Return how many attempts preceded this one (0 for the first send)."""
    value = request.extensions.get(TRY_COUNT_EXTENSION)
    if isinstance(value, int):
        return value
    return 0


def with_try_count(request: httpx.Request, count: int) -> httpx.Request:
    request.extensions[TRY_COUNT_EXTENSION] = count
    return request


def cancellation_of(request: httpx.Request) -> CancellationToken:
    """Return the request's cancellation token, or a token that never fires."""
    token = request.extensions.get(CANCELLATION_EXTENSION)
    if isinstance(token, CancellationToken):
        return token
    return CancellationToken()


def with_cancellation(request: httpx.Request, token: CancellationToken) -> httpx.Request:
    request.extensions[CANCELLATION_EXTENSION] = token
    return request
