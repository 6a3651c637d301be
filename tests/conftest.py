"""Shared pytest fixtures and fake servers for replayable-http tests."""

import time
from dataclasses import dataclass, field
from typing import Optional, Union

import httpx
import pytest

from replayable_http.context import try_count

URL = "http://example.com/orders"


def make_response(
    status_code: int,
    body: Optional[dict] = None,
    headers: Optional[dict[str, str]] = None,
) -> httpx.Response:
    """Create an httpx.Response from status, optional JSON body and headers."""
    if body is None:
        return httpx.Response(status_code=status_code, headers=headers)
    return httpx.Response(status_code=status_code, headers=headers, json=body)


@dataclass
class RecordedRequest:
    request: httpx.Request
    body: bytes
    try_count: int
    time: float


@dataclass
class FakeServer(httpx.BaseTransport):
    """Transport replaying scripted responses (or raising scripted errors) in order.

    The request body is read straight from ``request.stream``, as a network
    transport would, so every attempt exercises the body's replay.
    ``httpx.MockTransport`` would call ``request.read()`` and cache it.
    The last script entry repeats once the script runs out.
    """

    script: list[Union[httpx.Response, Exception]]
    requests: list[RecordedRequest] = field(default_factory=list)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        body = b"".join(request.stream)
        self.requests.append(
            RecordedRequest(request, body, try_count(request), time.monotonic())
        )
        entry = self.script[min(len(self.requests), len(self.script)) - 1]
        if isinstance(entry, Exception):
            raise entry
        return entry


@pytest.fixture
def ok_server() -> FakeServer:
    return FakeServer([make_response(200, {"ok": True})])
