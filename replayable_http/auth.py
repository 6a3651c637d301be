"""Authorization applied to outgoing requests."""

from __future__ import annotations

from typing import Callable, Optional

import httpx

from replayable_http.transports import WrappingTransport

# Receives an unauthorized request and returns it (or a replacement) with
# credentials added. Raising aborts the send.
Authorizer = Callable[[httpx.Request], httpx.Request]


class AuthorizedTransport(WrappingTransport):
    """Authorize every request before handing it to ``transport``."""

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        *,
        authorizer: Optional[Authorizer] = None,
    ) -> None:
        super().__init__(transport)
        self.authorizer = authorizer

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if self.authorizer is not None:
            request = self.authorizer(request)
        return self._transport.handle_request(request)


def header_authorizer(name: str, value: str) -> Authorizer:
    """Set a static header, e.g. ``X-Auth-Token: 4200322b-...``."""

    def authorize(request: httpx.Request) -> httpx.Request:
        request.headers[name] = value
        return request

    return authorize


def bearer_authorizer(token: str) -> Authorizer:
    return header_authorizer("Authorization", f"Bearer {token}")


def basic_authorizer(username: str, password: str) -> Authorizer:
    """HTTP Basic auth, reusing httpx's header encoding."""
    auth = httpx.BasicAuth(username, password)

    def authorize(request: httpx.Request) -> httpx.Request:
        return next(auth.auth_flow(request))

    return authorize
