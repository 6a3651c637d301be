"""Request bodies that can be re-sent byte-for-byte on every retry.

``build_request`` classifies a body source into one of the ``BodyKind``
variants and installs a ``ReplayableBody`` as the request stream:

- ``None``, ``b""`` and ``""``: no body
- ``bytes``/``bytearray``/``memoryview``/``str``, objects with ``__bytes__``
  and pydantic models: serialized once, replayed from the same buffer
- seekable streams: sent directly, replayed by seeking back to 0; the
  caller keeps ownership and closes them
- factories (callables returning a readable): called once now and again
  on every replay; the body closes each handle it gets
- any other readable: read fully into memory, replayed from the buffer.
  Only suitable for small bodies.

Anything else raises ``NotReplayableError``.
"""

from __future__ import annotations

import enum
import functools
import io
from typing import Any, Callable, Iterator, Mapping, Optional, Protocol, Union

import httpx
from pydantic import BaseModel

from replayable_http.cancel import CancellationToken
from replayable_http.context import CANCELLATION_EXTENSION
from replayable_http.errors import (
    BodyBuildError,
    NotReplayableError,
    UnreplayableRequestError,
)

CHUNK_SIZE = 64 * 1024


class Readable(Protocol):
    def read(self, size: int = -1) -> Union[bytes, str]: ...

    def close(self) -> None: ...


ReplayFunc = Callable[[], Readable]


class BodyKind(enum.Enum):
    EMPTY = "empty"
    BUFFER = "buffer"
    SEEKABLE = "seekable"
    FACTORY = "factory"
    BUFFERED_STREAM = "buffered_stream"


class FailingReader:
    """A readable whose every read raises ``error``."""

    def __init__(self, error: BaseException) -> None:
        self.error = error

    def read(self, size: int = -1) -> bytes:
        raise self.error

    def close(self) -> None:
        pass


class ReplayableBody(httpx.SyncByteStream):
    """An httpx request stream that can be reset to its first byte.

    ``replay()`` swaps the current handle for a fresh one produced by the
    replay capability. If producing the handle fails, the failure is kept
    and raised by the next read instead of by ``replay()``.

    ``close()`` releases an owned handle once a send is finished. Iterating
    a closed body replays it first, so a request can be sent again.
    """

    def __init__(
        self,
        kind: BodyKind,
        handle: Readable,
        replay: Optional[ReplayFunc],
        content_length: Optional[int] = None,
        owns_handle: bool = True,
    ) -> None:
        self.kind = kind
        self.content_length = content_length
        self._handle = handle
        self._replay = replay
        self._owns_handle = owns_handle
        self._closed = False

    # -----------------------------------------------------------------
    # Constructors, one per source kind
    # -----------------------------------------------------------------

    @classmethod
    def empty(cls) -> "ReplayableBody":
        return cls(BodyKind.EMPTY, io.BytesIO(b""), functools.partial(io.BytesIO, b""), 0)

    @classmethod
    def from_buffer(cls, data: bytes, kind: BodyKind = BodyKind.BUFFER) -> "ReplayableBody":
        replay = functools.partial(io.BytesIO, data)
        return cls(kind, replay(), replay, len(data))

    @classmethod
    def from_seekable(cls, stream: Readable) -> "ReplayableBody":
        # Replays start at position 0, so the first send does too.
        return cls(
            BodyKind.SEEKABLE,
            _rewind(stream),
            functools.partial(_rewind, stream),
            _seekable_length(stream),
            owns_handle=False,
        )

    @classmethod
    def from_factory(cls, factory: ReplayFunc) -> "ReplayableBody":
        handle = factory()
        if not hasattr(handle, "read"):
            raise NotReplayableError(factory)
        length = len(handle) if hasattr(handle, "__len__") else None
        return cls(BodyKind.FACTORY, handle, factory, length)

    @classmethod
    def from_stream(cls, stream: Readable) -> "ReplayableBody":
        data = stream.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls.from_buffer(bytes(data), kind=BodyKind.BUFFERED_STREAM)

    @classmethod
    def from_source(cls, source: Any) -> "ReplayableBody":
        """Classify ``source`` and build the matching body.

        Raises:
            NotReplayableError: ``source`` is not a supported body type.
            BodyBuildError: serializing an in-memory source failed.
        """
        if source is None:
            return cls.empty()
        data = _serialize(source)
        if data is not None:
            return cls.from_buffer(data) if data else cls.empty()
        if _is_seekable(source):
            return cls.from_seekable(source)
        if callable(source):
            return cls.from_factory(source)
        if hasattr(source, "read"):
            return cls.from_stream(source)
        raise NotReplayableError(source)

    # -----------------------------------------------------------------
    # Stream protocol
    # -----------------------------------------------------------------

    @property
    def replayable(self) -> bool:
        return self._replay is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[bytes]:
        if self._closed:
            self.replay()
        while True:
            chunk = self._handle.read(CHUNK_SIZE)
            if not chunk:
                return
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            yield chunk

    def read(self) -> bytes:
        return b"".join(self)

    def close(self) -> None:
        self._closed = True
        self._close_handle()

    def replay(self) -> None:
        if self._replay is None:
            return
        self._close_handle()
        try:
            self._handle = self._replay()
        except Exception as e:
            self._handle = FailingReader(e)
        self._closed = False

    def _close_handle(self) -> None:
        if not self._owns_handle:
            return
        try:
            self._handle.close()
        except ValueError:
            # already closed
            pass

    def __repr__(self) -> str:
        return f"ReplayableBody(kind={self.kind.value}, content_length={self.content_length})"


# ---------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------


def build_request(
    method: str,
    url: Union[httpx.URL, str],
    body: Any = None,
    *,
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, Any]] = None,
    extensions: Optional[Mapping[str, Any]] = None,
    cancellation: Optional[CancellationToken] = None,
) -> httpx.Request:
    """Build a request whose body can be replayed by the retrying transports.

    Raises:
        NotReplayableError: ``body`` is not a supported body source; no
            request is built.
    """
    replayable = ReplayableBody.from_source(body)
    request_extensions = dict(extensions or {})
    if cancellation is not None:
        request_extensions[CANCELLATION_EXTENSION] = cancellation

    if replayable.kind is BodyKind.EMPTY:
        return httpx.Request(
            method, url, headers=headers, params=params, extensions=request_extensions
        )

    request = httpx.Request(
        method,
        url,
        headers=headers,
        params=params,
        extensions=request_extensions,
        stream=replayable,
    )
    # A request built from a stream gets no automatic headers.
    if "Host" not in request.headers and request.url.host:
        request.headers["Host"] = request.url.netloc.decode("ascii")
    if "Content-Length" not in request.headers and "Transfer-Encoding" not in request.headers:
        if replayable.content_length is not None:
            request.headers["Content-Length"] = str(replayable.content_length)
        else:
            request.headers["Transfer-Encoding"] = "chunked"
    return request


def replay_body(request: httpx.Request) -> None:
    """Reset the request body so the next send starts from the first byte.

    In-memory ``httpx.ByteStream`` bodies are re-iterable and left alone.
    """
    stream = request.stream
    if isinstance(stream, ReplayableBody):
        stream.replay()


def close_body(request: httpx.Request) -> None:
    """Release the handle held by a replayable request body."""
    stream = request.stream
    if isinstance(stream, ReplayableBody):
        stream.close()


def is_replayable(request: httpx.Request) -> bool:
    stream = request.stream
    if isinstance(stream, ReplayableBody):
        return stream.replayable
    if isinstance(stream, httpx.ByteStream):
        return True
    return request.headers.get("Content-Length") == "0"


def assert_replayable(request: httpx.Request) -> None:
    """Raise UnreplayableRequestError if ``request`` has a one-shot body."""
    if not is_replayable(request):
        raise UnreplayableRequestError()


# ---------------------------------------------------------------------
# Source classification
# ---------------------------------------------------------------------


def _serialize(source: Any) -> Optional[bytes]:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    if isinstance(source, str):
        return source.encode("utf-8")
    try:
        if isinstance(source, BaseModel):
            return source.model_dump_json().encode("utf-8")
        if hasattr(type(source), "__bytes__"):
            return bytes(source)
    except Exception as e:
        raise BodyBuildError("replayable_http: could not create retryable request") from e
    return None


def _is_seekable(source: Any) -> bool:
    if not hasattr(source, "read"):
        return False
    seekable = getattr(source, "seekable", None)
    return callable(seekable) and bool(seekable())


def _rewind(stream: Readable) -> Readable:
    stream.seek(0)
    return stream


def _seekable_length(stream: Readable) -> Optional[int]:
    if hasattr(stream, "__len__"):
        return len(stream)
    if isinstance(stream, io.TextIOBase):
        return None
    try:
        end = stream.seek(0, io.SEEK_END)
        stream.seek(0)
    except (OSError, AttributeError):
        return None
    return end
