"""HTTP byte-range fetch adapter.

Runs on background threads only (blocking httpx client). Transport-level
problems surface as NetworkFailure, bad responses as ServerFailure, so the
orchestration can tell them apart from a normal end of stream.
"""
import logging
import re
import threading
from typing import Iterator, Optional, Protocol

import httpx

from .config import FETCH_CHUNK_SIZE, FETCH_CONNECT_TIMEOUT, FETCH_READ_TIMEOUT
from .errors import NetworkFailure, ServerFailure

logger = logging.getLogger(__name__)

_CONTENT_RANGE = re.compile(r"bytes\s+(\d+)-(\d+)/(\d+|\*)")

# Content types a server sends instead of audio when it answers with an error envelope
_ERROR_TYPES = ("application/json", "text/xml", "application/xml", "text/html")


class ByteStream(Protocol):
    offset: int
    content_length: Optional[int]
    accepts_ranges: bool
    content_type: str

    def iter_chunks(self) -> Iterator[bytes]: ...

    def close(self) -> None: ...


class Fetcher(Protocol):
    def open(self, url: str, byte_offset: int = 0) -> ByteStream: ...

    def cancel(self) -> None: ...


class FetchStream:
    """An open HTTP response positioned at `offset` bytes into the resource."""

    def __init__(self, response: httpx.Response, offset: int, chunk_size: int = FETCH_CHUNK_SIZE):
        self._response = response
        self._chunk_size = chunk_size
        self._closed = threading.Event()
        self.offset = offset
        self.content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        self.accepts_ranges = False
        self.content_length: Optional[int] = None

        if response.status_code == 206:
            self.accepts_ranges = True
            m = _CONTENT_RANGE.match(response.headers.get("content-range", ""))
            if m and m.group(3) != "*":
                self.content_length = int(m.group(3))
        else:
            self.accepts_ranges = response.headers.get("accept-ranges", "").lower() == "bytes"
            length = response.headers.get("content-length")
            if length and length.isdigit():
                self.content_length = int(length)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def iter_chunks(self) -> Iterator[bytes]:
        try:
            for chunk in self._response.iter_bytes(self._chunk_size):
                if self._closed.is_set():
                    return
                if chunk:
                    yield chunk
        except httpx.TimeoutException as e:
            if not self._closed.is_set():
                raise NetworkFailure(f"read timed out: {e}") from e
        except (httpx.TransportError, httpx.StreamError) as e:
            # Closing the response from another thread also lands here
            if not self._closed.is_set():
                raise NetworkFailure(f"stream interrupted: {e}") from e

    def close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._response.close()
        except Exception as e:
            logger.debug("Error closing response: %s", e)


class HttpFetcher:
    def __init__(
        self,
        connect_timeout: float = FETCH_CONNECT_TIMEOUT,
        read_timeout: float = FETCH_READ_TIMEOUT,
        chunk_size: int = FETCH_CHUNK_SIZE,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._client = httpx.Client(timeout=timeout, follow_redirects=True, transport=transport)
        self._chunk_size = chunk_size
        self._lock = threading.Lock()
        self._open: set[FetchStream] = set()

    def open(self, url: str, byte_offset: int = 0) -> FetchStream:
        """Start a GET at `byte_offset`. The returned stream's offset says where it really starts."""
        headers = {}
        if byte_offset > 0:
            headers["Range"] = f"bytes={byte_offset}-"

        request = self._client.build_request("GET", url, headers=headers)
        try:
            response = self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"connect timed out: {e}") from e
        except httpx.TransportError as e:
            raise NetworkFailure(f"connection failed: {e}") from e

        if response.status_code not in (200, 206):
            body = _read_error_body(response)
            raise ServerFailure(f"HTTP {response.status_code}: {body}")

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type in _ERROR_TYPES:
            body = _read_error_body(response)
            raise ServerFailure(f"server returned {content_type} instead of audio: {body}")

        # 200 to a ranged request means the server ignored the range
        offset = byte_offset if response.status_code == 206 else 0
        stream = FetchStream(response, offset, self._chunk_size)
        with self._lock:
            self._open = {s for s in self._open if not s.closed}
            self._open.add(stream)
        logger.debug("Opened %s at byte %d (status %d)", url.split("?")[0], offset, response.status_code)
        return stream

    def cancel(self):
        """Abort every stream this fetcher has open."""
        with self._lock:
            streams, self._open = self._open, set()
        for stream in streams:
            stream.close()

    def close(self):
        self.cancel()
        self._client.close()


def _read_error_body(response: httpx.Response) -> str:
    try:
        response.read()
        return response.text[:200]
    except httpx.HTTPError:
        return ""
    finally:
        response.close()
