import httpx
import pytest

from subtune.errors import NetworkFailure, ServerFailure
from subtune.fetch import HttpFetcher

AUDIO = bytes(range(256)) * 40
URL = "http://music.test/rest/stream?id=1"


def ranged_server(request: httpx.Request) -> httpx.Response:
    header = request.headers.get("range")
    if not header:
        return httpx.Response(200, content=AUDIO, headers={
            "content-type": "audio/mpeg", "accept-ranges": "bytes",
        })
    start = int(header.split("=")[1].rstrip("-"))
    return httpx.Response(206, content=AUDIO[start:], headers={
        "content-type": "audio/mpeg",
        "content-range": f"bytes {start}-{len(AUDIO) - 1}/{len(AUDIO)}",
    })


def make_fetcher(handler) -> HttpFetcher:
    return HttpFetcher(chunk_size=1024, transport=httpx.MockTransport(handler))


def test_open_from_start():
    stream = make_fetcher(ranged_server).open(URL)
    assert stream.offset == 0
    assert stream.content_length == len(AUDIO)
    assert stream.accepts_ranges
    assert stream.content_type == "audio/mpeg"
    assert b"".join(stream.iter_chunks()) == AUDIO


def test_open_at_offset_uses_range():
    stream = make_fetcher(ranged_server).open(URL, byte_offset=1000)
    assert stream.offset == 1000
    assert stream.content_length == len(AUDIO)
    assert b"".join(stream.iter_chunks()) == AUDIO[1000:]


def test_ignored_range_reports_offset_zero():
    def no_ranges(request):
        return httpx.Response(200, content=AUDIO, headers={"content-type": "audio/flac"})

    stream = make_fetcher(no_ranges).open(URL, byte_offset=5000)
    assert stream.offset == 0
    assert not stream.accepts_ranges


def test_http_error_is_server_failure():
    def missing(request):
        return httpx.Response(404, text="not found")

    with pytest.raises(ServerFailure) as exc:
        make_fetcher(missing).open(URL)
    assert "404" in exc.value.message


def test_unsatisfiable_range_is_server_failure():
    def too_far(request):
        return httpx.Response(416)

    with pytest.raises(ServerFailure):
        make_fetcher(too_far).open(URL, byte_offset=10**9)


def test_error_envelope_instead_of_audio_is_server_failure():
    def envelope(request):
        return httpx.Response(200, json={"subsonic-response": {"status": "failed", "error": {"code": 70}}})

    with pytest.raises(ServerFailure) as exc:
        make_fetcher(envelope).open(URL)
    assert "application/json" in exc.value.message


def test_connect_error_is_network_failure():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkFailure):
        make_fetcher(unreachable).open(URL)


def test_connect_timeout_is_network_failure():
    def slow(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(NetworkFailure):
        make_fetcher(slow).open(URL)


def test_cancel_closes_open_streams():
    fetcher = make_fetcher(ranged_server)
    stream = fetcher.open(URL)
    fetcher.cancel()
    assert stream.closed
    assert list(stream.iter_chunks()) == []


class ResetAfter(httpx.SyncByteStream):
    """Body that delivers some audio and then loses the connection."""

    def __init__(self, data: bytes):
        self.data = data

    def __iter__(self):
        yield self.data
        raise httpx.ReadError("connection reset by peer")


def test_reset_during_body_is_a_network_failure():
    def flaky(request):
        return httpx.Response(200, stream=ResetAfter(AUDIO[:10]), headers={"content-type": "audio/mpeg"})

    stream = make_fetcher(flaky).open(URL)
    received = []
    with pytest.raises(NetworkFailure, match="interrupted"):
        for chunk in stream.iter_chunks():
            received.append(chunk)
    assert b"".join(received) == AUDIO[:10]
