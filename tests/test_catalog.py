import hashlib

import httpx
import pytest

from subtune.catalog import SubsonicClient, auth_params, make_salt, parse_lyrics, song_to_track
from subtune.errors import NetworkFailure, ServerFailure


def ok(**data) -> dict:
    return {"subsonic-response": {"status": "ok", "version": "1.16.1", **data}}


def failed(code: int, message: str) -> dict:
    return {"subsonic-response": {"status": "failed", "version": "1.16.1",
                                  "error": {"code": code, "message": message}}}


SONG = {
    "id": "s1",
    "title": "Blue",
    "artist": "Band",
    "album": "Record",
    "albumId": "al1",
    "duration": 241,
    "contentType": "audio/mpeg",
    "suffix": "mp3",
    "bitRate": 320,
    "coverArt": "al1",
    "starred": "2024-01-01T00:00:00Z",
    "replayGain": {"trackGain": -7.5, "albumGain": -6.0},
}


def make_client(handler, **kwargs) -> SubsonicClient:
    kwargs.setdefault("user", "ann")
    kwargs.setdefault("password", "sesame")
    return SubsonicClient("http://music.test/", transport=httpx.MockTransport(handler), **kwargs)


def test_token_auth_is_md5_of_password_and_salt():
    params = auth_params("ann", "sesame", salt="c19b2d")
    assert params == {
        "u": "ann",
        "t": hashlib.md5(b"sesamec19b2d").hexdigest(),
        "s": "c19b2d",
    }


def test_api_key_replaces_user_and_token():
    assert auth_params("ann", "sesame", api_key="k3y") == {"apiKey": "k3y"}


def test_salt_is_random_alphanumeric():
    salt = make_salt()
    assert len(salt) == 16
    assert salt.isalnum()
    assert make_salt() != salt


def test_stream_url_carries_auth_and_transcode_options():
    client = make_client(lambda r: httpx.Response(200), stream_format="opus", max_bitrate=128)
    url = httpx.URL(client.stream_url("s1"))
    assert url.path == "/rest/stream"
    assert url.params["id"] == "s1"
    assert url.params["format"] == "opus"
    assert url.params["maxBitRate"] == "128"
    assert url.params["u"] == "ann"
    assert url.params["f"] == "json"
    assert url.params["c"] == "subtune"


def test_stream_url_omits_unset_options():
    client = make_client(lambda r: httpx.Response(200))
    params = httpx.URL(client.stream_url("s1")).params
    assert "format" not in params
    assert "maxBitRate" not in params


def test_song_to_track():
    track = song_to_track(SONG, "http://stream")
    assert track.id == "s1"
    assert track.duration == 241.0
    assert track.replay_gain == -7.5
    assert track.starred
    assert track.bit_rate == 320
    assert track.stream_url == "http://stream"


def test_song_without_optional_fields():
    track = song_to_track({"id": 9, "title": ""}, "u")
    assert track.id == "9"
    assert track.title == "Unknown Title"
    assert track.duration == 0.0
    assert track.replay_gain is None
    assert not track.starred


async def test_ping():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json=ok())

    client = make_client(handler)
    assert await client.ping()
    assert seen[0].path == "/rest/ping"
    assert seen[0].params["v"] == "1.16.1"
    await client.aclose()


async def test_get_album_songs():
    def handler(request):
        assert request.url.params["id"] == "al1"
        return httpx.Response(200, json=ok(album={"id": "al1", "name": "Record", "song": [SONG]}))

    client = make_client(handler)
    tracks = await client.get_album_songs("al1")
    assert [t.id for t in tracks] == ["s1"]
    assert httpx.URL(tracks[0].stream_url).params["id"] == "s1"


async def test_get_playlist_and_random_songs():
    def handler(request):
        if request.url.path.endswith("getPlaylist"):
            return httpx.Response(200, json=ok(playlist={"id": "p", "entry": [SONG, {**SONG, "id": "s2"}]}))
        assert request.url.params["size"] == "5"
        return httpx.Response(200, json=ok(randomSongs={"song": [SONG]}))

    client = make_client(handler)
    assert [t.id for t in await client.get_playlist_songs("p")] == ["s1", "s2"]
    assert len(await client.get_random_songs(5)) == 1


async def test_failed_envelope_is_server_failure():
    client = make_client(lambda r: httpx.Response(200, json=failed(40, "Wrong username or password")))
    with pytest.raises(ServerFailure) as exc:
        await client.ping()
    assert "Wrong username or password" in exc.value.message


async def test_malformed_body_is_server_failure():
    client = make_client(lambda r: httpx.Response(200, text="<html>proxy</html>"))
    with pytest.raises(ServerFailure):
        await client.ping()


async def test_transport_error_is_network_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler)
    with pytest.raises(NetworkFailure):
        await client.ping()


async def test_scrobble_and_star_requests():
    seen = []

    def handler(request):
        seen.append((request.url.path.rsplit("/", 1)[-1], dict(request.url.params)))
        return httpx.Response(200, json=ok())

    client = make_client(handler)
    await client.scrobble("s1", submission=True)
    await client.scrobble("s1", submission=False)
    await client.star("s1")
    await client.unstar("s1")
    assert [(name, p.get("submission")) for name, p in seen] == [
        ("scrobble", "true"), ("scrobble", "false"), ("star", None), ("unstar", None),
    ]
    assert all(p["id"] == "s1" for _, p in seen)


def test_parse_lyrics_prefers_synced_and_applies_offset():
    payload = {"lyricsList": {"structuredLyrics": [
        {"lang": "eng", "synced": False, "line": [{"value": "plain"}]},
        {"lang": "eng", "synced": True, "offset": 500, "line": [
            {"start": 1000, "value": "first"},
            {"start": 4500, "value": "second"},
        ]},
    ]}}
    lines = parse_lyrics(payload)
    assert [(line.start, line.text) for line in lines] == [(0.5, "first"), (4.0, "second")]


def test_parse_unsynced_lyrics_all_at_zero():
    payload = {"lyricsList": {"structuredLyrics": [
        {"synced": False, "line": [{"value": "a"}, {"value": "b"}]},
    ]}}
    assert [line.start for line in parse_lyrics(payload)] == [0.0, 0.0]


def test_parse_lyrics_empty():
    assert parse_lyrics({"lyricsList": {}}) == []
    assert parse_lyrics({}) == []


async def test_get_lyrics_missing_extension_returns_empty():
    client = make_client(lambda r: httpx.Response(200, json=failed(70, "not found")))
    assert await client.get_lyrics("s1") == []
