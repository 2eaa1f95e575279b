"""Subsonic / OpenSubsonic API client.

Every endpoint answers with a `subsonic-response` envelope; a `failed`
status becomes ServerFailure, transport problems become NetworkFailure.
"""
import hashlib
import logging
import secrets
import string
from typing import Any, Optional, Protocol

import httpx

from .config import (
    CATALOG_TIMEOUT,
    MAX_BITRATE,
    STREAM_FORMAT,
    SUBSONIC_API_KEY,
    SUBSONIC_API_VERSION,
    SUBSONIC_CLIENT,
    SUBSONIC_PASSWORD,
    SUBSONIC_URL,
    SUBSONIC_USER,
)
from .errors import NetworkFailure, ServerFailure
from .models import LyricLine, Track

logger = logging.getLogger(__name__)

_SALT_ALPHABET = string.ascii_letters + string.digits


class Catalog(Protocol):
    """What the engine needs from the server while playing."""

    async def get_lyrics(self, track_id: str) -> list[LyricLine]: ...

    async def scrobble(self, track_id: str, submission: bool) -> None: ...

    async def star(self, track_id: str) -> None: ...

    async def unstar(self, track_id: str) -> None: ...


def make_salt(length: int = 16) -> str:
    return "".join(secrets.choice(_SALT_ALPHABET) for _ in range(length))


def make_token(password: str, salt: str) -> str:
    """Subsonic token auth: md5(password + salt), lowercase hex."""
    return hashlib.md5((password + salt).encode("utf-8")).hexdigest()


def auth_params(user: str = "", password: str = "", api_key: str = "", salt: Optional[str] = None) -> dict:
    """Query parameters authenticating every request. An API key wins over a password."""
    if api_key:
        return {"apiKey": api_key}
    salt = salt or make_salt()
    return {"u": user, "t": make_token(password, salt), "s": salt}


def song_to_track(song: dict, stream_url: str) -> Track:
    gain = song.get("replayGain") or {}
    replay_gain = gain.get("trackGain")
    if replay_gain is None:
        replay_gain = gain.get("albumGain")
    return Track(
        id=str(song["id"]),
        title=song.get("title") or "Unknown Title",
        stream_url=stream_url,
        duration=float(song.get("duration") or 0),
        artist=song.get("artist") or "",
        album=song.get("album") or "",
        album_id=song.get("albumId"),
        cover_art=song.get("coverArt"),
        content_type=song.get("contentType"),
        suffix=song.get("suffix"),
        bit_rate=song.get("bitRate"),
        replay_gain=float(replay_gain) if replay_gain is not None else None,
        starred=bool(song.get("starred")),
    )


def parse_lyrics(payload: dict) -> list[LyricLine]:
    """Pick the best structuredLyrics entry and turn it into timed lines.

    Synced lyrics are preferred. Unsynced ones come back with every line at
    zero, so callers see them as a single static block. The entry's offset
    (milliseconds, positive = show earlier) is folded into each start.
    """
    entries = (payload.get("lyricsList") or {}).get("structuredLyrics") or []
    if not entries:
        return []
    entry = next((e for e in entries if e.get("synced")), entries[0])
    offset = float(entry.get("offset") or 0)
    synced = bool(entry.get("synced"))

    lines = []
    for line in entry.get("line") or []:
        start = (float(line.get("start") or 0) - offset) / 1000 if synced else 0.0
        lines.append(LyricLine(max(0.0, start), line.get("value", "")))
    return lines


class SubsonicClient:
    def __init__(
        self,
        base_url: str = SUBSONIC_URL,
        user: str = SUBSONIC_USER,
        password: str = SUBSONIC_PASSWORD,
        api_key: str = SUBSONIC_API_KEY,
        client_name: str = SUBSONIC_CLIENT,
        api_version: str = SUBSONIC_API_VERSION,
        stream_format: str = STREAM_FORMAT,
        max_bitrate: int = MAX_BITRATE,
        timeout: float = CATALOG_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.stream_format = stream_format
        self.max_bitrate = max_bitrate
        self._params = {
            **auth_params(user, password, api_key),
            "v": api_version,
            "c": client_name,
            "f": "json",
        }
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    # ── URLs ─────────────────────────────────────────────────────────────────

    def url(self, endpoint: str, **params: Any) -> str:
        return str(httpx.URL(f"{self.base_url}/rest/{endpoint}", params=self._query(params)))

    def stream_url(self, track_id: str) -> str:
        """Authenticated stream URL, honouring the transcode format and bitrate cap."""
        return self.url(
            "stream",
            id=track_id,
            format=self.stream_format or None,
            maxBitRate=self.max_bitrate or None,
        )

    # ── Endpoints ────────────────────────────────────────────────────────────

    async def ping(self) -> bool:
        await self._get("ping")
        return True

    async def get_album_songs(self, album_id: str) -> list[Track]:
        data = await self._get("getAlbum", id=album_id)
        return self._tracks((data.get("album") or {}).get("song"))

    async def get_playlist_songs(self, playlist_id: str) -> list[Track]:
        data = await self._get("getPlaylist", id=playlist_id)
        return self._tracks((data.get("playlist") or {}).get("entry"))

    async def get_random_songs(self, size: int = 50) -> list[Track]:
        data = await self._get("getRandomSongs", size=size)
        return self._tracks((data.get("randomSongs") or {}).get("song"))

    async def get_lyrics(self, track_id: str) -> list[LyricLine]:
        """Lyrics for a song, [] when the server has none or lacks the extension."""
        try:
            data = await self._get("getLyricsBySongId", id=track_id)
        except ServerFailure as e:
            logger.info("No lyrics for %s: %s", track_id, e.message)
            return []
        return parse_lyrics(data)

    async def scrobble(self, track_id: str, submission: bool):
        await self._get("scrobble", id=track_id, submission=str(submission).lower())

    async def star(self, track_id: str):
        await self._get("star", id=track_id)

    async def unstar(self, track_id: str):
        await self._get("unstar", id=track_id)

    # ── Internals ────────────────────────────────────────────────────────────

    def _query(self, params: dict) -> dict:
        return {**self._params, **{k: v for k, v in params.items() if v is not None}}

    def _tracks(self, songs: Optional[list]) -> list[Track]:
        return [song_to_track(s, self.stream_url(str(s["id"]))) for s in songs or [] if not s.get("isVideo")]

    async def _get(self, endpoint: str, **params: Any) -> dict:
        url = f"{self.base_url}/rest/{endpoint}"
        try:
            r = await self._client.get(url, params=self._query(params))
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"{endpoint} timed out") from e
        except httpx.TransportError as e:
            raise NetworkFailure(f"{endpoint} failed: {e}") from e

        if r.status_code != 200:
            raise ServerFailure(f"{endpoint}: HTTP {r.status_code}: {r.text[:200]}")
        try:
            body = r.json()["subsonic-response"]
        except (ValueError, KeyError, TypeError) as e:
            raise ServerFailure(f"{endpoint}: malformed response: {r.text[:200]}") from e

        if body.get("status") != "ok":
            err = body.get("error") or {}
            raise ServerFailure(f"{endpoint}: error {err.get('code', '?')}: {err.get('message', 'unknown error')}")
        return body
