"""Track, lyric, queue-mode and snapshot records shared across the engine."""
import enum
from dataclasses import dataclass, field
from typing import Optional

from .utils import fmt_time


@dataclass(frozen=True)
class Track:
    id: str
    title: str
    stream_url: str
    duration: float = 0.0
    artist: str = ""
    album: str = ""
    album_id: Optional[str] = None
    cover_art: Optional[str] = None
    content_type: Optional[str] = None
    suffix: Optional[str] = None
    bit_rate: Optional[int] = None
    replay_gain: Optional[float] = None   # dB, from the server's replayGain block
    starred: bool = False

    @property
    def gain_factor(self) -> float:
        """Linear amplitude factor for the replay-gain hint (1.0 when absent)."""
        if self.replay_gain is None:
            return 1.0
        return 10 ** (self.replay_gain / 20)

    @property
    def display_artist(self) -> str:
        return self.artist or "Unknown Artist"

    @property
    def display_album(self) -> str:
        return self.album or "Unknown Album"

    def duration_string(self) -> str:
        if not self.duration:
            return "--:--"
        return fmt_time(self.duration)


@dataclass(frozen=True)
class LyricLine:
    start: float   # seconds from track start
    text: str


class RepeatMode(str, enum.Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"

    def next(self) -> "RepeatMode":
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class Phase(str, enum.Enum):
    STOPPED = "stopped"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    SEEKING = "seeking"
    ERROR = "error"


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str
    track_id: Optional[str] = None


@dataclass(frozen=True)
class EngineSnapshot:
    """Read-only view of the engine, rebuilt once per tick."""

    track: Optional[Track] = None
    phase: Phase = Phase.STOPPED
    position: float = 0.0
    duration: float = 0.0
    volume: int = 0
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.OFF
    lyric_index: Optional[int] = None
    lyrics: tuple[LyricLine, ...] = ()
    error: Optional[ErrorInfo] = None
    queue: tuple[Track, ...] = ()
    current_index: Optional[int] = None
    starred: bool = False
    generation: int = 0
    tick: int = field(default=0, compare=False)

    @property
    def progress(self) -> float:
        if self.duration <= 0:
            return 0.0
        return min(1.0, self.position / self.duration)

    def to_dict(self) -> dict:
        """JSON-friendly payload for the remote-control clients."""
        track = None
        if self.track:
            track = {
                "id": self.track.id,
                "title": self.track.title,
                "artist": self.track.display_artist,
                "album": self.track.display_album,
                "duration": self.track.duration,
            }
        return {
            "track": track,
            "phase": self.phase.value,
            "position": round(self.position, 1),
            "duration": self.duration,
            "volume": self.volume,
            "shuffle": self.shuffle,
            "repeat": self.repeat.value,
            "lyric_index": self.lyric_index,
            "lyric": self.lyrics[self.lyric_index].text if self.lyric_index is not None else None,
            "error": {"kind": self.error.kind, "message": self.error.message} if self.error else None,
            "queue": [{"id": t.id, "title": t.title, "artist": t.display_artist} for t in self.queue],
            "current_index": self.current_index,
            "starred": self.starred,
        }
