"""User intents accepted by the engine.

The terminal loop and the remote-control server both build these and hand
them to `PlaybackEngine.dispatch`. An intent that makes no sense in the
current state is a no-op, never an error.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from .models import Track


@dataclass(frozen=True)
class Play:
    index: int


@dataclass(frozen=True)
class TogglePause:
    pass


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Previous:
    pass


@dataclass(frozen=True)
class SeekRelative:
    delta: float


@dataclass(frozen=True)
class SeekAbsolute:
    position: float


@dataclass(frozen=True)
class SetVolume:
    level: int


@dataclass(frozen=True)
class ToggleShuffle:
    pass


@dataclass(frozen=True)
class CycleRepeat:
    pass


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Enqueue:
    tracks: tuple[Track, ...]


@dataclass(frozen=True)
class InsertAt:
    index: int
    track: Track


@dataclass(frozen=True)
class Remove:
    index: int


@dataclass(frozen=True)
class Move:
    src: int
    dst: int


@dataclass(frozen=True)
class ClearQueue:
    pass


@dataclass(frozen=True)
class ReplaceQueue:
    tracks: tuple[Track, ...]
    start: Optional[int] = 0   # index to start playing, None to only load


@dataclass(frozen=True)
class ToggleStar:
    index: Optional[int] = field(default=None)   # None = current track


Intent = Union[
    Play, TogglePause, Stop, Next, Previous, SeekRelative, SeekAbsolute,
    SetVolume, ToggleShuffle, CycleRepeat, Retry, Enqueue, InsertAt, Remove,
    Move, ClearQueue, ReplaceQueue, ToggleStar,
]

# Intents a remote client may send by name, with their argument names
_SIMPLE = {
    "toggle_pause": TogglePause,
    "stop": Stop,
    "next": Next,
    "previous": Previous,
    "toggle_shuffle": ToggleShuffle,
    "cycle_repeat": CycleRepeat,
    "retry": Retry,
    "clear_queue": ClearQueue,
}


def parse_intent(msg: dict) -> Optional[Intent]:
    """Build an intent from a remote-control JSON message, None if unknown.

    Raises ValueError/TypeError for a known intent with bad arguments.
    """
    name = msg.get("intent") or msg.get("type")
    if name in _SIMPLE:
        return _SIMPLE[name]()
    if name == "play":
        return Play(int(msg["index"]))
    if name == "seek":
        if "position" in msg:
            return SeekAbsolute(float(msg["position"]))
        return SeekRelative(float(msg["delta"]))
    if name == "volume":
        return SetVolume(int(msg["level"]))
    if name == "remove":
        return Remove(int(msg["index"]))
    if name == "move":
        return Move(int(msg["src"]), int(msg["dst"]))
    if name == "star":
        index = msg.get("index")
        return ToggleStar(int(index) if index is not None else None)
    return None
