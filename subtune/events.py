"""Events posted by background fetch/decode work, drained by the engine each tick.

Every event carries the stream generation it belongs to. The engine applies
only events of the currently active generation; everything else is dropped.
"""
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Union

from .config import EVENT_CHANNEL_SIZE
from .errors import ErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionSample:
    """Elapsed time since this stream generation started producing audio."""

    track_id: str
    elapsed: float
    generation: int


@dataclass(frozen=True)
class StreamReady:
    track_id: str
    generation: int


@dataclass(frozen=True)
class EndOfStream:
    track_id: str
    generation: int


@dataclass(frozen=True)
class StreamFailure:
    track_id: str
    generation: int
    kind: ErrorKind
    message: str


StreamEvent = Union[PositionSample, StreamReady, EndOfStream, StreamFailure]


class EventChannel:
    """Bounded, thread-safe event channel.

    When full, the oldest position sample makes room: samples are
    superseded by newer ones. Ready, end and failure events are never
    dropped, even if that takes the channel past its bound.
    """

    def __init__(self, maxsize: int = EVENT_CHANNEL_SIZE):
        self.maxsize = maxsize
        self._events: deque = deque()
        self._lock = threading.Lock()

    def post(self, event: StreamEvent):
        with self._lock:
            if len(self._events) >= self.maxsize and not self._evict_sample():
                if isinstance(event, PositionSample):
                    return
                logger.warning("Event channel over capacity (%d), keeping %r", len(self._events), event)
            self._events.append(event)

    def drain(self) -> list[StreamEvent]:
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def _evict_sample(self) -> bool:
        for i, queued in enumerate(self._events):
            if isinstance(queued, PositionSample):
                del self._events[i]
                logger.debug("Event channel full, dropped %r", queued)
                return True
        return False

    def __len__(self) -> int:
        return len(self._events)
