"""Play queue: ordering, shuffle permutation and repeat policy.

The current track is always stored as an index into the base (insertion)
order. The shuffle permutation only defines the *active order* used by
next/previous, so toggling shuffle never changes which track is current.
"""
import enum
import logging
import random
from typing import Iterable, Optional

from .config import RESTART_THRESHOLD
from .errors import QueueEmpty
from .models import RepeatMode, Track

logger = logging.getLogger(__name__)


class Direction(str, enum.Enum):
    NEXT = "next"
    PREVIOUS = "previous"


class QueueManager:
    def __init__(
        self,
        restart_threshold: float = RESTART_THRESHOLD,
        rng: Optional[random.Random] = None,
    ):
        self.restart_threshold = restart_threshold
        self._rng = rng or random.Random()
        self._tracks: list[Track] = []
        self._current: Optional[int] = None
        self._order: list[int] = []
        self.shuffle: bool = False
        self.repeat: RepeatMode = RepeatMode.OFF

    # ── Read access ──────────────────────────────────────────────────────────

    @property
    def tracks(self) -> tuple[Track, ...]:
        return tuple(self._tracks)

    @property
    def current_index(self) -> Optional[int]:
        return self._current

    @property
    def current(self) -> Optional[Track]:
        if self._current is None:
            return None
        return self._tracks[self._current]

    @property
    def active_order(self) -> list[int]:
        """Base indices in playback order (the permutation when shuffled)."""
        return list(self._order)

    def __len__(self) -> int:
        return len(self._tracks)

    def peek_next(self) -> Optional[Track]:
        """Track that a natural end of the current one would start, without moving."""
        if self.repeat == RepeatMode.ONE:
            return self.current
        idx = self._neighbour(1, wrap=self.repeat == RepeatMode.ALL)
        return self._tracks[idx] if idx is not None else None

    # ── Mutations ────────────────────────────────────────────────────────────

    def set_tracks(self, tracks: Iterable[Track]):
        self._tracks = list(tracks)
        self._current = None
        self._rebuild_order()

    def extend(self, tracks: Iterable[Track]):
        self._tracks.extend(tracks)
        self._rebuild_order()

    def clear(self):
        self.set_tracks([])

    def insert_at(self, index: int, track: Track):
        index = max(0, min(index, len(self._tracks)))
        self._tracks.insert(index, track)
        if self._current is not None and index <= self._current:
            self._current += 1
        self._rebuild_order()

    def remove_at(self, index: int) -> bool:
        """Remove a track. Returns True when the current track was removed.

        Removing the current track fails over to the track a natural end of
        playback would have started; `current` is None if there is none.
        """
        if not 0 <= index < len(self._tracks):
            raise IndexError(f"queue index {index} out of range")

        if index != self._current:
            del self._tracks[index]
            if self._current is not None and index < self._current:
                self._current -= 1
            self._rebuild_order()
            return False

        successor = self._neighbour(1, wrap=self.repeat == RepeatMode.ALL)
        successor_track = self._tracks[successor] if successor is not None and successor != index else None
        del self._tracks[index]
        self._current = None
        if successor_track is not None:
            self._current = self._index_of(successor_track)
        self._rebuild_order()
        logger.debug("Removed current track at %d, failover to %s", index, self._current)
        return True

    def move(self, src: int, dst: int):
        if not 0 <= src < len(self._tracks):
            raise IndexError(f"queue index {src} out of range")
        dst = max(0, min(dst, len(self._tracks) - 1))
        if src == dst:
            return
        current = self.current
        track = self._tracks.pop(src)
        self._tracks.insert(dst, track)
        if current is not None:
            self._current = self._index_of(current)
        self._rebuild_order()

    def set_current(self, index: int) -> Track:
        if not 0 <= index < len(self._tracks):
            raise IndexError(f"queue index {index} out of range")
        self._current = index
        return self._tracks[index]

    # ── Policy ───────────────────────────────────────────────────────────────

    def advance(self, direction: Direction = Direction.NEXT, elapsed: float = 0.0) -> Track:
        """Move the pointer per repeat policy and return the track to (re)start.

        Raises QueueEmpty when the queue is empty or exhausted (repeat OFF).
        """
        if not self._tracks:
            raise QueueEmpty("queue is empty")

        if self._current is None:
            # Nothing selected yet: start at the head of the active order
            self._current = self._order[0]
            return self.current

        if direction == Direction.NEXT:
            if self.repeat == RepeatMode.ONE:
                return self.current
            idx = self._neighbour(1, wrap=self.repeat == RepeatMode.ALL)
            if idx is None:
                raise QueueEmpty("end of queue")
            self._current = idx
            return self.current

        if elapsed > self.restart_threshold:
            return self.current
        idx = self._neighbour(-1, wrap=self.repeat == RepeatMode.ALL)
        if idx is not None:
            self._current = idx
        return self.current

    def toggle_shuffle(self) -> bool:
        self.shuffle = not self.shuffle
        self._rebuild_order()
        return self.shuffle

    def cycle_repeat(self) -> RepeatMode:
        self.repeat = self.repeat.next()
        return self.repeat

    # ── Internals ────────────────────────────────────────────────────────────

    def _neighbour(self, step: int, wrap: bool) -> Optional[int]:
        if self._current is None or not self._order:
            return None
        pos = self._order.index(self._current) + step
        if 0 <= pos < len(self._order):
            return self._order[pos]
        if wrap:
            return self._order[pos % len(self._order)]
        return None

    def _index_of(self, track: Track) -> int:
        for i, t in enumerate(self._tracks):
            if t is track:
                return i
        return self._tracks.index(track)

    def _rebuild_order(self):
        """Regenerate the active order after any mutation or shuffle toggle."""
        base = list(range(len(self._tracks)))
        if not self.shuffle:
            self._order = base
            return
        if self._current is None:
            self._rng.shuffle(base)
            self._order = base
            return
        rest = [i for i in base if i != self._current]
        self._rng.shuffle(rest)
        self._order = [self._current] + rest
