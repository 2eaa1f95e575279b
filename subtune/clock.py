"""Absolute playback position from per-stream elapsed samples.

The output adapter only knows how long the *current stream* has been
playing, which restarts from zero on every seek. The clock adds the offset
each stream generation was opened at.
"""
import logging
from typing import Optional

from .events import PositionSample

logger = logging.getLogger(__name__)


class PositionClock:
    def __init__(self):
        self.generation: int = 0
        self.offset: float = 0.0
        self.duration: float = 0.0
        self._elapsed: float = 0.0
        self._track_id: Optional[str] = None

    def reset(self, generation: int, offset: float = 0.0, duration: float = 0.0, track_id: Optional[str] = None):
        """Start a new stream generation at `offset` seconds into the track."""
        self.generation = generation
        self.offset = max(0.0, offset)
        self.duration = duration
        self._elapsed = 0.0
        self._track_id = track_id

    def apply(self, sample: PositionSample) -> bool:
        """Fold a sample in. Returns False if it belongs to another generation."""
        if sample.generation != self.generation:
            logger.debug("Dropping stale position sample gen=%d (active %d)", sample.generation, self.generation)
            return False
        if self._track_id is not None and sample.track_id != self._track_id:
            return False
        # Never step backwards within one generation
        self._elapsed = max(self._elapsed, sample.elapsed)
        return True

    @property
    def position(self) -> float:
        pos = self.offset + self._elapsed
        if self.duration > 0:
            pos = min(pos, self.duration)
        return pos
