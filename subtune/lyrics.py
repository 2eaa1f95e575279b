"""Synced-lyrics cue normalisation and active-line tracking."""
import bisect
import logging
from typing import Iterable, Optional

from .config import LYRIC_JITTER_EPSILON
from .models import LyricLine

logger = logging.getLogger(__name__)


def normalize_cues(lines: Iterable[LyricLine]) -> tuple[LyricLine, ...]:
    """Sort cues by start time and collapse duplicate timestamps.

    Lines sharing a timestamp (typically an original line and its
    translation) become one cue with their texts joined by a newline.
    Negative starts are clamped to zero. Done once per track at load time.
    """
    ordered = sorted(
        (LyricLine(max(0.0, line.start), line.text) for line in lines),
        key=lambda line: line.start,
    )
    merged: list[LyricLine] = []
    for line in ordered:
        if merged and merged[-1].start == line.start:
            prev = merged[-1]
            text = prev.text if not line.text else (f"{prev.text}\n{line.text}" if prev.text else line.text)
            merged[-1] = LyricLine(prev.start, text)
        else:
            merged.append(line)
    return tuple(merged)


class LyricsSynchronizer:
    def __init__(self, epsilon: float = LYRIC_JITTER_EPSILON):
        self.epsilon = epsilon
        self.track_id: Optional[str] = None
        self.lines: tuple[LyricLine, ...] = ()
        self._starts: list[float] = []
        self._active: Optional[int] = None

    def load(self, track_id: Optional[str], lines: Iterable[LyricLine]):
        self.track_id = track_id
        self.lines = normalize_cues(lines)
        self._starts = [line.start for line in self.lines]
        self._active = None

    def clear(self):
        self.load(None, ())

    @property
    def active(self) -> Optional[int]:
        return self._active

    def update(self, position: float) -> Optional[int]:
        """Return the index of the cue active at `position` (None before the first)."""
        if not self._starts:
            self._active = None
            return None

        idx = bisect.bisect_right(self._starts, position) - 1
        candidate = idx if idx >= 0 else None

        current = self._active
        if current is not None and (candidate is None or candidate < current):
            # Tiny backwards jitter right after a cue boundary: hold the line
            if self._starts[current] - position < self.epsilon:
                return current

        self._active = candidate
        return candidate
