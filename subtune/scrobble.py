"""Scrobble bookkeeping: "now playing" and "played" submissions per track instance."""
import asyncio
import logging
from typing import Optional

from .catalog import Catalog
from .config import SCROBBLE_FRACTION, SCROBBLE_MAX_SECONDS, SCROBBLE_MIN_SECONDS
from .errors import PlaybackError
from .models import Track

logger = logging.getLogger(__name__)


def played_threshold(duration: float, fraction: float = SCROBBLE_FRACTION,
                     max_seconds: float = SCROBBLE_MAX_SECONDS,
                     min_seconds: float = SCROBBLE_MIN_SECONDS) -> float:
    """Seconds of listening after which a track counts as played."""
    if duration <= 0:
        return max(min_seconds, max_seconds)
    return max(min(duration * fraction, max_seconds), min_seconds)


class Scrobbler:
    """Submits at most one now-playing and one played scrobble per track instance.

    A track instance starts whenever a track begins from the top (play,
    next, previous, repeat). Seeking and pausing keep the instance.

    "Played" counts time actually listened, not the playback position: each
    stream generation contributes how far it advanced from where it was
    opened, so seeking past the threshold does not count.
    """

    def __init__(self, catalog: Catalog, fraction: float = SCROBBLE_FRACTION,
                 max_seconds: float = SCROBBLE_MAX_SECONDS, min_seconds: float = SCROBBLE_MIN_SECONDS):
        self._catalog = catalog
        self.fraction = fraction
        self.max_seconds = max_seconds
        self.min_seconds = min_seconds
        self._announced: Optional[int] = None
        self._submitted: Optional[int] = None
        self._instance: Optional[int] = None
        self._generation: Optional[int] = None
        self._banked = 0.0
        self._progress = 0.0
        self._tasks: set[asyncio.Task] = set()

    def now_playing(self, track: Track, instance: int):
        if self._announced == instance:
            return
        self._announced = instance
        self._send(track, submission=False)

    @property
    def listened(self) -> float:
        return self._banked + self._progress

    def update(self, track: Track, instance: int, position: float,
               generation: int = 0, start: float = 0.0):
        """Fold in the position of `generation`, which was opened at `start` seconds."""
        if instance != self._instance:
            self._instance = instance
            self._generation = generation
            self._banked = self._progress = 0.0
        elif generation != self._generation:
            self._banked += self._progress
            self._generation = generation
            self._progress = 0.0
        self._progress = max(self._progress, position - start)

        if self._submitted == instance:
            return
        if self.listened >= played_threshold(track.duration, self.fraction, self.max_seconds, self.min_seconds):
            self._submitted = instance
            self._send(track, submission=True)

    async def settle(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _send(self, track: Track, submission: bool):
        task = asyncio.get_running_loop().create_task(self._submit(track, submission))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _submit(self, track: Track, submission: bool):
        label = "played" if submission else "now playing"
        try:
            await self._catalog.scrobble(track.id, submission)
            logger.info("Scrobbled %s (%s)", track.id, label)
        except PlaybackError as e:
            # Scrobbles never affect playback; the server just misses one
            logger.warning("Scrobble %s failed for %s: %s", label, track.id, e.message)
