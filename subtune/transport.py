"""Transport state machine: the only place playback state changes.

    Stopped --play--> Loading --ready--> Playing <--> Paused
    Playing|Paused|Seeking --seek--> Seeking --ready--> Playing|Paused
    Playing --EOF--> Loading (next track) | Stopped
    Paused --EOF--> Paused(ended) --resume--> Loading (next track) | Stopped
    Loading|Seeking|Playing --failure--> Error --retry|play--> Loading

Every stream open bumps the generation; events from older generations are
dropped before they can touch state or the position clock.
"""
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional, Union

from .clock import PositionClock
from .errors import ErrorKind
from .events import EndOfStream, PositionSample, StreamEvent, StreamFailure, StreamReady
from .models import Phase, Track
from .stream import StreamOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stopped:
    phase = Phase.STOPPED
    track: Optional[Track] = None


@dataclass(frozen=True)
class Loading:
    track: Track
    phase = Phase.LOADING


@dataclass(frozen=True)
class Playing:
    track: Track
    started_at: float = 0.0
    phase = Phase.PLAYING


@dataclass(frozen=True)
class Paused:
    track: Track
    position: float = 0.0
    # Stream ran out while paused; resuming finishes the track
    ended: bool = False
    phase = Phase.PAUSED


@dataclass(frozen=True)
class Seeking:
    track: Track
    target: float
    paused: bool = False
    phase = Phase.SEEKING


@dataclass(frozen=True)
class Error:
    track: Track
    kind: ErrorKind
    cause: str
    phase = Phase.ERROR


TransportState = Union[Stopped, Loading, Playing, Paused, Seeking, Error]


class Transport:
    def __init__(
        self,
        streamer: StreamOrchestrator,
        clock: PositionClock,
        advance: Callable[[], Optional[Track]],
        on_playing: Optional[Callable[[Track, int], None]] = None,
        on_error: Optional[Callable[[Error], None]] = None,
    ):
        """
        advance: called on natural end of a track; returns the next track or None.
        on_playing: called with (track, instance) on every entry into Playing.
        on_error: called once for every transition into Error.
        """
        self._streamer = streamer
        self._clock = clock
        self._advance = advance
        self._on_playing = on_playing
        self._on_error = on_error
        self._state: TransportState = Stopped()
        self._generation = 0
        # Bumped when a track starts from the top; seeks keep the instance
        self._instance = 0

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def instance(self) -> int:
        return self._instance

    @property
    def track(self) -> Optional[Track]:
        return self._state.track

    @property
    def position(self) -> float:
        if isinstance(self._state, Seeking):
            return self._state.target
        if isinstance(self._state, Paused):
            return self._state.position
        if isinstance(self._state, (Stopped, Error)):
            return 0.0
        return self._clock.position

    # ── Intents ──────────────────────────────────────────────────────────────

    def play(self, track: Track):
        """Start `track` from the beginning, abandoning whatever was running."""
        self._instance += 1
        self._open(track, 0.0)
        self._state = Loading(track)
        logger.info("Loading %s - %s (gen %d)", track.display_artist, track.title, self._generation)

    def retry(self):
        if isinstance(self._state, Error):
            self.play(self._state.track)

    def toggle_pause(self):
        state = self._state
        if isinstance(state, Playing):
            self.pause()
        elif isinstance(state, Paused):
            self.resume()
        elif isinstance(state, Seeking):
            if state.paused:
                self._streamer.resume()
            else:
                self._streamer.pause()
            self._state = replace(state, paused=not state.paused)

    def pause(self):
        if isinstance(self._state, Playing):
            self._streamer.pause()
            self._state = Paused(self._state.track, self._clock.position)

    def resume(self):
        if isinstance(self._state, Paused) and self._state.ended:
            self._finish()
        elif isinstance(self._state, Paused):
            self._streamer.resume()
            self._state = Playing(self._state.track, self._state.position)
            self._notify_playing()

    def stop(self):
        if isinstance(self._state, Stopped):
            return
        self._generation += 1
        self._streamer.cancel()
        self._clock.reset(self._generation)
        self._state = Stopped(self._state.track)

    def seek(self, target: float):
        """Reopen the current track at `target` seconds. Past the end counts as EOF."""
        state = self._state
        if not isinstance(state, (Playing, Paused, Seeking)):
            return
        track = state.track
        target = max(0.0, target)
        if track.duration > 0 and target >= track.duration:
            logger.debug("Seek to %.1f past end of %s, finishing track", target, track.id)
            self._finish()
            return

        paused = isinstance(state, Paused) or (isinstance(state, Seeking) and state.paused)
        self._open(track, target)
        if paused:
            self._streamer.pause()
        self._state = Seeking(track, target, paused)

    def seek_relative(self, delta: float):
        if isinstance(self._state, (Playing, Paused, Seeking)):
            self.seek(self.position + delta)

    def set_volume(self, level: int):
        self._streamer.set_volume(level)

    # ── Adapter events ───────────────────────────────────────────────────────

    def handle(self, event: StreamEvent) -> bool:
        """Apply one adapter event. Returns False when it was stale and dropped."""
        if event.generation != self._generation:
            logger.debug("Discarding %s from gen %d (active %d)",
                         type(event).__name__, event.generation, self._generation)
            return False

        state = self._state
        if isinstance(event, PositionSample):
            if isinstance(state, (Playing, Paused)):
                self._clock.apply(event)
            return True

        if isinstance(event, StreamReady):
            if isinstance(state, Loading):
                self._state = Playing(state.track, 0.0)
                self._notify_playing()
            elif isinstance(state, Seeking):
                if state.paused:
                    self._state = Paused(state.track, state.target)
                else:
                    self._state = Playing(state.track, state.target)
                    self._notify_playing()
            return True

        if isinstance(event, EndOfStream):
            if isinstance(state, (Playing, Loading, Seeking)):
                self._finish()
            elif isinstance(state, Paused):
                self._state = replace(state, ended=True)
            return True

        if isinstance(event, StreamFailure):
            if isinstance(state, (Loading, Playing, Paused, Seeking)):
                self._fail(state.track, event.kind, event.message)
            return True

        return False

    # ── Internals ────────────────────────────────────────────────────────────

    def _open(self, track: Track, position: float):
        self._generation += 1
        self._clock.reset(self._generation, offset=position, duration=track.duration, track_id=track.id)
        self._streamer.open(track, self._generation, position)

    def _finish(self):
        """Natural end of the current track: hand over to the queue."""
        nxt = self._advance()
        if nxt is None:
            self.stop()
            logger.info("Queue finished")
            return
        self.play(nxt)

    def _fail(self, track: Track, kind: ErrorKind, cause: str):
        self._generation += 1
        self._streamer.cancel()
        self._clock.reset(self._generation)
        self._state = Error(track, kind, cause)
        if self._on_error:
            self._on_error(self._state)

    def _notify_playing(self):
        if self._on_playing and isinstance(self._state, Playing):
            self._on_playing(self._state.track, self._instance)
