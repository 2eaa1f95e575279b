"""Playback engine: the single entry point for the UI loop.

Takes intents through `dispatch`, drains adapter events on every `tick`,
and publishes an immutable EngineSnapshot. It owns all mutable playback
state; the UI and remote clients only ever read snapshots.
"""
import asyncio
import logging
from typing import Optional

from .catalog import Catalog
from .clock import PositionClock
from .config import DEFAULT_VOLUME, LYRIC_JITTER_EPSILON, RESTART_THRESHOLD, TICK_INTERVAL
from .errors import PlaybackError, QueueEmpty, format_error
from .fetch import HttpFetcher
from .intents import (
    ClearQueue, CycleRepeat, Enqueue, InsertAt, Intent, Move, Next, Play, Previous,
    Remove, ReplaceQueue, Retry, SeekAbsolute, SeekRelative, SetVolume, Stop,
    TogglePause, ToggleShuffle, ToggleStar,
)
from .lyrics import LyricsSynchronizer
from .models import EngineSnapshot, ErrorInfo, LyricLine, Phase, Track
from .player import FfmpegOutput
from .playqueue import Direction, QueueManager
from .scrobble import Scrobbler
from .stream import StreamOrchestrator
from .transport import Error, Transport
from .utils import clamp

logger = logging.getLogger(__name__)


class PlaybackEngine:
    def __init__(
        self,
        catalog: Catalog,
        streamer: Optional[StreamOrchestrator] = None,
        queue: Optional[QueueManager] = None,
        hub=None,
        volume: int = DEFAULT_VOLUME,
        lyric_epsilon: float = LYRIC_JITTER_EPSILON,
        scrobbler: Optional[Scrobbler] = None,
    ):
        """hub: optional SnapshotHub; every changed snapshot is broadcast to it."""
        self.catalog = catalog
        self.hub = hub
        self.queue = queue if queue is not None else QueueManager(RESTART_THRESHOLD)
        self.streamer = streamer or StreamOrchestrator(HttpFetcher(), FfmpegOutput(volume=volume))
        self.clock = PositionClock()
        self.lyrics = LyricsSynchronizer(lyric_epsilon)
        self.scrobbler = scrobbler or Scrobbler(catalog)
        self.transport = Transport(
            self.streamer,
            self.clock,
            advance=self._next_on_end,
            on_playing=self.scrobbler.now_playing,
            on_error=self._on_error,
        )

        self._volume = int(clamp(volume, 0, 100))
        self.transport.set_volume(self._volume)
        self._error: Optional[ErrorInfo] = None
        self._starred: dict[str, bool] = {}

        # Lyrics for the current and next track only; everything else evicted
        self._lyrics_cache: dict[str, tuple[LyricLine, ...]] = {}
        self._lyrics_tasks: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()

        self._tick = 0
        self._snapshot = self._build_snapshot()
        self._running = False

    # ── Public API ───────────────────────────────────────────────────────────

    @property
    def snapshot(self) -> EngineSnapshot:
        return self._snapshot

    async def dispatch(self, intent: Intent) -> EngineSnapshot:
        """Apply one intent. Intents that make no sense right now are no-ops."""
        try:
            self._apply(intent)
        except IndexError as e:
            logger.info("Ignoring %r: %s", intent, e)
        self._sync_lyrics()
        return await self._publish()

    async def tick(self) -> EngineSnapshot:
        """Drain adapter events, advance derived state and publish a snapshot."""
        for event in self.streamer.read_events():
            self.transport.handle(event)

        self._sync_lyrics()
        if self.transport.state.phase == Phase.PLAYING:
            self.scrobbler.update(self.transport.track, self.transport.instance, self.transport.position,
                                  self.clock.generation, self.clock.offset)
        self._tick += 1
        return await self._publish()

    async def settle(self):
        """Wait for background catalog calls (lyrics, stars, scrobbles) to finish."""
        while self._tasks or self._lyrics_tasks:
            pending = list(self._tasks) + list(self._lyrics_tasks.values())
            await asyncio.gather(*pending, return_exceptions=True)
        await self.scrobbler.settle()
        self._sync_lyrics()

    async def run(self, interval: float = TICK_INTERVAL):
        """Tick until shutdown() is called."""
        self._running = True
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Engine tick error")
            await asyncio.sleep(interval)

    async def shutdown(self):
        self._running = False
        self.transport.stop()
        for task in list(self._tasks) + list(self._lyrics_tasks.values()):
            task.cancel()
        await asyncio.gather(*self._tasks, *self._lyrics_tasks.values(), return_exceptions=True)
        await self.scrobbler.settle()

    # ── Intent handling ──────────────────────────────────────────────────────

    def _apply(self, intent: Intent):
        if isinstance(intent, Play):
            self._start(self.queue.set_current(intent.index))

        elif isinstance(intent, TogglePause):
            self.transport.toggle_pause()

        elif isinstance(intent, Stop):
            self.transport.stop()

        elif isinstance(intent, Next):
            try:
                self._start(self.queue.advance(Direction.NEXT))
            except QueueEmpty:
                self.transport.stop()

        elif isinstance(intent, Previous):
            try:
                self._start(self.queue.advance(Direction.PREVIOUS, self.transport.position))
            except QueueEmpty:
                pass

        elif isinstance(intent, SeekRelative):
            self.transport.seek_relative(intent.delta)

        elif isinstance(intent, SeekAbsolute):
            self.transport.seek(intent.position)

        elif isinstance(intent, SetVolume):
            self._volume = int(clamp(intent.level, 0, 100))
            self.transport.set_volume(self._volume)

        elif isinstance(intent, ToggleShuffle):
            self.queue.toggle_shuffle()

        elif isinstance(intent, CycleRepeat):
            self.queue.cycle_repeat()

        elif isinstance(intent, Retry):
            if isinstance(self.transport.state, Error):
                self._error = None
                self.transport.retry()

        elif isinstance(intent, Enqueue):
            self.queue.extend(intent.tracks)

        elif isinstance(intent, InsertAt):
            self.queue.insert_at(intent.index, intent.track)

        elif isinstance(intent, Remove):
            self._remove(intent.index)

        elif isinstance(intent, Move):
            self.queue.move(intent.src, intent.dst)

        elif isinstance(intent, ClearQueue):
            self.transport.stop()
            self.queue.clear()

        elif isinstance(intent, ReplaceQueue):
            self.transport.stop()
            self.queue.set_tracks(intent.tracks)
            if intent.start is not None and intent.tracks:
                self._start(self.queue.set_current(intent.start))

        elif isinstance(intent, ToggleStar):
            self._toggle_star(intent.index)

        else:
            logger.warning("Unknown intent %r", intent)

    def _start(self, track: Track):
        self._error = None
        self.transport.play(track)

    def _remove(self, index: int):
        was_current = self.queue.remove_at(index)
        if not was_current or self.transport.state.phase in (Phase.STOPPED, Phase.ERROR):
            return
        successor = self.queue.current
        if successor is None:
            self.transport.stop()
        else:
            self._start(successor)

    def _toggle_star(self, index: Optional[int]):
        if index is None:
            track = self.transport.track or self.queue.current
        else:
            if not 0 <= index < len(self.queue):
                raise IndexError(f"queue index {index} out of range")
            track = self.queue.tracks[index]
        if track is None:
            return
        starred = not self._is_starred(track)
        self._starred[track.id] = starred
        self._spawn(self._send_star(track, starred))

    async def _send_star(self, track: Track, starred: bool):
        try:
            if starred:
                await self.catalog.star(track.id)
            else:
                await self.catalog.unstar(track.id)
        except PlaybackError as e:
            # Server refused: show the real state again
            self._starred[track.id] = not starred
            logger.warning("%s failed for %s: %s", "Star" if starred else "Unstar", track.id, e.message)

    def _is_starred(self, track: Optional[Track]) -> bool:
        if track is None:
            return False
        return self._starred.get(track.id, track.starred)

    # ── Transport callbacks ──────────────────────────────────────────────────

    def _next_on_end(self) -> Optional[Track]:
        try:
            track = self.queue.advance(Direction.NEXT)
        except QueueEmpty:
            return None
        self._error = None
        return track

    def _on_error(self, state: Error):
        message = format_error("playback", state.kind, state.cause, state.track.id)
        self._error = ErrorInfo(state.kind.value, message, state.track.id)

    # ── Lyrics ───────────────────────────────────────────────────────────────

    def _sync_lyrics(self):
        """Keep lyrics loaded for the current track and prefetched for the next one."""
        current = self.transport.track or self.queue.current
        upcoming = self.queue.peek_next()
        wanted = {t.id for t in (current, upcoming) if t is not None}

        for track_id in list(self._lyrics_cache):
            if track_id not in wanted:
                del self._lyrics_cache[track_id]
        for track_id, task in list(self._lyrics_tasks.items()):
            if track_id not in wanted:
                task.cancel()
                del self._lyrics_tasks[track_id]
        for track_id in wanted:
            if track_id not in self._lyrics_cache and track_id not in self._lyrics_tasks:
                self._lyrics_tasks[track_id] = asyncio.get_running_loop().create_task(
                    self._load_lyrics(track_id)
                )

        if current is None:
            if self.lyrics.track_id is not None:
                self.lyrics.clear()
        elif self.lyrics.track_id != current.id:
            if current.id in self._lyrics_cache:
                self.lyrics.load(current.id, self._lyrics_cache[current.id])
            elif self.lyrics.track_id is not None:
                self.lyrics.clear()

    async def _load_lyrics(self, track_id: str):
        try:
            lines = await self.catalog.get_lyrics(track_id)
        except PlaybackError as e:
            logger.warning("Lyrics fetch failed for %s: %s", track_id, e.message)
            lines = []
        finally:
            task = self._lyrics_tasks.get(track_id)
            if task is asyncio.current_task():
                del self._lyrics_tasks[track_id]
        # Dropped if the track stopped being current or next meanwhile
        current = self.transport.track or self.queue.current
        upcoming = self.queue.peek_next()
        if any(t is not None and t.id == track_id for t in (current, upcoming)):
            self._lyrics_cache[track_id] = tuple(lines)

    # ── Snapshot ─────────────────────────────────────────────────────────────

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _build_snapshot(self) -> EngineSnapshot:
        transport = self.transport
        track = transport.track
        position = transport.position
        lyrics: tuple[LyricLine, ...] = ()
        lyric_index = None
        if track is not None and self.lyrics.track_id == track.id:
            lyrics = self.lyrics.lines
            lyric_index = self.lyrics.update(position)

        return EngineSnapshot(
            track=track,
            phase=transport.state.phase,
            position=position,
            duration=track.duration if track else 0.0,
            volume=self._volume,
            shuffle=self.queue.shuffle,
            repeat=self.queue.repeat,
            lyric_index=lyric_index,
            lyrics=lyrics,
            error=self._error,
            queue=self.queue.tracks,
            current_index=self.queue.current_index,
            starred=self._is_starred(track),
            generation=transport.generation,
            tick=self._tick,
        )

    async def _publish(self) -> EngineSnapshot:
        snapshot = self._build_snapshot()
        changed = snapshot != self._snapshot
        self._snapshot = snapshot
        if changed and self.hub is not None:
            await self.hub.publish(snapshot.to_dict())
        return snapshot
