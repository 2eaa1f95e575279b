"""Fetch + decode orchestration: opens streams off the UI loop.

Each open is a job tagged with its stream generation. Cancelling a job never
waits for it; whatever it reports afterwards carries a stale generation and
is dropped by the transport.
"""
import logging
import threading
from typing import Callable, Optional

from .errors import ErrorKind, PlaybackError
from .events import StreamEvent, StreamFailure
from .fetch import Fetcher
from .models import Track
from .player import OutputAdapter, OutputHandle

logger = logging.getLogger(__name__)

# Containers where a proportional byte offset lands close enough to the time target
BYTE_SEEKABLE_TYPES = {"audio/mpeg", "audio/mp3", "audio/x-mpeg", "audio/aac", "audio/aacp"}

Runner = Callable[[Callable[[], None]], None]


def spawn_thread(fn: Callable[[], None]):
    threading.Thread(target=fn, daemon=True, name="stream-open").start()


class _Job:
    def __init__(self, track: Track, generation: int, position: float):
        self.track = track
        self.generation = generation
        self.position = position
        self.handle: Optional[OutputHandle] = None
        self.paused = False
        self.cancelled = False


class StreamOrchestrator:
    def __init__(self, fetcher: Fetcher, output: OutputAdapter, runner: Optional[Runner] = None):
        self._fetcher = fetcher
        self._output = output
        self._runner = runner or spawn_thread
        self._lock = threading.Lock()
        self._job: Optional[_Job] = None
        # track id -> (total bytes, content type) learned from earlier responses
        self._layout: dict[str, tuple[int, str]] = {}

    @property
    def output(self) -> OutputAdapter:
        return self._output

    def open(self, track: Track, generation: int, position: float = 0.0):
        """Cancel whatever is running and start streaming `track` from `position`."""
        self.cancel()
        job = _Job(track, generation, position)
        with self._lock:
            self._job = job
        self._runner(lambda: self._run(job))

    def cancel(self):
        with self._lock:
            job, self._job = self._job, None
            if job is None:
                return
            job.cancelled = True
            handle = job.handle
        if handle is not None:
            self._output.close(handle)
        else:
            # Still connecting: abort the request so the job thread unblocks
            self._fetcher.cancel()

    def pause(self):
        with self._lock:
            job = self._job
            if job is None:
                return
            job.paused = True
            if job.handle is not None:
                self._output.pause(job.handle)

    def resume(self):
        with self._lock:
            job = self._job
            if job is None:
                return
            job.paused = False
            if job.handle is not None:
                self._output.resume(job.handle)

    def set_volume(self, level: int):
        self._output.set_volume(level)

    def read_events(self) -> list[StreamEvent]:
        return self._output.read_events()

    def plan_seek(self, track: Track, position: float) -> tuple[int, float]:
        """Return (byte offset to fetch from, seconds for the decoder to skip)."""
        if position <= 0:
            return 0, 0.0
        layout = self._layout.get(track.id)
        if layout and track.duration > 0:
            length, content_type = layout
            if content_type in BYTE_SEEKABLE_TYPES:
                offset = int(length * min(position / track.duration, 1.0))
                return offset, 0.0
        return 0, position

    # ── Job thread ─────────────────────────────────────────────────────────────

    def _run(self, job: _Job):
        track = job.track
        try:
            byte_offset, decoder_seek = self.plan_seek(track, job.position)
            source = self._fetcher.open(track.stream_url, byte_offset)
            if source.content_length:
                self._layout[track.id] = (source.content_length, source.content_type)
            if source.offset != byte_offset:
                # Range ignored: fetched from the start, let the decoder skip instead
                decoder_seek = job.position

            with self._lock:
                if job.cancelled:
                    source.close()
                    return

            handle = self._output.open(source, job.generation, track.id,
                                       seek=decoder_seek, gain=track.gain_factor)
            with self._lock:
                if job.cancelled:
                    self._output.close(handle)
                    return
                job.handle = handle
                if job.paused:
                    self._output.pause(handle)
        except PlaybackError as e:
            if not job.cancelled:
                self._report(job, e.kind, e.message)
        except Exception as e:
            logger.exception("Stream open failed for %s", track.id)
            if not job.cancelled:
                self._report(job, ErrorKind.DECODE, str(e))

    def _report(self, job: _Job, kind: ErrorKind, message: str):
        logger.warning("Stream gen %d for %s failed (%s): %s", job.generation, job.track.id, kind.value, message)
        self._output.post(StreamFailure(job.track.id, job.generation, kind, message))
