"""Audio decode and output via ffmpeg and PortAudio.

ffmpeg turns the fetched bytes into 16-bit PCM; a writer thread scales it
for volume / replay gain and blocks on the sounddevice output stream, which
gives natural backpressure all the way back to the HTTP read.
"""
import logging
import shutil
import subprocess
import threading
from collections import deque
from typing import Optional, Protocol

import numpy as np

from .config import AUDIO_DEVICE, CHANNELS, DEFAULT_VOLUME, SAMPLE_INTERVAL, SAMPLE_RATE
from .errors import DecodeFailure, DeviceFailure, ErrorKind, NetworkFailure, PlaybackError
from .events import EndOfStream, EventChannel, PositionSample, StreamEvent, StreamFailure, StreamReady
from .fetch import ByteStream

logger = logging.getLogger(__name__)

BLOCK_SECONDS = 0.05
STDERR_TAIL_LINES = 20


class OutputAdapter(Protocol):
    def open(self, source: ByteStream, generation: int, track_id: str,
             seek: float = 0.0, gain: float = 1.0) -> "OutputHandle": ...

    def read_events(self) -> list[StreamEvent]: ...

    def post(self, event: StreamEvent) -> None: ...

    def set_volume(self, level: int) -> None: ...

    def pause(self, handle: "OutputHandle") -> None: ...

    def resume(self, handle: "OutputHandle") -> None: ...

    def close(self, handle: "OutputHandle") -> None: ...


def have_ffmpeg() -> bool:
    return shutil.which("ffmpeg") is not None


def make_ffmpeg_cmd(seek: float, sample_rate: int, channels: int) -> list[str]:
    cmd = ["ffmpeg", "-hide_banner", "-loglevel", "error"]
    if seek > 0:
        cmd += ["-ss", f"{seek:.3f}"]
    cmd += [
        "-i", "pipe:0",
        "-vn",
        "-ac", str(channels),
        "-ar", str(sample_rate),
        "-f", "s16le",
        "pipe:1",
    ]
    return cmd


def apply_gain(pcm: np.ndarray, factor: float) -> np.ndarray:
    """Scale int16 samples by `factor`, clipping instead of wrapping."""
    if factor == 1.0:
        return pcm
    scaled = pcm.astype(np.float32) * factor
    return np.clip(scaled, -32768, 32767).astype(np.int16)


class OutputHandle:
    """One decode/output run for one stream generation."""

    def __init__(self, generation: int, track_id: str, gain: float = 1.0):
        self.generation = generation
        self.track_id = track_id
        self.gain = gain
        self.proc: Optional[subprocess.Popen] = None
        # Last few decoder diagnostics; stderr is drained continuously so ffmpeg never blocks on it
        self.stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        self.stderr_reader: Optional[threading.Thread] = None
        self.stopped = threading.Event()
        self.running = threading.Event()
        self.running.set()
        self._lock = threading.Lock()
        self._ready = False
        self._failed = False

    @property
    def failed(self) -> bool:
        return self._failed

    def ready(self, channel: EventChannel):
        with self._lock:
            if self._ready or self._failed or self.stopped.is_set():
                return
            self._ready = True
        channel.post(StreamReady(self.track_id, self.generation))

    def fail(self, channel: EventChannel, kind: ErrorKind, message: str):
        """Report the first failure of this run; later ones are consequences of it."""
        with self._lock:
            if self._failed or self.stopped.is_set():
                return
            self._failed = True
        channel.post(StreamFailure(self.track_id, self.generation, kind, message))

    def report(self, channel: EventChannel, error: PlaybackError):
        self.fail(channel, error.kind, error.message)


class FfmpegOutput:
    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
        device: Optional[str] = AUDIO_DEVICE,
        volume: int = DEFAULT_VOLUME,
        sample_interval: float = SAMPLE_INTERVAL,
        channel: Optional[EventChannel] = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self.sample_interval = sample_interval
        self.events = channel if channel is not None else EventChannel()
        self._volume: float = max(0, min(100, volume)) / 100
        # Single writer for device-affecting commands
        self._command_lock = threading.Lock()

    # ── Commands ───────────────────────────────────────────────────────────────

    def open(self, source: ByteStream, generation: int, track_id: str,
             seek: float = 0.0, gain: float = 1.0) -> OutputHandle:
        """Start decoding `source`, skipping `seek` seconds inside the decoder."""
        handle = OutputHandle(generation, track_id, gain)
        cmd = make_ffmpeg_cmd(seek, self.sample_rate, self.channels)
        try:
            handle.proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            source.close()
            raise DecodeFailure(f"failed to start ffmpeg: {e}") from e

        handle.stderr_reader = threading.Thread(target=self._drain_stderr, args=(handle,), daemon=True,
                                                name=f"stderr-{generation}")
        handle.stderr_reader.start()
        threading.Thread(target=self._feed, args=(handle, source), daemon=True,
                         name=f"feed-{generation}").start()
        threading.Thread(target=self._play, args=(handle,), daemon=True,
                         name=f"play-{generation}").start()
        return handle

    def read_events(self) -> list[StreamEvent]:
        return self.events.drain()

    def post(self, event: StreamEvent):
        self.events.post(event)

    def set_volume(self, level: int):
        with self._command_lock:
            self._volume = max(0, min(100, level)) / 100

    def pause(self, handle: OutputHandle):
        with self._command_lock:
            handle.running.clear()

    def resume(self, handle: OutputHandle):
        with self._command_lock:
            handle.running.set()

    def close(self, handle: OutputHandle):
        """Stop a run without waiting for its threads to finish."""
        with self._command_lock:
            handle.stopped.set()
            handle.running.set()
            proc = handle.proc
            if proc and proc.poll() is None:
                try:
                    proc.terminate()
                except ProcessLookupError:
                    pass

    # ── Worker threads ─────────────────────────────────────────────────────────

    def _feed(self, handle: OutputHandle, source: ByteStream):
        """Copy fetched bytes into ffmpeg's stdin."""
        stdin = handle.proc.stdin
        try:
            for chunk in source.iter_chunks():
                if handle.stopped.is_set():
                    break
                stdin.write(chunk)
        except NetworkFailure as e:
            handle.report(self.events, e)
        except (BrokenPipeError, ValueError):
            pass  # ffmpeg went away; the writer thread reports why
        except OSError as e:
            logger.debug("Feeder for gen %d stopped: %s", handle.generation, e)
        finally:
            source.close()
            try:
                stdin.close()
            except (BrokenPipeError, OSError):
                pass

    def _play(self, handle: OutputHandle):
        """Read PCM from ffmpeg and push it to the output device."""
        proc = handle.proc
        try:
            import sounddevice as sd
        except OSError as e:
            handle.report(self.events, DeviceFailure(f"PortAudio not available: {e}"))
            self._reap(handle)
            return

        frame_bytes = self.channels * 2
        block_bytes = int(self.sample_rate * BLOCK_SECONDS) * frame_bytes
        sample_every = max(1, int(self.sample_interval * self.sample_rate))
        carry = b""
        frames = 0
        last_sample = 0

        try:
            with sd.RawOutputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
            ) as out:
                while not handle.stopped.is_set():
                    data = proc.stdout.read1(block_bytes)
                    if not data:
                        break
                    data = carry + data
                    usable = len(data) - len(data) % frame_bytes
                    carry = data[usable:]
                    if not usable:
                        continue

                    pcm = np.frombuffer(data[:usable], dtype=np.int16)
                    pcm = apply_gain(pcm, handle.gain * self._volume)
                    handle.ready(self.events)

                    if not handle.running.is_set():
                        out.stop()
                        handle.running.wait()
                        if handle.stopped.is_set():
                            break
                        out.start()

                    out.write(pcm.tobytes())
                    frames += usable // frame_bytes
                    if frames - last_sample >= sample_every:
                        last_sample = frames
                        elapsed = max(0.0, frames / self.sample_rate - out.latency)
                        self.events.post(PositionSample(handle.track_id, elapsed, handle.generation))

                if handle.stopped.is_set():
                    out.abort()
        except sd.PortAudioError as e:
            handle.report(self.events, DeviceFailure(f"output device error: {e}"))
            self._reap(handle)
            return

        rc, err = self._reap(handle)
        if handle.stopped.is_set() or handle.failed:
            return
        if rc != 0:
            handle.report(self.events, DecodeFailure(err or f"ffmpeg exited with {rc}"))
        elif frames == 0:
            handle.report(self.events, DecodeFailure(err or "no audio decoded"))
        else:
            self.events.post(EndOfStream(handle.track_id, handle.generation))

    @staticmethod
    def _drain_stderr(handle: OutputHandle):
        """Keep ffmpeg's stderr flowing; only the tail is kept for error reports."""
        try:
            for line in handle.proc.stderr:
                text = line.decode(errors="replace").strip()
                if text:
                    handle.stderr_tail.append(text)
        except (OSError, ValueError):
            pass

    @staticmethod
    def _reap(handle: OutputHandle) -> tuple[int, str]:
        proc = handle.proc
        if proc.poll() is None:
            proc.terminate()
        try:
            proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
        if handle.stderr_reader is not None:
            handle.stderr_reader.join(timeout=1)
        err = "\n".join(handle.stderr_tail)[-300:]
        return proc.returncode, err
