"""Error kinds and structured error logging: JSON lines to errors.log, no terminal formatting."""
import enum
import json
import logging
import sys
from datetime import datetime
from typing import Optional

from .config import ERRORS_LOG, OUTPUT_DIR, DEV_MODE

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    NETWORK = "network"
    SERVER = "server"
    DECODE = "decode"
    DEVICE = "device"
    QUEUE_EMPTY = "queue_empty"


class PlaybackError(Exception):
    """Base class for every failure the engine classifies."""

    kind: ErrorKind = ErrorKind.DECODE

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NetworkFailure(PlaybackError):
    """Connect/read timeout, connection reset, DNS failure."""

    kind = ErrorKind.NETWORK


class ServerFailure(PlaybackError):
    """Non-2xx status or a malformed/error response from the server."""

    kind = ErrorKind.SERVER


class DecodeFailure(PlaybackError):
    kind = ErrorKind.DECODE


class DeviceFailure(PlaybackError):
    kind = ErrorKind.DEVICE


class QueueEmpty(PlaybackError):
    """Advance requested with nothing left to play. Not an error state."""

    kind = ErrorKind.QUEUE_EMPTY


_FRIENDLY_MESSAGES = {
    ErrorKind.NETWORK: "Couldn't reach the server. Check your connection.",
    ErrorKind.SERVER: "The server refused to stream this track.",
    ErrorKind.DECODE: "This track couldn't be decoded.",
    ErrorKind.DEVICE: "Audio output device unavailable.",
}


def format_error(
    stage: str,
    kind: ErrorKind,
    raw: str = "",
    track_id: Optional[str] = None,
) -> str:
    """Record a failure and return the message the UI should show."""
    entry = {
        "timestamp": datetime.now().isoformat(),
        "stage": stage,
        "kind": kind.value,
        "track": track_id,
        "error": raw,
        "python": sys.version.split()[0],
    }

    _append_to_log(entry)
    logger.error("Error at %s (%s): %s", stage, kind.value, raw)

    if DEV_MODE:
        return json.dumps(entry, indent=2)
    return _FRIENDLY_MESSAGES.get(kind, f"Something went wrong ({stage}).")


def _append_to_log(entry: dict):
    try:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        with open(ERRORS_LOG, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError:
        pass
