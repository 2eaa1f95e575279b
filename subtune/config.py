"""Config & constants, read from the environment and .env"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (two levels up from subtune/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

# ─── Paths ────────────────────────────────────────────────────────────────────
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(Path.home() / ".cache" / "subtune")))
ERRORS_LOG = OUTPUT_DIR / "errors.log"
LOG_FILE = OUTPUT_DIR / "subtune.log"

# ─── Server ───────────────────────────────────────────────────────────────────
SUBSONIC_URL = os.getenv("SUBSONIC_URL", "").rstrip("/")
SUBSONIC_USER = os.getenv("SUBSONIC_USER", "")
SUBSONIC_PASSWORD = os.getenv("SUBSONIC_PASSWORD", "")
SUBSONIC_API_KEY = os.getenv("SUBSONIC_API_KEY", "")
SUBSONIC_CLIENT = os.getenv("SUBSONIC_CLIENT", "subtune")
SUBSONIC_API_VERSION = os.getenv("SUBSONIC_API_VERSION", "1.16.1")
CATALOG_TIMEOUT = float(os.getenv("CATALOG_TIMEOUT", "15"))

# ─── Fetch ────────────────────────────────────────────────────────────────────
FETCH_CONNECT_TIMEOUT = float(os.getenv("FETCH_CONNECT_TIMEOUT", "5"))
FETCH_READ_TIMEOUT = float(os.getenv("FETCH_READ_TIMEOUT", "20"))
FETCH_CHUNK_SIZE = int(os.getenv("FETCH_CHUNK_SIZE", "65536"))
STREAM_FORMAT = os.getenv("STREAM_FORMAT", "")      # "" = server default, e.g. "mp3", "opus"
MAX_BITRATE = int(os.getenv("MAX_BITRATE", "0"))    # 0 = no limit

# ─── Audio output ─────────────────────────────────────────────────────────────
SAMPLE_RATE = int(os.getenv("SAMPLE_RATE", "44100"))
CHANNELS = int(os.getenv("CHANNELS", "2"))
AUDIO_DEVICE = os.getenv("AUDIO_DEVICE") or None
DEFAULT_VOLUME = max(0, min(100, int(os.getenv("DEFAULT_VOLUME", "80"))))
SAMPLE_INTERVAL = float(os.getenv("SAMPLE_INTERVAL", "0.1"))  # seconds of audio between position samples
EVENT_CHANNEL_SIZE = int(os.getenv("EVENT_CHANNEL_SIZE", "256"))

# ─── Playback behaviour ───────────────────────────────────────────────────────
# "Previous" within this many elapsed seconds goes to the prior track,
# past it the current track restarts.
RESTART_THRESHOLD = float(os.getenv("RESTART_THRESHOLD", "3.0"))

# Scrobble "played" once position >= min(duration * fraction, max seconds)
# and position >= min seconds.
SCROBBLE_FRACTION = float(os.getenv("SCROBBLE_FRACTION", "0.5"))
SCROBBLE_MAX_SECONDS = float(os.getenv("SCROBBLE_MAX_SECONDS", "240"))
SCROBBLE_MIN_SECONDS = float(os.getenv("SCROBBLE_MIN_SECONDS", "30"))

# Backwards position jitter smaller than this never moves the active lyric line back
LYRIC_JITTER_EPSILON = float(os.getenv("LYRIC_JITTER_EPSILON", "0.25"))

SEEK_STEP = float(os.getenv("SEEK_STEP", "10"))
SEEK_STEP_LARGE = float(os.getenv("SEEK_STEP_LARGE", "60"))
VOLUME_STEP = int(os.getenv("VOLUME_STEP", "5"))
TICK_INTERVAL = float(os.getenv("TICK_INTERVAL", "0.1"))

APP_VERSION = "0.3.0"

# ─── Remote control ───────────────────────────────────────────────────────────
WEB_PORT = int(os.getenv("WEB_PORT", "8888"))

# ─── Dev mode ─────────────────────────────────────────────────────────────────
DEV_MODE = os.getenv("DEV_MODE", "0").strip() in ("1", "true", "yes")
