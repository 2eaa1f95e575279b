"""Terminal input: raw key reading and the key bindings that turn keys into intents."""
import select as _sel
import sys
import termios
import tty
from dataclasses import dataclass
from typing import Optional

from .config import SEEK_STEP, SEEK_STEP_LARGE, VOLUME_STEP
from .intents import (
    CycleRepeat, Intent, Move, Next, Play, Previous, Remove, Retry, SeekRelative,
    SetVolume, Stop, TogglePause, ToggleShuffle, ToggleStar,
)
from .models import EngineSnapshot

_ARROWS = {"A": "up", "B": "down", "C": "right", "D": "left"}


def read_key() -> str:
    """Read one logical keypress in raw mode; return a normalised key name."""
    fd = sys.stdin.fileno()
    old = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        ch = sys.stdin.read(1)
        if ch == "\x1b":
            readable, _, _ = _sel.select([sys.stdin], [], [], 0.05)
            if readable:
                nxt = sys.stdin.read(1)
                if nxt == "[":
                    readable2, _, _ = _sel.select([sys.stdin], [], [], 0.05)
                    if readable2:
                        return _ARROWS.get(sys.stdin.read(1), "ignore")
                return "ignore"
            return "esc"   # bare Escape
        if ch in ("\r", "\n"):
            return "enter"
        if ch == "\x03":
            return "ctrl-c"
        return ch
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


@dataclass
class View:
    """Front-end-only state: what is selected and shown, not what is playing."""

    selected: int = 0
    show_lyrics: bool = True
    quit: bool = False

    def clamp(self, size: int):
        self.selected = max(0, min(self.selected, size - 1)) if size else 0


def handle_key(key: str, snap: EngineSnapshot, view: View) -> Optional[Intent]:
    """Apply a key to the view and return the intent it stands for, if any."""
    size = len(snap.queue)

    if key in ("q", "ctrl-c"):
        view.quit = True
        return None
    if key == " ":
        return TogglePause()
    if key == "n":
        return Next()
    if key == "p":
        return Previous()
    if key == "right":
        return SeekRelative(SEEK_STEP)
    if key == "left":
        return SeekRelative(-SEEK_STEP)
    if key == ".":
        return SeekRelative(SEEK_STEP_LARGE)
    if key == ",":
        return SeekRelative(-SEEK_STEP_LARGE)
    if key == "up":
        return SetVolume(min(100, snap.volume + VOLUME_STEP))
    if key == "down":
        return SetVolume(max(0, snap.volume - VOLUME_STEP))
    if key == "s":
        return ToggleShuffle()
    if key == "r":
        return CycleRepeat()
    if key == "x":
        return Stop()
    if key == "R":
        return Retry()
    if key == "*":
        return ToggleStar()
    if key == "l":
        view.show_lyrics = not view.show_lyrics
        return None

    # Queue navigation
    if key == "j":
        view.selected += 1
        view.clamp(size)
        return None
    if key == "k":
        view.selected -= 1
        view.clamp(size)
        return None
    if not size:
        return None
    view.clamp(size)
    if key == "enter":
        return Play(view.selected)
    if key == "d":
        index = view.selected
        view.clamp(size - 1)
        return Remove(index)
    if key == "J" and view.selected < size - 1:
        view.selected += 1
        return Move(view.selected - 1, view.selected)
    if key == "K" and view.selected > 0:
        view.selected -= 1
        return Move(view.selected + 1, view.selected)
    return None
