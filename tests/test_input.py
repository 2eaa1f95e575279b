from fakes import make_tracks
from subtune.config import SEEK_STEP, SEEK_STEP_LARGE, VOLUME_STEP
from subtune.input import View, handle_key
from subtune.intents import (
    CycleRepeat, Move, Next, Play, Previous, Remove, Retry, SeekRelative, SetVolume,
    Stop, TogglePause, ToggleShuffle, ToggleStar,
)
from subtune.models import EngineSnapshot


def snap(n=4, volume=50):
    return EngineSnapshot(queue=tuple(make_tracks(n)), volume=volume)


def test_transport_keys():
    view = View()
    s = snap()
    assert handle_key(" ", s, view) == TogglePause()
    assert handle_key("n", s, view) == Next()
    assert handle_key("p", s, view) == Previous()
    assert handle_key("x", s, view) == Stop()
    assert handle_key("R", s, view) == Retry()
    assert handle_key("s", s, view) == ToggleShuffle()
    assert handle_key("r", s, view) == CycleRepeat()
    assert handle_key("*", s, view) == ToggleStar()


def test_seek_and_volume_keys():
    view = View()
    s = snap(volume=98)
    assert handle_key("right", s, view) == SeekRelative(SEEK_STEP)
    assert handle_key("left", s, view) == SeekRelative(-SEEK_STEP)
    assert handle_key(".", s, view) == SeekRelative(SEEK_STEP_LARGE)
    assert handle_key(",", s, view) == SeekRelative(-SEEK_STEP_LARGE)
    assert handle_key("up", s, view) == SetVolume(100)
    assert handle_key("down", s, view) == SetVolume(98 - VOLUME_STEP)


def test_selection_stays_in_range():
    view = View()
    s = snap(3)
    for _ in range(5):
        handle_key("j", s, view)
    assert view.selected == 2
    for _ in range(5):
        handle_key("k", s, view)
    assert view.selected == 0


def test_enter_plays_selected():
    view = View(selected=2)
    assert handle_key("enter", snap(), view) == Play(2)


def test_remove_selected_last_row_moves_selection_up():
    view = View(selected=3)
    assert handle_key("d", snap(), view) == Remove(3)
    assert view.selected == 2


def test_move_selected_item_down_and_up():
    view = View(selected=1)
    s = snap()
    assert handle_key("J", s, view) == Move(1, 2)
    assert view.selected == 2
    assert handle_key("K", s, view) == Move(2, 1)
    assert view.selected == 1


def test_move_at_edges_does_nothing():
    s = snap()
    assert handle_key("K", s, View(selected=0)) is None
    assert handle_key("J", s, View(selected=3)) is None


def test_empty_queue_ignores_queue_keys():
    view = View()
    assert handle_key("enter", snap(0), view) is None
    assert handle_key("d", snap(0), view) is None


def test_quit_and_lyrics_toggle_are_view_only():
    view = View()
    assert handle_key("l", snap(), view) is None
    assert not view.show_lyrics
    assert handle_key("q", snap(), view) is None
    assert view.quit
