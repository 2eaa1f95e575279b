import io

from rich.console import Console

from fakes import make_tracks
from subtune.models import EngineSnapshot, ErrorInfo, LyricLine, Phase, RepeatMode
from subtune.ui import progress_bar, render


def draw(renderable) -> str:
    out = io.StringIO()
    Console(file=out, width=120, color_system=None).print(renderable)
    return out.getvalue()


def test_render_now_playing_with_lyrics_and_queue():
    tracks = tuple(make_tracks(3))
    snap = EngineSnapshot(
        track=tracks[1], phase=Phase.PLAYING, position=65.0, duration=200.0, volume=70,
        shuffle=True, repeat=RepeatMode.ONE, queue=tracks, current_index=1,
        lyrics=(LyricLine(0.0, "first line"), LyricLine(60.0, "second line")), lyric_index=1,
        starred=True,
    )
    text = draw(render(snap, selected=1))
    assert "Song 1" in text
    assert "1:05" in text
    assert "repeat one" in text
    assert "second line" in text
    assert "Song 2" in text


def test_render_hides_lyrics_when_toggled_off():
    tracks = tuple(make_tracks(1))
    snap = EngineSnapshot(track=tracks[0], phase=Phase.PLAYING, queue=tracks, current_index=0,
                          lyrics=(LyricLine(0.0, "hidden words"),), lyric_index=0)
    assert "hidden words" not in draw(render(snap, show_lyrics=False))


def test_render_error_and_empty_states():
    assert "Nothing playing" in draw(render(EngineSnapshot()))
    assert "Queue is empty" in draw(render(EngineSnapshot()))

    track = make_tracks(1)[0]
    snap = EngineSnapshot(track=track, phase=Phase.ERROR, error=ErrorInfo("network", "Couldn't reach the server.", "t0"))
    assert "Couldn't reach the server." in draw(render(snap))


def test_progress_bar_unknown_duration():
    assert "━" not in progress_bar(10.0, 0.0)
