from subtune.lyrics import LyricsSynchronizer, normalize_cues
from subtune.models import LyricLine


def cues(*starts):
    return [LyricLine(s, f"line at {s}") for s in starts]


def test_index_sequence_over_positions():
    sync = LyricsSynchronizer(epsilon=0.25)
    sync.load("t", cues(0.0, 12.0, 30.0))
    assert [sync.update(p) for p in (0, 5, 11.9, 12.0, 29.9, 31)] == [0, 0, 0, 1, 1, 2]


def test_no_active_line_before_first_cue():
    sync = LyricsSynchronizer()
    sync.load("t", cues(4.0, 8.0))
    assert sync.update(1.0) is None
    assert sync.update(4.0) == 0


def test_no_cues_means_no_active_line():
    sync = LyricsSynchronizer()
    sync.load("t", [])
    assert sync.update(10.0) is None


def test_small_backwards_jitter_holds_line():
    sync = LyricsSynchronizer(epsilon=0.25)
    sync.load("t", cues(0.0, 12.0, 30.0))
    assert sync.update(12.05) == 1
    assert sync.update(11.9) == 1


def test_large_backwards_move_follows_position():
    sync = LyricsSynchronizer(epsilon=0.25)
    sync.load("t", cues(0.0, 12.0, 30.0))
    assert sync.update(31.0) == 2
    assert sync.update(5.0) == 0


def test_unsorted_cues_are_sorted():
    sync = LyricsSynchronizer()
    sync.load("t", cues(30.0, 0.0, 12.0))
    assert [line.start for line in sync.lines] == [0.0, 12.0, 30.0]


def test_duplicate_timestamps_are_merged():
    lines = [LyricLine(5.0, "hello"), LyricLine(5.0, "hola"), LyricLine(9.0, "bye")]
    merged = normalize_cues(lines)
    assert merged == (LyricLine(5.0, "hello\nhola"), LyricLine(9.0, "bye"))


def test_negative_starts_clamp_to_zero():
    assert normalize_cues([LyricLine(-1.5, "x")]) == (LyricLine(0.0, "x"),)


def test_clear():
    sync = LyricsSynchronizer()
    sync.load("t", cues(0.0))
    sync.update(1.0)
    sync.clear()
    assert sync.track_id is None
    assert sync.active is None
    assert sync.lines == ()
