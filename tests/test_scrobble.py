from fakes import FakeCatalog, make_tracks
from subtune.errors import NetworkFailure
from subtune.scrobble import Scrobbler, played_threshold


def test_played_threshold():
    assert played_threshold(200.0, 0.5, 240, 30) == 100.0
    assert played_threshold(900.0, 0.5, 240, 30) == 240.0
    assert played_threshold(40.0, 0.5, 240, 30) == 30.0


async def test_played_submitted_once_per_instance():
    catalog = FakeCatalog()
    scrobbler = Scrobbler(catalog, 0.5, 240, 30)
    track = make_tracks(1)[0]

    scrobbler.update(track, 1, 99.0)
    scrobbler.update(track, 1, 100.0)
    scrobbler.update(track, 1, 150.0)
    await scrobbler.settle()
    assert catalog.scrobbles == [("t0", True)]

    scrobbler.update(track, 2, 120.0)
    await scrobbler.settle()
    assert catalog.scrobbles == [("t0", True), ("t0", True)]


async def test_now_playing_once_per_instance():
    catalog = FakeCatalog()
    scrobbler = Scrobbler(catalog)
    track = make_tracks(1)[0]
    scrobbler.now_playing(track, 1)
    scrobbler.now_playing(track, 1)
    scrobbler.now_playing(track, 2)
    await scrobbler.settle()
    assert catalog.scrobbles == [("t0", False), ("t0", False)]


async def test_failed_scrobble_is_logged_not_raised(caplog):
    class Offline(FakeCatalog):
        async def scrobble(self, track_id, submission):
            raise NetworkFailure("scrobble timed out")

    scrobbler = Scrobbler(Offline())
    scrobbler.now_playing(make_tracks(1)[0], 1)
    await scrobbler.settle()
    assert "scrobble timed out" in caplog.text


async def test_seek_jumps_do_not_count_as_listening():
    catalog = FakeCatalog()
    scrobbler = Scrobbler(catalog, 0.5, 240, 30)
    track = make_tracks(1)[0]

    scrobbler.update(track, 1, 70.0, generation=1, start=0.0)
    # Seek to 150s opens generation 2 there
    scrobbler.update(track, 1, 150.0, generation=2, start=150.0)
    scrobbler.update(track, 1, 170.0, generation=2, start=150.0)
    assert scrobbler.listened == 90.0
    await scrobbler.settle()
    assert catalog.scrobbles == []

    scrobbler.update(track, 1, 190.0, generation=2, start=150.0)
    await scrobbler.settle()
    assert catalog.scrobbles == [("t0", True)]
