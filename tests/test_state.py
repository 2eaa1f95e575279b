from subtune.web.state import SnapshotHub


async def test_new_client_gets_latest_snapshot():
    hub = SnapshotHub()
    await hub.publish({"phase": "playing"})
    box = hub.attach("a")
    assert box.get_nowait() == {"phase": "playing"}
    assert hub.clients == 1


async def test_first_client_starts_empty():
    hub = SnapshotHub()
    box = hub.attach("a")
    assert box.empty()


async def test_slow_client_keeps_only_newest():
    hub = SnapshotHub(depth=2)
    box = hub.attach("slow")
    for tick in range(5):
        await hub.publish({"tick": tick})
    assert box.get_nowait() == {"tick": 4}
    assert box.empty()


async def test_detach():
    hub = SnapshotHub()
    hub.attach("a")
    hub.detach("a")
    hub.detach("a")
    assert hub.clients == 0
    await hub.publish({"phase": "stopped"})
    assert hub.latest == {"phase": "stopped"}
