"""SnapshotHub: hands the newest engine snapshot to every remote client."""
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class SnapshotHub:
    """Latest-wins fan-out.

    Each client gets a small mailbox. A snapshot supersedes everything
    before it, so a client that falls behind has its backlog collapsed to
    the newest snapshot instead of replaying stale ones.
    """

    def __init__(self, depth: int = 4):
        self.depth = depth
        self.latest: Optional[dict] = None
        self._mailboxes: dict[str, asyncio.Queue] = {}

    def attach(self, client_id: str) -> asyncio.Queue:
        """Open a mailbox for `client_id`, primed with the latest snapshot if any."""
        box: asyncio.Queue = asyncio.Queue(maxsize=self.depth)
        if self.latest is not None:
            box.put_nowait(self.latest)
        self._mailboxes[client_id] = box
        logger.debug("Client %s attached (%d total)", client_id, len(self._mailboxes))
        return box

    def detach(self, client_id: str):
        self._mailboxes.pop(client_id, None)

    @property
    def clients(self) -> int:
        return len(self._mailboxes)

    async def publish(self, snapshot: dict):
        self.latest = snapshot
        for client_id, box in self._mailboxes.items():
            if box.full():
                dropped = 0
                while not box.empty():
                    box.get_nowait()
                    dropped += 1
                logger.debug("Client %s behind, skipped %d snapshots", client_id, dropped)
            box.put_nowait(snapshot)
