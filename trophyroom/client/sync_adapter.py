"""
trophyroom.client.sync_adapter — Realtime friend-graph caches
===============================================================

Keeps two in-memory caches for the signed-in user up to date:

* ``pending_requests_by_peer`` — live, unanswered requests keyed by the other
  participant, with the direction relative to the session user
* ``friend_set`` — uids the session user has an edge to

The caches are seeded from ``GET /api/me/snapshot`` and then advanced by
polling the user's change journal.  Every change handler is idempotent, so a
change that is already reflected in the snapshot is harmless.

Self-healing: when an accepted request where the session user is the sender
arrives and the peer is not yet a friend, the adapter asks the server to
re-create the sender's own edge (``POST /api/me/friends/{uid}/repair``).  The
server only does so when an accepted request really exists.

All mutation happens on the event loop thread; there are no locks.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from trophyroom.constants import ChangeKind, FeedCollection, RequestStatus
from trophyroom.engine.changes import ChangeEvent
from trophyroom.engine.friendship import RequestSnapshot
from trophyroom.errors import CallableError

if TYPE_CHECKING:
    from trophyroom.client.api_client import TrophyRoomClient

logger = logging.getLogger(__name__)


class Direction(enum.StrEnum):
    SENT = "sent"
    RECEIVED = "received"


@dataclass(frozen=True, slots=True)
class PendingRequest:
    direction: Direction
    request_id: str


class RealtimeSyncAdapter:
    def __init__(
        self,
        api: TrophyRoomClient,
        uid: str,
        *,
        poll_interval: float = 2.0,
    ) -> None:
        self.api = api
        self.uid = uid
        self.poll_interval = poll_interval

        self.pending_requests_by_peer: dict[str, PendingRequest] = {}
        self.friend_set: set[str] = set()
        self.cursor = 0
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Cache updates
    # ------------------------------------------------------------------
    def _drop_pending(self, peer: str, request_id: str) -> None:
        entry = self.pending_requests_by_peer.get(peer)
        if entry is not None and entry.request_id == request_id:
            del self.pending_requests_by_peer[peer]

    def note_pending(self, peer: str, request_id: str, direction: Direction) -> None:
        self.pending_requests_by_peer[peer] = PendingRequest(direction, request_id)

    async def _repair(self, peer: str) -> None:
        try:
            created = await self.api.repair_edge(peer)
        except CallableError as exc:
            logger.warning("Edge repair for %s failed: %s", peer, exc.message)
            return
        if created:
            logger.info("Repaired missing friendship edge to %s", peer)

    async def apply_request(self, request: RequestSnapshot, kind: ChangeKind) -> None:
        if not request.involves(self.uid):
            return
        peer = request.peer_of(self.uid)

        if kind is ChangeKind.REMOVED or request.status == RequestStatus.REJECTED:
            self._drop_pending(peer, request.id)
            return

        if request.status == RequestStatus.PENDING:
            direction = Direction.SENT if request.from_uid == self.uid else Direction.RECEIVED
            self.note_pending(peer, request.id, direction)
            return

        if request.status == RequestStatus.ACCEPTED:
            needs_repair = request.from_uid == self.uid and peer not in self.friend_set
            self._drop_pending(peer, request.id)
            self.friend_set.add(peer)
            if needs_repair:
                await self._repair(peer)

    def apply_edge(self, friend_uid: str, kind: ChangeKind) -> None:
        if kind is ChangeKind.REMOVED:
            self.friend_set.discard(friend_uid)
        else:
            self.friend_set.add(friend_uid)

    async def apply(self, event: ChangeEvent) -> None:
        """Apply one journal change to the caches."""
        if event.collection is FeedCollection.FRIENDSHIPS:
            self.apply_edge(event.data.get("uid") or event.doc_id, event.kind)
            return

        if event.kind is ChangeKind.REMOVED and "fromUid" not in event.data:
            for peer, entry in list(self.pending_requests_by_peer.items()):
                if entry.request_id == event.doc_id:
                    del self.pending_requests_by_peer[peer]
            return
        await self.apply_request(RequestSnapshot.from_dict(event.data), event.kind)

    # ------------------------------------------------------------------
    # Snapshot + polling
    # ------------------------------------------------------------------
    async def load_snapshot(self) -> None:
        snapshot = await self.api.snapshot()
        self.clear()
        for friend in snapshot.get("friends") or []:
            self.friend_set.add(friend["uid"])
        for raw in snapshot.get("requests") or []:
            await self.apply_request(RequestSnapshot.from_dict(raw), ChangeKind.ADDED)
        self.cursor = int(snapshot.get("cursor") or 0)
        logger.info(
            "Snapshot loaded for %s — %d friends, %d pending, cursor %d",
            self.uid, len(self.friend_set), len(self.pending_requests_by_peer), self.cursor,
        )

    async def poll_once(self) -> int:
        """Fetch and apply changes after the cursor; returns how many were applied."""
        page = await self.api.changes(after=self.cursor)
        applied = 0
        for raw in page.get("changes") or []:
            try:
                event = ChangeEvent.from_dict(raw)
                await self.apply(event)
            except (KeyError, TypeError, ValueError):
                logger.exception("Skipping malformed change %r", raw)
                continue
            applied += 1
            self.cursor = max(self.cursor, event.cursor)
        self.cursor = max(self.cursor, int(page.get("cursor") or 0))
        return applied

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except CallableError as exc:
                # Keep the caches as they are; the next poll retries from the same cursor.
                logger.warning("Change feed poll failed: %s", exc.message)
            except Exception:
                logger.exception("Change feed poll crashed for %s", self.uid)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        await self.load_snapshot()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self.clear()

    def clear(self) -> None:
        self.pending_requests_by_peer.clear()
        self.friend_set.clear()
        self.cursor = 0
