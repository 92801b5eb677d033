"""
trophyroom.client.progress_sync — Local unlock state + server sync
====================================================================

Holds the device's unlocked-achievement set, persists it to the
:class:`~trophyroom.client.local_store.LocalStore` on every change, and,
while signed in, mirrors it to the server's progress document.

Sign-in
    No remote record: the local set is pushed.  A remote record exists: it
    replaces the local set outright (remote is authoritative; no union).

Saving
    Every mutation re-arms a single debounce timer; when it fires, the
    *current* in-memory state is written.  :meth:`ProgressSync.detach`
    flushes a pending save before dropping the connection.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from typing import TYPE_CHECKING

from trophyroom.client.catalog import Achievement, Catalog, StatusFilter
from trophyroom.errors import CallableError

if TYPE_CHECKING:
    from trophyroom.client.api_client import TrophyRoomClient
    from trophyroom.client.local_store import LocalStore

logger = logging.getLogger(__name__)

KEY_VERSION = "dataVersion"
KEY_UNLOCKED = "unlocked"


class SyncStatus(enum.StrEnum):
    OFFLINE = "offline"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


class ProgressSync:
    def __init__(
        self,
        catalog: Catalog,
        store: LocalStore,
        *,
        debounce_seconds: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.debounce_seconds = debounce_seconds
        self._rng = rng or random.Random()

        self._api: TrophyRoomClient | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: asyncio.Task | None = None
        self.status = SyncStatus.OFFLINE

        self.unlocked: set[int] = self._load_local()

    # ------------------------------------------------------------------
    # Local cache
    # ------------------------------------------------------------------
    def _load_local(self) -> set[int]:
        if self.store.get(KEY_VERSION) != self.catalog.version:
            # Catalog changed under us; cached ids may point at different achievements.
            logger.info("Catalog version changed — discarding cached unlocks")
            self.store.set(KEY_VERSION, self.catalog.version)
            self.store.remove(KEY_UNLOCKED)
            return set()
        return {int(i) for i in self.store.get(KEY_UNLOCKED, []) if isinstance(i, int)}

    def _persist_local(self) -> None:
        self.store.set(KEY_UNLOCKED, self.unlocked_ids)

    def _changed(self) -> None:
        self._persist_local()
        if self._api is not None:
            self.schedule_save()

    @property
    def unlocked_ids(self) -> list[int]:
        return sorted(self.unlocked)

    @property
    def total_points(self) -> int:
        return self.catalog.total_points(self.unlocked)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def toggle(self, achievement_id: int) -> bool:
        """Flip one achievement; returns the new unlocked state."""
        if achievement_id not in self.catalog:
            raise KeyError(achievement_id)
        if achievement_id in self.unlocked:
            self.unlocked.discard(achievement_id)
        else:
            self.unlocked.add(achievement_id)
        self._changed()
        return achievement_id in self.unlocked

    def unlock(self, achievement_id: int) -> bool:
        """Unlock one achievement; ``False`` if it already was."""
        if achievement_id not in self.catalog:
            raise KeyError(achievement_id)
        if achievement_id in self.unlocked:
            return False
        self.unlocked.add(achievement_id)
        self._changed()
        return True

    def unlock_random(
        self,
        *,
        area_id: int | None = None,
        status: StatusFilter = StatusFilter.ALL,
    ) -> Achievement | None:
        """Unlock a random locked achievement from the current view."""
        locked = [
            a for a in self.catalog.view(self.unlocked, area_id=area_id, status=status)
            if a.id not in self.unlocked
        ]
        if not locked:
            return None
        choice = self._rng.choice(locked)
        self.unlocked.add(choice.id)
        self._changed()
        return choice

    def reset(self, area_id: int | None = None) -> int:
        """Lock everything in *area_id* (or everything); returns how many changed."""
        targets = {a.id for a in self.catalog.in_area(area_id)} if area_id is not None else set(self.unlocked)
        cleared = self.unlocked & targets
        if cleared:
            self.unlocked -= cleared
            self._changed()
        return len(cleared)

    # ------------------------------------------------------------------
    # Server sync
    # ------------------------------------------------------------------
    async def attach(self, api: TrophyRoomClient) -> None:
        """Sign-in: reconcile with the remote progress document."""
        self._api = api
        self.status = SyncStatus.SYNCING
        remote = await api.load_progress()
        if remote is None:
            logger.info("No remote progress — pushing %d local unlocks", len(self.unlocked))
            await self.save_now()
            return

        self.unlocked = {int(i) for i in remote.get("unlockedIds") or []}
        self._persist_local()
        self.status = SyncStatus.SYNCED

    def schedule_save(self) -> None:
        """Cancel any armed save and arm a new one."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._fire)

    @property
    def save_pending(self) -> bool:
        return self._timer is not None

    def _fire(self) -> None:
        self._timer = None
        self._inflight = asyncio.get_running_loop().create_task(self.save_now())

    async def save_now(self) -> bool:
        """Write the current state to the server."""
        if self._api is None:
            return False
        self.status = SyncStatus.SYNCING
        try:
            await self._api.save_progress(self.unlocked_ids, self.total_points)
        except CallableError as exc:
            logger.warning("Progress save failed: %s", exc.message)
            self.status = SyncStatus.ERROR
            return False
        self.status = SyncStatus.SYNCED
        return True

    async def flush(self) -> None:
        """Run a pending save now and wait for any save already in flight."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            await self.save_now()
        if self._inflight is not None and not self._inflight.done():
            await self._inflight
        self._inflight = None

    async def migrate(self, uid: str) -> int:
        """Union the local set into the remote record through the import callable."""
        if self._api is None:
            raise RuntimeError("Sign in before migrating progress")
        return await self._api.import_user_progress(
            uid, self.unlocked_ids, self.total_points, merge=True,
        )

    async def detach(self) -> None:
        """Sign-out: flush, then stop syncing.  Local state is kept."""
        await self.flush()
        self._api = None
        self.status = SyncStatus.OFFLINE
