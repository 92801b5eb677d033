"""
trophyroom.client.session — Per-sign-in client state
======================================================

A :class:`SessionContext` owns everything that only exists while a user is
signed in: the API client's identity, the friend-graph caches, progress
syncing and the stale-response guard.  It is opened on sign-in and closed on
sign-out; closing stops the change feed, flushes a pending progress save and
clears the caches.

Usage::

    async with SessionContext(api, uid, progress) as session:
        await session.send_request("bob")
        view = await session.open_profile("bob")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from trophyroom.client.sequencer import RequestSequencer
from trophyroom.client.sync_adapter import Direction, PendingRequest, RealtimeSyncAdapter
from trophyroom.errors import CallableError, ErrorCode

if TYPE_CHECKING:
    from trophyroom.client.api_client import TrophyRoomClient
    from trophyroom.client.progress_sync import ProgressSync

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FriendProfileView:
    """What a profile panel shows for another user."""

    uid: str
    display_name: str
    photo_url: str | None = None
    is_friend: bool = False
    can_send_request: bool = False
    pending: PendingRequest | None = None
    unlocked_ids: list[int] = field(default_factory=list)
    total_points: int = 0

    @classmethod
    def for_friend(cls, profile: dict[str, Any]) -> FriendProfileView:
        return cls(
            uid=profile["uid"],
            display_name=profile.get("displayName") or "",
            photo_url=profile.get("photoURL"),
            is_friend=True,
            unlocked_ids=list(profile.get("unlockedIds") or []),
            total_points=int(profile.get("totalPoints") or 0),
        )


class SessionContext:
    def __init__(
        self,
        api: TrophyRoomClient,
        uid: str,
        progress: ProgressSync,
        *,
        poll_interval: float = 2.0,
    ) -> None:
        self.api = api
        self.uid = uid
        self.progress = progress
        self.sync = RealtimeSyncAdapter(api, uid, poll_interval=poll_interval)
        self.sequencer = RequestSequencer()
        self.is_open = False

    async def __aenter__(self) -> SessionContext:
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        """Attach progress syncing and start the change feed.

        A failure part-way through undoes whatever was started, so a failed
        sign-in leaves nothing bound to the API client.
        """
        try:
            await self.progress.attach(self.api)
            await self.sync.start()
        except BaseException:
            logger.warning("Session open failed for %s; tearing down", self.uid)
            await self.sync.stop()
            await self.progress.detach()
            self.sequencer.reset()
            raise
        self.is_open = True
        logger.info("Session opened for %s", self.uid)

    async def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        await self.sync.stop()
        await self.progress.detach()
        self.sequencer.reset()
        logger.info("Session closed for %s", self.uid)

    # ------------------------------------------------------------------
    # Cache views
    # ------------------------------------------------------------------
    @property
    def friends(self) -> set[str]:
        return set(self.sync.friend_set)

    @property
    def pending(self) -> dict[str, PendingRequest]:
        return dict(self.sync.pending_requests_by_peer)

    def incoming(self) -> dict[str, PendingRequest]:
        return {
            peer: entry for peer, entry in self.sync.pending_requests_by_peer.items()
            if entry.direction is Direction.RECEIVED
        }

    # ------------------------------------------------------------------
    # Friend actions
    # ------------------------------------------------------------------
    async def send_request(self, to_uid: str) -> str:
        request_id = await self.api.send_friend_request(to_uid)
        self.sync.note_pending(to_uid, request_id, Direction.SENT)
        return request_id

    async def accept_request(self, request_id: str) -> None:
        await self.api.accept_friend_request(request_id)

    async def reject_request(self, request_id: str) -> None:
        await self.api.reject_friend_request(request_id)

    async def open_profile(self, uid: str, element_key: str = "profile") -> FriendProfileView | None:
        """Load *uid*'s profile for the panel *element_key*.

        Not being friends is not an error: the public profile is shown with
        the option to send a request.  Returns ``None`` when a newer
        ``open_profile`` for the same panel superseded this one.
        """
        token = self.sequencer.issue(element_key)
        try:
            view = FriendProfileView.for_friend(await self.api.get_friend_profile(uid))
        except CallableError as exc:
            if not self.sequencer.is_current(token):
                return None
            if exc.code is not ErrorCode.PERMISSION_DENIED:
                raise
            view = await self._fallback_view(uid)

        if not self.sequencer.is_current(token):
            logger.debug("Dropping stale profile response for %s", uid)
            return None
        return view

    async def _fallback_view(self, uid: str) -> FriendProfileView:
        public = await self.api.get_public_profile(uid)
        if public is None:
            raise CallableError(ErrorCode.NOT_FOUND, "User not found.")
        return FriendProfileView(
            uid=uid,
            display_name=public.get("displayName") or "",
            photo_url=public.get("photoURL"),
            can_send_request=True,
            pending=self.sync.pending_requests_by_peer.get(uid),
        )

    async def search(self, query: str, element_key: str = "search") -> list[dict[str, Any]] | None:
        """Search public profiles; ``None`` when a newer search superseded this one."""
        token = self.sequencer.issue(element_key)
        results = await self.api.search_public(query)
        if not self.sequencer.is_current(token):
            return None
        return [r for r in results if r["uid"] != self.uid]
