"""
trophyroom.client.api_client — Async HTTP client for the TrophyRoom API
=========================================================================

Thin wrapper over :class:`httpx.AsyncClient`.  Every failure comes back as a
:class:`~trophyroom.errors.CallableError` decoded from the server's error
envelope, so callers handle one exception type regardless of endpoint.

Usage::

    async with TrophyRoomClient("http://localhost:8000", token=token) as api:
        request_id = await api.send_friend_request("bob")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from trophyroom.errors import CallableError, ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class TrophyRoomClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if transport is None:
            transport = httpx.AsyncHTTPTransport(retries=1)
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> TrophyRoomClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    @staticmethod
    def _raise_for_error(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            envelope = resp.json().get("error")
        except ValueError:
            envelope = None
        if isinstance(envelope, dict):
            raise CallableError.from_dict(envelope)
        if resp.status_code == 401:
            raise CallableError(ErrorCode.UNAUTHENTICATED, "Not signed in.")
        if resp.status_code == 403:
            raise CallableError(ErrorCode.PERMISSION_DENIED, "Not allowed.")
        if resp.status_code == 422:
            raise CallableError(ErrorCode.INVALID_ARGUMENT, "Request failed validation.")
        raise CallableError(ErrorCode.INTERNAL, f"HTTP {resp.status_code}")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise CallableError(ErrorCode.INTERNAL, "Server unreachable.") from exc
        self._raise_for_error(resp)
        return resp.json()

    async def call(self, name: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        """Invoke the callable *name* and return its ``result`` payload."""
        body = await self._request("POST", f"/api/callable/{name}", json={"data": data or {}})
        return body.get("result") or {}

    # ------------------------------------------------------------------
    # Callables
    # ------------------------------------------------------------------
    async def send_friend_request(self, to_uid: str) -> str:
        result = await self.call("sendFriendRequest", {"toUid": to_uid})
        return result["id"]

    async def accept_friend_request(self, request_id: str) -> None:
        await self.call("acceptFriendRequest", {"requestId": request_id})

    async def reject_friend_request(self, request_id: str) -> None:
        await self.call("rejectFriendRequest", {"requestId": request_id})

    async def get_friend_profile(self, friend_uid: str) -> dict[str, Any]:
        result = await self.call("getFriendProfile", {"friendUid": friend_uid})
        return result["profile"]

    async def import_user_progress(
        self,
        uid: str,
        unlocked_ids: list[int],
        total_points: int,
        *,
        merge: bool = True,
    ) -> int:
        result = await self.call("importUserProgress", {
            "uid": uid,
            "unlockedIds": unlocked_ids,
            "totalPoints": total_points,
            "merge": merge,
        })
        return result["updatedCount"]

    async def backup_all_users(self, collection: str | None = None) -> int:
        data = {"backupCollectionName": collection} if collection else {}
        result = await self.call("backupAllUsers", data)
        return result["backedUp"]

    async def get_leaderboard(self, limit: int | None = None) -> list[dict[str, Any]]:
        data = {"limit": limit} if limit is not None else {}
        result = await self.call("getLeaderboard", data)
        return result["leaderboard"]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    async def load_progress(self) -> dict[str, Any] | None:
        return (await self._request("GET", "/api/me/progress"))["progress"]

    async def save_progress(self, unlocked_ids: list[int], total_points: int) -> dict[str, Any]:
        body = await self._request(
            "PUT",
            "/api/me/progress",
            json={"unlockedIds": unlocked_ids, "totalPoints": total_points},
        )
        return body["progress"]

    async def get_public_profile(self, uid: str) -> dict[str, Any] | None:
        return (await self._request("GET", f"/api/profiles/{uid}"))["profile"]

    async def save_public_profile(
        self, display_name: str, photo_url: str | None = None,
    ) -> dict[str, Any]:
        body = await self._request(
            "PUT",
            "/api/me/profile",
            json={"displayName": display_name, "photoURL": photo_url},
        )
        return body["profile"]

    async def search_public(self, query: str) -> list[dict[str, Any]]:
        body = await self._request("GET", "/api/profiles/search", params={"q": query})
        return body["results"]

    async def snapshot(self) -> dict[str, Any]:
        return await self._request("GET", "/api/me/snapshot")

    async def changes(self, after: int = 0) -> dict[str, Any]:
        return await self._request("GET", "/api/me/changes", params={"after": after})

    async def repair_edge(self, friend_uid: str) -> bool:
        body = await self._request("POST", f"/api/me/friends/{friend_uid}/repair")
        return bool(body.get("created"))
