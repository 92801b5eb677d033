"""
trophyroom.api.routes.callable — Callable operations
======================================================

Request/response functions in the callable wire format::

    POST /api/callable/<name>     {"data": {...}}
    200                           {"result": {...}}
    4xx/5xx                       {"error": {"status": "NOT_FOUND", "message": "...", "details": {...}}}

Errors raised by the services are returned verbatim; anything else is
logged and returned as ``INTERNAL`` without leaking details.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from trophyroom.api.deps import Caller, get_config, get_engine, get_optional_caller
from trophyroom.config import TrophyConfig
from trophyroom.errors import CallableError, ErrorCode
from trophyroom.services import friendship_service, progress_service

router = APIRouter(prefix="/callable", tags=["callable"])
logger = logging.getLogger(__name__)

T = TypeVar("T")


class CallableBody(BaseModel):
    data: dict[str, Any] | None = None


def _data(body: CallableBody) -> dict[str, Any]:
    return body.data or {}


def _require(caller: Caller | None) -> Caller:
    if caller is None:
        raise CallableError(ErrorCode.UNAUTHENTICATED, "Sign in first.")
    return caller


def _invoke(name: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except CallableError:
        raise
    except Exception as exc:
        logger.exception("Callable %s crashed", name)
        raise CallableError(ErrorCode.INTERNAL, f"{name} failed.") from exc


# ---------------------------------------------------------------------------
# Friend graph
# ---------------------------------------------------------------------------
@router.post("/sendFriendRequest")
def send_friend_request(
    body: CallableBody,
    caller: Caller | None = Depends(get_optional_caller),
    engine: Engine = Depends(get_engine),
):
    uid = _require(caller).uid
    request_id = _invoke(
        "sendFriendRequest",
        lambda: friendship_service.send_request(engine, uid, _data(body).get("toUid")),
    )
    return {"result": {"success": True, "id": request_id}}


@router.post("/acceptFriendRequest")
def accept_friend_request(
    body: CallableBody,
    caller: Caller | None = Depends(get_optional_caller),
    engine: Engine = Depends(get_engine),
):
    uid = _require(caller).uid
    _invoke(
        "acceptFriendRequest",
        lambda: friendship_service.accept_request(engine, _data(body).get("requestId"), uid),
    )
    return {"result": {"success": True}}


@router.post("/rejectFriendRequest")
def reject_friend_request(
    body: CallableBody,
    caller: Caller | None = Depends(get_optional_caller),
    engine: Engine = Depends(get_engine),
):
    uid = _require(caller).uid
    _invoke(
        "rejectFriendRequest",
        lambda: friendship_service.reject_request(engine, _data(body).get("requestId"), uid),
    )
    return {"result": {"success": True}}


@router.post("/getFriendProfile")
def get_friend_profile(
    body: CallableBody,
    caller: Caller | None = Depends(get_optional_caller),
    engine: Engine = Depends(get_engine),
):
    uid = _require(caller).uid
    profile = _invoke(
        "getFriendProfile",
        lambda: friendship_service.get_friend_profile(engine, uid, _data(body).get("friendUid")),
    )
    return {"result": {"success": True, "profile": profile}}


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
@router.post("/importUserProgress")
def import_user_progress(
    body: CallableBody,
    caller: Caller | None = Depends(get_optional_caller),
    engine: Engine = Depends(get_engine),
):
    caller = _require(caller)
    data = _data(body)
    count = _invoke(
        "importUserProgress",
        lambda: progress_service.import_user_progress(
            engine,
            requester_uid=caller.uid,
            is_admin=caller.is_admin,
            target_uid=data.get("uid"),
            unlocked_ids=data.get("unlockedIds"),
            total_points=data.get("totalPoints"),
            merge=data.get("merge", True),
        ),
    )
    return {"result": {"success": True, "updatedCount": count}}


@router.post("/backupAllUsers")
def backup_all_users(
    body: CallableBody,
    caller: Caller | None = Depends(get_optional_caller),
    engine: Engine = Depends(get_engine),
    cfg: TrophyConfig = Depends(get_config),
):
    if caller is None or not caller.is_admin:
        raise CallableError(ErrorCode.PERMISSION_DENIED, "Admin permissions required.")
    backed_up = _invoke(
        "backupAllUsers",
        lambda: progress_service.backup_all_users(
            engine,
            actor_uid=caller.uid,
            is_admin=caller.is_admin,
            collection=_data(body).get("backupCollectionName"),
            default_collection=cfg.backup_default_collection,
        ),
    )
    return {"result": {"success": True, "backedUp": backed_up}}


@router.post("/getLeaderboard")
def get_leaderboard(
    body: CallableBody,
    engine: Engine = Depends(get_engine),
    cfg: TrophyConfig = Depends(get_config),
):
    leaderboard = _invoke(
        "getLeaderboard",
        lambda: progress_service.get_leaderboard(
            engine,
            _data(body).get("limit"),
            default_limit=cfg.leaderboard_default_limit,
            max_limit=cfg.leaderboard_max_limit,
        ),
    )
    return {"result": {"success": True, "leaderboard": leaderboard}}
