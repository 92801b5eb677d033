"""
trophyroom.api.routes.documents — Owner documents, search & change feed
=========================================================================

Plain document reads/writes the client performs against its own data, plus
public profile lookup/search and the per-user realtime feed.  Failures use
the same error envelope as the callables.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine

from trophyroom.api.deps import Caller, get_config, get_current_user, get_engine
from trophyroom.config import TrophyConfig
from trophyroom.services import (
    change_journal,
    friendship_service,
    profile_service,
    search_service,
)

router = APIRouter(tags=["documents"])


class ProgressBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unlocked_ids: list[int] = Field(default_factory=list, alias="unlockedIds")
    total_points: int = Field(0, alias="totalPoints")


class ProfileBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(alias="displayName")
    photo_url: str | None = Field(None, alias="photoURL")


# ---------------------------------------------------------------------------
# Own progress
# ---------------------------------------------------------------------------
@router.get("/me/progress")
def get_my_progress(
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return {"progress": profile_service.load_progress(engine, caller.uid)}


@router.put("/me/progress")
def put_my_progress(
    body: ProgressBody,
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    progress = profile_service.save_progress(
        engine, caller.uid, body.unlocked_ids, body.total_points,
    )
    return {"progress": progress}


# ---------------------------------------------------------------------------
# Public profile
# ---------------------------------------------------------------------------
@router.get("/me/profile")
def get_my_profile(
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return {"profile": profile_service.get_public_profile(engine, caller.uid)}


@router.put("/me/profile")
def put_my_profile(
    body: ProfileBody,
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    profile = profile_service.save_public_profile(
        engine, caller.uid, body.display_name, body.photo_url,
    )
    return {"profile": profile}


@router.get("/profiles/search")
def search_profiles(
    q: str = Query("", max_length=100),
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: TrophyConfig = Depends(get_config),
):
    results = search_service.search_public(
        engine,
        q,
        prefix_limit=cfg.search_prefix_limit,
        fallback_scan_limit=cfg.search_fallback_scan_limit,
    )
    return {"results": results}


@router.get("/profiles/{uid}")
def get_profile(
    uid: str,
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return {"profile": profile_service.get_public_profile(engine, uid)}


# ---------------------------------------------------------------------------
# Friend graph feeds
# ---------------------------------------------------------------------------
@router.get("/me/snapshot")
def get_my_snapshot(
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return friendship_service.session_snapshot(engine, caller.uid)


@router.get("/me/changes")
def get_my_changes(
    after: int = Query(0, ge=0),
    limit: int = Query(change_journal.DEFAULT_PAGE_SIZE, ge=1, le=1000),
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    changes = change_journal.read_changes(engine, caller.uid, after=after, limit=limit)
    return {
        "changes": [c.to_dict() for c in changes],
        "cursor": changes[-1].cursor if changes else after,
    }


@router.post("/me/friends/{friend_uid}/repair")
def repair_friend_edge(
    friend_uid: str,
    caller: Caller = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    created = friendship_service.repair_own_edge(engine, caller.uid, friend_uid)
    return {"created": created}
