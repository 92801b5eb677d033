"""
trophyroom.api.routes.admin — Admin-only diagnostics
======================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from trophyroom.api.deps import Caller, get_current_admin, get_engine
from trophyroom.services import change_journal, log_buffer

router = APIRouter(prefix="/admin", tags=["admin"])


class LevelBody(BaseModel):
    level: str


@router.get("/logs")
def get_logs(
    tail: int = Query(200, ge=1, le=2000),
    level: str | None = Query(None),
    logger: str | None = Query(None),
    admin: Caller = Depends(get_current_admin),
):
    """Tail of the in-memory log buffer."""
    return {
        "logs": log_buffer.get_buffer().tail(tail, level=level, logger_prefix=logger),
    }


@router.put("/logs/level")
def put_log_level(body: LevelBody, admin: Caller = Depends(get_current_admin)):
    try:
        return {"level": log_buffer.set_capture_level(body.level)}
    except ValueError as exc:
        raise HTTPException(400, str(exc))


@router.post("/changes/prune")
def prune_change_journal(
    older_than_days: int = Query(30, ge=1),
    admin: Caller = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    """Drop change-journal rows older than *older_than_days*."""
    return {"removed": change_journal.prune_changes(engine, older_than_days)}
