"""
trophyroom.services.change_journal — Per-User Change Feed Persistence
=======================================================================

Every ledger or edge mutation appends one ``change_log`` row per user whose
feed must observe it, **inside the caller's transaction**, so the feed can
never show a change that was rolled back.

Feeds per user:
  * ``friend_requests`` — requests where the user is sender or recipient
  * ``friendships``     — edges owned by the user

Clients poll :func:`read_changes` with the last cursor they applied.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from trophyroom.constants import ChangeKind, FeedCollection
from trophyroom.database.models import ChangeLog, FriendshipEdge
from trophyroom.engine.changes import ChangeEvent
from trophyroom.engine.friendship import RequestSnapshot

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200


def edge_payload(edge: FriendshipEdge) -> dict:
    return {
        "uid": edge.friend_uid,
        "since": edge.since.isoformat() if edge.since else None,
    }


# ---------------------------------------------------------------------------
# Writers (call within an open transaction)
# ---------------------------------------------------------------------------
def record_request_change(
    session: Session, request: RequestSnapshot, kind: ChangeKind,
) -> None:
    """Journal a request change for both participants."""
    payload = request.to_dict()
    for audience in (request.from_uid, request.to_uid):
        session.add(ChangeLog(
            audience_uid=audience,
            collection=FeedCollection.FRIEND_REQUESTS.value,
            kind=kind.value,
            doc_id=request.id,
            payload=payload,
        ))


def record_edge_change(
    session: Session, edge: FriendshipEdge, kind: ChangeKind,
) -> None:
    """Journal an edge change for the edge's owner."""
    session.add(ChangeLog(
        audience_uid=edge.owner_uid,
        collection=FeedCollection.FRIENDSHIPS.value,
        kind=kind.value,
        doc_id=edge.friend_uid,
        payload=edge_payload(edge),
    ))


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------
def latest_cursor(session: Session, uid: str) -> int:
    """Highest journal id visible to *uid* (``0`` when the feed is empty)."""
    return session.scalar(
        select(func.coalesce(func.max(ChangeLog.id), 0))
        .where(ChangeLog.audience_uid == uid)
    ) or 0


def read_changes(
    engine: Engine, uid: str, after: int = 0, limit: int = DEFAULT_PAGE_SIZE,
) -> list[ChangeEvent]:
    """Return *uid*'s changes with a cursor greater than *after*, oldest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(ChangeLog)
            .where(ChangeLog.audience_uid == uid, ChangeLog.id > after)
            .order_by(ChangeLog.id)
            .limit(limit)
        ).all()
        return [
            ChangeEvent(
                cursor=row.id,
                collection=FeedCollection(row.collection),
                kind=ChangeKind(row.kind),
                doc_id=row.doc_id,
                data=row.payload or {},
            )
            for row in rows
        ]


def prune_changes(engine: Engine, older_than_days: int = 30) -> int:
    """Delete journal rows older than *older_than_days*.  Returns rows removed."""
    cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
    with Session(engine) as session:
        result = session.execute(
            delete(ChangeLog).where(ChangeLog.created_at < cutoff)
        )
        session.commit()
    removed = result.rowcount or 0
    if removed:
        logger.info("Pruned %d change_log rows older than %d days", removed, older_than_days)
    return removed
