"""
trophyroom.services.progress_service — Progress Import, Backup & Leaderboard
==============================================================================

Server-side progress operations exposed as callables:

* ``import_user_progress`` — write (optionally union-merge) a user's unlocked
  set.  Allowed for the user themself or an admin; cross-user imports are
  audited.
* ``backup_all_users``     — admin-only copy of every progress row into a
  named backup area, in a single transaction.
* ``get_leaderboard``      — top users by total points, no auth required.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trophyroom.database.models import AdminLog, ProgressBackup, UserProgress
from trophyroom.errors import CallableError, ErrorCode
from trophyroom.services.profile_service import progress_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_COLLECTION = "users_backup"
DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 100


def _log_admin_action(
    session: Session,
    *,
    actor_uid: str,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_uid=actor_uid,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# importUserProgress
# ---------------------------------------------------------------------------
def import_user_progress(
    engine: Engine,
    *,
    requester_uid: str | None,
    is_admin: bool,
    target_uid: Any,
    unlocked_ids: Any,
    total_points: Any,
    merge: Any = True,
) -> int:
    """Write *target_uid*'s progress and return the size of the stored set.

    Malformed optional fields fall back the same way the web client sends
    them: a non-list ``unlocked_ids`` is empty, a non-numeric
    ``total_points`` is ``0`` and a missing ``merge`` is ``True`` (an explicit
    ``None`` means no merge).
    """
    if not requester_uid:
        raise CallableError(ErrorCode.UNAUTHENTICATED, "Sign in first.")
    if not target_uid or not isinstance(target_uid, str):
        raise CallableError(ErrorCode.INVALID_ARGUMENT, "Target uid is required.")
    if requester_uid != target_uid and not is_admin:
        raise CallableError(
            ErrorCode.PERMISSION_DENIED, "You cannot change another user's progress.",
        )

    ids = unlocked_ids if isinstance(unlocked_ids, list) else []
    if not all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
        raise CallableError(
            ErrorCode.INVALID_ARGUMENT, "unlockedIds must be a list of integers.",
        )
    points = (
        int(total_points)
        if isinstance(total_points, (int, float)) and not isinstance(total_points, bool)
        else 0
    )
    do_merge = bool(merge)

    try:
        with Session(engine, expire_on_commit=False) as session:
            progress = session.get(UserProgress, target_uid)
            before = progress_dict(progress) if progress else None
            final = set(ids)
            if progress is not None and do_merge:
                final.update(progress.unlocked_ids or [])

            if progress is None:
                progress = UserProgress(uid=target_uid)
                session.add(progress)
            progress.unlocked_ids = sorted(final)
            progress.total_points = points
            progress.last_updated = datetime.now(UTC)

            if requester_uid != target_uid:
                _log_admin_action(
                    session,
                    actor_uid=requester_uid,
                    action_type="IMPORT",
                    target_table="users",
                    target_id=target_uid,
                    before=before,
                    after=progress_dict(progress),
                )
            session.commit()
    except SQLAlchemyError as exc:
        logger.exception("importUserProgress failed for %s", target_uid)
        raise CallableError(ErrorCode.INTERNAL, "Could not import progress.") from exc

    logger.info(
        "Imported progress for %s by %s: %d ids (merge=%s)",
        target_uid, requester_uid, len(final), do_merge,
    )
    return len(final)


# ---------------------------------------------------------------------------
# backupAllUsers
# ---------------------------------------------------------------------------
def backup_all_users(
    engine: Engine,
    *,
    actor_uid: str | None,
    is_admin: bool,
    collection: Any = None,
    default_collection: str = DEFAULT_BACKUP_COLLECTION,
) -> int:
    """Copy every progress row into backup area *collection*.  Returns rows copied."""
    if not actor_uid or not is_admin:
        raise CallableError(ErrorCode.PERMISSION_DENIED, "Admin permissions required.")

    name = collection if isinstance(collection, str) and collection else default_collection
    if len(name) > 100:
        raise CallableError(
            ErrorCode.INVALID_ARGUMENT, "backupCollectionName is too long.",
        )

    try:
        with Session(engine) as session:
            now = datetime.now(UTC)
            rows = session.scalars(select(UserProgress)).all()
            for progress in rows:
                session.merge(ProgressBackup(
                    collection=name,
                    uid=progress.uid,
                    unlocked_ids=list(progress.unlocked_ids or []),
                    total_points=progress.total_points or 0,
                    last_updated=progress.last_updated,
                    backed_up_at=now,
                ))
            _log_admin_action(
                session,
                actor_uid=actor_uid,
                action_type="BACKUP",
                target_table="progress_backups",
                target_id=name,
                before=None,
                after={"backed_up": len(rows)},
            )
            session.commit()
    except SQLAlchemyError as exc:
        logger.exception("backupAllUsers failed (collection=%s)", name)
        raise CallableError(ErrorCode.INTERNAL, "Backup failed.") from exc

    logger.info("Backed up %d progress rows into %r", len(rows), name)
    return len(rows)


# ---------------------------------------------------------------------------
# getLeaderboard
# ---------------------------------------------------------------------------
def get_leaderboard(
    engine: Engine,
    limit: Any = None,
    *,
    default_limit: int = DEFAULT_LEADERBOARD_LIMIT,
    max_limit: int = MAX_LEADERBOARD_LIMIT,
) -> list[dict[str, Any]]:
    """Top users by total points, descending; ties broken by uid."""
    if not isinstance(limit, int) or isinstance(limit, bool):
        limit = default_limit
    limit = max(1, min(limit, max_limit))

    try:
        with Session(engine) as session:
            rows = session.scalars(
                select(UserProgress)
                .order_by(UserProgress.total_points.desc(), UserProgress.uid)
                .limit(limit)
            ).all()
            return [
                {
                    "uid": p.uid,
                    "totalPoints": p.total_points or 0,
                    "lastUpdated": p.last_updated.isoformat() if p.last_updated else None,
                }
                for p in rows
            ]
    except SQLAlchemyError as exc:
        logger.exception("getLeaderboard failed")
        raise CallableError(ErrorCode.INTERNAL, "Could not load the leaderboard.") from exc
