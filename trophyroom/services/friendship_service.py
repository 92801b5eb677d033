"""
trophyroom.services.friendship_service — Friend Request State Machine
=======================================================================

Executes the transitions decided by :mod:`trophyroom.engine.friendship`
against the ledger (``friend_requests``) and the edge store
(``friendships``).  Each operation runs in **one** transaction:

* ``send_request``   — duplicate checks + insert.  The sequential checks are
  backed by the partial unique index on ``pair_key``, so two users sending
  to each other at the same instant cannot both leave a live request.
* ``accept_request`` — request update + both mirrored edges + journal rows,
  committed together or not at all.
* ``reject_request`` — request update + journal rows.

Validation and authorization failures are raised as :class:`CallableError`
and reach the caller verbatim.  Store failures are logged and re-raised as
``internal`` by :func:`_store_guard`.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trophyroom.constants import LIVE_STATUSES, ChangeKind, RequestStatus, pair_key
from trophyroom.database.models import (
    FriendRequest,
    FriendshipEdge,
    UserProgress,
    UserPublicProfile,
)
from trophyroom.engine.friendship import (
    RequestSnapshot,
    check_can_send,
    plan_accept,
    plan_reject,
    validate_target,
)
from trophyroom.errors import CallableError, ErrorCode
from trophyroom.services import change_journal
from trophyroom.services.profile_service import public_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
@contextmanager
def _store_guard(operation: str) -> Iterator[None]:
    """Re-signal unexpected store failures as ``internal``."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("%s failed in the store", operation)
        raise CallableError(ErrorCode.INTERNAL, f"{operation} failed.") from exc


def _require_uid(uid: str | None) -> str:
    if not uid:
        raise CallableError(ErrorCode.UNAUTHENTICATED, "Sign in first.")
    return uid


def _require_request_id(request_id: Any) -> str:
    if not request_id or not isinstance(request_id, str):
        raise CallableError(ErrorCode.INVALID_ARGUMENT, "requestId is required.")
    return request_id


def snapshot(req: FriendRequest) -> RequestSnapshot:
    return RequestSnapshot(
        id=req.id,
        from_uid=req.from_uid,
        to_uid=req.to_uid,
        status=req.status,
        created_at=req.created_at,
        accepted_at=req.accepted_at,
        rejected_at=req.rejected_at,
    )


def _load_request(session: Session, request_id: str) -> FriendRequest:
    req = session.get(FriendRequest, request_id, with_for_update=True)
    if req is None:
        raise CallableError(ErrorCode.NOT_FOUND, "Friend request not found.")
    return req


def _put_edge(
    session: Session, owner_uid: str, friend_uid: str, since: datetime,
) -> bool:
    """Insert the edge ``owner → friend`` unless present.  Returns ``True`` if inserted."""
    if session.get(FriendshipEdge, (owner_uid, friend_uid)) is not None:
        return False
    edge = FriendshipEdge(owner_uid=owner_uid, friend_uid=friend_uid, since=since)
    session.add(edge)
    change_journal.record_edge_change(session, edge, ChangeKind.ADDED)
    return True


def _statuses(session: Session, from_uid: str, to_uid: str) -> list[str]:
    return list(session.scalars(
        select(FriendRequest.status).where(
            FriendRequest.from_uid == from_uid,
            FriendRequest.to_uid == to_uid,
        )
    ).all())


# ---------------------------------------------------------------------------
# send
# ---------------------------------------------------------------------------
def send_request(engine: Engine, from_uid: str | None, to_uid: Any) -> str:
    """Create a pending request ``from_uid → to_uid`` and return its id."""
    validate_target(from_uid, to_uid)

    with _store_guard("sendFriendRequest"), Session(engine, expire_on_commit=False) as session:
        if session.get(UserPublicProfile, to_uid) is None:
            raise CallableError(ErrorCode.NOT_FOUND, "That user has no public profile.")

        check_can_send(
            already_friends=session.get(FriendshipEdge, (from_uid, to_uid)) is not None,
            outgoing=_statuses(session, from_uid, to_uid),
            incoming=_statuses(session, to_uid, from_uid),
        )

        req = FriendRequest(
            id=uuid.uuid4().hex,
            from_uid=from_uid,
            to_uid=to_uid,
            pair_key=pair_key(from_uid, to_uid),
            status=RequestStatus.PENDING.value,
            created_at=datetime.now(UTC),
        )
        session.add(req)
        try:
            session.flush()
        except IntegrityError:
            # A concurrent request for the same pair committed first.
            session.rollback()
            logger.info("Live request race lost: %s -> %s", from_uid, to_uid)
            raise CallableError(
                ErrorCode.ALREADY_EXISTS,
                "A request between you and this user already exists.",
                {"reason": "already-exists"},
            )

        change_journal.record_request_change(session, snapshot(req), ChangeKind.ADDED)
        session.commit()

    logger.info("Friend request %s: %s -> %s", req.id, from_uid, to_uid)
    return req.id


# ---------------------------------------------------------------------------
# accept / reject
# ---------------------------------------------------------------------------
def accept_request(engine: Engine, request_id: Any, acting_uid: str | None) -> bool:
    """Accept *request_id* as *acting_uid*.

    Returns ``True`` if state changed, ``False`` if it was already accepted.
    """
    acting_uid = _require_uid(acting_uid)
    request_id = _require_request_id(request_id)

    with _store_guard("acceptFriendRequest"), Session(engine, expire_on_commit=False) as session:
        req = _load_request(session, request_id)
        if not plan_accept(snapshot(req), acting_uid):
            return False

        now = datetime.now(UTC)
        req.status = RequestStatus.ACCEPTED.value
        req.accepted_at = now
        _put_edge(session, req.to_uid, req.from_uid, now)
        _put_edge(session, req.from_uid, req.to_uid, now)
        change_journal.record_request_change(session, snapshot(req), ChangeKind.MODIFIED)
        session.commit()

    logger.info("Friend request %s accepted by %s", request_id, acting_uid)
    return True


def reject_request(engine: Engine, request_id: Any, acting_uid: str | None) -> bool:
    """Reject (or cancel) *request_id* as either participant.

    Returns ``True`` if state changed, ``False`` if it was already rejected.
    """
    acting_uid = _require_uid(acting_uid)
    request_id = _require_request_id(request_id)

    with _store_guard("rejectFriendRequest"), Session(engine, expire_on_commit=False) as session:
        req = _load_request(session, request_id)
        if not plan_reject(snapshot(req), acting_uid):
            return False

        req.status = RequestStatus.REJECTED.value
        req.rejected_at = datetime.now(UTC)
        change_journal.record_request_change(session, snapshot(req), ChangeKind.MODIFIED)
        session.commit()

    logger.info("Friend request %s rejected by %s", request_id, acting_uid)
    return True


# ---------------------------------------------------------------------------
# Friend profile
# ---------------------------------------------------------------------------
def get_friend_profile(
    engine: Engine, requester_uid: str | None, target_uid: Any,
) -> dict[str, Any]:
    """Public profile merged with private progress, for friends only.

    The sole admission check is an edge under *target_uid* pointing to
    *requester_uid*.
    """
    requester_uid = _require_uid(requester_uid)
    if not target_uid or not isinstance(target_uid, str) or target_uid == requester_uid:
        raise CallableError(ErrorCode.INVALID_ARGUMENT, "friendUid is invalid.")

    with _store_guard("getFriendProfile"), Session(engine) as session:
        if session.get(FriendshipEdge, (target_uid, requester_uid)) is None:
            raise CallableError(
                ErrorCode.PERMISSION_DENIED, "Only friends can view this profile.",
            )
        public = session.get(UserPublicProfile, target_uid)
        progress = session.get(UserProgress, target_uid)

        profile: dict[str, Any] = public_dict(public) if public else {"uid": target_uid}
        profile["unlockedIds"] = list(progress.unlocked_ids or []) if progress else []
        profile["totalPoints"] = (progress.total_points or 0) if progress else 0
        return profile


# ---------------------------------------------------------------------------
# Sender-side edge repair
# ---------------------------------------------------------------------------
def repair_own_edge(engine: Engine, owner_uid: str | None, friend_uid: Any) -> bool:
    """Create ``owner → friend`` if an accepted request backs it and it is missing.

    Returns ``True`` if an edge was written.
    """
    owner_uid = _require_uid(owner_uid)
    if not friend_uid or not isinstance(friend_uid, str) or friend_uid == owner_uid:
        raise CallableError(ErrorCode.INVALID_ARGUMENT, "friendUid is invalid.")

    with _store_guard("repairFriendEdge"), Session(engine, expire_on_commit=False) as session:
        accepted = session.scalar(
            select(FriendRequest).where(
                FriendRequest.pair_key == pair_key(owner_uid, friend_uid),
                FriendRequest.status == RequestStatus.ACCEPTED.value,
            ).limit(1)
        )
        if accepted is None:
            raise CallableError(
                ErrorCode.PERMISSION_DENIED, "No accepted request backs this friendship.",
            )
        created = _put_edge(session, owner_uid, friend_uid, accepted.accepted_at or datetime.now(UTC))
        if created:
            session.commit()
            logger.warning("Repaired missing edge %s -> %s", owner_uid, friend_uid)
        return created


# ---------------------------------------------------------------------------
# Session snapshot (initial state for the realtime feeds)
# ---------------------------------------------------------------------------
def session_snapshot(engine: Engine, uid: str) -> dict[str, Any]:
    """Live requests involving *uid*, *uid*'s friends and the feed cursor.

    The cursor is read first, so replaying changes after it can only repeat
    state already in the snapshot (every change handler is idempotent).
    """
    with _store_guard("snapshot"), Session(engine) as session:
        cursor = change_journal.latest_cursor(session, uid)
        requests = session.scalars(
            select(FriendRequest)
            .where(
                or_(FriendRequest.from_uid == uid, FriendRequest.to_uid == uid),
                FriendRequest.status.in_(sorted(LIVE_STATUSES)),
            )
            .order_by(FriendRequest.created_at)
        ).all()
        edges = session.scalars(
            select(FriendshipEdge).where(FriendshipEdge.owner_uid == uid)
        ).all()
        return {
            "cursor": cursor,
            "requests": [snapshot(r).to_dict() for r in requests],
            "friends": [change_journal.edge_payload(e) for e in edges],
        }
