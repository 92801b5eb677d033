"""
trophyroom.engine.friendship — Friend Request State Machine Rules
===================================================================

Pure decision logic with no database access.  The service layer loads the
relevant ledger rows, asks these functions what to do, and executes the
answer inside one transaction.

States per unordered pair {A, B}::

    NO_RELATION ──send(A→B)──▶ PENDING_A_TO_B ──accept(B)──▶ ACCEPTED
         ▲                          │
         └──────────reject(A|B)─────┘   (REJECTED record stays as history)

``ACCEPTED`` and ``REJECTED`` are terminal for a request record.  After a
rejection a fresh request reopens the pair and re-runs every check.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from trophyroom.constants import RequestStatus
from trophyroom.errors import CallableError, ErrorCode

__all__ = [
    "RequestSnapshot",
    "check_can_send",
    "plan_accept",
    "plan_reject",
    "validate_target",
]


@dataclass(frozen=True, slots=True)
class RequestSnapshot:
    """Read-only view of one ledger row."""

    id: str
    from_uid: str
    to_uid: str
    status: str
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None

    def involves(self, uid: str) -> bool:
        return uid in (self.from_uid, self.to_uid)

    def peer_of(self, uid: str) -> str:
        return self.to_uid if uid == self.from_uid else self.from_uid

    def to_dict(self) -> dict[str, Any]:
        def _iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "fromUid": self.from_uid,
            "toUid": self.to_uid,
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "acceptedAt": _iso(self.accepted_at),
            "rejectedAt": _iso(self.rejected_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RequestSnapshot:
        return cls(
            id=data["id"],
            from_uid=data["fromUid"],
            to_uid=data["toUid"],
            status=data["status"],
        )


# ---------------------------------------------------------------------------
# send
# ---------------------------------------------------------------------------
def validate_target(from_uid: str | None, to_uid: str | None) -> None:
    """Reject missing or self-targeted requests."""
    if not from_uid:
        raise CallableError(ErrorCode.UNAUTHENTICATED, "Sign in to send requests.")
    if not to_uid or not isinstance(to_uid, str):
        raise CallableError(ErrorCode.INVALID_ARGUMENT, "toUid is required.")
    if to_uid == from_uid:
        raise CallableError(
            ErrorCode.INVALID_ARGUMENT, "You cannot send a request to yourself.",
        )


def check_can_send(
    *,
    already_friends: bool,
    outgoing: Iterable[str],
    incoming: Iterable[str],
) -> None:
    """Run the duplicate checks for a new A→B request, in order.

    Parameters
    ----------
    already_friends:
        Whether A already holds an edge pointing to B.
    outgoing:
        Statuses of every existing A→B request.
    incoming:
        Statuses of every existing B→A request.
    """
    if already_friends:
        raise CallableError(
            ErrorCode.ALREADY_EXISTS, "You are already friends.",
            {"reason": "already-friends"},
        )

    for status in outgoing:
        if status in (RequestStatus.PENDING, RequestStatus.ACCEPTED):
            raise CallableError(
                ErrorCode.ALREADY_EXISTS, "A request to this user already exists.",
                {"reason": "already-exists"},
            )

    for status in incoming:
        if status == RequestStatus.PENDING:
            raise CallableError(
                ErrorCode.ALREADY_EXISTS,
                "This user already sent you a request; accept it instead.",
                {"reason": "reverse-pending"},
            )
        if status == RequestStatus.ACCEPTED:
            raise CallableError(
                ErrorCode.ALREADY_EXISTS, "You are already friends.",
                {"reason": "already-friends"},
            )


# ---------------------------------------------------------------------------
# accept / reject
# ---------------------------------------------------------------------------
def plan_accept(request: RequestSnapshot, acting_uid: str) -> bool:
    """Return ``True`` if accepting must write, ``False`` for an idempotent no-op."""
    if request.to_uid != acting_uid:
        raise CallableError(
            ErrorCode.PERMISSION_DENIED, "Only the recipient can accept a request.",
        )
    if request.status == RequestStatus.ACCEPTED:
        return False
    if request.status == RequestStatus.REJECTED:
        raise CallableError(
            ErrorCode.FAILED_PRECONDITION, "This request was already rejected.",
        )
    return True


def plan_reject(request: RequestSnapshot, acting_uid: str) -> bool:
    """Return ``True`` if rejecting must write, ``False`` for an idempotent no-op."""
    if not request.involves(acting_uid):
        raise CallableError(
            ErrorCode.PERMISSION_DENIED, "Only a participant can reject a request.",
        )
    if request.status == RequestStatus.REJECTED:
        return False
    if request.status == RequestStatus.ACCEPTED:
        raise CallableError(
            ErrorCode.FAILED_PRECONDITION, "This request was already accepted.",
        )
    return True
