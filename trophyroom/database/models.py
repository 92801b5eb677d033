"""
trophyroom.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- users_public       — Public profile (display name, search key, avatar)
- users              — Private progress (unlocked ids, total points)
- friend_requests    — Request ledger (pending / accepted / rejected)
- friendships        — Mirrored friendship edges, one row per direction
- change_log         — Append-only per-user change journal (realtime feeds)
- progress_backups   — Named snapshots of every user's progress
- admin_log          — Append-only audit trail for privileged mutations
- oauth_states       — One-time OAuth ``state`` tokens
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from trophyroom.constants import RequestStatus


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all TrophyRoom ORM models."""


# Identity-provider uids are opaque strings (Google ``sub`` is 21 digits).
UID = String(128)

_LIVE_REQUEST_CLAUSE = text("status IN ('pending', 'accepted')")


# ---------------------------------------------------------------------------
# Public profile — visible to everyone, writable by its owner
# ---------------------------------------------------------------------------
class UserPublicProfile(Base):
    __tablename__ = "users_public"

    uid: Mapped[str] = mapped_column(UID, primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    search_name: Mapped[str] = mapped_column(String(100), nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String(512), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_users_public_search_name", "search_name"),
    )

    def __repr__(self) -> str:
        return f"<UserPublicProfile uid={self.uid} name={self.display_name!r}>"


# ---------------------------------------------------------------------------
# Private progress — visible to the owner and to friends
# ---------------------------------------------------------------------------
class UserProgress(Base):
    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(UID, primary_key=True)
    unlocked_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_users_total_points_desc", "total_points"),
    )

    def __repr__(self) -> str:
        return f"<UserProgress uid={self.uid} points={self.total_points}>"


# ---------------------------------------------------------------------------
# Friend request ledger
# ---------------------------------------------------------------------------
class FriendRequest(Base):
    """One friend request.  ``from_uid``/``to_uid`` never change.

    ``pair_key`` is the sorted ``"a|b"`` of the two participants; the partial
    unique index on it allows at most one live (pending or accepted) request
    per unordered pair while keeping the history of rejected ones.
    """
    __tablename__ = "friend_requests"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    from_uid: Mapped[str] = mapped_column(UID, nullable=False)
    to_uid: Mapped[str] = mapped_column(UID, nullable=False)
    pair_key: Mapped[str] = mapped_column(String(257), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=RequestStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        Index(
            "uq_friend_requests_live_pair",
            "pair_key",
            unique=True,
            postgresql_where=_LIVE_REQUEST_CLAUSE,
            sqlite_where=_LIVE_REQUEST_CLAUSE,
        ),
        Index("ix_friend_requests_from", "from_uid", "status"),
        Index("ix_friend_requests_to", "to_uid", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<FriendRequest id={self.id} {self.from_uid}->{self.to_uid} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Friendship edges — one row under each participant
# ---------------------------------------------------------------------------
class FriendshipEdge(Base):
    __tablename__ = "friendships"

    owner_uid: Mapped[str] = mapped_column(UID, primary_key=True)
    friend_uid: Mapped[str] = mapped_column(UID, primary_key=True)
    since: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<FriendshipEdge {self.owner_uid}->{self.friend_uid}>"


# ---------------------------------------------------------------------------
# Change journal — backs each user's realtime feeds
# ---------------------------------------------------------------------------
class ChangeLog(Base):
    __tablename__ = "change_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    audience_uid: Mapped[str] = mapped_column(UID, nullable=False)
    collection: Mapped[str] = mapped_column(String(30), nullable=False)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    doc_id: Mapped[str] = mapped_column(String(300), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_change_log_audience_cursor", "audience_uid", "id"),
        Index("ix_change_log_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChangeLog id={self.id} to={self.audience_uid} "
            f"{self.collection}/{self.doc_id} {self.kind}>"
        )


# ---------------------------------------------------------------------------
# Progress backups — one row per (backup area, user)
# ---------------------------------------------------------------------------
class ProgressBackup(Base):
    __tablename__ = "progress_backups"

    collection: Mapped[str] = mapped_column(String(100), primary_key=True)
    uid: Mapped[str] = mapped_column(UID, primary_key=True)
    unlocked_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    backed_up_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ProgressBackup {self.collection}/{self.uid}>"


# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_uid: Mapped[str] = mapped_column(UID, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(150), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_uid", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_uid} action={self.action_type}>"


# ---------------------------------------------------------------------------
class OAuthState(Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_oauth_states_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OAuthState state={self.state[:8]!r}...>"
