"""Initial schema: profiles, progress, friend graph, change journal, backups

Revision ID: 5c1e7a9d3b20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c1e7a9d3b20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

LIVE_REQUEST_CLAUSE = sa.text("status IN ('pending', 'accepted')")


def upgrade() -> None:
    """Create every TrophyRoom table."""
    op.create_table(
        "users_public",
        sa.Column("uid", sa.String(128), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("search_name", sa.String(100), nullable=False),
        sa.Column("photo_url", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_public_search_name", "users_public", ["search_name"])

    op.create_table(
        "users",
        sa.Column("uid", sa.String(128), primary_key=True),
        sa.Column("unlocked_ids", postgresql.JSONB(), nullable=False),
        sa.Column("total_points", sa.Integer(), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_total_points_desc", "users", ["total_points"])

    op.create_table(
        "friend_requests",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("from_uid", sa.String(128), nullable=False),
        sa.Column("to_uid", sa.String(128), nullable=False),
        sa.Column("pair_key", sa.String(257), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_friend_requests_live_pair",
        "friend_requests",
        ["pair_key"],
        unique=True,
        postgresql_where=LIVE_REQUEST_CLAUSE,
        sqlite_where=LIVE_REQUEST_CLAUSE,
    )
    op.create_index("ix_friend_requests_from", "friend_requests", ["from_uid", "status"])
    op.create_index("ix_friend_requests_to", "friend_requests", ["to_uid", "status"])

    op.create_table(
        "friendships",
        sa.Column("owner_uid", sa.String(128), primary_key=True),
        sa.Column("friend_uid", sa.String(128), primary_key=True),
        sa.Column("since", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "change_log",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("audience_uid", sa.String(128), nullable=False),
        sa.Column("collection", sa.String(30), nullable=False),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("doc_id", sa.String(300), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_change_log_audience_cursor", "change_log", ["audience_uid", "id"])
    op.create_index("ix_change_log_created_at", "change_log", ["created_at"])

    op.create_table(
        "progress_backups",
        sa.Column("collection", sa.String(100), primary_key=True),
        sa.Column("uid", sa.String(128), primary_key=True),
        sa.Column("unlocked_ids", postgresql.JSONB(), nullable=False),
        sa.Column("total_points", sa.Integer(), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("backed_up_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_uid", sa.String(128), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(150), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_uid", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_oauth_states_created_at", "oauth_states", ["created_at"])


def downgrade() -> None:
    """Drop every TrophyRoom table."""
    op.drop_index("ix_oauth_states_created_at", table_name="oauth_states")
    op.drop_table("oauth_states")
    op.drop_index("ix_admin_log_target", table_name="admin_log")
    op.drop_index("ix_admin_log_actor_time", table_name="admin_log")
    op.drop_table("admin_log")
    op.drop_table("progress_backups")
    op.drop_index("ix_change_log_created_at", table_name="change_log")
    op.drop_index("ix_change_log_audience_cursor", table_name="change_log")
    op.drop_table("change_log")
    op.drop_table("friendships")
    op.drop_index("ix_friend_requests_to", table_name="friend_requests")
    op.drop_index("ix_friend_requests_from", table_name="friend_requests")
    op.drop_index("uq_friend_requests_live_pair", table_name="friend_requests")
    op.drop_table("friend_requests")
    op.drop_index("ix_users_total_points_desc", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_users_public_search_name", table_name="users_public")
    op.drop_table("users_public")
