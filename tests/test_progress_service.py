"""
tests/test_progress_service.py — Progress documents, import, backup, leaderboard
=================================================================================
"""

from __future__ import annotations

import pytest
from conftest import add_user
from sqlalchemy import select
from sqlalchemy.orm import Session

from trophyroom.database.models import AdminLog, ProgressBackup, UserPublicProfile
from trophyroom.errors import CallableError, ErrorCode
from trophyroom.services import profile_service, progress_service


def _import(engine, **overrides) -> int:
    args = {
        "requester_uid": "alice",
        "is_admin": False,
        "target_uid": "alice",
        "unlocked_ids": [1],
        "total_points": 10,
        "merge": True,
    }
    args.update(overrides)
    return progress_service.import_user_progress(engine, **args)


def _audit(engine) -> list[AdminLog]:
    with Session(engine) as session:
        return list(session.scalars(select(AdminLog).order_by(AdminLog.id)).all())


# ===========================================================================
# Owner documents
# ===========================================================================
class TestOwnProgress:
    def test_missing_is_none(self, db_engine):
        assert profile_service.load_progress(db_engine, "alice") is None

    def test_save_overwrites(self, db_engine):
        profile_service.save_progress(db_engine, "alice", [3, 1, 1], 40)
        saved = profile_service.save_progress(db_engine, "alice", [2], 5)
        assert saved["unlockedIds"] == [2]
        assert profile_service.load_progress(db_engine, "alice")["totalPoints"] == 5

    def test_save_normalizes_ids(self, db_engine):
        saved = profile_service.save_progress(db_engine, "alice", [3, 1, 1], 40)
        assert saved["unlockedIds"] == [1, 3]
        assert saved["lastUpdated"] is not None

    @pytest.mark.parametrize("ids,points", [("1,2", 0), ([1, "2"], 0), ([True], 0), ([1], -1), ([1], "10")])
    def test_save_rejects_bad_input(self, db_engine, ids, points):
        with pytest.raises(CallableError) as exc:
            profile_service.save_progress(db_engine, "alice", ids, points)
        assert exc.value.code is ErrorCode.INVALID_ARGUMENT


class TestPublicProfile:
    def test_save_sets_search_name(self, db_engine):
        profile = profile_service.save_public_profile(db_engine, "alice", "  Ana Souza ")
        assert profile["displayName"] == "Ana Souza"
        assert profile["searchName"] == "ana souza"

    def test_rename_updates_search_name(self, db_engine):
        profile_service.save_public_profile(db_engine, "alice", "Ana")
        profile_service.save_public_profile(db_engine, "alice", "Alice")
        with Session(db_engine) as session:
            assert session.get(UserPublicProfile, "alice").search_name == "alice"

    def test_blank_name(self, db_engine):
        with pytest.raises(CallableError):
            profile_service.save_public_profile(db_engine, "alice", "  ")

    def test_too_long_name(self, db_engine):
        with pytest.raises(CallableError):
            profile_service.save_public_profile(db_engine, "alice", "x" * 101)

    def test_ensure_creates_once(self, db_engine):
        first, created = profile_service.ensure_public_profile(db_engine, "alice", "Ana", "http://p")
        assert created is True
        assert first["photoURL"] == "http://p"

        profile_service.save_public_profile(db_engine, "alice", "Custom")
        again, created = profile_service.ensure_public_profile(db_engine, "alice", "Ana")
        assert created is False
        assert again["displayName"] == "Custom"


# ===========================================================================
# importUserProgress
# ===========================================================================
class TestImportUserProgress:
    def test_first_import(self, db_engine):
        assert _import(db_engine, unlocked_ids=[2, 1]) == 2
        assert profile_service.load_progress(db_engine, "alice")["unlockedIds"] == [1, 2]

    def test_merge_unions_with_remote(self, db_engine):
        profile_service.save_progress(db_engine, "alice", [1, 5], 60)
        assert _import(db_engine, unlocked_ids=[2], total_points=20) == 3
        stored = profile_service.load_progress(db_engine, "alice")
        assert stored["unlockedIds"] == [1, 2, 5]
        assert stored["totalPoints"] == 20

    def test_replace_without_merge(self, db_engine):
        profile_service.save_progress(db_engine, "alice", [1, 5], 60)
        assert _import(db_engine, unlocked_ids=[2], merge=False) == 1

    def test_explicit_null_merge_replaces(self, db_engine):
        profile_service.save_progress(db_engine, "alice", [1, 5], 60)
        assert _import(db_engine, unlocked_ids=[2], merge=None) == 1
        assert profile_service.load_progress(db_engine, "alice")["unlockedIds"] == [2]

    def test_malformed_optionals_fall_back(self, db_engine):
        assert _import(db_engine, unlocked_ids="nope", total_points="ten", merge=None) == 0
        assert profile_service.load_progress(db_engine, "alice")["totalPoints"] == 0

    def test_non_integer_ids(self, db_engine):
        with pytest.raises(CallableError) as exc:
            _import(db_engine, unlocked_ids=[1, "2"])
        assert exc.value.code is ErrorCode.INVALID_ARGUMENT

    def test_anonymous(self, db_engine):
        with pytest.raises(CallableError) as exc:
            _import(db_engine, requester_uid=None)
        assert exc.value.code is ErrorCode.UNAUTHENTICATED

    def test_missing_target(self, db_engine):
        with pytest.raises(CallableError) as exc:
            _import(db_engine, target_uid="")
        assert exc.value.code is ErrorCode.INVALID_ARGUMENT

    def test_other_user_requires_admin(self, db_engine):
        with pytest.raises(CallableError) as exc:
            _import(db_engine, target_uid="bob")
        assert exc.value.code is ErrorCode.PERMISSION_DENIED
        assert profile_service.load_progress(db_engine, "bob") is None

    def test_admin_import_is_audited(self, db_engine):
        _import(db_engine, requester_uid="root", is_admin=True, target_uid="bob")
        (row,) = _audit(db_engine)
        assert (row.actor_uid, row.action_type, row.target_id) == ("root", "IMPORT", "bob")
        assert row.before_snapshot is None
        assert row.after_snapshot["unlockedIds"] == [1]

    def test_self_import_not_audited(self, db_engine):
        _import(db_engine)
        assert _audit(db_engine) == []


# ===========================================================================
# backupAllUsers
# ===========================================================================
class TestBackupAllUsers:
    def test_requires_admin(self, db_engine):
        with pytest.raises(CallableError) as exc:
            progress_service.backup_all_users(db_engine, actor_uid="alice", is_admin=False)
        assert exc.value.code is ErrorCode.PERMISSION_DENIED

    def test_copies_every_user(self, db_engine):
        add_user(db_engine, "alice", unlocked_ids=[1], total_points=10)
        add_user(db_engine, "bob", unlocked_ids=[2, 3], total_points=30)

        count = progress_service.backup_all_users(
            db_engine, actor_uid="root", is_admin=True, collection="nightly",
        )
        assert count == 2
        with Session(db_engine) as session:
            rows = session.scalars(select(ProgressBackup).order_by(ProgressBackup.uid)).all()
            assert [(r.collection, r.uid, r.total_points) for r in rows] == [
                ("nightly", "alice", 10),
                ("nightly", "bob", 30),
            ]
        assert _audit(db_engine)[0].action_type == "BACKUP"

    def test_default_collection_and_rerun(self, db_engine):
        add_user(db_engine, "alice", unlocked_ids=[1], total_points=10)
        for _ in range(2):
            progress_service.backup_all_users(db_engine, actor_uid="root", is_admin=True)
        with Session(db_engine) as session:
            rows = session.scalars(select(ProgressBackup)).all()
            assert [(r.collection, r.uid) for r in rows] == [("users_backup", "alice")]

    def test_collection_name_too_long(self, db_engine):
        with pytest.raises(CallableError) as exc:
            progress_service.backup_all_users(
                db_engine, actor_uid="root", is_admin=True, collection="x" * 101,
            )
        assert exc.value.code is ErrorCode.INVALID_ARGUMENT


# ===========================================================================
# getLeaderboard
# ===========================================================================
class TestLeaderboard:
    @pytest.fixture
    def engine(self, db_engine):
        for i, points in enumerate([50, 10, 50, 30]):
            add_user(db_engine, f"u{i}", unlocked_ids=[], total_points=points)
        return db_engine

    def test_order(self, engine):
        board = progress_service.get_leaderboard(engine)
        assert [(r["uid"], r["totalPoints"]) for r in board] == [
            ("u0", 50), ("u2", 50), ("u3", 30), ("u1", 10),
        ]

    def test_limit(self, engine):
        assert len(progress_service.get_leaderboard(engine, 2)) == 2

    @pytest.mark.parametrize("limit,expected", [("5", 4), (None, 4), (0, 1), (-3, 1)])
    def test_limit_coercion(self, engine, limit, expected):
        assert len(progress_service.get_leaderboard(engine, limit)) == expected

    def test_max_limit(self, engine):
        assert len(progress_service.get_leaderboard(engine, 500, max_limit=3)) == 3
