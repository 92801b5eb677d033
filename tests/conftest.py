"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of trophyroom.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402

from trophyroom.database.models import Base, UserProgress, UserPublicProfile  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so the change-journal cursor autoincrements.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


def run_async(coro):
    """Run *coro* on a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all TrophyRoom tables.

    Uses StaticPool so the TestClient threadpool and ``asyncio.to_thread``
    share the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def add_user(
    engine: Engine,
    uid: str,
    display_name: str | None = None,
    *,
    unlocked_ids: list[int] | None = None,
    total_points: int | None = None,
) -> None:
    """Insert a public profile (and optionally a progress row) for *uid*."""
    from sqlalchemy.orm import Session

    name = display_name or uid.capitalize()
    with Session(engine) as session:
        session.add(UserPublicProfile(uid=uid, display_name=name, search_name=name.lower()))
        if unlocked_ids is not None or total_points is not None:
            session.add(UserProgress(
                uid=uid,
                unlocked_ids=list(unlocked_ids or []),
                total_points=total_points or 0,
            ))
        session.commit()


def make_token(sub: str = "alice", *, admin: bool = False, name: str | None = None) -> str:
    """Create a bearer JWT.  Usable as both a fixture helper and a factory."""
    from trophyroom.api.auth import issue_token

    return issue_token(sub, name=name or sub.capitalize(), admin=admin)


def auth(uid: str = "alice", *, admin: bool = False) -> dict:
    return {"Authorization": f"Bearer {make_token(uid, admin=admin)}"}


@pytest.fixture
def admin_token():
    return make_token("root", admin=True)


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient wired to the in-memory engine."""
    from fastapi.testclient import TestClient

    from trophyroom.api.deps import get_engine
    from trophyroom.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
