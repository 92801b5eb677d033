"""
trophyroom.database.engine — Database Connection & Async Helper
=================================================================

SQLAlchemy + psycopg2 is **synchronous**.  The FastAPI routes that need to
``await`` other I/O (the OAuth callback) ship their database work to a
thread with :func:`run_db`; plain ``def`` routes already run in Starlette's
threadpool and call the services directly.

Usage::

    from trophyroom.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    engine = create_db_engine("sqlite:///trophyroom.db")   # local file
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    profile = await run_db(profile_service.get_public_profile, engine, uid)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import URL, Engine, create_engine, make_url
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from trophyroom.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def _engine_options(url: URL) -> dict[str, Any]:
    """Pool settings per backend.

    PostgreSQL gets a bounded, pre-pinged pool.  SQLite (local development,
    a single-user desktop install) has no server to pool against.  File
    connections are shared with the threadpool, and ``:memory:`` databases
    are pinned to a single connection so every thread sees the same tables.
    """
    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_pre_ping": True,
        "pool_timeout": 10,
        "pool_recycle": 3600,
    }


def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` for *url* or ``DATABASE_URL``.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    raw = url or os.getenv("DATABASE_URL")
    if not raw:
        raise RuntimeError(
            "DATABASE_URL is not set.  Copy .env.example → .env and point it at "
            "PostgreSQL (postgresql+psycopg2://…) or a SQLite file (sqlite:///trophyroom.db)."
        )

    parsed = make_url(raw)
    engine = create_engine(parsed, echo=False, **_engine_options(parsed))
    logger.info(
        "Database engine created → %s (%s)",
        parsed.get_backend_name(), parsed.host or parsed.database,
    )
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`trophyroom.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            session.add(FriendshipEdge(owner_uid="a", friend_uid="b"))
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the event loop is never
    blocked.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
