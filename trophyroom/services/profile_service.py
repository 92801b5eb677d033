"""
trophyroom.services.profile_service — Profile Store
=====================================================

Owner-only document reads and writes:

* the **public profile** (``users_public``) — display name, normalized search
  key, avatar — readable by anyone;
* the **private progress** (``users``) — unlocked achievement ids and total
  points — readable by the owner (friends go through
  :func:`trophyroom.services.friendship_service.get_friend_profile`).

Writes follow last-writer-wins per field; there is no version check.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from trophyroom.database.models import UserProgress, UserPublicProfile
from trophyroom.engine.search import search_key
from trophyroom.errors import CallableError, ErrorCode

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MAX_DISPLAY_NAME = 100


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def public_dict(profile: UserPublicProfile) -> dict[str, Any]:
    return {
        "uid": profile.uid,
        "displayName": profile.display_name,
        "searchName": profile.search_name,
        "photoURL": profile.photo_url,
    }


def progress_dict(progress: UserProgress) -> dict[str, Any]:
    return {
        "unlockedIds": list(progress.unlocked_ids or []),
        "totalPoints": progress.total_points or 0,
        "lastUpdated": (
            progress.last_updated.isoformat() if progress.last_updated else None
        ),
    }


def _clean_display_name(display_name: Any) -> str:
    if not isinstance(display_name, str) or not display_name.strip():
        raise CallableError(ErrorCode.INVALID_ARGUMENT, "displayName is required.")
    name = display_name.strip()
    if len(name) > MAX_DISPLAY_NAME:
        raise CallableError(
            ErrorCode.INVALID_ARGUMENT,
            f"displayName must be at most {MAX_DISPLAY_NAME} characters.",
        )
    return name


def _clean_unlocked_ids(unlocked_ids: Any) -> list[int]:
    if unlocked_ids is None:
        return []
    if not isinstance(unlocked_ids, list) or not all(
        isinstance(i, int) and not isinstance(i, bool) for i in unlocked_ids
    ):
        raise CallableError(
            ErrorCode.INVALID_ARGUMENT, "unlockedIds must be a list of integers.",
        )
    return sorted(set(unlocked_ids))


# ---------------------------------------------------------------------------
# Public profile
# ---------------------------------------------------------------------------
def get_public_profile(engine: Engine, uid: str) -> dict[str, Any] | None:
    with Session(engine) as session:
        profile = session.get(UserPublicProfile, uid)
        return public_dict(profile) if profile else None


def save_public_profile(
    engine: Engine,
    uid: str,
    display_name: Any,
    photo_url: str | None = None,
) -> dict[str, Any]:
    """Create or update *uid*'s public profile; ``search_name`` follows the name."""
    name = _clean_display_name(display_name)
    with Session(engine, expire_on_commit=False) as session:
        profile = session.get(UserPublicProfile, uid)
        if profile is None:
            profile = UserPublicProfile(uid=uid, display_name=name, search_name=search_key(name))
            session.add(profile)
        else:
            profile.display_name = name
            profile.search_name = search_key(name)
        if photo_url is not None:
            profile.photo_url = photo_url or None
        session.commit()
        return public_dict(profile)


def ensure_public_profile(
    engine: Engine,
    uid: str,
    display_name: str,
    photo_url: str | None = None,
) -> tuple[dict[str, Any], bool]:
    """Create the public profile on first sign-in.

    An existing profile is left untouched (the display name is user-chosen).
    Returns ``(profile, created)``.
    """
    with Session(engine, expire_on_commit=False) as session:
        profile = session.get(UserPublicProfile, uid)
        if profile is not None:
            return public_dict(profile), False
        name = _clean_display_name(display_name or "Player")
        profile = UserPublicProfile(
            uid=uid, display_name=name, search_name=search_key(name), photo_url=photo_url,
        )
        session.add(profile)
        session.commit()
        logger.info("Public profile created for %s (%s)", uid, name)
        return public_dict(profile), True


# ---------------------------------------------------------------------------
# Own progress
# ---------------------------------------------------------------------------
def load_progress(engine: Engine, uid: str) -> dict[str, Any] | None:
    with Session(engine) as session:
        progress = session.get(UserProgress, uid)
        return progress_dict(progress) if progress else None


def save_progress(
    engine: Engine,
    uid: str,
    unlocked_ids: Any,
    total_points: Any,
) -> dict[str, Any]:
    """Overwrite *uid*'s progress with the given unlocked set and score."""
    ids = _clean_unlocked_ids(unlocked_ids)
    if not isinstance(total_points, int) or isinstance(total_points, bool) or total_points < 0:
        raise CallableError(
            ErrorCode.INVALID_ARGUMENT, "totalPoints must be a non-negative integer.",
        )
    with Session(engine, expire_on_commit=False) as session:
        progress = session.get(UserProgress, uid)
        if progress is None:
            progress = UserProgress(uid=uid)
            session.add(progress)
        progress.unlocked_ids = ids
        progress.total_points = total_points
        progress.last_updated = datetime.now(UTC)
        session.commit()
        return progress_dict(progress)
