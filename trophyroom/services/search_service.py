"""
trophyroom.services.search_service — Public Profile Search
============================================================

Two tiers:

1. Prefix range on ``search_name`` (``[q, q + "\\uf8ff"]``).
2. Only when tier 1 finds nothing: scan a bounded page of profiles and keep
   those whose display name contains ``q``.  Covers small datasets and
   search keys that drifted from the display name.

Either way the final list is re-filtered on display-name containment.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trophyroom.database.models import UserPublicProfile
from trophyroom.engine.search import name_matches, normalize_query, prefix_bounds, refilter

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_PREFIX_LIMIT = 100
DEFAULT_FALLBACK_SCAN_LIMIT = 500


def _result(profile: UserPublicProfile) -> dict[str, Any]:
    return {
        "uid": profile.uid,
        "displayName": profile.display_name,
        "photoURL": profile.photo_url,
    }


def search_public(
    engine: Engine,
    query: str | None,
    *,
    prefix_limit: int = DEFAULT_PREFIX_LIMIT,
    fallback_scan_limit: int = DEFAULT_FALLBACK_SCAN_LIMIT,
) -> list[dict[str, Any]]:
    """Return ``[{uid, displayName, photoURL}]`` for profiles matching *query*."""
    normalized = normalize_query(query)
    if not normalized:
        return []

    low, high = prefix_bounds(normalized)
    with Session(engine) as session:
        rows = session.scalars(
            select(UserPublicProfile)
            .where(
                UserPublicProfile.search_name >= low,
                UserPublicProfile.search_name <= high,
            )
            .order_by(UserPublicProfile.search_name, UserPublicProfile.uid)
            .limit(prefix_limit)
        ).all()
        results = [_result(p) for p in rows]

        if not results:
            try:
                scanned = session.scalars(
                    select(UserPublicProfile)
                    .order_by(UserPublicProfile.uid)
                    .limit(fallback_scan_limit)
                ).all()
            except SQLAlchemyError:
                logger.warning("Search fallback scan failed for %r", normalized, exc_info=True)
                scanned = []
            results = [_result(p) for p in scanned if name_matches(p.display_name, normalized)]

    out = refilter(results, normalized)
    logger.debug("search %r: %d candidates, %d returned", normalized, len(results), len(out))
    return out
