"""
trophyroom.engine.search — Public Profile Search Helpers
==========================================================

Cheap two-tier matching: a prefix range over the normalized ``search_name``
column, then a substring re-filter on the display name.  Not full-text, not
fuzzy.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from trophyroom.constants import SEARCH_HIGH_SENTINEL


def normalize_query(query: str | None) -> str:
    """Trim and lower-case *query*; ``None`` becomes ``""``."""
    return (query or "").strip().lower()


def search_key(display_name: str) -> str:
    """The value stored in ``search_name`` for *display_name*."""
    return display_name.strip().lower()


def prefix_bounds(normalized: str) -> tuple[str, str]:
    """Inclusive ``(low, high)`` range matching every key starting with *normalized*."""
    return normalized, normalized + SEARCH_HIGH_SENTINEL


def name_matches(display_name: str | None, normalized: str) -> bool:
    return normalized in (display_name or "").lower()


def refilter(results: Iterable[dict[str, Any]], normalized: str) -> list[dict[str, Any]]:
    """Keep results whose ``displayName`` contains the query, dropping duplicate uids."""
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for row in results:
        if row["uid"] in seen:
            continue
        if name_matches(row.get("displayName"), normalized):
            seen.add(row["uid"])
            out.append(row)
    return out
