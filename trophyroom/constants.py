"""
trophyroom.constants — Shared Constants & Helpers
===================================================

Single source of truth for request statuses, change-feed vocabulary,
search sentinels and catalog presentation order.
"""

from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Friend request lifecycle
# ---------------------------------------------------------------------------
class RequestStatus(enum.StrEnum):
    """Lifecycle of a friend request.  Only ``PENDING`` is mutable."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


LIVE_STATUSES: frozenset[str] = frozenset({
    RequestStatus.PENDING,
    RequestStatus.ACCEPTED,
})


# ---------------------------------------------------------------------------
# Change feed
# ---------------------------------------------------------------------------
class ChangeKind(enum.StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class FeedCollection(enum.StrEnum):
    FRIEND_REQUESTS = "friend_requests"
    FRIENDSHIPS = "friendships"


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
# Highest BMP private-use code point; sorts after any realistic name suffix.
SEARCH_HIGH_SENTINEL = "\uf8ff"


# ---------------------------------------------------------------------------
# Catalog presentation
# ---------------------------------------------------------------------------
RARITY_ORDER: dict[str, int] = {
    "common": 0,
    "uncommon": 1,
    "rare": 2,
    "epic": 3,
    "legendary": 4,
    # Portuguese labels used by the bundled catalog
    "comum": 0,
    "incomum": 1,
    "raro": 2,
    "épico": 3,
    "lendário": 4,
}


def pair_key(uid_a: str, uid_b: str) -> str:
    """Order-independent key for the unordered pair ``{uid_a, uid_b}``."""
    low, high = sorted((uid_a, uid_b))
    return f"{low}|{high}"
