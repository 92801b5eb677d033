"""
trophyroom.client.catalog — Achievement Catalog Loader
========================================================

Loads ``achievements.json`` and ``areas.json`` from the catalog directory.

* Achievement ids are assigned sequentially (``1..n``) unless the file
  already numbers them exactly that way.
* :func:`catalog_version` hashes the numbered catalog; a stored version that
  differs means the locally cached unlock state no longer lines up with the
  ids and must be discarded.
* Views are filtered by area and unlock status and ordered by rarity
  (common → legendary).

This module is pure data — no network I/O.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from trophyroom.constants import RARITY_ORDER

logger = logging.getLogger(__name__)

ACHIEVEMENTS_FILE = "achievements.json"
AREAS_FILE = "areas.json"


class StatusFilter(enum.StrEnum):
    ALL = "all"
    UNLOCKED = "unlocked"
    LOCKED = "locked"


@dataclass(frozen=True, slots=True)
class Area:
    id: int
    name: str
    icon: str = ""


@dataclass(frozen=True, slots=True)
class Achievement:
    id: int
    name: str
    points: int
    rarity: str = "common"
    area_id: int | None = None
    description: str = ""
    icon: str = ""

    @property
    def rarity_rank(self) -> int:
        # Unknown rarities sort last.
        return RARITY_ORDER.get(self.rarity.lower(), len(RARITY_ORDER))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def assign_ids(raw: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Return *raw* with ids ``1..n`` unless they are already exactly that."""
    if all(item.get("id") == index for index, item in enumerate(raw, start=1)):
        return raw
    logger.info("Catalog ids are not sequential — assigning 1..%d", len(raw))
    return [{**item, "id": index} for index, item in enumerate(raw, start=1)]


def _achievement(raw: dict[str, Any]) -> Achievement:
    return Achievement(
        id=int(raw["id"]),
        name=str(raw["name"]),
        points=int(raw.get("points", 0)),
        rarity=str(raw.get("rarity", "common")),
        area_id=raw.get("areaId"),
        description=str(raw.get("description", "")),
        icon=str(raw.get("icon", "")),
    )


def catalog_version(achievements: Iterable[Achievement]) -> str:
    """Stable hash of the numbered catalog."""
    canonical = json.dumps(
        [asdict(a) for a in achievements],
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class Catalog:
    def __init__(self, achievements: list[Achievement], areas: list[Area]) -> None:
        self.achievements = achievements
        self.areas = areas
        self.by_id: dict[int, Achievement] = {a.id: a for a in achievements}
        self.version = catalog_version(achievements)

    def __len__(self) -> int:
        return len(self.achievements)

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self.by_id

    def in_area(self, area_id: int | None) -> list[Achievement]:
        if area_id is None:
            return list(self.achievements)
        return [a for a in self.achievements if a.area_id == area_id]

    def view(
        self,
        unlocked: set[int],
        *,
        area_id: int | None = None,
        status: StatusFilter = StatusFilter.ALL,
    ) -> list[Achievement]:
        """Achievements in *area_id* matching *status*, ordered by rarity."""
        items = self.in_area(area_id)
        if status is StatusFilter.UNLOCKED:
            items = [a for a in items if a.id in unlocked]
        elif status is StatusFilter.LOCKED:
            items = [a for a in items if a.id not in unlocked]
        return sorted(items, key=lambda a: a.rarity_rank)

    def total_points(self, unlocked: Iterable[int]) -> int:
        return sum(self.by_id[i].points for i in set(unlocked) if i in self.by_id)

    def stats(self, unlocked: set[int], area_id: int | None = None) -> dict[str, Any]:
        """Unlocked count, points and completion percentage for one area (or all)."""
        items = self.in_area(area_id)
        done = [a for a in items if a.id in unlocked]
        percent = (len(done) / len(items) * 100) if items else 0.0
        return {
            "unlocked": len(done),
            "total": len(items),
            "points": sum(a.points for a in done),
            "percent": percent,
        }


def load_catalog(data_dir: str | Path = "data") -> Catalog:
    """Read the catalog files from *data_dir*.

    Raises
    ------
    FileNotFoundError
        If either file is missing.
    """
    base = Path(data_dir)
    with open(base / ACHIEVEMENTS_FILE, encoding="utf-8") as fh:
        raw_achievements = (json.load(fh) or {}).get("achievements") or []
    with open(base / AREAS_FILE, encoding="utf-8") as fh:
        raw_areas = (json.load(fh) or {}).get("areas") or []

    achievements = [_achievement(item) for item in assign_ids(raw_achievements)]
    areas = [
        Area(id=int(item["id"]), name=str(item["name"]), icon=str(item.get("icon", "")))
        for item in raw_areas
    ]
    logger.info("Catalog loaded — %d achievements in %d areas", len(achievements), len(areas))
    return Catalog(achievements, areas)
