"""
tests/test_catalog.py — Achievement catalog, local cache, request sequencer
=============================================================================
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from trophyroom.client.catalog import (
    StatusFilter,
    assign_ids,
    catalog_version,
    load_catalog,
)
from trophyroom.client.local_store import LocalStore
from trophyroom.client.sequencer import RequestSequencer

ACHIEVEMENTS = [
    {"name": "Lenda", "points": 100, "rarity": "lendário", "areaId": 1},
    {"name": "Primeiro", "points": 10, "rarity": "comum", "areaId": 1},
    {"name": "Raro", "points": 50, "rarity": "raro", "areaId": 2},
    {"name": "Épico", "points": 75, "rarity": "épico", "areaId": 2},
]
AREAS = [{"id": 1, "name": "Exploração", "icon": "🧭"}, {"id": 2, "name": "Combate"}]


def write_catalog(base: Path, achievements=None, areas=None) -> Path:
    base.mkdir(parents=True, exist_ok=True)
    (base / "achievements.json").write_text(
        json.dumps({"achievements": achievements or ACHIEVEMENTS}), encoding="utf-8",
    )
    (base / "areas.json").write_text(json.dumps({"areas": areas or AREAS}), encoding="utf-8")
    return base


class TestAssignIds:
    def test_assigns_when_missing(self):
        assert [a["id"] for a in assign_ids([{"name": "a"}, {"name": "b"}])] == [1, 2]

    def test_reassigns_duplicates(self):
        assert [a["id"] for a in assign_ids([{"id": 1}, {"id": 1}])] == [1, 2]

    def test_keeps_sequential(self):
        raw = [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
        assert assign_ids(raw) is raw


class TestCatalog:
    @pytest.fixture
    def catalog(self, tmp_path):
        return load_catalog(write_catalog(tmp_path))

    def test_loads_and_numbers(self, catalog):
        assert len(catalog) == 4
        assert catalog.by_id[2].name == "Primeiro"
        assert catalog.by_id[2].area_id == 1
        assert [a.name for a in catalog.areas] == ["Exploração", "Combate"]

    def test_view_sorted_by_rarity(self, catalog):
        assert [a.name for a in catalog.view(set())] == ["Primeiro", "Raro", "Épico", "Lenda"]

    def test_view_filters(self, catalog):
        unlocked = {1, 3}
        assert [a.id for a in catalog.view(unlocked, area_id=1)] == [2, 1]
        assert [a.id for a in catalog.view(unlocked, status=StatusFilter.UNLOCKED)] == [3, 1]
        assert [a.id for a in catalog.view(unlocked, area_id=2, status=StatusFilter.LOCKED)] == [4]

    def test_points_and_stats(self, catalog):
        assert catalog.total_points({1, 2, 99}) == 110
        stats = catalog.stats({2}, area_id=1)
        assert stats == {"unlocked": 1, "total": 2, "points": 10, "percent": 50.0}

    def test_version_tracks_content(self, tmp_path, catalog):
        same = load_catalog(write_catalog(tmp_path / "copy"))
        changed = load_catalog(write_catalog(
            tmp_path / "changed", achievements=ACHIEVEMENTS + [{"name": "Novo", "points": 1}],
        ))
        assert same.version == catalog.version
        assert changed.version != catalog.version
        assert catalog.version == catalog_version(catalog.achievements)

    def test_missing_files(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_catalog(tmp_path / "nowhere")

    def test_bundled_catalog_loads(self):
        catalog = load_catalog(Path(__file__).resolve().parent.parent / "data")
        assert len(catalog) > 0
        assert all(a.area_id in {area.id for area in catalog.areas} for a in catalog.achievements)


class TestLocalStore:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "cache" / "local.json"
        store = LocalStore(path)
        store.set("unlocked", [1, 2])
        assert LocalStore(path).get("unlocked") == [1, 2]

    def test_remove_and_clear(self, tmp_path):
        store = LocalStore(tmp_path / "local.json")
        store.set("a", 1)
        store.set("b", 2)
        store.remove("a")
        assert store.get("a") is None
        store.clear()
        assert LocalStore(tmp_path / "local.json").get("b") is None

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text("{not json", encoding="utf-8")
        assert LocalStore(path).get("unlocked", []) == []


class TestRequestSequencer:
    def test_latest_token_is_current(self):
        seq = RequestSequencer()
        first = seq.issue("profile")
        second = seq.issue("profile")
        assert not seq.is_current(first)
        assert seq.is_current(second)

    def test_keys_are_independent(self):
        seq = RequestSequencer()
        profile = seq.issue("profile")
        seq.issue("search")
        assert seq.is_current(profile)

    def test_reset_invalidates(self):
        seq = RequestSequencer()
        token = seq.issue("profile")
        seq.reset()
        assert not seq.is_current(token)
        assert seq.is_current(seq.issue("profile"))
