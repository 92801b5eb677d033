"""
trophyroom.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for **soft** settings (search limits, leaderboard
sizes, sync timings, catalog location).  Secrets and infrastructure
(``DATABASE_URL``, ``JWT_SECRET``, OAuth credentials) come from the
environment via ``.env``.

Usage::

    from trophyroom.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.app_name)              # "TrophyRoom"
    print(cfg.search_prefix_limit)   # 100
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TrophyConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field except ``app_name`` has a default so that a minimal file
    (or none at all, via :func:`default_config`) yields a usable config.
    """

    # Identity
    app_name: str

    # API
    api_port: int = 8000

    # Search
    search_prefix_limit: int = 100
    search_fallback_scan_limit: int = 500

    # Leaderboard
    leaderboard_default_limit: int = 10
    leaderboard_max_limit: int = 100

    # Backups
    backup_default_collection: str = "users_backup"

    # Client sync
    save_debounce_seconds: float = 1.0
    poll_interval_seconds: float = 2.0

    # Catalog
    catalog_data_dir: str = "data"


def default_config() -> TrophyConfig:
    """Return a config with every default applied."""
    return TrophyConfig(app_name="TrophyRoom")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> TrophyConfig:
    """Read *path* and return a :class:`TrophyConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``app_name`` is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = default_config()
    search = raw.get("search") or {}
    leaderboard = raw.get("leaderboard") or {}
    backup = raw.get("backup") or {}
    sync = raw.get("sync") or {}
    catalog = raw.get("catalog") or {}

    return TrophyConfig(
        app_name=raw["app_name"],
        api_port=int(raw.get("api_port", defaults.api_port)),
        search_prefix_limit=int(
            search.get("prefix_limit", defaults.search_prefix_limit)
        ),
        search_fallback_scan_limit=int(
            search.get("fallback_scan_limit", defaults.search_fallback_scan_limit)
        ),
        leaderboard_default_limit=int(
            leaderboard.get("default_limit", defaults.leaderboard_default_limit)
        ),
        leaderboard_max_limit=int(
            leaderboard.get("max_limit", defaults.leaderboard_max_limit)
        ),
        backup_default_collection=str(
            backup.get("default_collection", defaults.backup_default_collection)
        ),
        save_debounce_seconds=float(
            sync.get("save_debounce_seconds", defaults.save_debounce_seconds)
        ),
        poll_interval_seconds=float(
            sync.get("poll_interval_seconds", defaults.poll_interval_seconds)
        ),
        catalog_data_dir=str(catalog.get("data_dir", defaults.catalog_data_dir)),
    )
