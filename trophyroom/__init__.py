"""
TrophyRoom — Achievement Tracking with a Friend Graph
=======================================================
Tracks which achievements each member has unlocked, keeps that progress in
sync between the local client and the server, and lets members befriend each
other to compare progress.  Friendship changes go through a small request
state machine enforced on the server.

Package layout::

    trophyroom/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Statuses, sentinels, rarity ordering
    ├── errors.py          # Callable error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (profiles, ledger, edges, journal)
    ├── engine/
    │   ├── friendship.py  # Pure request state-machine rules
    │   ├── search.py      # Query normalization + prefix bounds
    │   └── changes.py     # Change-feed envelope
    ├── services/
    │   ├── friendship_service.py  # send / accept / reject / friend profile
    │   ├── profile_service.py     # Public profile + own progress documents
    │   ├── progress_service.py    # Import, backup, leaderboard
    │   ├── search_service.py      # Two-tier public profile search
    │   ├── change_journal.py      # Realtime feed persistence
    │   └── log_buffer.py          # In-memory log tail for admins
    ├── api/
    │   ├── main.py        # FastAPI app
    │   ├── auth.py        # Google OAuth2 → JWT
    │   └── routes/        # Callable + document endpoints
    └── client/
        ├── api_client.py  # httpx client for the API
        ├── catalog.py     # Achievement catalog loader
        ├── local_store.py # JSON-file local cache
        ├── progress_sync.py  # Authoritative-remote merge + debounced save
        ├── sync_adapter.py   # Realtime friend-graph caches
        ├── sequencer.py      # Stale response guard
        └── session.py        # Per-sign-in session context
"""

__version__ = "0.1.0"
