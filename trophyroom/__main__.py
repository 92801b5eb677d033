"""
trophyroom.__main__ — Entry point for ``python -m trophyroom``
================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings), falling back to defaults.
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the API with uvicorn (blocking).

Run with::

    python -m trophyroom
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from trophyroom.config import default_config, load_config
from trophyroom.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("trophyroom")


def main() -> None:
    """Bootstrap and run the TrophyRoom API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    config_path = os.getenv("TROPHYROOM_CONFIG", "config.yaml")
    try:
        cfg = load_config(config_path)
    except FileNotFoundError:
        logger.warning("%s not found — using built-in defaults", config_path)
        cfg = default_config()
    logger.info("Config loaded — %s", cfg.app_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    # 4. API (blocks until Ctrl+C or SIGTERM).
    uvicorn.run(
        "trophyroom.api.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=cfg.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
