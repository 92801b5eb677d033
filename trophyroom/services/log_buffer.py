"""
trophyroom.services.log_buffer — Recent Log Records for Admins
================================================================

A bounded, thread-safe deque fed by a :class:`logging.Handler`.  The API
installs the handler at startup and exposes the tail at
``GET /api/admin/logs``.  Nothing is persisted; a restart empties it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

DEFAULT_CAPACITY = 2000
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_buffer: LogBuffer | None = None
_lock = threading.Lock()


@dataclass(frozen=True, slots=True)
class LogEntry:
    timestamp: str
    level: str
    logger: str
    message: str


class LogBuffer:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def tail(
        self,
        count: int = 200,
        level: str | None = None,
        logger_prefix: str | None = None,
    ) -> list[dict[str, str]]:
        """Newest *count* entries at or above *level* from loggers under *logger_prefix*."""
        min_level = logging.getLevelName(level.upper()) if level else 0
        if not isinstance(min_level, int):
            min_level = 0

        with self._lock:
            entries = list(self._entries)

        matched = [
            asdict(e) for e in entries
            if logging.getLevelName(e.level) >= min_level
            and (not logger_prefix or e.logger.startswith(logger_prefix))
        ]
        return matched[-count:] if count else matched

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RingBufferHandler(logging.Handler):
    def __init__(self, buffer: LogBuffer, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._buffer.append(LogEntry(
                timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                level=record.levelname,
                logger=record.name,
                message=self.format(record),
            ))
        except Exception:
            self.handleError(record)


def get_buffer() -> LogBuffer:
    """Return (or create) the process-global buffer."""
    global _buffer
    if _buffer is None:
        with _lock:
            if _buffer is None:
                _buffer = LogBuffer()
    return _buffer


def install_handler(level: int = logging.INFO) -> RingBufferHandler:
    """Attach a :class:`RingBufferHandler` to the root logger (once).

    Uvicorn loggers are forced to propagate so access and error lines land
    in the buffer too.
    """
    root = logging.getLogger()
    for existing in root.handlers:
        if isinstance(existing, RingBufferHandler):
            return existing

    handler = RingBufferHandler(get_buffer(), level=level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).propagate = True
    return handler


def set_capture_level(level_name: str) -> str:
    """Change the buffer handler's minimum level; returns the new level name."""
    level_name = level_name.upper()
    if level_name not in VALID_LEVELS:
        raise ValueError(f"Invalid level: {level_name}. Must be one of {VALID_LEVELS}")
    handler = install_handler()
    handler.setLevel(getattr(logging, level_name))
    return level_name
