"""Recent service log records kept in memory for the activity log route."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

DEFAULT_CAPACITY = 200

SERVICE_LOGGERS = (
    "streaklab.main",
    "streaklab.cache",
    "streaklab.ingestion.stats",
    "streaklab.ingestion.mlb_client",
    "streaklab.picks.orchestrator",
    "streaklab.picks.fallback",
    "streaklab.picks.backtest",
    "streaklab.props.odds_client",
)


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    levelno: int
    logger: str
    message: str


class BufferHandler(logging.Handler):
    """Ring buffer of the last *capacity* records."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        super().__init__()
        self._records: deque[LogEntry] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            self._records.append(
                LogEntry(
                    timestamp=created.strftime("%Y-%m-%d %H:%M:%S UTC"),
                    level=record.levelname,
                    levelno=record.levelno,
                    logger=record.name.removeprefix("streaklab."),
                    message=self.format(record),
                )
            )
        except Exception:
            self.handleError(record)

    def entries(self, limit: int = 100, min_level: int = logging.NOTSET) -> list[dict]:
        """Newest first, optionally only records at or above *min_level*."""
        picked: list[dict] = []
        for entry in reversed(self._records):
            if len(picked) >= limit:
                break
            if entry.levelno >= min_level:
                picked.append(asdict(entry))
        return picked

    def clear(self) -> None:
        self._records.clear()


_handler: BufferHandler | None = None


def get_buffer_handler() -> BufferHandler:
    global _handler
    if _handler is None:
        _handler = BufferHandler()
        _handler.setFormatter(logging.Formatter("%(message)s"))
        _handler.setLevel(logging.INFO)
    return _handler


def install_buffer_handler() -> BufferHandler:
    """Attach the shared handler to every service logger, at INFO or lower."""
    handler = get_buffer_handler()
    for name in SERVICE_LOGGERS:
        service_logger = logging.getLogger(name)
        if handler not in service_logger.handlers:
            service_logger.addHandler(handler)
        if service_logger.level == logging.NOTSET or service_logger.level > logging.INFO:
            service_logger.setLevel(logging.INFO)
    return handler
