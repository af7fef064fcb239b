"""In-memory TTL cache shared by the stat fetchers and the pick orchestrator."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_HIGH_WATER_MARK = 2000

CACHE_TTL_SECONDS: dict[str, int] = {
    "schedule": 5 * 60,
    "roster": 6 * 3600,
    "person": 6 * 3600,
    "gamelog": 60 * 60,
    "season": 3 * 3600,
    "splits": 3 * 3600,
    "bvp": 24 * 3600,
    "pitcher": 60 * 60,
    "boxscore": 2 * 60,
    "livefeed": 2 * 60,
    "statcast": 6 * 3600,
    "search": 60 * 60,
    "odds": 10 * 60,
}

# Lets callers cache None ("no matchup history") and still detect a miss.
MISSING: Any = object()


@dataclass
class CacheEntry:
    key: str
    payload: Any
    expires_at: float


class TTLCache:
    """Key/value store with per-entry expiry.

    Expired entries are dropped lazily on read. Once the store holds more than
    *high_water_mark* entries, every write sweeps out the expired ones; live
    entries are never evicted.
    """

    def __init__(
        self,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._high_water_mark = high_water_mark
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return default
        return entry.payload

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = CacheEntry(
            key=key,
            payload=value,
            expires_at=self._clock() + ttl_seconds,
        )
        if len(self._entries) > self._high_water_mark:
            self.sweep()

    def set_for(self, category: str, key: str, value: Any) -> None:
        """Store *value* under the configured TTL for *category*."""
        self.set(key, value, CACHE_TTL_SECONDS[category])

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Cache sweep removed %d expired entries (remaining=%d)", len(expired), len(self._entries))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Cache cleared")

    def stats(self) -> dict[str, int]:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if now <= entry.expires_at)
        return {
            "total": len(self._entries),
            "valid": valid,
            "expired": len(self._entries) - valid,
        }
