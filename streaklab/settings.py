from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)
_SETTINGS: Settings | None = None


@dataclass(frozen=True)
class Settings:
    mlb_base_url: str
    savant_base_url: str
    odds_base_url: str
    odds_api_key: str | None
    fetch_timeout_seconds: float
    batch_size: int
    backtest_batch_size: int
    leaderboard_fresh_seconds: int
    cache_high_water_mark: int

    @property
    def has_prop_lines(self) -> bool:
        return bool(self.odds_api_key)


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer. Using %s.", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring %s=%s: must be >= %s. Using %s.", name, value, minimum, default)
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number. Using %s.", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%s: must be positive. Using %s.", name, value, default)
        return default
    return value


def settings_from_env() -> Settings:
    odds_api_key = (os.getenv("ODDS_API_KEY") or "").strip() or None
    return Settings(
        mlb_base_url=os.getenv("MLB_BASE_URL", "https://statsapi.mlb.com/api/v1").rstrip("/"),
        savant_base_url=os.getenv("SAVANT_BASE_URL", "https://baseballsavant.mlb.com").rstrip("/"),
        odds_base_url=os.getenv("ODDS_BASE_URL", "https://api.the-odds-api.com/v4").rstrip("/"),
        odds_api_key=odds_api_key,
        fetch_timeout_seconds=_env_float("STREAKLAB_FETCH_TIMEOUT_SECONDS", 10.0),
        batch_size=_env_int("STREAKLAB_BATCH_SIZE", 6),
        backtest_batch_size=_env_int("STREAKLAB_BACKTEST_BATCH_SIZE", 8),
        leaderboard_fresh_seconds=_env_int("STREAKLAB_LEADERBOARD_FRESH_SECONDS", 300, minimum=0),
        cache_high_water_mark=_env_int("STREAKLAB_CACHE_HIGH_WATER", 2000),
    )


def load_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is not None:
        return _SETTINGS
    _SETTINGS = settings_from_env()
    if not _SETTINGS.has_prop_lines:
        logger.info("ODDS_API_KEY not set. Prop lines are disabled.")
    return _SETTINGS
