"""Spring-training fallback for players with thin regular-season data."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from streaklab.ingestion.schema import GameRecord
from streaklab.ingestion.stats import StatsProvider

logger = logging.getLogger(__name__)

THIN_GAME_LOG_SIZE = 5
ALTERNATE_GAME_TYPE = "S"


@dataclass(frozen=True)
class PlayerData:
    game_log: tuple[GameRecord, ...] = ()
    season_stat: dict[str, Any] | None = None
    pitcher_stat: dict[str, Any] | None = None
    pitcher_log: tuple[GameRecord, ...] = ()

    def __post_init__(self) -> None:
        # Absent stat mappings are empty, never None.
        if self.season_stat is None:
            object.__setattr__(self, "season_stat", {})
        if self.pitcher_stat is None:
            object.__setattr__(self, "pitcher_stat", {})
        object.__setattr__(self, "game_log", tuple(self.game_log))
        object.__setattr__(self, "pitcher_log", tuple(self.pitcher_log))


def has_usable_avg(stat: dict[str, Any] | None) -> bool:
    return bool(stat and stat.get("avg"))


def is_thin(data: PlayerData) -> bool:
    return len(data.game_log) < THIN_GAME_LOG_SIZE or not has_usable_avg(data.season_stat)


def merge_fallback(primary: PlayerData, alternate: PlayerData) -> PlayerData:
    """Fill gaps in *primary* from *alternate* without overwriting real data.

    Game logs are concatenated (primary first) only when the primary log is
    short; stat mappings and the pitcher log are taken from *alternate* only
    when the primary value is absent. Pure, so equal inputs give equal output.
    """

    game_log = primary.game_log
    if len(game_log) < THIN_GAME_LOG_SIZE:
        game_log = primary.game_log + alternate.game_log

    season_stat = primary.season_stat
    if not has_usable_avg(season_stat):
        season_stat = alternate.season_stat or season_stat

    pitcher_stat = primary.pitcher_stat
    if not has_usable_avg(pitcher_stat):
        pitcher_stat = alternate.pitcher_stat or pitcher_stat

    pitcher_log = primary.pitcher_log or alternate.pitcher_log

    return PlayerData(
        game_log=game_log,
        season_stat=season_stat,
        pitcher_stat=pitcher_stat,
        pitcher_log=pitcher_log,
    )


async def resolve_fallback(
    provider: StatsProvider,
    batter_id: int,
    pitcher_id: int,
    season: int,
    primary: PlayerData,
) -> tuple[PlayerData, bool]:
    """Return the data to score with and whether the fallback was used."""

    if not is_thin(primary):
        return primary, False

    logger.debug(
        "Thin data for batter=%s (games=%d, season_avg=%s); trying game_type=%s",
        batter_id,
        len(primary.game_log),
        primary.season_stat.get("avg"),
        ALTERNATE_GAME_TYPE,
    )
    game_log, season_stat, pitcher_stat, pitcher_log = await asyncio.gather(
        provider.fetch_game_log(batter_id, season, ALTERNATE_GAME_TYPE),
        provider.fetch_season_stats(batter_id, season, ALTERNATE_GAME_TYPE),
        provider.fetch_pitcher_stats(pitcher_id, season, ALTERNATE_GAME_TYPE),
        provider.fetch_pitcher_game_log(pitcher_id, season, ALTERNATE_GAME_TYPE),
    )
    alternate = PlayerData(
        game_log=tuple(game_log),
        season_stat=season_stat,
        pitcher_stat=pitcher_stat,
        pitcher_log=tuple(pitcher_log),
    )
    return merge_fallback(primary, alternate), True
