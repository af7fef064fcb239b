"""Cached, fail-soft fetchers for player, pitcher, schedule and Statcast data.

Every fetcher returns a neutral value ([] / {} / None) when the provider
fails, so one bad response never aborts a batch of concurrent fetches.
Failures are logged and recorded on ``StatsProvider.diagnostics``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, TypeVar

from streaklab.cache import MISSING, TTLCache
from streaklab.ingestion.mlb_client import MLBClient, is_error_payload
from streaklab.ingestion.mlb_parser import (
    parse_box_hits,
    parse_first_stat,
    parse_game_log,
    parse_lineups,
    parse_person,
    parse_roster,
    parse_savant_csv,
    parse_schedule,
    parse_search,
    parse_stat_splits,
)
from streaklab.ingestion.schema import (
    Batter,
    Game,
    GameLineups,
    GameRecord,
    PersonInfo,
    PlayerSearchHit,
    Schedule,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SPORT_ID = 1
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0
# Savant leaderboards start in 2015; older fallbacks are pointless.
STATCAST_FIRST_FALLBACK_SEASON = 2020
SCHEDULE_HYDRATE = "probablePitcher(note),team,venue,linescore,weather,flags"


@dataclass(frozen=True)
class FetchFailure:
    category: str
    key: str
    error: str
    status: int | None = None


@dataclass
class FetchDiagnostics:
    requests: int = 0
    cache_hits: int = 0
    shared: int = 0
    failures: int = 0
    recent_failures: deque[FetchFailure] = field(default_factory=lambda: deque(maxlen=50))

    def record_failure(self, failure: FetchFailure) -> None:
        self.failures += 1
        self.recent_failures.append(failure)

    def as_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "cache_hits": self.cache_hits,
            "shared": self.shared,
            "failures": self.failures,
            "recent_failures": [
                {
                    "category": failure.category,
                    "key": failure.key,
                    "error": failure.error,
                    "status": failure.status,
                }
                for failure in reversed(self.recent_failures)
            ],
        }


def _game_type_key(game_type: str | None) -> str:
    return game_type or ""


def _date_key(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else str(value).strip()


def _stat_or_none(payload: dict[str, Any]) -> dict[str, Any] | None:
    return parse_first_stat(payload) or None


def _index_leaderboard(rows: list[dict[str, str]]) -> dict[str, dict[str, str]]:
    return {row["player_id"]: row for row in rows if row.get("player_id")}


class StatsProvider:
    def __init__(
        self,
        client: MLBClient,
        cache: TTLCache,
        timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client
        self.cache = cache
        self.timeout_seconds = timeout_seconds
        self.diagnostics = FetchDiagnostics()
        # Loads still running, keyed like the cache, so concurrent misses share one request.
        self._in_flight: dict[str, asyncio.Future] = {}

    async def _load(
        self,
        category: str,
        key: str,
        request: Callable[[], dict[str, Any]],
        parse: Callable[[dict[str, Any]], T],
        on_error: Callable[[str], T],
        cache_if: Callable[[T], bool] | None = None,
    ) -> T:
        hit = self.cache.get(key, MISSING)
        if hit is not MISSING:
            self.diagnostics.cache_hits += 1
            return hit

        pending = self._in_flight.get(key)
        if pending is not None:
            self.diagnostics.shared += 1
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._fetch(category, key, request, parse, on_error, cache_if))
        self._in_flight[key] = task
        task.add_done_callback(functools.partial(self._forget, key))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _fetch(
        self,
        category: str,
        key: str,
        request: Callable[[], dict[str, Any]],
        parse: Callable[[dict[str, Any]], T],
        on_error: Callable[[str], T],
        cache_if: Callable[[T], bool] | None,
    ) -> T:
        self.diagnostics.requests += 1
        try:
            payload = await asyncio.wait_for(
                asyncio.to_thread(request),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._fail(category, key, f"timed out after {self.timeout_seconds}s", None, on_error)

        if is_error_payload(payload):
            error = str(payload.get("error") or "provider error")
            details = payload.get("details")
            if details:
                error = f"{error}: {details}"
            return self._fail(category, key, error, payload.get("status"), on_error)

        try:
            result = parse(payload)
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            return self._fail(category, key, f"malformed payload: {exc}", None, on_error)

        if cache_if is None or cache_if(result):
            self.cache.set_for(category, key, result)
        return result

    def _fail(
        self,
        category: str,
        key: str,
        error: str,
        status: int | None,
        on_error: Callable[[str], T],
    ) -> T:
        logger.warning("Fetch failed category=%s key=%s status=%s error=%s", category, key, status, error)
        self.diagnostics.record_failure(FetchFailure(category=category, key=key, error=error, status=status))
        return on_error(error)

    def _stats_request(self, player_id: int, params: dict[str, Any]) -> Callable[[], dict[str, Any]]:
        return functools.partial(
            self.client.get_json,
            f"/people/{player_id}/stats",
            {"sportId": SPORT_ID, **params},
        )

    # ── Schedule / rosters / people ────────────────────────────────────────

    async def fetch_games(self, game_date: date | str) -> Schedule:
        day = _date_key(game_date)
        request = functools.partial(
            self.client.get_json,
            "/schedule",
            {"date": day, "sportId": SPORT_ID, "hydrate": SCHEDULE_HYDRATE},
        )
        return await self._load(
            "schedule",
            f"sched:{day}",
            request,
            lambda payload: Schedule(date=day, games=parse_schedule(payload)),
            lambda error: Schedule(date=day, ok=False, error=error),
        )

    async def fetch_roster(self, team_id: int) -> list[Batter]:
        request = functools.partial(
            self.client.get_json,
            f"/teams/{team_id}/roster",
            {"rosterType": "active", "hydrate": "person"},
        )
        return await self._load("roster", f"roster:{team_id}", request, parse_roster, lambda _error: [])

    async def fetch_person(self, person_id: int) -> PersonInfo | None:
        request = functools.partial(self.client.get_json, f"/people/{person_id}")
        return await self._load(
            "person",
            f"person:{person_id}",
            request,
            parse_person,
            lambda _error: None,
            cache_if=lambda person: person is not None,
        )

    async def search_players(self, query: str) -> list[PlayerSearchHit]:
        cleaned = (query or "").strip()
        if len(cleaned) < 2:
            return []
        request = functools.partial(
            self.client.get_json,
            "/people/search",
            {"names": cleaned, "sportId": SPORT_ID, "active": "true"},
        )
        return await self._load("search", f"search:{cleaned.lower()}", request, parse_search, lambda _error: [])

    # ── Batter stats ───────────────────────────────────────────────────────

    async def fetch_season_stats(self, player_id: int, season: int, game_type: str | None = None) -> dict[str, Any]:
        request = self._stats_request(
            player_id,
            {"stats": "season", "group": "hitting", "season": season, "gameType": game_type},
        )
        key = f"season:{player_id}:{season}:{_game_type_key(game_type)}"
        return await self._load("season", key, request, parse_first_stat, lambda _error: {})

    async def fetch_game_log(self, player_id: int, season: int, game_type: str | None = None) -> list[GameRecord]:
        request = self._stats_request(
            player_id,
            {"stats": "gameLog", "group": "hitting", "season": season, "gameType": game_type},
        )
        key = f"gl:{player_id}:{season}:{_game_type_key(game_type)}"
        return await self._load("gamelog", key, request, parse_game_log, lambda _error: [])

    async def fetch_bvp(self, batter_id: int, pitcher_id: int) -> dict[str, Any] | None:
        """Career batter-vs-pitcher line, or None when the pair never met."""
        request = self._stats_request(
            batter_id,
            {"stats": "vsPlayer", "group": "hitting", "opposingPlayerId": pitcher_id},
        )
        return await self._load("bvp", f"bvp:{batter_id}:{pitcher_id}", request, _stat_or_none, lambda _error: None)

    async def _fetch_splits(
        self,
        prefix: str,
        sit_codes: str,
        player_id: int,
        season: int,
        game_type: str | None,
    ) -> dict[str, dict[str, Any]]:
        request = self._stats_request(
            player_id,
            {
                "stats": "statSplits",
                "group": "hitting",
                "season": season,
                "sitCodes": sit_codes,
                "gameType": game_type,
            },
        )
        key = f"{prefix}:{player_id}:{season}:{_game_type_key(game_type)}"
        return await self._load("splits", key, request, parse_stat_splits, lambda _error: {})

    async def fetch_platoon_splits(self, player_id: int, season: int, game_type: str | None = None) -> dict[str, dict[str, Any]]:
        return await self._fetch_splits("plat", "vl,vr", player_id, season, game_type)

    async def fetch_home_away_splits(self, player_id: int, season: int, game_type: str | None = None) -> dict[str, dict[str, Any]]:
        return await self._fetch_splits("ha", "h,a", player_id, season, game_type)

    async def fetch_day_night_splits(self, player_id: int, season: int, game_type: str | None = None) -> dict[str, dict[str, Any]]:
        return await self._fetch_splits("dn", "d,n", player_id, season, game_type)

    # ── Pitcher stats ──────────────────────────────────────────────────────

    async def fetch_pitcher_stats(self, pitcher_id: int, season: int, game_type: str | None = None) -> dict[str, Any]:
        request = self._stats_request(
            pitcher_id,
            {"stats": "season", "group": "pitching", "season": season, "gameType": game_type},
        )
        key = f"pstat:{pitcher_id}:{season}:{_game_type_key(game_type)}"
        return await self._load("pitcher", key, request, parse_first_stat, lambda _error: {})

    async def fetch_pitcher_game_log(self, pitcher_id: int, season: int, game_type: str | None = None) -> list[GameRecord]:
        request = self._stats_request(
            pitcher_id,
            {"stats": "gameLog", "group": "pitching", "season": season, "gameType": game_type},
        )
        key = f"pgl:{pitcher_id}:{season}:{_game_type_key(game_type)}"
        return await self._load("pitcher", key, request, parse_game_log, lambda _error: [])

    # ── Lineups / box scores ───────────────────────────────────────────────

    async def fetch_confirmed_lineups(self, game_pk: int) -> GameLineups:
        request = functools.partial(self.client.get_json, f"/game/{game_pk}/feed/live")
        return await self._load("livefeed", f"lineups:{game_pk}", request, parse_lineups, lambda _error: GameLineups())

    async def fetch_all_lineups(self, games: Iterable[Game]) -> dict[int, GameLineups]:
        games = list(games)
        results = await asyncio.gather(
            *(self.fetch_confirmed_lineups(game.game_pk) for game in games),
            return_exceptions=True,
        )
        lineups: dict[int, GameLineups] = {}
        for game, result in zip(games, results):
            if isinstance(result, BaseException):
                logger.warning("Lineup fetch raised for game_pk=%s: %s", game.game_pk, result)
                continue
            lineups[game.game_pk] = result
        return lineups

    async def fetch_box_hits(self, game_pk: int) -> set[int] | None:
        """Ids of players with a hit, or None when the box score is unavailable."""
        request = functools.partial(self.client.get_json, f"/game/{game_pk}/boxscore")
        return await self._load("boxscore", f"box:{game_pk}", request, parse_box_hits, lambda _error: None)

    # ── Statcast ───────────────────────────────────────────────────────────

    async def _fetch_savant_rows(self, season: int, min_pa: int) -> dict[str, dict[str, str]]:
        request = functools.partial(
            self.client.get_savant_csv,
            "/leaderboard/expected_statistics",
            {"type": "batter", "year": season, "position": "", "team": "", "min": min_pa, "csv": "true"},
        )
        return await self._load(
            "statcast",
            f"statcast:{season}:{min_pa}",
            request,
            lambda payload: _index_leaderboard(parse_savant_csv(payload["text"])),
            lambda _error: {},
            cache_if=bool,
        )

    async def fetch_statcast_leaderboard(self, season: int) -> dict[str, dict[str, str]]:
        """Expected-stats leaderboard keyed by player id.

        Early in a season (spring training) the current board is empty; the
        prior season's qualified board is used instead.
        """
        rows = await self._fetch_savant_rows(season, 1)
        if not rows and season > STATCAST_FIRST_FALLBACK_SEASON:
            rows = await self._fetch_savant_rows(season - 1, 50)
        return rows

    async def fetch_statcast_for_player(self, player_id: int, season: int) -> dict[str, str] | None:
        board = await self.fetch_statcast_leaderboard(season)
        row = board.get(str(player_id))
        if row is None and season > STATCAST_FIRST_FALLBACK_SEASON:
            previous = await self.fetch_statcast_leaderboard(season - 1)
            row = previous.get(str(player_id))
        return row
