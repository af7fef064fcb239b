from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
import logging
import time
from typing import Any, Callable, Literal

from streaklab.ingestion.parks import park_factor
from streaklab.ingestion.schema import (
    Batter,
    Game,
    GameLineups,
    GameRecord,
    ProbablePitcher,
    TeamSide,
)
from streaklab.ingestion.stats import StatsProvider
from streaklab.picks.fallback import PlayerData, resolve_fallback
from streaklab.props.odds_client import OddsClient, PropLine, find_player_line
from streaklab.scoring.hit_score import HitScoreInputs, HitScoreResult, compute_hit_score
from streaklab.scoring.splits import (
    SplitAggregate,
    compute_active_streak,
    compute_split,
    is_player_hot,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 6
DEFAULT_FRESH_SECONDS = 300
PROJECTED_ROSTER_SIZE = 13
PROJECTED_LINEUP_POS = 5
DEFAULT_PITCHER_REST_DAYS = 4
MIN_BVP_AT_BATS = 5
CONFIRMED_LINEUP_SIZE = 9


@dataclass(frozen=True)
class BatterCandidate:
    batter: Batter
    pitcher: ProbablePitcher
    game: Game
    batting_side: Literal["home", "away"]
    lineup_pos: int = PROJECTED_LINEUP_POS
    lineup_status: str = "projected"

    @property
    def batting_team(self) -> TeamSide:
        return self.game.side(self.batting_side)


@dataclass
class ScoredPick:
    batter: Batter
    pitcher: ProbablePitcher
    game: Game
    batting_team: TeamSide
    score: HitScoreResult
    l3: SplitAggregate | None
    l7: SplitAggregate | None
    l15: SplitAggregate | None
    streak: int
    bvp_stat: dict[str, Any] | None
    platoon_stat: dict[str, Any]
    day_night_stat: dict[str, Any]
    season_stat: dict[str, Any]
    pitcher_stat: dict[str, Any]
    park_factor: int
    has_bvp: bool
    hot: bool
    lineup_pos: int
    lineup_status: str
    is_fallback: bool
    pitcher_days_rest: int
    prop_line: PropLine | None = None
    statcast: dict[str, str] | None = None


@dataclass
class LeaderboardRun:
    """One date's sorted picks. ``ok`` is False when the schedule was unreachable."""

    date: str
    season: int
    picks: list[ScoredPick] = field(default_factory=list)
    teams: list[str] = field(default_factory=list)
    lineup_status: dict[int, dict[str, str]] = field(default_factory=dict)
    candidates: int = 0
    failed: int = 0
    stopped: bool = False
    ok: bool = True
    error: str | None = None
    created_at: float = 0.0


def _parse_day(value: str) -> date | None:
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def pitcher_days_rest(pitcher_log: tuple[GameRecord, ...] | list[GameRecord], target_date: date) -> int:
    """Days between the pitcher's last appearance before *target_date* and that date."""
    for record in pitcher_log:
        appeared = _parse_day(record.date)
        if appeared is not None and appeared < target_date:
            return (target_date - appeared).days
    return DEFAULT_PITCHER_REST_DAYS


def games_before(records: tuple[GameRecord, ...] | list[GameRecord], target_date: date) -> tuple[GameRecord, ...]:
    """Drop games played on or after *target_date*; undated records are kept."""
    kept = []
    for record in records:
        played = _parse_day(record.date)
        if played is None or played < target_date:
            kept.append(record)
    return tuple(kept)


def has_usable_bvp(bvp_stat: dict[str, Any] | None) -> bool:
    if not bvp_stat:
        return False
    try:
        return int(bvp_stat.get("atBats") or 0) >= MIN_BVP_AT_BATS
    except (TypeError, ValueError):
        return False


class PicksOrchestrator:
    def __init__(
        self,
        provider: StatsProvider,
        batch_size: int = DEFAULT_BATCH_SIZE,
        fresh_seconds: int = DEFAULT_FRESH_SECONDS,
        odds_client: OddsClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.provider = provider
        self.batch_size = batch_size
        self.fresh_seconds = fresh_seconds
        self.odds_client = odds_client
        self._clock = clock
        self._runs: dict[str, LeaderboardRun] = {}
        self._stop = asyncio.Event()
        self._active = 0

    def stop(self) -> None:
        """Ask the current run to stop after its in-flight batch."""
        logger.info("Stop requested for pick scoring")
        self._stop.set()

    def cached_run(self, day: str) -> LeaderboardRun | None:
        return self._runs.get(day)

    def clear_runs(self) -> None:
        self._runs.clear()

    def _prune_runs(self) -> None:
        now = self._clock()
        for day in [day for day, run in self._runs.items() if now - run.created_at >= self.fresh_seconds]:
            del self._runs[day]

    async def collect_candidates(
        self,
        games: list[Game],
        lineups: dict[int, GameLineups],
    ) -> list[BatterCandidate]:
        candidates: list[BatterCandidate] = []
        for game in games:
            if game.home.pitcher is None and game.away.pitcher is None:
                continue
            for side in ("home", "away"):
                pitching_side = "away" if side == "home" else "home"
                pitcher = game.side(pitching_side).pitcher
                if pitcher is None:
                    continue

                lineup = lineups.get(game.game_pk)
                team_lineup = lineup.side(side) if lineup else None
                if (
                    team_lineup is not None
                    and team_lineup.status == "confirmed"
                    and len(team_lineup.players) >= CONFIRMED_LINEUP_SIZE
                ):
                    for player in team_lineup.players:
                        candidates.append(
                            BatterCandidate(
                                batter=Batter(
                                    id=player.id,
                                    name=player.name,
                                    position=player.position,
                                    bat_side=player.bat_side,
                                ),
                                pitcher=pitcher,
                                game=game,
                                batting_side=side,
                                lineup_pos=player.order,
                                lineup_status="confirmed",
                            )
                        )
                    continue

                roster = await self.provider.fetch_roster(game.side(side).team_id)
                for batter in roster[:PROJECTED_ROSTER_SIZE]:
                    candidates.append(
                        BatterCandidate(
                            batter=batter,
                            pitcher=pitcher,
                            game=game,
                            batting_side=side,
                        )
                    )
        return candidates

    async def _resolve_pitcher_hand(self, pitcher: ProbablePitcher) -> ProbablePitcher:
        if pitcher.hand and pitcher.hand != "?":
            return pitcher
        info = await self.provider.fetch_person(pitcher.id)
        hand = info.pitch_hand if info and info.pitch_hand != "?" else "R"
        return pitcher.model_copy(update={"hand": hand})

    async def _prop_line(self, game: Game, batter: Batter) -> PropLine | None:
        if self.odds_client is None or not self.odds_client.enabled:
            return None
        lines = await self.odds_client.lines_for_home_team(game.home.team)
        return find_player_line(lines, batter.name)

    async def score_batter(
        self,
        candidate: BatterCandidate,
        season: int,
        target_date: date,
    ) -> ScoredPick:
        batter = candidate.batter
        game = candidate.game
        pitcher = await self._resolve_pitcher_hand(candidate.pitcher)

        (
            game_log,
            bvp_stat,
            platoon,
            day_night,
            season_stat,
            pitcher_stat,
            pitcher_log,
            statcast,
        ) = await asyncio.gather(
            self.provider.fetch_game_log(batter.id, season),
            self.provider.fetch_bvp(batter.id, pitcher.id),
            self.provider.fetch_platoon_splits(batter.id, season),
            self.provider.fetch_day_night_splits(batter.id, season),
            self.provider.fetch_season_stats(batter.id, season),
            self.provider.fetch_pitcher_stats(pitcher.id, season),
            self.provider.fetch_pitcher_game_log(pitcher.id, season),
            self.provider.fetch_statcast_for_player(batter.id, season),
        )

        # Only games before the target day count.
        primary = PlayerData(
            game_log=games_before(game_log, target_date),
            season_stat=season_stat,
            pitcher_stat=pitcher_stat,
            pitcher_log=tuple(pitcher_log),
        )
        data, is_fallback = await resolve_fallback(self.provider, batter.id, pitcher.id, season, primary)
        recent = games_before(data.game_log, target_date)

        l3 = compute_split(recent, 3)
        l7 = compute_split(recent, 7)
        l15 = compute_split(recent, 15)
        streak = compute_active_streak(recent)

        platoon_stat = platoon.get("vs. Left" if pitcher.hand == "L" else "vs. Right", {})
        day_night_stat = day_night.get("Night" if game.is_night else "Day", {})
        pf = park_factor(game.venue)
        rest = pitcher_days_rest(data.pitcher_log, target_date)
        has_bvp = has_usable_bvp(bvp_stat)

        score = compute_hit_score(
            HitScoreInputs(
                l7=l7,
                l15=l15,
                bvp=bvp_stat,
                platoon=platoon_stat,
                park_factor=pf,
                season_avg=data.season_stat.get("avg"),
                day_night=day_night_stat,
                is_home=candidate.batting_side == "home",
                pitcher_avg_against=data.pitcher_stat.get("avg"),
                has_bvp=has_bvp,
                lineup_pos=candidate.lineup_pos,
                pitcher_days_rest=rest,
                weather=game.weather,
                venue=game.venue,
                statcast=statcast,
            )
        )

        return ScoredPick(
            batter=batter,
            pitcher=pitcher,
            game=game,
            batting_team=candidate.batting_team,
            score=score,
            l3=l3,
            l7=l7,
            l15=l15,
            streak=streak,
            bvp_stat=bvp_stat,
            platoon_stat=platoon_stat,
            day_night_stat=day_night_stat,
            season_stat=data.season_stat,
            pitcher_stat=data.pitcher_stat,
            park_factor=pf,
            has_bvp=has_bvp,
            hot=is_player_hot(streak, l7.avg if l7 else None, score.score),
            lineup_pos=candidate.lineup_pos,
            lineup_status=candidate.lineup_status,
            is_fallback=is_fallback,
            pitcher_days_rest=rest,
            prop_line=await self._prop_line(game, batter),
            statcast=statcast,
        )

    async def score_candidates(
        self,
        candidates: list[BatterCandidate],
        season: int,
        target_date: date,
        batch_size: int | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> tuple[list[ScoredPick], int, bool]:
        """Score candidates batch by batch.

        Returns (picks sorted by score, failed count, stopped flag). A batch
        only starts once the previous one has fully settled.
        """
        size = batch_size or self.batch_size
        stop = stop_event or self._stop
        picks: list[ScoredPick] = []
        failed = 0
        stopped = False

        for start in range(0, len(candidates), size):
            if stop.is_set():
                stopped = True
                logger.info("Scoring stopped after %d of %d candidates", start, len(candidates))
                break
            batch = candidates[start : start + size]
            results = await asyncio.gather(
                *(self.score_batter(candidate, season, target_date) for candidate in batch),
                return_exceptions=True,
            )
            for candidate, result in zip(batch, results):
                if isinstance(result, BaseException):
                    failed += 1
                    logger.warning(
                        "Scoring failed batter=%s game_pk=%s: %s: %s",
                        candidate.batter.id,
                        candidate.game.game_pk,
                        type(result).__name__,
                        result,
                    )
                    continue
                picks.append(result)
            logger.debug("Scored %d/%d candidates", min(start + size, len(candidates)), len(candidates))

        picks.sort(key=lambda pick: pick.score.score, reverse=True)
        return picks, failed, stopped

    async def build_leaderboard(
        self,
        target_date: date,
        season: int,
        force: bool = False,
    ) -> LeaderboardRun:
        day = target_date.isoformat()
        self._prune_runs()
        cached = self._runs.get(day)
        if cached is not None and not force:
            logger.info("Leaderboard cache hit date=%s picks=%d", day, len(cached.picks))
            return cached

        # A stop requested during another run stays in force until that run settles.
        if self._active == 0:
            self._stop.clear()
        self._active += 1
        try:
            return await self._build(target_date, season, day)
        finally:
            self._active -= 1

    async def _build(self, target_date: date, season: int, day: str) -> LeaderboardRun:
        logger.info("Building leaderboard date=%s season=%s", day, season)
        schedule = await self.provider.fetch_games(target_date)
        if not schedule.ok:
            logger.error("Schedule unavailable date=%s error=%s", day, schedule.error)
            return LeaderboardRun(
                date=day,
                season=season,
                ok=False,
                error=schedule.error or "Schedule provider unreachable",
                created_at=self._clock(),
            )

        lineups = await self.provider.fetch_all_lineups(schedule.games)
        lineup_status = {
            game_pk: {"home": lineup.home.status, "away": lineup.away.status}
            for game_pk, lineup in lineups.items()
        }
        candidates = await self.collect_candidates(schedule.games, lineups)
        teams = sorted({candidate.batting_team.team for candidate in candidates})
        logger.info(
            "Scoring %d candidates from %d games date=%s",
            len(candidates),
            len(schedule.games),
            day,
        )

        picks, failed, stopped = await self.score_candidates(candidates, season, target_date)
        run = LeaderboardRun(
            date=day,
            season=season,
            picks=picks,
            teams=teams,
            lineup_status=lineup_status,
            candidates=len(candidates),
            failed=failed,
            stopped=stopped,
            created_at=self._clock(),
        )
        if not stopped:
            self._runs[day] = run
        logger.info(
            "Leaderboard done date=%s picks=%d failed=%d stopped=%s",
            day,
            len(picks),
            failed,
            stopped,
        )
        return run
