"""Replay the Hit Score over past dates and check picks against box scores."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, timedelta
import logging

from streaklab.picks.orchestrator import PicksOrchestrator, ScoredPick
from streaklab.scoring.hit_score import Tier

logger = logging.getLogger(__name__)

DEFAULT_BACKTEST_BATCH_SIZE = 8
MAX_BACKTEST_DAYS = 62


@dataclass(frozen=True)
class BacktestPick:
    date: str
    batter_id: int
    batter_name: str
    team: str
    game_pk: int
    score: int
    tier: Tier
    got_hit: bool | None


@dataclass
class BacktestDay:
    date: str
    picks: list[BacktestPick] = field(default_factory=list)
    note: str | None = None


@dataclass
class BacktestSummary:
    total_picks: int
    wins: int
    losses: int
    unknown: int
    win_rate: str
    tier_hits: dict[str, list[int]]


@dataclass
class BacktestResult:
    days: list[BacktestDay]
    summary: BacktestSummary
    stopped: bool = False


def date_range(start: date, end: date) -> list[date]:
    if end < start:
        raise ValueError("end date must not be before start date")
    span = (end - start).days + 1
    if span > MAX_BACKTEST_DAYS:
        raise ValueError(f"backtest range is limited to {MAX_BACKTEST_DAYS} days")
    return [start + timedelta(days=offset) for offset in range(span)]


def summarize(days: list[BacktestDay]) -> BacktestSummary:
    wins = losses = unknown = 0
    tier_hits: dict[str, list[int]] = {tier.value: [0, 0] for tier in Tier}
    for day in days:
        for pick in day.picks:
            bucket = tier_hits[pick.tier.value]
            if pick.got_hit is True:
                wins += 1
                bucket[0] += 1
                bucket[1] += 1
            elif pick.got_hit is False:
                losses += 1
                bucket[1] += 1
            else:
                unknown += 1
    decided = wins + losses
    return BacktestSummary(
        total_picks=decided + unknown,
        wins=wins,
        losses=losses,
        unknown=unknown,
        win_rate=f"{wins / decided * 100:.1f}" if decided else "—",
        tier_hits=tier_hits,
    )


class Backtester:
    def __init__(
        self,
        orchestrator: PicksOrchestrator,
        batch_size: int = DEFAULT_BACKTEST_BATCH_SIZE,
    ) -> None:
        self.orchestrator = orchestrator
        self.provider = orchestrator.provider
        self.batch_size = batch_size
        self._stop = asyncio.Event()

    def stop(self) -> None:
        logger.info("Stop requested for backtest")
        self._stop.set()

    async def _run_day(self, day: date, season: int, top_n: int) -> BacktestDay:
        schedule = await self.provider.fetch_games(day)
        if not schedule.ok:
            return BacktestDay(date=day.isoformat(), note=f"Schedule unavailable: {schedule.error}")
        if not schedule.games:
            return BacktestDay(date=day.isoformat(), note="No games")

        # Past lineups are not reliable from the live feed, so score rosters.
        candidates = await self.orchestrator.collect_candidates(schedule.games, {})
        scored, failed, _stopped = await self.orchestrator.score_candidates(
            candidates,
            season,
            day,
            batch_size=self.batch_size,
            stop_event=self._stop,
        )
        if failed:
            logger.info("Backtest %s: %d candidates failed to score", day, failed)

        top: list[ScoredPick] = scored[:top_n]
        game_pks = sorted({pick.game.game_pk for pick in top})
        box_hits = dict(
            zip(
                game_pks,
                await asyncio.gather(*(self.provider.fetch_box_hits(pk) for pk in game_pks)),
            )
        )

        picks: list[BacktestPick] = []
        for pick in top:
            hitters = box_hits.get(pick.game.game_pk)
            picks.append(
                BacktestPick(
                    date=day.isoformat(),
                    batter_id=pick.batter.id,
                    batter_name=pick.batter.name,
                    team=pick.batting_team.team,
                    game_pk=pick.game.game_pk,
                    score=pick.score.score,
                    tier=pick.score.tier,
                    got_hit=None if hitters is None else pick.batter.id in hitters,
                )
            )
        return BacktestDay(date=day.isoformat(), picks=picks)

    async def run(self, start: date, end: date, season: int, top_n: int = 2) -> BacktestResult:
        if top_n < 1:
            raise ValueError("top_n must be >= 1")
        days = date_range(start, end)
        self._stop.clear()
        logger.info("Backtest starting %s..%s (%d days, top_n=%d)", start, end, len(days), top_n)

        results: list[BacktestDay] = []
        stopped = False
        for day in days:
            if self._stop.is_set():
                stopped = True
                break
            try:
                results.append(await self._run_day(day, season, top_n))
            except Exception as exc:
                logger.exception("Backtest day %s failed", day)
                results.append(BacktestDay(date=day.isoformat(), note=str(exc) or type(exc).__name__))

        summary = summarize(results)
        logger.info(
            "Backtest done: days=%d picks=%d wins=%d losses=%d win_rate=%s stopped=%s",
            len(results),
            summary.total_picks,
            summary.wins,
            summary.losses,
            summary.win_rate,
            stopped,
        )
        return BacktestResult(days=results, summary=summary, stopped=stopped)
