"""CLI entrypoint for building a day's leaderboard or replaying past days."""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date, datetime

from streaklab.cache import TTLCache
from streaklab.ingestion.mlb_client import MLBClient
from streaklab.ingestion.stats import StatsProvider
from streaklab.picks.backtest import Backtester
from streaklab.picks.orchestrator import PicksOrchestrator
from streaklab.props.odds_client import OddsClient
from streaklab.settings import load_settings


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Score today's batters or backtest the Hit Score over a date range.",
    )

    date_group = parser.add_mutually_exclusive_group()
    date_group.add_argument(
        "--today",
        action="store_true",
        help="Use today's date.",
    )
    date_group.add_argument(
        "--date",
        type=str,
        help="Date to score in YYYY-MM-DD format.",
    )

    parser.add_argument(
        "--season",
        type=int,
        help="Season to pull stats from (defaults to the date's year).",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=10,
        help="Number of picks to print.",
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore a fresh cached leaderboard.",
    )
    parser.add_argument(
        "--backtest-until",
        type=str,
        help="Backtest from --date through this date (YYYY-MM-DD) instead of scoring one day.",
    )

    return parser.parse_args(argv)


def _parse_date(raw: str) -> date:
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError as exc:
        raise SystemExit(f"Invalid date {raw!r}. Use YYYY-MM-DD.") from exc


def _resolve_date(args: argparse.Namespace) -> date:
    if args.date:
        return _parse_date(args.date)
    return date.today()


def _build_orchestrator() -> PicksOrchestrator:
    settings = load_settings()
    cache = TTLCache(high_water_mark=settings.cache_high_water_mark)
    provider = StatsProvider(
        MLBClient(settings.mlb_base_url, settings.savant_base_url),
        cache,
        timeout_seconds=settings.fetch_timeout_seconds,
    )
    return PicksOrchestrator(
        provider,
        batch_size=settings.batch_size,
        fresh_seconds=settings.leaderboard_fresh_seconds,
        odds_client=OddsClient(settings.odds_base_url, settings.odds_api_key, cache),
    )


async def _score_day(orchestrator: PicksOrchestrator, target_date: date, season: int, top: int, refresh: bool) -> int:
    run = await orchestrator.build_leaderboard(target_date, season, force=refresh)
    if not run.ok:
        logging.error("Schedule unavailable for %s: %s", target_date, run.error)
        return 1
    for rank, pick in enumerate(run.picks[:top], start=1):
        print(
            f"{rank:>2}. {pick.score.score:>3} {pick.score.tier_label:<6} "
            f"{pick.batter.name} ({pick.batting_team.team}) vs {pick.pitcher.name} "
            f"L7={pick.l7.avg if pick.l7 else '-'} streak={pick.streak}"
        )
    logging.info(
        "Done: candidates=%s scored=%s failed=%s stopped=%s",
        run.candidates,
        len(run.picks),
        run.failed,
        run.stopped,
    )
    return 0


async def _backtest(orchestrator: PicksOrchestrator, start: date, end: date, season: int, top: int) -> int:
    backtester = Backtester(orchestrator, batch_size=load_settings().backtest_batch_size)
    try:
        result = await backtester.run(start, end, season, top_n=top)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    for day in result.days:
        if day.note:
            print(f"{day.date}: {day.note}")
        for pick in day.picks:
            outcome = {True: "HIT", False: "MISS", None: "?"}[pick.got_hit]
            print(f"{day.date}: {pick.score:>3} {pick.batter_name} ({pick.team}) {outcome}")
    summary = result.summary
    print(
        f"Picks={summary.total_picks} wins={summary.wins} losses={summary.losses} "
        f"unknown={summary.unknown} win_rate={summary.win_rate}%"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    args = _parse_args(argv)
    target_date = _resolve_date(args)
    season = args.season or target_date.year
    orchestrator = _build_orchestrator()

    if args.backtest_until:
        end = _parse_date(args.backtest_until)
        logging.info("Starting backtest %s..%s season=%s top=%s", target_date, end, season, args.top)
        return asyncio.run(_backtest(orchestrator, target_date, end, season, args.top))

    logging.info("Starting leaderboard date=%s season=%s", target_date, season)
    return asyncio.run(_score_day(orchestrator, target_date, season, args.top, args.refresh))


if __name__ == "__main__":
    raise SystemExit(main())
