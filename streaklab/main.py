from __future__ import annotations

from datetime import date, datetime
import logging
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Request

from streaklab.cache import TTLCache
from streaklab.ingestion.mlb_client import MLBClient
from streaklab.ingestion.stats import StatsProvider
from streaklab.log_buffer import get_buffer_handler, install_buffer_handler
from streaklab.picks.backtest import Backtester, BacktestResult
from streaklab.picks.orchestrator import LeaderboardRun, PicksOrchestrator, ScoredPick
from streaklab.props.odds_client import OddsClient, PropLine, fmt_odds
from streaklab.schemas import (
    BacktestDayOut,
    BacktestPickOut,
    BacktestRequest,
    BacktestResponse,
    BacktestSummaryOut,
    CacheStatsOut,
    FactorOut,
    HitScoreOut,
    LeaderboardResponse,
    PickOut,
    PropLineOut,
    SplitOut,
)
from streaklab.scoring.hit_score import HitScoreResult
from streaklab.settings import Settings, load_settings

app = FastAPI(title="StreakLab")
logger = logging.getLogger(__name__)

GAME_DAY_TZ = ZoneInfo("America/New_York")


def build_services(target: FastAPI, settings: Settings) -> None:
    """Wire the shared cache, provider and runners onto ``target.state``."""
    cache = TTLCache(high_water_mark=settings.cache_high_water_mark)
    client = MLBClient(settings.mlb_base_url, settings.savant_base_url)
    provider = StatsProvider(client, cache, timeout_seconds=settings.fetch_timeout_seconds)
    odds_client = OddsClient(settings.odds_base_url, settings.odds_api_key, cache)
    orchestrator = PicksOrchestrator(
        provider,
        batch_size=settings.batch_size,
        fresh_seconds=settings.leaderboard_fresh_seconds,
        odds_client=odds_client,
    )
    target.state.settings = settings
    target.state.cache = cache
    target.state.provider = provider
    target.state.odds_client = odds_client
    target.state.orchestrator = orchestrator
    target.state.backtester = Backtester(orchestrator, batch_size=settings.backtest_batch_size)


@app.on_event("startup")
async def start_services() -> None:
    install_buffer_handler()
    settings = load_settings()
    build_services(app, settings)
    logger.info(
        "StreakLab starting up: batch_size=%s fresh_seconds=%s prop_lines=%s",
        settings.batch_size,
        settings.leaderboard_fresh_seconds,
        settings.has_prop_lines,
    )


@app.on_event("shutdown")
async def stop_services() -> None:
    orchestrator = getattr(app.state, "orchestrator", None)
    backtester = getattr(app.state, "backtester", None)
    if orchestrator is not None:
        orchestrator.stop()
    if backtester is not None:
        backtester.stop()
    logger.info("StreakLab shut down")


def get_orchestrator(request: Request) -> PicksOrchestrator:
    return request.app.state.orchestrator


def get_backtester(request: Request) -> Backtester:
    return request.app.state.backtester


def get_provider(request: Request) -> StatsProvider:
    return request.app.state.provider


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def parse_query_date(value: str | None) -> date:
    if not value:
        return datetime.now(GAME_DAY_TZ).date()
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD") from exc


def _stat_avg(stat: dict | None) -> str | None:
    if not stat or stat.get("avg") is None:
        return None
    return str(stat["avg"])


def _score_out(result: HitScoreResult) -> HitScoreOut:
    return HitScoreOut(
        score=result.score,
        with_matchup_history=result.with_matchup_history,
        without_matchup_history=result.without_matchup_history,
        has_matchup_history=result.has_matchup_history,
        has_advanced_contact=result.has_advanced_contact,
        factors=[FactorOut(**factor._asdict()) for factor in result.factors],
        tier=result.tier.value,
        tier_label=result.tier_label,
    )


def _prop_line_out(line: PropLine | None) -> PropLineOut | None:
    if line is None:
        return None
    return PropLineOut(
        point=line.point,
        over=line.over,
        under=line.under,
        bookmaker=line.bookmaker,
        over_display=fmt_odds(line.over),
        under_display=fmt_odds(line.under),
    )


def pick_out(pick: ScoredPick) -> PickOut:
    return PickOut(
        batter_id=pick.batter.id,
        batter_name=pick.batter.name,
        bat_side=pick.batter.bat_side,
        team=pick.batting_team.team,
        pitcher_id=pick.pitcher.id,
        pitcher_name=pick.pitcher.name,
        pitcher_hand=pick.pitcher.hand,
        game_pk=pick.game.game_pk,
        game_date=pick.game.game_date,
        venue=pick.game.venue,
        score=_score_out(pick.score),
        l3=SplitOut.model_validate(pick.l3) if pick.l3 else None,
        l7=SplitOut.model_validate(pick.l7) if pick.l7 else None,
        l15=SplitOut.model_validate(pick.l15) if pick.l15 else None,
        streak=pick.streak,
        season_avg=_stat_avg(pick.season_stat),
        bvp_avg=_stat_avg(pick.bvp_stat),
        platoon_avg=_stat_avg(pick.platoon_stat),
        park_factor=pick.park_factor,
        has_bvp=pick.has_bvp,
        hot=pick.hot,
        lineup_pos=pick.lineup_pos,
        lineup_status=pick.lineup_status,
        is_fallback=pick.is_fallback,
        pitcher_days_rest=pick.pitcher_days_rest,
        prop_line=_prop_line_out(pick.prop_line),
    )


def leaderboard_response(run: LeaderboardRun, limit: int | None = None) -> LeaderboardResponse:
    picks = run.picks[:limit] if limit else run.picks
    message = None
    if run.stopped:
        message = "Scoring was stopped before every candidate was scored."
    elif not run.picks:
        message = "No scored picks for requested date."
    return LeaderboardResponse(
        date=run.date,
        season=run.season,
        count=len(picks),
        picks=[pick_out(pick) for pick in picks],
        teams=run.teams,
        lineup_status=run.lineup_status,
        candidates=run.candidates,
        failed=run.failed,
        stopped=run.stopped,
        message=message,
    )


def backtest_response(result: BacktestResult) -> BacktestResponse:
    return BacktestResponse(
        days=[
            BacktestDayOut(
                date=day.date,
                note=day.note,
                picks=[
                    BacktestPickOut(
                        date=pick.date,
                        batter_id=pick.batter_id,
                        batter_name=pick.batter_name,
                        team=pick.team,
                        game_pk=pick.game_pk,
                        score=pick.score,
                        tier=pick.tier.value,
                        got_hit=pick.got_hit,
                    )
                    for pick in day.picks
                ],
            )
            for day in result.days
        ],
        summary=BacktestSummaryOut(
            total_picks=result.summary.total_picks,
            wins=result.summary.wins,
            losses=result.summary.losses,
            unknown=result.summary.unknown,
            win_rate=result.summary.win_rate,
            tier_hits=result.summary.tier_hits,
        ),
        stopped=result.stopped,
    )


@app.get("/api/health")
def api_health():
    return {"ok": True}


@app.get("/api/picks", response_model=LeaderboardResponse)
async def api_picks(
    date: str | None = None,
    season: int | None = None,
    refresh: bool = False,
    limit: int | None = None,
    orchestrator: PicksOrchestrator = Depends(get_orchestrator),
):
    target_date = parse_query_date(date)
    run = await orchestrator.build_leaderboard(
        target_date,
        season or target_date.year,
        force=refresh,
    )
    if not run.ok:
        raise HTTPException(status_code=502, detail=f"Schedule unavailable: {run.error}")
    return leaderboard_response(run, limit)


@app.post("/api/picks/stop")
def api_picks_stop(orchestrator: PicksOrchestrator = Depends(get_orchestrator)):
    orchestrator.stop()
    return {"ok": True}


@app.post("/api/backtest", response_model=BacktestResponse)
async def api_backtest(
    payload: BacktestRequest,
    backtester: Backtester = Depends(get_backtester),
):
    try:
        result = await backtester.run(
            payload.start_date,
            payload.end_date,
            payload.season or payload.start_date.year,
            top_n=payload.top_n,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return backtest_response(result)


@app.post("/api/backtest/stop")
def api_backtest_stop(backtester: Backtester = Depends(get_backtester)):
    backtester.stop()
    return {"ok": True}


@app.get("/api/players/search")
async def api_players_search(q: str = "", provider: StatsProvider = Depends(get_provider)):
    hits = await provider.search_players(q)
    return {"query": q, "count": len(hits), "players": [hit.model_dump() for hit in hits]}


@app.get("/api/cache/stats", response_model=CacheStatsOut)
def api_cache_stats(
    cache: TTLCache = Depends(get_cache),
    provider: StatsProvider = Depends(get_provider),
):
    return CacheStatsOut(**cache.stats(), diagnostics=provider.diagnostics.as_dict())


@app.post("/api/cache/clear")
def api_cache_clear(
    cache: TTLCache = Depends(get_cache),
    orchestrator: PicksOrchestrator = Depends(get_orchestrator),
):
    cache.clear()
    orchestrator.clear_runs()
    return {"ok": True}


@app.get("/api/logs")
def api_logs(limit: int = 100, level: str | None = None):
    min_level = logging.NOTSET
    if level:
        min_level = logging.getLevelName(level.strip().upper())
        if not isinstance(min_level, int):
            raise HTTPException(status_code=400, detail=f"Unknown log level: {level}")
    handler = get_buffer_handler()
    return {"entries": handler.entries(limit=limit, min_level=min_level)}
