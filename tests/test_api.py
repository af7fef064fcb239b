from __future__ import annotations

import unittest
from datetime import date

from fastapi.testclient import TestClient

from streaklab.cache import TTLCache
from streaklab.ingestion.schema import Batter, Game, PlayerSearchHit, ProbablePitcher, TeamSide
from streaklab.ingestion.stats import FetchDiagnostics
from streaklab.main import app
from streaklab.picks.backtest import BacktestDay, BacktestPick, BacktestResult, summarize
from streaklab.picks.orchestrator import LeaderboardRun, ScoredPick
from streaklab.props.odds_client import PropLine
from streaklab.scoring.hit_score import HitScoreInputs, Tier, compute_hit_score


def _pick(batter_id: int, l7_avg: str) -> ScoredPick:
    game = Game(
        game_pk=77,
        venue="Coors Field",
        home=TeamSide(team="Rockies", team_id=10),
        away=TeamSide(team="Dodgers", team_id=20),
    )
    score = compute_hit_score(HitScoreInputs(l7={"avg": l7_avg}, park_factor=121, lineup_pos=2))
    return ScoredPick(
        batter=Batter(id=batter_id, name=f"Batter {batter_id}", bat_side="L"),
        pitcher=ProbablePitcher(id=900, name="Some Arm", hand="R"),
        game=game,
        batting_team=game.home,
        score=score,
        l3=None,
        l7=None,
        l15=None,
        streak=3,
        bvp_stat=None,
        platoon_stat={"avg": ".300"},
        day_night_stat={},
        season_stat={"avg": ".287"},
        pitcher_stat={},
        park_factor=121,
        has_bvp=False,
        hot=False,
        lineup_pos=2,
        lineup_status="projected",
        is_fallback=False,
        pitcher_days_rest=4,
        prop_line=PropLine(point=0.5, over=-150, under=120, bookmaker="DraftKings"),
    )


class _FakeOrchestrator:
    def __init__(self) -> None:
        self.run = LeaderboardRun(
            date="2025-06-01",
            season=2025,
            picks=[_pick(1, ".350"), _pick(2, ".250")],
            teams=["Rockies"],
            lineup_status={77: {"home": "unknown", "away": "unknown"}},
            candidates=2,
        )
        self.calls: list[tuple[date, int, bool]] = []
        self.stopped = False
        self.cleared = False

    async def build_leaderboard(self, target_date, season, force=False):
        self.calls.append((target_date, season, force))
        return self.run

    def stop(self) -> None:
        self.stopped = True

    def clear_runs(self) -> None:
        self.cleared = True


class _FakeBacktester:
    def __init__(self) -> None:
        self.calls = []
        self.stopped = False

    async def run(self, start, end, season, top_n=2):
        self.calls.append((start, end, season, top_n))
        if end < start:
            raise ValueError("end date must not be before start date")
        days = [
            BacktestDay(
                date=start.isoformat(),
                picks=[
                    BacktestPick(
                        date=start.isoformat(),
                        batter_id=1,
                        batter_name="Batter 1",
                        team="Rockies",
                        game_pk=77,
                        score=72,
                        tier=Tier.STRONG,
                        got_hit=True,
                    )
                ],
            )
        ]
        return BacktestResult(days=days, summary=summarize(days))

    def stop(self) -> None:
        self.stopped = True


class _FakeProvider:
    def __init__(self) -> None:
        self.diagnostics = FetchDiagnostics(requests=5, cache_hits=2)
        self.queries: list[str] = []

    async def search_players(self, query):
        self.queries.append(query)
        return [PlayerSearchHit(id=592450, name="Aaron Judge", position="RF")]


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)
        self.orchestrator = _FakeOrchestrator()
        self.backtester = _FakeBacktester()
        self.provider = _FakeProvider()
        self.cache = TTLCache()
        app.state.orchestrator = self.orchestrator
        app.state.backtester = self.backtester
        app.state.provider = self.provider
        app.state.cache = self.cache

    def test_health(self) -> None:
        response = self.client.get("/api/health")

        self.assertEqual(200, response.status_code)
        self.assertEqual({"ok": True}, response.json())

    def test_picks_returns_scored_leaderboard(self) -> None:
        response = self.client.get("/api/picks", params={"date": "2025-06-01", "refresh": "true"})

        self.assertEqual(200, response.status_code)
        body = response.json()
        self.assertEqual(2, body["count"])
        first = body["picks"][0]
        self.assertEqual(1, first["batter_id"])
        self.assertEqual("Rockies", first["team"])
        self.assertEqual(".287", first["season_avg"])
        self.assertIsNone(first["bvp_avg"])
        self.assertEqual("+120", first["prop_line"]["under_display"])
        self.assertIn(first["score"]["tier"], {tier.value for tier in Tier})
        self.assertTrue(any(factor["label"] == "Park: 121" for factor in first["score"]["factors"]))
        self.assertEqual([(date(2025, 6, 1), 2025, True)], self.orchestrator.calls)

    def test_picks_season_override_and_limit(self) -> None:
        response = self.client.get("/api/picks", params={"date": "2025-03-20", "season": 2024, "limit": 1})

        self.assertEqual(1, response.json()["count"])
        self.assertEqual([(date(2025, 3, 20), 2024, False)], self.orchestrator.calls)

    def test_picks_rejects_bad_date(self) -> None:
        response = self.client.get("/api/picks", params={"date": "06/01/2025"})

        self.assertEqual(400, response.status_code)
        self.assertEqual([], self.orchestrator.calls)

    def test_picks_schedule_failure_is_bad_gateway(self) -> None:
        self.orchestrator.run = LeaderboardRun(date="2025-06-01", season=2025, ok=False, error="timed out")

        response = self.client.get("/api/picks", params={"date": "2025-06-01"})

        self.assertEqual(502, response.status_code)
        self.assertIn("timed out", response.json()["detail"])

    def test_stop_picks(self) -> None:
        response = self.client.post("/api/picks/stop")

        self.assertEqual(200, response.status_code)
        self.assertTrue(self.orchestrator.stopped)

    def test_backtest(self) -> None:
        response = self.client.post(
            "/api/backtest",
            json={"start_date": "2025-06-01", "end_date": "2025-06-02", "top_n": 3},
        )

        self.assertEqual(200, response.status_code)
        body = response.json()
        self.assertEqual("100.0", body["summary"]["win_rate"])
        self.assertEqual("strong", body["days"][0]["picks"][0]["tier"])
        self.assertEqual([(date(2025, 6, 1), date(2025, 6, 2), 2025, 3)], self.backtester.calls)

    def test_backtest_invalid_range_is_bad_request(self) -> None:
        response = self.client.post(
            "/api/backtest",
            json={"start_date": "2025-06-02", "end_date": "2025-06-01"},
        )

        self.assertEqual(400, response.status_code)

    def test_backtest_validates_top_n(self) -> None:
        response = self.client.post(
            "/api/backtest",
            json={"start_date": "2025-06-01", "end_date": "2025-06-02", "top_n": 0},
        )

        self.assertEqual(422, response.status_code)
        self.assertEqual([], self.backtester.calls)

    def test_backtest_stop(self) -> None:
        self.client.post("/api/backtest/stop")

        self.assertTrue(self.backtester.stopped)

    def test_player_search(self) -> None:
        response = self.client.get("/api/players/search", params={"q": "judge"})

        body = response.json()
        self.assertEqual(1, body["count"])
        self.assertEqual("Aaron Judge", body["players"][0]["name"])
        self.assertEqual(["judge"], self.provider.queries)

    def test_cache_stats_include_diagnostics(self) -> None:
        self.cache.set("k", 1, ttl_seconds=60)

        body = self.client.get("/api/cache/stats").json()

        self.assertEqual(1, body["total"])
        self.assertEqual(1, body["valid"])
        self.assertEqual(5, body["diagnostics"]["requests"])
        self.assertEqual(2, body["diagnostics"]["cache_hits"])

    def test_cache_clear_drops_entries_and_runs(self) -> None:
        self.cache.set("k", 1, ttl_seconds=60)

        response = self.client.post("/api/cache/clear")

        self.assertEqual(200, response.status_code)
        self.assertEqual(0, len(self.cache))
        self.assertTrue(self.orchestrator.cleared)

    def test_logs_endpoint_returns_entries(self) -> None:
        self.client.post("/api/cache/clear")

        body = self.client.get("/api/logs", params={"limit": 5}).json()

        self.assertIsInstance(body["entries"], list)
        self.assertLessEqual(len(body["entries"]), 5)

    def test_logs_reject_unknown_level(self) -> None:
        response = self.client.get("/api/logs", params={"level": "chatty"})

        self.assertEqual(400, response.status_code)


if __name__ == "__main__":
    unittest.main()
