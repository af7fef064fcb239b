from __future__ import annotations

import asyncio
import unittest
from datetime import date

from streaklab.ingestion.schema import (
    Batter,
    Game,
    GameLineups,
    GameRecord,
    LineupPlayer,
    PersonInfo,
    ProbablePitcher,
    Schedule,
    TeamLineup,
    TeamSide,
)
from streaklab.picks.orchestrator import (
    DEFAULT_PITCHER_REST_DAYS,
    PROJECTED_LINEUP_POS,
    PROJECTED_ROSTER_SIZE,
    BatterCandidate,
    PicksOrchestrator,
    games_before,
    has_usable_bvp,
    pitcher_days_rest,
)

TARGET = date(2025, 6, 1)


def _game(game_pk: int = 1, home_hand: str | None = "R", away_hand: str | None = None) -> Game:
    return Game(
        game_pk=game_pk,
        venue="Coors Field",
        home=TeamSide(team="Rockies", team_id=10, pitcher=ProbablePitcher(id=900, name="Home Arm", hand=home_hand)),
        away=TeamSide(team="Dodgers", team_id=20, pitcher=ProbablePitcher(id=901, name="Away Arm", hand=away_hand)),
    )


def _log(hits: int, count: int = 10) -> list[GameRecord]:
    return [
        GameRecord(date=f"2025-05-{day:02d}", at_bats=4, hits=hits)
        for day in range(31, 31 - count, -1)
    ]


class _FakeProvider:
    def __init__(self, games: list[Game] | None = None, schedule_ok: bool = True) -> None:
        self.games = games if games is not None else [_game()]
        self.schedule_ok = schedule_ok
        self.lineups: dict[int, GameLineups] = {}
        self.failing_batters: set[int] = set()
        self.person_hand: str | None = "L"
        self.schedule_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.on_game_log = None

    async def fetch_games(self, game_date):
        self.schedule_calls += 1
        if not self.schedule_ok:
            return Schedule(date=str(game_date), ok=False, error="timed out")
        return Schedule(date=str(game_date), games=self.games)

    async def fetch_all_lineups(self, games):
        return {game.game_pk: self.lineups.get(game.game_pk, GameLineups()) for game in games}

    async def fetch_roster(self, team_id):
        return [Batter(id=team_id * 10 + index, name=f"Batter {team_id}-{index}") for index in range(15)]

    async def fetch_person(self, person_id):
        if self.person_hand is None:
            return None
        return PersonInfo(id=person_id, name="Arm", pitch_hand=self.person_hand)

    async def fetch_game_log(self, player_id, season, game_type=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.001)
            if self.on_game_log is not None:
                self.on_game_log(player_id)
            if player_id in self.failing_batters:
                raise RuntimeError("provider exploded")
            return _log(player_id % 4)
        finally:
            self.in_flight -= 1

    async def fetch_bvp(self, batter_id, pitcher_id):
        return None

    async def fetch_platoon_splits(self, player_id, season, game_type=None):
        return {"vs. Left": {"avg": ".350"}, "vs. Right": {"avg": ".250"}}

    async def fetch_day_night_splits(self, player_id, season, game_type=None):
        return {"Day": {"avg": ".300"}, "Night": {"avg": ".260"}}

    async def fetch_season_stats(self, player_id, season, game_type=None):
        return {"avg": ".280"}

    async def fetch_pitcher_stats(self, pitcher_id, season, game_type=None):
        return {"avg": ".240"}

    async def fetch_pitcher_game_log(self, pitcher_id, season, game_type=None):
        return [GameRecord(date="2025-06-01"), GameRecord(date="2025-05-26")]

    async def fetch_statcast_for_player(self, player_id, season):
        return None


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class HelperTests(unittest.TestCase):
    def test_pitcher_rest_uses_last_appearance_before_target(self) -> None:
        log = [GameRecord(date="2025-06-01"), GameRecord(date="2025-05-27"), GameRecord(date="2025-05-20")]

        self.assertEqual(5, pitcher_days_rest(log, TARGET))

    def test_pitcher_rest_defaults_without_log(self) -> None:
        self.assertEqual(DEFAULT_PITCHER_REST_DAYS, pitcher_days_rest([], TARGET))
        self.assertEqual(DEFAULT_PITCHER_REST_DAYS, pitcher_days_rest([GameRecord(date="bad")], TARGET))

    def test_games_before_drops_target_day_and_later(self) -> None:
        log = [
            GameRecord(date="2025-06-02"),
            GameRecord(date="2025-06-01"),
            GameRecord(date="2025-05-31"),
            GameRecord(date="bad"),
        ]

        self.assertEqual(["2025-05-31", "bad"], [record.date for record in games_before(log, TARGET)])

    def test_usable_bvp_needs_five_at_bats(self) -> None:
        self.assertTrue(has_usable_bvp({"atBats": 5, "avg": ".400"}))
        self.assertFalse(has_usable_bvp({"atBats": "4"}))
        self.assertFalse(has_usable_bvp({"atBats": "x"}))
        self.assertFalse(has_usable_bvp(None))

    def test_batch_size_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            PicksOrchestrator(_FakeProvider(), batch_size=0)


class CollectCandidatesTests(unittest.IsolatedAsyncioTestCase):
    async def test_confirmed_lineup_and_projected_roster(self) -> None:
        provider = _FakeProvider()
        orchestrator = PicksOrchestrator(provider)
        lineups = {
            1: GameLineups(
                home=TeamLineup(
                    status="confirmed",
                    players=[LineupPlayer(id=300 + index, name=f"L{index}", order=index + 1) for index in range(9)],
                )
            )
        }

        candidates = await orchestrator.collect_candidates(provider.games, lineups)

        home = [candidate for candidate in candidates if candidate.batting_side == "home"]
        away = [candidate for candidate in candidates if candidate.batting_side == "away"]
        self.assertEqual(list(range(1, 10)), [candidate.lineup_pos for candidate in home])
        self.assertTrue(all(candidate.lineup_status == "confirmed" for candidate in home))
        self.assertTrue(all(candidate.pitcher.id == 901 for candidate in home))
        self.assertEqual(PROJECTED_ROSTER_SIZE, len(away))
        self.assertTrue(all(candidate.lineup_pos == PROJECTED_LINEUP_POS for candidate in away))
        self.assertTrue(all(candidate.lineup_status == "projected" for candidate in away))
        self.assertEqual("Dodgers", away[0].batting_team.team)

    async def test_sides_without_an_opposing_pitcher_are_skipped(self) -> None:
        game = _game()
        game = game.model_copy(update={"home": game.home.model_copy(update={"pitcher": None})})
        provider = _FakeProvider(games=[game])
        orchestrator = PicksOrchestrator(provider)

        candidates = await orchestrator.collect_candidates([game], {})

        self.assertEqual({"home"}, {candidate.batting_side for candidate in candidates})


class ScoreCandidatesTests(unittest.IsolatedAsyncioTestCase):
    async def _candidates(self, orchestrator, provider):
        return await orchestrator.collect_candidates(provider.games, {})

    async def test_batches_cap_concurrency_and_drop_failures(self) -> None:
        provider = _FakeProvider()
        provider.failing_batters = {203}
        orchestrator = PicksOrchestrator(provider, batch_size=4)
        candidates = await self._candidates(orchestrator, provider)

        picks, failed, stopped = await orchestrator.score_candidates(candidates, 2025, TARGET)

        self.assertEqual(4, provider.max_in_flight)
        self.assertEqual(1, failed)
        self.assertFalse(stopped)
        self.assertEqual(len(candidates) - 1, len(picks))
        scores = [pick.score.score for pick in picks]
        self.assertEqual(sorted(scores, reverse=True), scores)

    async def test_preset_stop_event_scores_nothing(self) -> None:
        provider = _FakeProvider()
        orchestrator = PicksOrchestrator(provider)
        candidates = await self._candidates(orchestrator, provider)
        stop = asyncio.Event()
        stop.set()

        picks, failed, stopped = await orchestrator.score_candidates(candidates, 2025, TARGET, stop_event=stop)

        self.assertEqual([], picks)
        self.assertEqual(0, failed)
        self.assertTrue(stopped)

    async def test_score_batter_resolves_pitcher_hand_and_context(self) -> None:
        provider = _FakeProvider()
        orchestrator = PicksOrchestrator(provider)
        game = _game(away_hand=None)
        candidate = BatterCandidate(
            batter=Batter(id=101, name="Hitter"),
            pitcher=game.away.pitcher,
            game=game,
            batting_side="home",
            lineup_pos=2,
            lineup_status="confirmed",
        )

        pick = await orchestrator.score_batter(candidate, 2025, TARGET)

        self.assertEqual("L", pick.pitcher.hand)
        self.assertEqual({"avg": ".350"}, pick.platoon_stat)
        self.assertEqual({"avg": ".300"}, pick.day_night_stat)
        self.assertEqual(121, pick.park_factor)
        self.assertEqual(6, pick.pitcher_days_rest)
        self.assertEqual(10, pick.streak)
        self.assertEqual("0.250", pick.l7.avg)
        self.assertFalse(pick.has_bvp)
        self.assertFalse(pick.is_fallback)
        self.assertEqual("Rockies", pick.batting_team.team)

    async def test_games_on_or_after_target_day_are_ignored(self) -> None:
        provider = _FakeProvider()

        async def log_with_later_games(player_id, season, game_type=None):
            hitless = [GameRecord(date=day, at_bats=4, hits=0) for day in ("2025-06-03", "2025-06-02", "2025-06-01")]
            return hitless + _log(1)

        provider.fetch_game_log = log_with_later_games
        orchestrator = PicksOrchestrator(provider)
        game = _game()
        candidate = BatterCandidate(
            batter=Batter(id=101, name="Hitter"),
            pitcher=game.away.pitcher,
            game=game,
            batting_side="home",
        )

        pick = await orchestrator.score_batter(candidate, 2025, TARGET)

        self.assertEqual(10, pick.streak)
        self.assertEqual(28, pick.l7.ab)
        self.assertEqual("0.250", pick.l7.avg)

    async def test_unknown_pitcher_hand_defaults_to_right(self) -> None:
        provider = _FakeProvider()
        provider.person_hand = None
        orchestrator = PicksOrchestrator(provider)
        game = _game(away_hand=None)
        candidate = BatterCandidate(
            batter=Batter(id=101, name="Hitter"),
            pitcher=game.away.pitcher,
            game=game,
            batting_side="home",
        )

        pick = await orchestrator.score_batter(candidate, 2025, TARGET)

        self.assertEqual("R", pick.pitcher.hand)
        self.assertEqual({"avg": ".250"}, pick.platoon_stat)


class BuildLeaderboardTests(unittest.IsolatedAsyncioTestCase):
    async def test_fresh_run_is_reused_until_it_expires(self) -> None:
        provider = _FakeProvider()
        clock = _FakeClock()
        orchestrator = PicksOrchestrator(provider, fresh_seconds=300, clock=clock)

        first = await orchestrator.build_leaderboard(TARGET, 2025)
        clock.now += 299
        second = await orchestrator.build_leaderboard(TARGET, 2025)
        clock.now += 2
        third = await orchestrator.build_leaderboard(TARGET, 2025)

        self.assertIs(first, second)
        self.assertIsNot(first, third)
        self.assertEqual(2, provider.schedule_calls)
        self.assertEqual(2 * PROJECTED_ROSTER_SIZE, first.candidates)
        self.assertEqual(["Dodgers", "Rockies"], first.teams)
        self.assertEqual({1: {"home": "unknown", "away": "unknown"}}, first.lineup_status)

    async def test_force_bypasses_fresh_run(self) -> None:
        provider = _FakeProvider()
        orchestrator = PicksOrchestrator(provider, clock=_FakeClock())

        await orchestrator.build_leaderboard(TARGET, 2025)
        await orchestrator.build_leaderboard(TARGET, 2025, force=True)

        self.assertEqual(2, provider.schedule_calls)

    async def test_schedule_failure_returns_explicit_error(self) -> None:
        provider = _FakeProvider(schedule_ok=False)
        orchestrator = PicksOrchestrator(provider)

        run = await orchestrator.build_leaderboard(TARGET, 2025)

        self.assertFalse(run.ok)
        self.assertEqual("timed out", run.error)
        self.assertEqual([], run.picks)
        self.assertIsNone(orchestrator.cached_run(TARGET.isoformat()))

    async def test_no_games_gives_empty_run(self) -> None:
        orchestrator = PicksOrchestrator(_FakeProvider(games=[]))

        run = await orchestrator.build_leaderboard(TARGET, 2025)

        self.assertTrue(run.ok)
        self.assertEqual([], run.picks)
        self.assertEqual(0, run.candidates)

    async def test_stop_mid_run_keeps_scored_batches_and_skips_caching(self) -> None:
        provider = _FakeProvider()
        orchestrator = PicksOrchestrator(provider, batch_size=6)
        provider.on_game_log = lambda _player_id: orchestrator.stop()

        run = await orchestrator.build_leaderboard(TARGET, 2025)

        self.assertTrue(run.stopped)
        self.assertEqual(6, len(run.picks))
        self.assertIsNone(orchestrator.cached_run(TARGET.isoformat()))

    async def test_clear_runs_drops_cached_leaderboards(self) -> None:
        orchestrator = PicksOrchestrator(_FakeProvider())

        await orchestrator.build_leaderboard(TARGET, 2025)
        self.assertIsNotNone(orchestrator.cached_run(TARGET.isoformat()))
        orchestrator.clear_runs()

        self.assertIsNone(orchestrator.cached_run(TARGET.isoformat()))

    async def test_stale_runs_are_pruned(self) -> None:
        clock = _FakeClock()
        orchestrator = PicksOrchestrator(_FakeProvider(), fresh_seconds=300, clock=clock)

        await orchestrator.build_leaderboard(TARGET, 2025)
        clock.now += 301
        await orchestrator.build_leaderboard(date(2025, 6, 2), 2025)

        self.assertIsNone(orchestrator.cached_run(TARGET.isoformat()))
        self.assertIsNotNone(orchestrator.cached_run("2025-06-02"))

    async def test_overlapping_run_keeps_pending_stop(self) -> None:
        provider = _FakeProvider()
        orchestrator = PicksOrchestrator(provider, batch_size=6)

        first = asyncio.create_task(orchestrator.build_leaderboard(TARGET, 2025))
        while provider.in_flight == 0:
            await asyncio.sleep(0)
        orchestrator.stop()
        second = asyncio.create_task(orchestrator.build_leaderboard(date(2025, 6, 2), 2025))
        first_run, second_run = await asyncio.gather(first, second)

        self.assertTrue(first_run.stopped)
        self.assertEqual(6, len(first_run.picks))
        self.assertTrue(second_run.stopped)
        self.assertEqual([], second_run.picks)

        third_run = await orchestrator.build_leaderboard(date(2025, 6, 3), 2025)

        self.assertFalse(third_run.stopped)
        self.assertEqual(2 * PROJECTED_ROSTER_SIZE, len(third_run.picks))


if __name__ == "__main__":
    unittest.main()
