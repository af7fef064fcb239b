"""Trailing-window aggregates and streak signals over game logs.

Every function here is pure and expects game logs ordered newest first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from streaklab.ingestion.schema import GameRecord

HOT_MIN_SCORE = 60
HOT_STREAK = 5
HOT_L7_AVG = 0.350
HOT_L7_MIN_SCORE = 65


@dataclass(frozen=True)
class SplitAggregate:
    games: int
    ab: int
    hits: int
    doubles: int
    triples: int
    hr: int
    rbi: int
    bb: int
    k: int
    pa: int
    tb: int
    avg: str
    obp: str
    slg: str
    ops: str
    k_pct: str
    bb_pct: str
    games_with_hit: int
    hit_rate: str


def _rate(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def compute_split(games: Sequence[GameRecord], window: int) -> SplitAggregate | None:
    """Aggregate the first *window* records.

    Returns None when the window holds no games so callers can tell "no data"
    from a zero-hit stretch.
    """

    recent = list(games[: max(window, 0)])
    if not recent:
        return None

    ab = sum(game.at_bats for game in recent)
    hits = sum(game.hits for game in recent)
    doubles = sum(game.doubles for game in recent)
    triples = sum(game.triples for game in recent)
    hr = sum(game.home_runs for game in recent)
    rbi = sum(game.rbi for game in recent)
    bb = sum(game.base_on_balls for game in recent)
    k = sum(game.strike_outs for game in recent)
    pa = sum(
        game.plate_appearances if game.plate_appearances else game.at_bats
        for game in recent
    )
    tb = hits + doubles + 2 * triples + 3 * hr

    avg = _rate(hits, ab)
    obp = _rate(hits + bb, pa)
    slg = _rate(tb, ab)
    games_with_hit = sum(1 for game in recent if game.hits > 0)

    return SplitAggregate(
        games=len(recent),
        ab=ab,
        hits=hits,
        doubles=doubles,
        triples=triples,
        hr=hr,
        rbi=rbi,
        bb=bb,
        k=k,
        pa=pa,
        tb=tb,
        avg=f"{avg:.3f}",
        obp=f"{obp:.3f}",
        slg=f"{slg:.3f}",
        ops=f"{obp + slg:.3f}",
        k_pct=f"{_rate(k, pa) * 100:.1f}",
        bb_pct=f"{_rate(bb, pa) * 100:.1f}",
        games_with_hit=games_with_hit,
        hit_rate=f"{_rate(games_with_hit, len(recent)) * 100:.0f}",
    )


def compute_active_streak(games: Sequence[GameRecord]) -> int:
    streak = 0
    for game in games:
        if game.hits <= 0:
            break
        streak += 1
    return streak


def compute_games_with_hit(games: Sequence[GameRecord]) -> int:
    return sum(1 for game in games if game.hits > 0)


def is_player_hot(streak: int, l7_avg: str | float | None, score: int) -> bool:
    """Hot needs a Strong-tier score plus a real streak or an elite L7 average."""

    if score < HOT_MIN_SCORE:
        return False
    try:
        avg = float(l7_avg or 0)
    except (TypeError, ValueError):
        avg = 0.0
    return streak >= HOT_STREAK or (avg >= HOT_L7_AVG and score >= HOT_L7_MIN_SCORE)
