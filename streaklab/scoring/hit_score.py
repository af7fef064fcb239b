"""Hit Score: a bounded 0-100 confidence that a batter records a hit.

The score is a weighted sum of normalized inputs plus small bonuses for lineup
spot and opposing-pitcher rest. Two variants are always produced, one trusting
batter-vs-pitcher (BvP) history and one ignoring it; the reported score picks
one based on whether the BvP sample is usable. The weight table also changes
with the presence of Statcast contact data, so a missing Statcast row never
counts as a zero-scoring component.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from streaklab.ingestion.parks import DOMED_VENUES, NEUTRAL_PARK_FACTOR

MAX_FACTORS = 8
WIND_FACTOR_MPH = 15
HOT_TEMP_F = 90
COLD_TEMP_F = 50

# (use_bvp, has_statcast) -> component weights. Each table sums to 100.
WEIGHT_TABLES: dict[tuple[bool, bool], dict[str, int]] = {
    (True, True): {
        "l7": 24,
        "l15": 9,
        "bvp": 17,
        "platoon": 15,
        "statcast": 12,
        "pitcher": 5,
        "park": 9,
        "season": 6,
        "day_night": 3,
    },
    (False, True): {
        "l7": 23,
        "l15": 8,
        "platoon": 24,
        "statcast": 14,
        "pitcher": 10,
        "park": 9,
        "season": 8,
        "day_night": 4,
    },
    (True, False): {
        "l7": 28,
        "l15": 12,
        "bvp": 20,
        "platoon": 18,
        "pitcher": 2,
        "park": 10,
        "season": 7,
        "day_night": 3,
    },
    (False, False): {
        "l7": 28,
        "l15": 12,
        "platoon": 30,
        "pitcher": 8,
        "park": 10,
        "season": 9,
        "day_night": 3,
    },
}


class Tier(str, Enum):
    ELITE = "elite"
    STRONG = "strong"
    SOLID = "solid"
    RISKY = "risky"

    @property
    def label(self) -> str:
        return self.value.capitalize()


TIER_THRESHOLDS: tuple[tuple[int, Tier], ...] = (
    (75, Tier.ELITE),
    (60, Tier.STRONG),
    (45, Tier.SOLID),
)


class Factor(NamedTuple):
    label: str
    category: str
    icon: str


@dataclass(frozen=True)
class StatcastMetrics:
    xba: float
    barrel_pct: float
    hard_hit_pct: float

    @classmethod
    def from_row(cls, row: Mapping[str, Any] | None) -> StatcastMetrics | None:
        """Build metrics from a Savant leaderboard row.

        A row without a positive expected batting average is treated as
        missing altogether.
        """
        if not row:
            return None
        xba = _to_float(row.get("est_ba"))
        if xba <= 0:
            return None
        return cls(
            xba=xba,
            barrel_pct=_to_float(row.get("brl_percent")),
            hard_hit_pct=_to_float(row.get("hard_hit_percent")),
        )


@dataclass(frozen=True)
class HitScoreInputs:
    l7: Any = None
    l15: Any = None
    bvp: Any = None
    platoon: Any = None
    park_factor: float | str | None = None
    season_avg: float | str | None = None
    day_night: Any = None
    is_home: bool = False
    pitcher_avg_against: float | str | None = None
    has_bvp: bool = False
    lineup_pos: int | None = None
    pitcher_days_rest: int | None = None
    weather: Mapping[str, Any] | None = None
    venue: str | None = None
    statcast: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class HitScoreResult:
    score: int
    with_matchup_history: int
    without_matchup_history: int
    has_matchup_history: bool
    has_advanced_contact: bool
    factors: tuple[Factor, ...]
    tier: Tier
    statcast: StatcastMetrics | None = None

    @property
    def tier_label(self) -> str:
        return self.tier.label


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _avg_of(value: Any) -> float:
    """Batting average from a SplitAggregate, a stat mapping, or a raw value."""
    if value is None:
        return 0.0
    if isinstance(value, Mapping):
        return _to_float(value.get("avg"))
    if hasattr(value, "avg"):
        return _to_float(value.avg)
    return _to_float(value)


def _avg_label(value: Any) -> str:
    if isinstance(value, Mapping):
        return str(value.get("avg"))
    return str(getattr(value, "avg", value))


def _scale(value: float, low: float, high: float) -> float:
    return min(max((value - low) / (high - low), 0.0), 1.0)


def normalize_avg(value: float) -> float:
    return _scale(value, 0.0, 0.400)


def normalize_park(value: float) -> float:
    return _scale(value, 80.0, 130.0)


def statcast_composite(metrics: StatcastMetrics) -> float:
    return (
        _scale(metrics.xba, 0.200, 0.350) * 0.50
        + _scale(metrics.barrel_pct, 3.0, 15.0) * 0.25
        + _scale(metrics.hard_hit_pct, 25.0, 50.0) * 0.25
    )


def lineup_bonus(lineup_pos: int | None) -> int:
    if lineup_pos is None or lineup_pos <= 0:
        return 0
    if lineup_pos <= 2:
        return 2
    if lineup_pos <= 5:
        return 1
    return 0


def rest_bonus(days_rest: int | None) -> int:
    if days_rest is None:
        return 0
    if days_rest >= 6:
        return 2
    if days_rest >= 5:
        return 1
    return 0


def tier_for(score: int) -> Tier:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return Tier.RISKY


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_score(value: int) -> int:
    return min(max(value, 0), 100)


def _leading_int(value: Any) -> int | None:
    match = re.match(r"\s*(-?\d+)", str(value or ""))
    return int(match.group(1)) if match else None


def _weather_factors(weather: Mapping[str, Any] | None, venue: str | None) -> list[Factor]:
    if not weather or not venue or venue in DOMED_VENUES:
        return []
    factors: list[Factor] = []
    wind = str(weather.get("wind") or "")
    wind_mph = _leading_int(wind)
    if wind_mph is not None and wind_mph >= WIND_FACTOR_MPH:
        if re.search(r"\bout\b", wind, re.IGNORECASE):
            factors.append(Factor(f"Wind Out {wind_mph}mph", "green", "air"))
        elif re.search(r"\bin\b", wind, re.IGNORECASE):
            factors.append(Factor(f"Wind In {wind_mph}mph", "red", "air"))
    temp = _leading_int(weather.get("temp"))
    if temp is not None and temp >= HOT_TEMP_F:
        factors.append(Factor(f"{temp}°F", "yellow", "thermostat"))
    elif temp and temp <= COLD_TEMP_F:
        factors.append(Factor(f"{temp}°F Cold", "gray", "ac_unit"))
    return factors


def _build_factors(
    inputs: HitScoreInputs,
    statcast: StatcastMetrics | None,
    park: float,
) -> list[Factor]:
    factors: list[Factor] = []

    l7_avg = _avg_of(inputs.l7)
    if inputs.l7 is not None and l7_avg >= 0.300:
        factors.append(Factor(f"L7: {_avg_label(inputs.l7)}", "green", "local_fire_department"))
    elif inputs.l7 is not None and l7_avg >= 0.260:
        factors.append(Factor(f"L7: {_avg_label(inputs.l7)}", "yellow", "trending_up"))

    if inputs.bvp is not None and inputs.has_bvp and _avg_of(inputs.bvp) >= 0.300:
        factors.append(Factor(f"BvP: {_avg_label(inputs.bvp)}", "green", "sports_baseball"))

    if inputs.platoon is not None and _avg_of(inputs.platoon) >= 0.290:
        factors.append(Factor(f"Platoon: {_avg_label(inputs.platoon)}", "blue", "swap_horiz"))

    if statcast is not None:
        xba_label = f"xBA: .{round(statcast.xba * 1000):03d}"
        if statcast.xba >= 0.280:
            factors.append(Factor(xba_label, "green", "query_stats"))
        elif statcast.xba >= 0.250:
            factors.append(Factor(xba_label, "yellow", "query_stats"))
        if statcast.barrel_pct >= 10:
            factors.append(Factor(f"Barrel: {statcast.barrel_pct:.1f}%", "green", "bolt"))
        if statcast.hard_hit_pct >= 45:
            factors.append(Factor(f"HardHit: {statcast.hard_hit_pct:.0f}%", "blue", "speed"))

    if park >= 108:
        factors.append(Factor(f"Park: {park:g}", "green", "stadium"))
    if not inputs.has_bvp:
        factors.append(Factor("No BvP data", "gray", "help_outline"))
    if statcast is None:
        factors.append(Factor("No Statcast", "gray", "query_stats"))
    if inputs.pitcher_days_rest is not None and inputs.pitcher_days_rest >= 5:
        factors.append(Factor(f"{inputs.pitcher_days_rest}d rest", "blue", "schedule"))

    factors.extend(_weather_factors(inputs.weather, inputs.venue))
    return factors


def compute_hit_score(inputs: HitScoreInputs) -> HitScoreResult:
    statcast = StatcastMetrics.from_row(inputs.statcast)
    has_statcast = statcast is not None

    park = NEUTRAL_PARK_FACTOR if inputs.park_factor is None else _to_float(inputs.park_factor)
    pitcher_avg = _avg_of(inputs.pitcher_avg_against)
    components = {
        "l7": normalize_avg(_avg_of(inputs.l7)),
        "l15": normalize_avg(_avg_of(inputs.l15)),
        "bvp": normalize_avg(_avg_of(inputs.bvp)),
        "platoon": normalize_avg(_avg_of(inputs.platoon)),
        "statcast": statcast_composite(statcast) if statcast is not None else 0.0,
        # An unknown average-against is not a favorable matchup.
        "pitcher": 1 - normalize_avg(pitcher_avg) if pitcher_avg > 0 else 0.0,
        "park": normalize_park(park),
        "season": normalize_avg(_avg_of(inputs.season_avg)),
        "day_night": normalize_avg(_avg_of(inputs.day_night)),
    }
    bonus = lineup_bonus(inputs.lineup_pos) + rest_bonus(inputs.pitcher_days_rest)

    variants: dict[bool, int] = {}
    for use_bvp in (True, False):
        weights = WEIGHT_TABLES[(use_bvp, has_statcast)]
        weighted = sum(components[name] * weight for name, weight in weights.items())
        variants[use_bvp] = _clamp_score(_round_half_up(weighted + bonus))

    score = variants[True] if inputs.has_bvp else variants[False]
    factors = _build_factors(inputs, statcast, park)

    return HitScoreResult(
        score=score,
        with_matchup_history=variants[True],
        without_matchup_history=variants[False],
        has_matchup_history=inputs.has_bvp,
        has_advanced_contact=has_statcast,
        factors=tuple(factors[:MAX_FACTORS]),
        tier=tier_for(score),
        statcast=statcast,
    )
