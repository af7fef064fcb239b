from datetime import date, datetime
from pydantic import BaseModel, Field
from typing import Optional


class FactorOut(BaseModel):
    label: str
    category: str
    icon: str


class HitScoreOut(BaseModel):
    score: int
    with_matchup_history: int
    without_matchup_history: int
    has_matchup_history: bool
    has_advanced_contact: bool
    factors: list[FactorOut]
    tier: str
    tier_label: str


class SplitOut(BaseModel):
    games: int
    ab: int
    hits: int
    hr: int
    bb: int
    k: int
    pa: int
    tb: int
    avg: str
    obp: str
    slg: str
    ops: str
    games_with_hit: int
    hit_rate: str

    class Config:
        from_attributes = True


class PropLineOut(BaseModel):
    point: Optional[float]
    over: Optional[float]
    under: Optional[float]
    bookmaker: Optional[str]
    over_display: str
    under_display: str


class PickOut(BaseModel):
    batter_id: int
    batter_name: str
    bat_side: str
    team: str
    pitcher_id: int
    pitcher_name: str
    pitcher_hand: Optional[str]
    game_pk: int
    game_date: Optional[datetime]
    venue: Optional[str]
    score: HitScoreOut
    l3: Optional[SplitOut]
    l7: Optional[SplitOut]
    l15: Optional[SplitOut]
    streak: int
    season_avg: Optional[str]
    bvp_avg: Optional[str]
    platoon_avg: Optional[str]
    park_factor: int
    has_bvp: bool
    hot: bool
    lineup_pos: int
    lineup_status: str
    is_fallback: bool
    pitcher_days_rest: int
    prop_line: Optional[PropLineOut] = None


class LeaderboardResponse(BaseModel):
    date: str
    season: int
    count: int
    picks: list[PickOut]
    teams: list[str]
    lineup_status: dict[int, dict[str, str]]
    candidates: int
    failed: int
    stopped: bool
    message: Optional[str] = None


class CacheStatsOut(BaseModel):
    total: int
    valid: int
    expired: int
    diagnostics: dict


class BacktestRequest(BaseModel):
    start_date: date
    end_date: date
    season: Optional[int] = None
    top_n: int = Field(default=2, ge=1, le=10)


class BacktestPickOut(BaseModel):
    date: str
    batter_id: int
    batter_name: str
    team: str
    game_pk: int
    score: int
    tier: str
    got_hit: Optional[bool]


class BacktestDayOut(BaseModel):
    date: str
    picks: list[BacktestPickOut]
    note: Optional[str] = None


class BacktestSummaryOut(BaseModel):
    total_picks: int
    wins: int
    losses: int
    unknown: int
    win_rate: str
    tier_hits: dict[str, list[int]]


class BacktestResponse(BaseModel):
    days: list[BacktestDayOut]
    summary: BacktestSummaryOut
    stopped: bool
