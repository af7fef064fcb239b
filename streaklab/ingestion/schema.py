"""Internal data contracts for schedule, roster, lineup and game-log payloads."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class GameRecord(BaseModel):
    """
    One player's line for a single game. Game logs are ordered newest first.
    """

    model_config = ConfigDict(frozen=True)

    date: str = ""
    opponent: Optional[str] = None
    is_home: Optional[bool] = None
    at_bats: int = 0
    hits: int = 0
    doubles: int = 0
    triples: int = 0
    home_runs: int = 0
    rbi: int = 0
    base_on_balls: int = 0
    strike_outs: int = 0
    plate_appearances: Optional[int] = None


class ProbablePitcher(BaseModel):
    id: int
    name: str
    hand: Optional[str] = None


class TeamSide(BaseModel):
    team: str
    team_id: int
    abbr: Optional[str] = None
    score: Optional[int] = None
    pitcher: Optional[ProbablePitcher] = None


class Game(BaseModel):
    game_pk: int
    game_date: Optional[datetime] = None
    status: Optional[str] = None
    venue: Optional[str] = None
    venue_id: Optional[int] = None
    weather: dict[str, Any] = {}
    is_night: bool = False
    home: TeamSide
    away: TeamSide

    def side(self, name: Literal["home", "away"]) -> TeamSide:
        return self.home if name == "home" else self.away


class Schedule(BaseModel):
    """Games for one date. ``ok`` is False when the provider was unreachable."""

    date: str
    games: list[Game] = []
    ok: bool = True
    error: Optional[str] = None


class Batter(BaseModel):
    id: int
    name: str
    position: Optional[str] = None
    bat_side: str = "?"


class LineupPlayer(Batter):
    order: int


class TeamLineup(BaseModel):
    status: Literal["confirmed", "expected", "unknown"] = "unknown"
    players: list[LineupPlayer] = []


class GameLineups(BaseModel):
    home: TeamLineup = Field(default_factory=TeamLineup)
    away: TeamLineup = Field(default_factory=TeamLineup)

    def side(self, name: Literal["home", "away"]) -> TeamLineup:
        return self.home if name == "home" else self.away


class PersonInfo(BaseModel):
    id: int
    name: str
    pitch_hand: str = "?"
    bat_side: str = "?"
    position: str = "?"
    height: Optional[str] = None


class PlayerSearchHit(BaseModel):
    id: int
    name: str
    position: Optional[str] = None
    bat_side: Optional[str] = None
    pitch_hand: Optional[str] = None
