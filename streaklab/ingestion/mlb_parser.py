"""Parsers for MLB Stats API and Baseball Savant payloads."""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Any

from streaklab.ingestion.schema import (
    Batter,
    Game,
    GameLineups,
    GameRecord,
    LineupPlayer,
    PersonInfo,
    PlayerSearchHit,
    ProbablePitcher,
    TeamLineup,
    TeamSide,
)

PITCHER_POSITIONS = {"P", "SP", "RP", "CP"}
# 4 PM Eastern.
NIGHT_START_HOUR_UTC = 20
CONFIRMED_LINEUP_SIZE = 9


def _safe_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _parse_game_date(value: Any) -> datetime | None:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return None


def _parse_pitcher(raw: Any) -> ProbablePitcher | None:
    pitcher = _dict(raw)
    pitcher_id = _safe_int(pitcher.get("id"))
    if pitcher_id is None:
        return None
    hand = _dict(pitcher.get("pitchHand"))
    code = hand.get("code")
    if not code:
        description = hand.get("description")
        code = description[0] if isinstance(description, str) and description else None
    return ProbablePitcher(
        id=pitcher_id,
        name=pitcher.get("fullName") or f"Player {pitcher_id}",
        hand=code,
    )


def _parse_team_side(raw: Any) -> TeamSide | None:
    side = _dict(raw)
    team = _dict(side.get("team"))
    team_id = _safe_int(team.get("id"))
    if team_id is None:
        return None
    return TeamSide(
        team=team.get("name") or "TBD",
        team_id=team_id,
        abbr=team.get("abbreviation"),
        score=_safe_int(side.get("score")),
        pitcher=_parse_pitcher(side.get("probablePitcher")),
    )


def parse_schedule(payload: dict[str, Any]) -> list[Game]:
    """Parse a /schedule payload into Game DTOs, skipping malformed entries."""

    games: list[Game] = []
    for entry in _list(payload.get("dates")):
        for raw_game in _list(_dict(entry).get("games")):
            if not isinstance(raw_game, dict):
                continue
            game_pk = _safe_int(raw_game.get("gamePk"))
            teams = _dict(raw_game.get("teams"))
            home = _parse_team_side(teams.get("home"))
            away = _parse_team_side(teams.get("away"))
            if game_pk is None or home is None or away is None:
                continue
            game_date = _parse_game_date(raw_game.get("gameDate"))
            venue = _dict(raw_game.get("venue"))
            games.append(
                Game(
                    game_pk=game_pk,
                    game_date=game_date,
                    status=_dict(raw_game.get("status")).get("detailedState"),
                    venue=venue.get("name"),
                    venue_id=_safe_int(venue.get("id")),
                    weather=_dict(raw_game.get("weather")),
                    is_night=bool(game_date and game_date.hour >= NIGHT_START_HOUR_UTC),
                    home=home,
                    away=away,
                )
            )
    return games


def parse_roster(payload: dict[str, Any]) -> list[Batter]:
    """Active position players, pitchers excluded."""

    batters: list[Batter] = []
    for entry in _list(payload.get("roster")):
        person = _dict(_dict(entry).get("person"))
        person_id = _safe_int(person.get("id"))
        if person_id is None:
            continue
        position = _dict(_dict(entry).get("position")).get("abbreviation")
        if position in PITCHER_POSITIONS:
            continue
        batters.append(
            Batter(
                id=person_id,
                name=person.get("fullName") or f"Player {person_id}",
                position=position,
                bat_side=_dict(person.get("batSide")).get("code") or "?",
            )
        )
    return batters


def parse_person(payload: dict[str, Any]) -> PersonInfo | None:
    people = _list(payload.get("people"))
    if not people:
        return None
    person = _dict(people[0])
    person_id = _safe_int(person.get("id"))
    if person_id is None:
        return None
    return PersonInfo(
        id=person_id,
        name=person.get("fullName") or f"Player {person_id}",
        pitch_hand=_dict(person.get("pitchHand")).get("code") or "?",
        bat_side=_dict(person.get("batSide")).get("code") or "?",
        position=_dict(person.get("primaryPosition")).get("abbreviation") or "?",
        height=person.get("height"),
    )


def parse_first_stat(payload: dict[str, Any]) -> dict[str, Any]:
    """Return the first split's stat mapping, or an empty dict."""

    stats = _list(payload.get("stats"))
    if not stats:
        return {}
    splits = _list(_dict(stats[0]).get("splits"))
    if not splits:
        return {}
    return dict(_dict(_dict(splits[0]).get("stat")))


def game_record_from_split(split: dict[str, Any]) -> GameRecord:
    stat = _dict(split.get("stat"))
    return GameRecord(
        date=str(split.get("date") or ""),
        opponent=_dict(split.get("opponent")).get("name"),
        is_home=split.get("isHome") if isinstance(split.get("isHome"), bool) else None,
        at_bats=_safe_int(stat.get("atBats")) or 0,
        hits=_safe_int(stat.get("hits")) or 0,
        doubles=_safe_int(stat.get("doubles")) or 0,
        triples=_safe_int(stat.get("triples")) or 0,
        home_runs=_safe_int(stat.get("homeRuns")) or 0,
        rbi=_safe_int(stat.get("rbi")) or 0,
        base_on_balls=_safe_int(stat.get("baseOnBalls")) or 0,
        strike_outs=_safe_int(stat.get("strikeOuts")) or 0,
        plate_appearances=_safe_int(stat.get("plateAppearances")),
    )


def parse_game_log(payload: dict[str, Any]) -> list[GameRecord]:
    """Flatten every gameLog split, newest first."""

    records: list[GameRecord] = []
    for block in _list(payload.get("stats")):
        for split in _list(_dict(block).get("splits")):
            if isinstance(split, dict):
                records.append(game_record_from_split(split))
    records.sort(key=lambda record: record.date, reverse=True)
    return records


def parse_stat_splits(payload: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Map situational split descriptions (e.g. "vs. Left") to stat mappings."""

    out: dict[str, dict[str, Any]] = {}
    for block in _list(payload.get("stats")):
        for split in _list(_dict(block).get("splits")):
            split = _dict(split)
            description = _dict(split.get("split")).get("description")
            if isinstance(description, str) and description:
                out[description] = dict(_dict(split.get("stat")))
    return out


def _lineup_player(raw: dict[str, Any], player_id: int, order: int) -> LineupPlayer:
    person = _dict(raw.get("person"))
    positions = _list(raw.get("allPositions"))
    position = (
        _dict(positions[0]).get("abbreviation") if positions else None
    ) or _dict(raw.get("position")).get("abbreviation") or "?"
    return LineupPlayer(
        id=player_id,
        name=person.get("fullName") or f"Player {player_id}",
        position=position,
        bat_side=_dict(person.get("batSide")).get("code") or "?",
        order=order,
    )


def parse_lineups(payload: dict[str, Any]) -> GameLineups:
    """Read batting orders from a live-feed payload.

    A side is "confirmed" once a full batting order is posted. For games that
    are live or final without a batting order array, the order is rebuilt from
    each player's ``battingOrder`` field.
    """

    boxscore = _dict(_dict(payload.get("liveData")).get("boxscore"))
    game_state = _dict(_dict(payload.get("gameData")).get("status")).get("abstractGameState")
    result = GameLineups()

    for side in ("home", "away"):
        team_box = _dict(_dict(boxscore.get("teams")).get(side))
        players = _dict(team_box.get("players"))
        batting_order = [
            player_id
            for player_id in (_safe_int(value) for value in _list(team_box.get("battingOrder")))
            if player_id is not None
        ]

        if len(batting_order) >= CONFIRMED_LINEUP_SIZE:
            lineup = TeamLineup(
                status="confirmed",
                players=[
                    _lineup_player(_dict(players.get(f"ID{player_id}")), player_id, index + 1)
                    for index, player_id in enumerate(batting_order)
                ],
            )
        elif game_state in {"Live", "Final"}:
            ordered = sorted(
                (
                    _dict(raw)
                    for raw in players.values()
                    if _safe_int(_dict(raw).get("battingOrder"))
                    and _safe_int(_dict(_dict(raw).get("person")).get("id")) is not None
                ),
                key=lambda raw: _safe_int(raw.get("battingOrder")) or 0,
            )
            lineup = TeamLineup(
                status="confirmed",
                players=[
                    _lineup_player(raw, _safe_int(_dict(raw.get("person")).get("id")), index + 1)
                    for index, raw in enumerate(ordered)
                ],
            )
        else:
            lineup = TeamLineup()

        if side == "home":
            result.home = lineup
        else:
            result.away = lineup
    return result


def parse_search(payload: dict[str, Any], limit: int = 10) -> list[PlayerSearchHit]:
    hits: list[PlayerSearchHit] = []
    for person in _list(payload.get("people")):
        person = _dict(person)
        person_id = _safe_int(person.get("id"))
        if person_id is None:
            continue
        hits.append(
            PlayerSearchHit(
                id=person_id,
                name=person.get("fullName") or f"Player {person_id}",
                position=_dict(person.get("primaryPosition")).get("abbreviation"),
                bat_side=_dict(person.get("batSide")).get("code"),
                pitch_hand=_dict(person.get("pitchHand")).get("code"),
            )
        )
        if len(hits) >= limit:
            break
    return hits


def parse_savant_csv(text: str) -> list[dict[str, str]]:
    """Rows of a Savant leaderboard CSV keyed by stripped header names."""

    cleaned = text.lstrip("\ufeff").strip()
    if not cleaned:
        return []
    reader = csv.DictReader(io.StringIO(cleaned))
    rows: list[dict[str, str]] = []
    for row in reader:
        rows.append(
            {
                (key or "").strip().strip('"'): (value or "").strip()
                for key, value in row.items()
            }
        )
    return rows


def parse_box_hits(payload: dict[str, Any]) -> set[int]:
    """Ids of every player with at least one hit in a boxscore payload."""

    hitters: set[int] = set()
    for side in ("home", "away"):
        players = _dict(_dict(_dict(payload.get("teams")).get(side)).get("players"))
        for raw in players.values():
            raw = _dict(raw)
            hits = _safe_int(_dict(_dict(raw.get("stats")).get("batting")).get("hits"))
            person_id = _safe_int(_dict(raw.get("person")).get("id"))
            if hits and hits > 0 and person_id is not None:
                hitters.add(person_id)
    return hitters
