"""The Odds API client for batter prop lines (display only, never scored)."""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import requests

from streaklab.cache import MISSING, TTLCache

logger = logging.getLogger(__name__)

SPORT_KEY = "baseball_mlb"
DEFAULT_BOOKMAKERS = "draftkings,fanduel,betmgm"
ODDS_TIMEOUT_SECONDS = 10
SUPPORTED_MARKETS = {"batter_hits", "batter_home_runs", "batter_total_bases", "batter_rbis"}


class OddsClientError(RuntimeError):
    pass


@dataclass(frozen=True)
class PropLine:
    point: float | None
    over: float | None
    under: float | None
    bookmaker: str | None


def fmt_odds(price: int | float | None) -> str:
    if price is None:
        return "—"
    return f"+{price:g}" if price > 0 else f"{price:g}"


def match_event(events: list[dict[str, Any]], home_team: str | None) -> dict[str, Any] | None:
    """Find the event whose home team matches *home_team* by substring or nickname."""
    if not events or not home_team:
        return None
    needle = home_team.lower()
    for event in events:
        event_home = str(event.get("home_team") or "").lower()
        if not event_home:
            continue
        if needle in event_home or event_home.split()[-1] in needle:
            return event
    return None


def find_player_line(lines: dict[str, PropLine] | None, player_name: str | None) -> PropLine | None:
    """Match a player by last name against bookmaker outcome names."""
    if not lines or not player_name:
        return None
    last = player_name.split()[-1].lower()
    for name, line in lines.items():
        if last in name.lower():
            return line
    return None


def _collapse_bookmakers(payload: dict[str, Any]) -> dict[str, PropLine]:
    """Keep the first bookmaker's line per player."""
    points: dict[str, dict[str, Any]] = {}
    for bookmaker in payload.get("bookmakers") or []:
        for market in bookmaker.get("markets") or []:
            for outcome in market.get("outcomes") or []:
                # Player props put the side in "name" and the player in "description".
                if outcome.get("name") in {"Over", "Under"}:
                    side, name = outcome.get("name"), outcome.get("description")
                else:
                    side, name = outcome.get("description"), outcome.get("name")
                name = str(name or "").strip()
                if not name:
                    continue
                entry = points.setdefault(
                    name,
                    {"point": outcome.get("point"), "over": None, "under": None, "bookmaker": bookmaker.get("title")},
                )
                if entry["bookmaker"] != bookmaker.get("title"):
                    continue
                if side == "Over":
                    entry["over"] = outcome.get("price")
                elif side == "Under":
                    entry["under"] = outcome.get("price")
    return {name: PropLine(**values) for name, values in points.items()}


class OddsClient:
    def __init__(self, base_url: str, api_key: str | None, cache: TTLCache) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.cache = cache
        self.remaining_requests: str | None = None
        self._in_flight: dict[str, asyncio.Future] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _shared(self, key: str, load: Callable[[], Awaitable[Any]]) -> Any:
        """Run *load* once per key while it is pending; other callers await the same result."""
        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(load())
            self._in_flight[key] = pending
            pending.add_done_callback(functools.partial(self._forget, key))
        return await asyncio.shield(pending)

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def _get(self, path: str, params: dict[str, str]) -> Any:
        try:
            response = requests.get(
                f"{self.base_url}{path}",
                params={"apiKey": self.api_key, **params},
                timeout=ODDS_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise OddsClientError(f"Odds API request failed: {exc}") from exc
        remaining = response.headers.get("x-requests-remaining")
        if remaining is not None:
            self.remaining_requests = remaining
        if response.status_code != 200:
            raise OddsClientError(f"Odds API {response.status_code}: {response.text[:300]}")
        try:
            return response.json()
        except ValueError as exc:
            raise OddsClientError("Odds API returned non-JSON response") from exc

    async def fetch_events(self) -> list[dict[str, Any]]:
        if not self.enabled:
            return []
        hit = self.cache.get("odds:events", MISSING)
        if hit is not MISSING:
            return hit
        return await self._shared("odds:events", self._load_events)

    async def _load_events(self) -> list[dict[str, Any]]:
        try:
            events = await asyncio.to_thread(
                self._get,
                f"/sports/{SPORT_KEY}/events",
                {"dateFormat": "iso"},
            )
        except OddsClientError as exc:
            logger.warning("Prop lines unavailable: %s", exc)
            return []
        if not isinstance(events, list):
            logger.warning("Prop lines unavailable: unexpected events payload")
            return []
        self.cache.set_for("odds", "odds:events", events)
        return events

    async def fetch_event_props(self, event_id: str, market: str = "batter_hits") -> dict[str, PropLine]:
        if not self.enabled:
            return {}
        if market not in SUPPORTED_MARKETS:
            raise ValueError(f"Unsupported prop market: {market}")
        key = f"odds:{event_id}:{market}"
        hit = self.cache.get(key, MISSING)
        if hit is not MISSING:
            return hit
        return await self._shared(key, functools.partial(self._load_event_props, key, event_id, market))

    async def _load_event_props(self, key: str, event_id: str, market: str) -> dict[str, PropLine]:
        try:
            payload = await asyncio.to_thread(
                self._get,
                f"/sports/{SPORT_KEY}/events/{event_id}/odds",
                {
                    "regions": "us",
                    "markets": market,
                    "oddsFormat": "american",
                    "bookmakers": DEFAULT_BOOKMAKERS,
                },
            )
        except OddsClientError as exc:
            logger.warning("Prop lines unavailable for event=%s: %s", event_id, exc)
            return {}
        lines = _collapse_bookmakers(payload if isinstance(payload, dict) else {})
        self.cache.set_for("odds", key, lines)
        return lines

    async def lines_for_home_team(self, home_team: str, market: str = "batter_hits") -> dict[str, PropLine]:
        event = match_event(await self.fetch_events(), home_team)
        if event is None or not event.get("id"):
            return {}
        return await self.fetch_event_props(str(event["id"]), market)
