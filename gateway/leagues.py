"""
Supported leagues and identifier formats.

Gateway ids carry their league as a prefix: "nba_401584701" is ESPN event
401584701 in the NBA; team ids follow the same "{league}_{id}" form.
"""
import re
from dataclasses import dataclass
from typing import Dict, Tuple

from gateway.errors import BadRequest


@dataclass(frozen=True)
class League:
    code: str
    name: str
    sport: str  # basketball | football | hockey
    sport_path: str  # path segment on the upstream API
    regular_periods: int
    period_prefix: str


LEAGUES: Dict[str, League] = {
    "nba": League("nba", "NBA", "basketball", "basketball/nba", 4, "Q"),
    "ncaam": League("ncaam", "NCAA Men's Basketball", "basketball",
                    "basketball/mens-college-basketball", 2, "H"),
    "nfl": League("nfl", "NFL", "football", "football/nfl", 4, "Q"),
    "ncaaf": League("ncaaf", "NCAA Football", "football", "football/college-football", 4, "Q"),
    "nhl": League("nhl", "NHL", "hockey", "hockey/nhl", 3, "P"),
}

_PREFIXED_ID = re.compile(r"^([a-z]+)_([A-Za-z0-9]+)$")


def get_league(code: str) -> League:
    league = LEAGUES.get((code or "").strip().lower())
    if league is None:
        raise BadRequest(f"Unsupported league: {code}", context={"league": code})
    return league


def parse_prefixed_id(value: str, kind: str = "game") -> Tuple[League, str]:
    """
    Split a "{league}_{id}" identifier.

    Raises:
        BadRequest: Malformed id or unknown league prefix
    """
    match = _PREFIXED_ID.match((value or "").strip())
    if not match:
        raise BadRequest(
            f"Invalid {kind} id '{value}': expected {{league}}_{{id}}",
            context={f"{kind}_id": value},
        )
    return get_league(match.group(1)), match.group(2)


def prefixed_id(league: League, upstream_id: str) -> str:
    return f"{league.code}_{upstream_id}"


def period_label(league: League, period: int) -> str:
    """Display label for a period number ("Q3", "P2", "H1", "OT", "2OT")."""
    if period <= league.regular_periods:
        return f"{league.period_prefix}{period}"
    overtime = period - league.regular_periods
    return "OT" if overtime == 1 else f"{overtime}OT"
