"""
Pydantic schemas for gateway payloads
Canonical game, scoreboard and box score shapes served to clients

Box scores are a closed set of sport variants discriminated by "sport".
Stores and the orchestrator never look inside these; only validation does.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict as stored in caches and returned to clients."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINAL = "final"


# ===== GAME SCHEMAS =====

class TeamSummary(CamelModel):
    """Team as it appears on a scoreboard"""
    id: str
    abbrev: str = ""
    name: str = ""
    city: str = ""
    score: Optional[int] = None
    logo_url: Optional[str] = None


class Venue(CamelModel):
    id: str
    name: str
    city: str = ""
    state: Optional[str] = None


class Game(CamelModel):
    """Single game summary"""
    id: str
    start_time: datetime
    status: GameStatus
    period: Optional[str] = None
    clock: Optional[str] = None
    overtime_periods: Optional[int] = None
    venue: Optional[Venue] = None
    home_team: TeamSummary
    away_team: TeamSummary


# ===== BOX SCORE SCHEMAS =====

class PlayerLine(CamelModel):
    id: str
    name: str
    jersey: Optional[str] = None
    position: Optional[str] = None
    is_starter: bool = False
    stats: Dict[str, Any] = {}
    dnp_reason: Optional[str] = None


class BasketballTeamBoxScore(CamelModel):
    sport: Literal["basketball"] = "basketball"
    team_id: str
    team_name: str = ""
    starters: List[PlayerLine] = []
    bench: List[PlayerLine] = []
    dnp: List[PlayerLine] = []
    team_totals: Dict[str, Any] = {}


class FootballRow(CamelModel):
    id: str
    name: str
    position: str = ""
    stats: Dict[str, str] = {}


class FootballGroup(CamelModel):
    name: str  # "passing", "rushing", "receiving", ...
    headers: List[str] = []
    rows: List[FootballRow] = []


class FootballTeamBoxScore(CamelModel):
    sport: Literal["football"] = "football"
    team_id: str
    team_name: str = ""
    groups: List[FootballGroup] = []


class HockeySkaterLine(CamelModel):
    id: str
    name: str
    jersey: str = ""
    position: str = ""
    stats: Dict[str, Any] = {}


class HockeyGoalieLine(CamelModel):
    id: str
    name: str
    jersey: str = ""
    stats: Dict[str, Any] = {}
    decision: Optional[str] = None  # W, L, OTL


class HockeyTeamBoxScore(CamelModel):
    sport: Literal["hockey"] = "hockey"
    team_id: str
    team_name: str = ""
    skaters: List[HockeySkaterLine] = []
    goalies: List[HockeyGoalieLine] = []
    scratches: List[PlayerLine] = []
    team_totals: Dict[str, Any] = {}


TeamBoxScore = Annotated[
    Union[BasketballTeamBoxScore, FootballTeamBoxScore, HockeyTeamBoxScore],
    Field(discriminator="sport"),
]


class BoxScore(CamelModel):
    home_team: TeamBoxScore
    away_team: TeamBoxScore


class BoxScoreResponse(CamelModel):
    game: Game
    box_score: BoxScore
    last_updated: str


# ===== REFERENCE DATA =====

class Standing(CamelModel):
    team_id: str
    abbrev: str = ""
    name: str = ""
    wins: int = 0
    losses: int = 0
    ties: Optional[int] = None
    win_pct: float = 0.0
    rank: int = 0
    games_back: Optional[float] = None
    streak: Optional[str] = None


class ConferenceStandings(CamelModel):
    name: str
    teams: List[Standing] = []


class StandingsResponse(CamelModel):
    league: str
    season: str
    last_updated: str
    conferences: List[ConferenceStandings] = []


class RosterPlayer(CamelModel):
    id: str
    name: str
    jersey: Optional[str] = None
    position: Optional[str] = None
    height: Optional[str] = None
    weight: Optional[str] = None


class RosterResponse(CamelModel):
    team_id: str
    season: str = ""
    last_updated: str
    players: List[RosterPlayer] = []


class PlayerSeasonLine(CamelModel):
    season: str                      # display season, e.g. "2025-26"
    team: Optional[str] = None
    stats: Dict[str, str] = {}


class PlayerStatsResponse(CamelModel):
    player_id: str
    league: str
    season: str                      # upstream season year, e.g. "2026"
    last_updated: str
    labels: List[str] = []
    current: Optional[PlayerSeasonLine] = None
    seasons: List[PlayerSeasonLine] = []
    career: Optional[Dict[str, str]] = None
