"""
Payload validation.

Two levels:
- parse_*: the payload must match the schema at all (malformed data is a
  ValidationFailure and is never cached)
- require_complete_*: a final game must carry populated substructure before
  it may be stored durably. Upstream sometimes flips a game to final before
  its player data is populated; storing that record permanently would serve
  the empty payload forever. Those failures raise IncompletePayload, a
  ValidationFailure the orchestrator caches briefly instead of rejecting.
"""
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from gateway.errors import IncompletePayload, ValidationFailure
from gateway.schemas import (
    BasketballTeamBoxScore,
    BoxScoreResponse,
    FootballTeamBoxScore,
    Game,
    GameStatus,
    HockeyTeamBoxScore,
)

logger = logging.getLogger("gateway.validation")

# Basketball lineups start five
MIN_BASKETBALL_STARTERS = 5


def parse_box_score(payload: Dict[str, Any]) -> BoxScoreResponse:
    try:
        return BoxScoreResponse.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailure(
            "Malformed box score payload",
            context={"errors": e.errors(include_url=False)},
        ) from e


def parse_game(payload: Dict[str, Any]) -> Game:
    try:
        return Game.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailure(
            "Malformed game payload",
            context={"errors": e.errors(include_url=False)},
        ) from e


def _team_box_problems(side: str, team) -> List[str]:
    problems = []
    if isinstance(team, BasketballTeamBoxScore):
        if len(team.starters) < MIN_BASKETBALL_STARTERS:
            problems.append(f"{side}: {len(team.starters)} starters")
    elif isinstance(team, FootballTeamBoxScore):
        if not any(group.rows for group in team.groups):
            problems.append(f"{side}: no stat group rows")
    elif isinstance(team, HockeyTeamBoxScore):
        if not team.skaters:
            problems.append(f"{side}: no skaters")
        if not team.goalies:
            problems.append(f"{side}: no goalies")
    return problems


def box_score_problems(box: BoxScoreResponse) -> List[str]:
    """List the reasons a box score is not complete (empty list if complete)."""
    return (
        _team_box_problems("home", box.box_score.home_team)
        + _team_box_problems("away", box.box_score.away_team)
    )


def require_complete_box_score(payload: Dict[str, Any]) -> None:
    """
    Raise IncompletePayload unless a final box score has populated player data.
    """
    box = parse_box_score(payload)
    if box.game.status != GameStatus.FINAL:
        raise IncompletePayload(
            "Box score is not final",
            context={"game_id": box.game.id, "status": box.game.status.value},
        )
    problems = box_score_problems(box)
    if problems:
        raise IncompletePayload(
            "Final box score has empty substructure",
            context={"game_id": box.game.id, "problems": problems},
        )


def require_complete_game(payload: Dict[str, Any]) -> None:
    """
    Raise IncompletePayload unless a final game has both teams and scores.
    """
    game = parse_game(payload)
    problems = []
    if game.status != GameStatus.FINAL:
        problems.append(f"status {game.status.value}")
    for side, team in (("home", game.home_team), ("away", game.away_team)):
        if not team.id:
            problems.append(f"{side}: missing team id")
        if team.score is None:
            problems.append(f"{side}: missing score")
    if problems:
        raise IncompletePayload(
            "Final game is incomplete",
            context={"game_id": game.id, "problems": problems},
        )
