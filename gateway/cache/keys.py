"""
Canonical cache keys.

Every cacheable entity-query maps to exactly one key string. The same key
addresses the entity in the fast store, the durable store and the coalescer.
"""
from enum import Enum
from typing import Any, Dict, Tuple
from urllib.parse import quote


class EntityType(Enum):
    """Closed set of cacheable entity types."""
    SCOREBOARD = "scoreboard"
    SCOREBOARD_DATES = "scoreboard_dates"
    GAME = "game"
    BOXSCORE = "boxscore"
    STANDINGS = "standings"
    ROSTER = "roster"
    PLAYER = "player"


# Identifying fields per entity type, in key order
KEY_FIELDS: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.SCOREBOARD: ("league", "date"),
    EntityType.SCOREBOARD_DATES: ("league",),
    EntityType.GAME: ("game_id",),
    EntityType.BOXSCORE: ("game_id",),
    EntityType.STANDINGS: ("league", "season"),
    EntityType.ROSTER: ("team_id",),
    EntityType.PLAYER: ("player_id", "season"),
}

# Fields that identify leagues/teams are case-insensitive upstream
_CASE_FOLDED = {"league"}


def _part(name: str, value: Any) -> str:
    text = str(value).strip()
    if name in _CASE_FOLDED:
        text = text.lower()
    # ':' must never survive unescaped or two queries could share a key
    return quote(text, safe="-_.")


def build_key(entity_type: EntityType, params: Dict[str, Any]) -> str:
    """
    Build the canonical key for an entity query.

    Args:
        entity_type: The entity type being requested
        params: Identifying fields; extra fields are ignored

    Returns:
        Key string such as "scoreboard:nba:2026-01-15"

    Raises:
        ValueError: Unknown entity type or a missing identifying field
            (a programming error, not a runtime condition)
    """
    if not isinstance(entity_type, EntityType) or entity_type not in KEY_FIELDS:
        raise ValueError(f"Unknown entity type: {entity_type!r}")

    parts = [entity_type.value]
    for name in KEY_FIELDS[entity_type]:
        value = params.get(name)
        if value is None or str(value).strip() == "":
            raise ValueError(f"{entity_type.value} key requires '{name}'")
        parts.append(_part(name, value))
    return ":".join(parts)


def scoreboard_key(league: str, date: str) -> str:
    return build_key(EntityType.SCOREBOARD, {"league": league, "date": date})


def boxscore_key(game_id: str) -> str:
    return build_key(EntityType.BOXSCORE, {"game_id": game_id})
