"""
Freshness policy: TTL configuration and entity-state classification.

TTL strategy:
- Live games: 60-90s (frequent updates during active games)
- Scheduled games: 5 min (check for status changes)
- Final games: tiered by time since completion (stat corrections)
  - completed within a day: 30 min
  - within a week: 6 hours
  - older: 24 hours
- Verified no-games dates: 24h, off-season: 7 days
- Standings: 18h, rosters: 24h, player season stats: 5 min
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Any

from .core import utcnow
from .keys import EntityType


class PolicyClass(Enum):
    """Policy classes stored on cache entries and resolved at read time."""
    LIVE = "live"
    LIVE_DETAIL = "live_detail"
    SCHEDULED = "scheduled"
    FINAL_RECENT = "final_recent"
    FINAL_WEEK = "final_week"
    FINAL_SETTLED = "final_settled"
    FINAL_INCOMPLETE = "final_incomplete"
    NO_GAMES_VERIFIED = "no_games_verified"
    NO_GAMES_UNVERIFIED = "no_games_unverified"
    OFF_SEASON = "off_season"
    NOT_FOUND = "not_found"
    STANDINGS = "standings"
    ROSTER = "roster"
    DATE_LIST = "date_list"
    PLAYER_STATS = "player_stats"


class EntityStatus(Enum):
    """Lifecycle state of an entity as reported upstream."""
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINAL = "final"
    NO_DATA = "no_data"          # Upstream answered with nothing for the query
    OFF_SEASON = "off_season"
    NOT_FOUND = "not_found"
    REFERENCE = "reference"      # Standings, rosters and other slow-moving data


# TTL Configuration by policy class (in seconds).
# "stale_multiplier": None means the configured global multiplier applies.
TTL_CONFIG: Dict[PolicyClass, Dict[str, Any]] = {
    PolicyClass.LIVE: {
        "ttl": 60,                    # 1 minute
        "stale_multiplier": None,
    },
    PolicyClass.LIVE_DETAIL: {
        "ttl": 90,                    # 90 seconds, single game in progress
        "stale_multiplier": None,
    },
    PolicyClass.SCHEDULED: {
        "ttl": 5 * 60,                # 5 minutes
        "stale_multiplier": None,
    },
    PolicyClass.FINAL_RECENT: {
        "ttl": 30 * 60,               # 30 minutes, corrections likely
        "stale_multiplier": None,
    },
    PolicyClass.FINAL_WEEK: {
        "ttl": 6 * 60 * 60,           # 6 hours
        "stale_multiplier": None,
    },
    PolicyClass.FINAL_SETTLED: {
        "ttl": 24 * 60 * 60,          # 24 hours
        "stale_multiplier": None,
    },
    PolicyClass.FINAL_INCOMPLETE: {
        "ttl": 60,                    # Re-attempt upstream as soon as it expires
        "stale_multiplier": 1.0,      # No stale serving
    },
    PolicyClass.NO_GAMES_VERIFIED: {
        "ttl": 24 * 60 * 60,          # 24 hours
        "stale_multiplier": None,
    },
    PolicyClass.NO_GAMES_UNVERIFIED: {
        "ttl": 6 * 60 * 60,           # 6 hours, in-season date may gain games
        "stale_multiplier": None,
    },
    PolicyClass.OFF_SEASON: {
        "ttl": 7 * 24 * 60 * 60,      # 7 days
        "stale_multiplier": None,
    },
    PolicyClass.NOT_FOUND: {
        "ttl": 60,                    # Brief negative cache
        "stale_multiplier": 1.0,
    },
    PolicyClass.STANDINGS: {
        "ttl": 18 * 60 * 60,          # 18 hours
        "stale_multiplier": None,
    },
    PolicyClass.ROSTER: {
        "ttl": 24 * 60 * 60,
        "stale_multiplier": None,
    },
    PolicyClass.DATE_LIST: {
        "ttl": 60 * 60,               # 1 hour
        "stale_multiplier": None,
    },
    PolicyClass.PLAYER_STATS: {
        "ttl": 5 * 60,
        "stale_multiplier": None,
    },
}

# Age tiers for completed entities: (max age, policy class)
FINAL_AGE_TIERS: Tuple[Tuple[timedelta, PolicyClass], ...] = (
    (timedelta(days=1), PolicyClass.FINAL_RECENT),
    (timedelta(days=7), PolicyClass.FINAL_WEEK),
)

# Entity types whose final state may be written to the durable store
DURABLE_ELIGIBLE = frozenset({EntityType.GAME, EntityType.BOXSCORE})

# Entity types describing a single game (as opposed to a date aggregate)
SINGLE_GAME_TYPES = frozenset({EntityType.GAME, EntityType.BOXSCORE})

REFERENCE_POLICIES: Dict[EntityType, PolicyClass] = {
    EntityType.STANDINGS: PolicyClass.STANDINGS,
    EntityType.ROSTER: PolicyClass.ROSTER,
    EntityType.SCOREBOARD_DATES: PolicyClass.DATE_LIST,
    EntityType.PLAYER: PolicyClass.PLAYER_STATS,
}


@dataclass(frozen=True)
class EntityState:
    """What the policy needs to know about an entity."""
    status: EntityStatus
    completed_at: Optional[datetime] = None  # Start time of a final game / date
    verified: bool = False                   # NO_DATA confirmed for a past date


@dataclass(frozen=True)
class FreshnessPolicy:
    """Result of classification."""
    policy_class: PolicyClass
    ttl_seconds: int
    staleness_multiplier: float
    durable: bool = False

    @property
    def window_seconds(self) -> float:
        """Full lifetime of an entry: fresh plus stale."""
        return self.ttl_seconds * max(self.staleness_multiplier, 1.0)


class PolicyTable:
    """
    Resolves policy classes to TTLs, applying configured overrides.

    Entries only carry their policy class, so changing this table changes
    the freshness of every existing entry on its next read.
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, int]] = None,
        staleness_multiplier: float = 2.0,
    ):
        self._overrides: Dict[PolicyClass, int] = {}
        for name, seconds in (overrides or {}).items():
            # Unknown names are a configuration error; fail at startup
            self._overrides[PolicyClass(name)] = int(seconds)
        self._default_multiplier = staleness_multiplier

    def resolve(self, policy_class: PolicyClass, durable: bool = False) -> FreshnessPolicy:
        config = TTL_CONFIG[policy_class]
        ttl = self._overrides.get(policy_class, config["ttl"])
        multiplier = config["stale_multiplier"]
        if multiplier is None:
            multiplier = self._default_multiplier
        return FreshnessPolicy(
            policy_class=policy_class,
            ttl_seconds=ttl,
            staleness_multiplier=multiplier,
            durable=durable,
        )

    def resolve_name(self, policy_class: str) -> FreshnessPolicy:
        """Resolve a policy class name read back from a store."""
        try:
            return self.resolve(PolicyClass(policy_class))
        except ValueError:
            # Entry written by an older build: treat it as short-lived
            return self.resolve(PolicyClass.FINAL_INCOMPLETE)

    def window_for(self, policy_class: str) -> float:
        return self.resolve_name(policy_class).window_seconds

    def classify(
        self,
        entity_type: EntityType,
        state: EntityState,
        now: Optional[datetime] = None,
    ) -> FreshnessPolicy:
        """
        Map an entity type and its state to a freshness policy.

        Args:
            entity_type: Type of the entity
            state: Upstream-reported state
            now: Reference time for age tiers (defaults to current UTC time)

        Returns:
            FreshnessPolicy with TTL, staleness multiplier and durable flag
        """
        status = state.status

        if status == EntityStatus.NOT_FOUND:
            return self.resolve(PolicyClass.NOT_FOUND)

        if status == EntityStatus.OFF_SEASON:
            return self.resolve(PolicyClass.OFF_SEASON)

        if status == EntityStatus.NO_DATA:
            if state.verified:
                return self.resolve(PolicyClass.NO_GAMES_VERIFIED)
            return self.resolve(PolicyClass.NO_GAMES_UNVERIFIED)

        if status == EntityStatus.LIVE:
            if entity_type in SINGLE_GAME_TYPES:
                return self.resolve(PolicyClass.LIVE_DETAIL)
            return self.resolve(PolicyClass.LIVE)

        if status == EntityStatus.SCHEDULED:
            return self.resolve(PolicyClass.SCHEDULED)

        if status == EntityStatus.FINAL:
            return self.resolve(
                final_policy_class(state.completed_at, now),
                durable=entity_type in DURABLE_ELIGIBLE,
            )

        if status == EntityStatus.REFERENCE:
            if entity_type not in REFERENCE_POLICIES:
                raise ValueError(f"No reference policy for {entity_type.value}")
            return self.resolve(REFERENCE_POLICIES[entity_type])

        raise ValueError(f"Unhandled entity status: {status!r}")

    def incomplete(self) -> FreshnessPolicy:
        """Policy for a final entity whose substructure failed validation."""
        return self.resolve(PolicyClass.FINAL_INCOMPLETE)


def final_policy_class(
    completed_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> PolicyClass:
    """
    Pick the age tier for a completed entity.

    Unknown completion time is treated as just completed, the most
    conservative tier.
    """
    if completed_at is None:
        return PolicyClass.FINAL_RECENT
    age = (now or utcnow()) - completed_at
    for max_age, policy_class in FINAL_AGE_TIERS:
        if age < max_age:
            return policy_class
    return PolicyClass.FINAL_SETTLED
