"""Base provider abstraction for upstream sports data."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List


class SportsDataProvider(ABC):
    """
    Abstract base class for upstream data providers.

    Implementations return JSON-ready payloads in gateway schema shape and
    raise the gateway error taxonomy (UpstreamUnavailable,
    UpstreamRateLimited, NotFound, ValidationFailure). They never cache.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def fetch_by_date_and_league(self, league: str, date: str) -> List[Dict[str, Any]]:
        """Game summaries for one league on one YYYY-MM-DD date."""
        pass

    @abstractmethod
    def fetch_by_id(self, game_id: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def fetch_box_score(self, game_id: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def fetch_standings(self, league: str, season: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def fetch_roster(self, team_id: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def fetch_player_stats(self, player_id: str, season: str) -> Dict[str, Any]:
        """Per-season averages for a "{league}_{id}" player; season is the upstream year."""
        pass

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        """
        Returns:
            {"name", "status": healthy|degraded|unhealthy,
             "lastSuccessfulFetch", "errorCount"}
        """
        pass
