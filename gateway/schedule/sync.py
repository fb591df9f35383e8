"""
Schedule ingestion.

Walks a window of dates for a league, fetches each scoreboard through the
orchestrator (so cached scoreboards cost nothing) and records the date's
summary in the schedule index. Dates outside the league's season windows
are skipped without a request.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from gateway.cache.keys import EntityType
from gateway.errors import GatewayError, UpstreamRateLimited
from gateway.leagues import get_league
from gateway.services import SportsDataService
from .index import build_date_record
from .seasons import date_range, is_date_in_season

logger = logging.getLogger("schedule.sync")


@dataclass
class SyncResult:
    date: str
    games_found: int = 0
    source: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "gamesFound": self.games_found,
            "source": self.source,
            "errors": self.errors,
            "skipped": self.skipped,
            "skipReason": self.skip_reason,
        }


@dataclass
class SyncSummary:
    league: str
    start_time: datetime
    end_time: Optional[datetime] = None
    results: List[SyncResult] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [f"{r.date}: {e}" for r in self.results for e in r.errors]

    def to_dict(self) -> Dict[str, Any]:
        processed = [r for r in self.results if not r.skipped]
        return {
            "league": self.league,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "datesProcessed": len(processed),
            "datesSkipped": len(self.results) - len(processed),
            "totalGamesFound": sum(r.games_found for r in self.results),
            "results": [r.to_dict() for r in self.results],
            "errors": self.errors,
        }


class ScheduleSync:
    """
    Populates the scoreboard-date index.

    Errors are collected per date, never raised; a rate limit stops the run
    early since every later date would fail the same way.
    """

    def __init__(self, service: SportsDataService, pause_seconds: float = 0.0):
        """
        Args:
            service: Data service whose orchestrator serves the scoreboards
            pause_seconds: Delay between upstream-bound dates
        """
        self._service = service
        self._pause_seconds = pause_seconds

    def sync_date(self, league: str, date_str: str) -> SyncResult:
        result = SyncResult(date=date_str)
        try:
            resolution = self._service.orchestrator.get(
                self._service.scoreboard_request(league, date_str, use_index=False)
            )
            games = resolution.value.get("games") or []
            result.games_found = len(games)
            result.source = resolution.source.value
            record = build_date_record(league, date_str, games)
            if not self._service.index.upsert(record):
                result.errors.append("index write failed")
        except UpstreamRateLimited:
            raise
        except GatewayError as e:
            result.errors.append(e.message)
            logger.error(f"Failed to sync {league}/{date_str}: {e.message}")
        return result

    def sync_range(
        self,
        league: str,
        days_back: int = 7,
        days_forward: int = 30,
        today: Optional[date] = None,
    ) -> SyncSummary:
        """
        Sync today - days_back through today + days_forward, clamped to the
        league's season windows.
        """
        league = get_league(league).code
        today = today or self._service.today()
        start = today - timedelta(days=days_back)
        end = today + timedelta(days=days_forward)
        summary = SyncSummary(league=league, start_time=datetime.now().astimezone())

        candidates = [d for d in date_range(start, end) if is_date_in_season(league, d)]
        logger.info(
            f"Schedule sync {league}: {start} to {end}, "
            f"{len(candidates)} in-season dates"
        )

        for i, day in enumerate(candidates):
            date_str = day.isoformat()
            try:
                result = self.sync_date(league, date_str)
            except UpstreamRateLimited as e:
                logger.warning(f"Schedule sync {league} stopped by rate limit at {date_str}")
                summary.results.append(SyncResult(
                    date=date_str, errors=[e.message], skipped=True, skip_reason="rate-limited",
                ))
                break
            summary.results.append(result)
            if self._pause_seconds and result.source == "network" and i < len(candidates) - 1:
                time.sleep(self._pause_seconds)

        # The date list is derived from the index
        self._service.invalidate(EntityType.SCOREBOARD_DATES, {"league": league})

        summary.end_time = datetime.now().astimezone()
        logger.info(
            f"Schedule sync {league} complete: {len(summary.results)} dates, "
            f"{sum(r.games_found for r in summary.results)} games, {len(summary.errors)} errors"
        )
        return summary
