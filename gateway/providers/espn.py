"""
ESPN site-API provider.

Endpoints:
- Scoreboard: {base}/{sport_path}/scoreboard?dates=YYYYMMDD
- Summary:    {base}/{sport_path}/summary?event={event_id}
- Roster:     {base}/{sport_path}/teams/{team_id}/roster
- Standings:  {standings_base}/{sport_path}/standings?season=YYYY
- Player:     {athlete_base}/{sport_path}/athletes/{athlete_id}/stats?season=YYYY
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gateway.errors import (
    NotFound,
    UpstreamRateLimited,
    UpstreamUnavailable,
    ValidationFailure,
)
from gateway.leagues import get_league, parse_prefixed_id
from .base import SportsDataProvider
from . import espn_parsers

logger = logging.getLogger("provider.espn")

DEFAULT_BASE_URL = "https://site.api.espn.com/apis/site/v2/sports"
DEFAULT_STANDINGS_BASE_URL = "https://site.api.espn.com/apis/v2/sports"
DEFAULT_ATHLETE_BASE_URL = "https://site.web.api.espn.com/apis/common/v3/sports"

# Consecutive failures before health reports degraded
DEGRADED_ERROR_COUNT = 5

# Backoff between attempts is capped at this many seconds
RETRY_WAIT_MAX_SECONDS = 4

# Malformed upstream data surfaces as one of these while parsing
_PARSE_ERRORS = (KeyError, IndexError, TypeError, ValueError, StopIteration)


def retry_budget_seconds(timeout: float, max_attempts: int) -> float:
    """Worst-case duration of one _get_json call: every attempt times out."""
    attempts = max(1, max_attempts)
    return timeout * attempts + RETRY_WAIT_MAX_SECONDS * (attempts - 1)


class ESPNProvider(SportsDataProvider):
    """
    Synchronous ESPN adapter.

    Every call carries its own timeout. Transient failures (network errors,
    timeouts, 5xx) are retried with exponential backoff up to max_attempts;
    rate limits and 404s are never retried.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        standings_base_url: str = DEFAULT_STANDINGS_BASE_URL,
        athlete_base_url: str = DEFAULT_ATHLETE_BASE_URL,
        timeout: float = 15.0,
        max_attempts: int = 3,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        retry_wait: Optional[Callable] = None,
    ):
        """
        Args:
            base_url: Site API root
            standings_base_url: Standings live under a different root
            athlete_base_url: Athlete stats live under a third root
            timeout: Per-request timeout in seconds
            max_attempts: Total attempts for transient failures
            api_key: Sent as a header when set (proxies in front of ESPN)
            session: requests session (injectable for tests)
            retry_wait: tenacity wait strategy (tests pass wait_none())
        """
        self._base_url = base_url.rstrip("/")
        self._standings_base_url = standings_base_url.rstrip("/")
        self._athlete_base_url = athlete_base_url.rstrip("/")
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._api_key = api_key
        self._session = session or requests.Session()
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=RETRY_WAIT_MAX_SECONDS)

        self._health_lock = threading.Lock()
        self._error_count = 0
        self._last_error: Optional[str] = None
        self._last_successful_fetch: Optional[datetime] = None

    @property
    def name(self) -> str:
        return "espn"

    # ========================================================================
    # HTTP
    # ========================================================================

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    def _get_once(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._session.get(
                url,
                params=params,
                headers=self._headers(),
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise UpstreamUnavailable(f"Upstream timed out after {self._timeout}s", context={"url": url}) from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"Upstream request failed: {e}", context={"url": url}) from e

        status = response.status_code
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise UpstreamRateLimited(
                "Upstream rate limit exceeded",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                context={"url": url},
            )
        if status == 404:
            raise NotFound("Resource not found upstream", context={"url": url})
        if status >= 400:
            raise UpstreamUnavailable(f"Upstream returned HTTP {status}", context={"url": url, "status": status})

        try:
            return response.json()
        except ValueError as e:
            raise ValidationFailure("Upstream returned invalid JSON", context={"url": url}) from e

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET with the retry budget; records health on every outcome."""
        params = params or {}
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._retry_wait,
                retry=retry_if_exception_type(UpstreamUnavailable),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(f"Retrying {url} (attempt {attempt.retry_state.attempt_number})")
                    data = self._get_once(url, params)
        except NotFound:
            # A definitive answer, not a provider fault
            self._record_success()
            raise
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_success()
        return data

    def _record_success(self) -> None:
        with self._health_lock:
            self._error_count = 0
            self._last_successful_fetch = datetime.now(timezone.utc)

    def _record_failure(self, error: Exception) -> None:
        with self._health_lock:
            self._error_count += 1
            self._last_error = str(error)
        logger.warning(f"ESPN request failed: {error}")

    def _parse(self, what: str, parser: Callable[..., Any], *args) -> Any:
        try:
            return parser(*args)
        except _PARSE_ERRORS as e:
            logger.warning(f"Malformed upstream {what}: {e}")
            raise ValidationFailure(f"Malformed upstream {what}", context={"reason": str(e)}) from e

    # ========================================================================
    # SportsDataProvider Interface Implementation
    # ========================================================================

    def fetch_by_date_and_league(self, league: str, date: str) -> List[Dict[str, Any]]:
        lg = get_league(league)
        url = f"{self._base_url}/{lg.sport_path}/scoreboard"
        logger.debug(f"Fetching scoreboard {lg.code} {date}")
        data = self._get_json(url, {"dates": date.replace("-", "")})
        return self._parse("scoreboard", espn_parsers.parse_scoreboard, data, lg)

    def _summary(self, game_id: str):
        lg, event_id = parse_prefixed_id(game_id, "game")
        url = f"{self._base_url}/{lg.sport_path}/summary"
        data = self._get_json(url, {"event": event_id})
        return lg, event_id, data

    def fetch_by_id(self, game_id: str) -> Dict[str, Any]:
        lg, event_id, data = self._summary(game_id)
        game = self._parse("game summary", espn_parsers.parse_summary_game, data, lg, event_id)
        return game.to_payload()

    def fetch_box_score(self, game_id: str) -> Dict[str, Any]:
        lg, event_id, data = self._summary(game_id)
        return self._parse("box score", espn_parsers.parse_box_score, data, lg, event_id)

    def fetch_standings(self, league: str, season: str) -> Dict[str, Any]:
        lg = get_league(league)
        url = f"{self._standings_base_url}/{lg.sport_path}/standings"
        data = self._get_json(url, {"season": season})
        return self._parse("standings", espn_parsers.parse_standings, data, lg, season)

    def fetch_roster(self, team_id: str) -> Dict[str, Any]:
        lg, upstream_team_id = parse_prefixed_id(team_id, "team")
        url = f"{self._base_url}/{lg.sport_path}/teams/{upstream_team_id}/roster"
        data = self._get_json(url)
        return self._parse("roster", espn_parsers.parse_roster, data, team_id)

    def fetch_player_stats(self, player_id: str, season: str) -> Dict[str, Any]:
        lg, athlete_id = parse_prefixed_id(player_id, "player")
        url = f"{self._athlete_base_url}/{lg.sport_path}/athletes/{athlete_id}/stats"
        data = self._get_json(url, {"season": season})
        return self._parse("player stats", espn_parsers.parse_player_stats, data, lg, player_id, season)

    def health_check(self) -> Dict[str, Any]:
        """Passive health from recent call outcomes; makes no upstream call."""
        with self._health_lock:
            error_count = self._error_count
            last_success = self._last_successful_fetch
        return {
            "name": self.name,
            "status": "degraded" if error_count > DEGRADED_ERROR_COUNT else "healthy",
            "lastSuccessfulFetch": last_success.isoformat() if last_success else None,
            "errorCount": error_count,
        }
