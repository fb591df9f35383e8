"""
Sports data service: builds entity requests for the orchestrator.

Each public method maps one client query to an EntityRequest (upstream
fetch, state description, durability validation and, for scoreboards, the
date-index shortcut and write-back) and returns the orchestrator's
Resolution.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from gateway.cache.core import utcnow
from gateway.cache.keys import EntityType
from gateway.cache.orchestrator import EntityRequest, FreshnessOrchestrator, IndexShortcut, Resolution
from gateway.cache.ttl_policies import EntityState, EntityStatus, PolicyClass
from gateway.leagues import get_league, parse_prefixed_id
from gateway.providers.base import SportsDataProvider
from gateway.schedule.index import ScheduleIndex, build_date_record
from gateway.schedule.seasons import (
    date_range,
    is_date_in_season,
    nearest_season,
    parse_date,
    today_eastern,
)
from gateway.validation import require_complete_box_score, require_complete_game

logger = logging.getLogger("gateway.services")

# Dates listed ahead of today when the index is empty
DATE_LIST_LOOKAHEAD_DAYS = 14


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def describe_game(game: Dict[str, Any]) -> EntityState:
    """State of a single game payload."""
    status = game.get("status")
    if status == "live":
        return EntityState(EntityStatus.LIVE)
    if status == "final":
        return EntityState(EntityStatus.FINAL, completed_at=_parse_time(game.get("startTime")))
    return EntityState(EntityStatus.SCHEDULED)


def describe_box_score(payload: Dict[str, Any]) -> EntityState:
    return describe_game(payload.get("game") or {})


def describe_scoreboard(payload: Dict[str, Any], today: date) -> EntityState:
    """
    State of a whole date: live if any game is live, scheduled if any game
    has yet to finish, final once every game is.
    """
    games = payload.get("games") or []
    if not games:
        # Empty past dates are settled; today and later may still gain games
        return EntityState(EntityStatus.NO_DATA, verified=parse_date(payload["date"]) < today)
    statuses = {g.get("status") for g in games}
    if "live" in statuses:
        return EntityState(EntityStatus.LIVE)
    if statuses != {"final"}:
        return EntityState(EntityStatus.SCHEDULED)
    last_start = max(filter(None, (_parse_time(g.get("startTime")) for g in games)), default=None)
    return EntityState(EntityStatus.FINAL, completed_at=last_start)


def _reference(_value: Any) -> EntityState:
    return EntityState(EntityStatus.REFERENCE)


class SportsDataService:
    """
    Entry point for every read the API serves.

    All reads go through the orchestrator; the service only decides how an
    entity is fetched and described.
    """

    def __init__(
        self,
        orchestrator: FreshnessOrchestrator,
        provider: SportsDataProvider,
        index: ScheduleIndex,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._orchestrator = orchestrator
        self._provider = provider
        self._index = index
        self._clock = clock

    @property
    def orchestrator(self) -> FreshnessOrchestrator:
        return self._orchestrator

    @property
    def provider(self) -> SportsDataProvider:
        return self._provider

    @property
    def index(self) -> ScheduleIndex:
        return self._index

    def today(self) -> date:
        return today_eastern(self._clock())

    # ===== SCOREBOARD =====

    def _empty_scoreboard(self, league: str, date_str: str) -> Dict[str, Any]:
        return {
            "league": league,
            "date": date_str,
            "lastUpdated": self._clock().isoformat(),
            "games": [],
        }

    def _scoreboard_shortcut(self, league: str, date_str: str) -> Optional[IndexShortcut]:
        record = self._index.get(league, date_str)
        if record is not None:
            if record.verified_empty:
                return IndexShortcut(
                    value=self._empty_scoreboard(league, date_str),
                    policy_class=PolicyClass.NO_GAMES_VERIFIED,
                    reason="no-games-verified",
                )
            return None
        if not is_date_in_season(league, parse_date(date_str)):
            return IndexShortcut(
                value=self._empty_scoreboard(league, date_str),
                policy_class=PolicyClass.OFF_SEASON,
                reason="off-season",
            )
        return None

    def _index_write_back(self, league: str, date_str: str, payload: Dict[str, Any]) -> None:
        record = build_date_record(league, date_str, payload.get("games") or [], refreshed_at=self._clock())
        self._index.upsert(record)

    def scoreboard_request(
        self,
        league: str,
        date_str: str,
        force_refresh: bool = False,
        use_index: bool = True,
    ) -> EntityRequest:
        """
        Args:
            use_index: Allow the date-index shortcut. Request traffic only
                writes the index for past dates; schedule sync records every
                date itself.
        """
        league = get_league(league).code
        day = parse_date(date_str)

        def fetch():
            games = self._provider.fetch_by_date_and_league(league, date_str)
            return {
                "league": league,
                "date": date_str,
                "lastUpdated": self._clock().isoformat(),
                "games": games,
            }

        def on_fetched(payload):
            if day < self.today():
                self._index_write_back(league, date_str, payload)

        return EntityRequest(
            entity_type=EntityType.SCOREBOARD,
            params={"league": league, "date": date_str},
            fetch=fetch,
            describe=lambda payload: describe_scoreboard(payload, self.today()),
            shortcut=(lambda: self._scoreboard_shortcut(league, date_str)) if use_index else None,
            on_fetched=on_fetched,
            force_refresh=force_refresh,
        )

    def scoreboard(self, league: str, date_str: str, force_refresh: bool = False) -> Resolution:
        return self._orchestrator.get(self.scoreboard_request(league, date_str, force_refresh))

    def scoreboard_dates(self, league: str, force_refresh: bool = False) -> Resolution:
        """
        Dates with games for a league. Falls back to the season calendar
        when the index holds nothing for the league yet.
        """
        league = get_league(league).code

        def fetch():
            dates = self._index.dates_with_games(league)
            if dates:
                return {"dates": dates, "fromIndex": True}
            logger.info(f"No indexed dates for {league}, listing the season calendar")
            today = self.today()
            season = nearest_season(league, today)
            if season is None:
                return {"dates": [], "fromIndex": False}
            end = max(season.window_end, today + timedelta(days=DATE_LIST_LOOKAHEAD_DAYS))
            return {
                "dates": [d.isoformat() for d in date_range(season.window_start, end)],
                "fromIndex": False,
            }

        return self._orchestrator.get(EntityRequest(
            entity_type=EntityType.SCOREBOARD_DATES,
            params={"league": league},
            fetch=fetch,
            describe=_reference,
            force_refresh=force_refresh,
        ))

    # ===== GAMES =====

    def game(self, game_id: str, force_refresh: bool = False) -> Resolution:
        parse_prefixed_id(game_id, "game")
        return self._orchestrator.get(EntityRequest(
            entity_type=EntityType.GAME,
            params={"game_id": game_id},
            fetch=lambda: self._provider.fetch_by_id(game_id),
            describe=describe_game,
            validate=require_complete_game,
            force_refresh=force_refresh,
        ))

    def box_score(self, game_id: str, force_refresh: bool = False) -> Resolution:
        parse_prefixed_id(game_id, "game")
        return self._orchestrator.get(EntityRequest(
            entity_type=EntityType.BOXSCORE,
            params={"game_id": game_id},
            fetch=lambda: self._provider.fetch_box_score(game_id),
            describe=describe_box_score,
            validate=require_complete_box_score,
            force_refresh=force_refresh,
        ))

    # ===== REFERENCE DATA =====

    def default_season(self, league: str) -> str:
        season = nearest_season(league, self.today())
        if season is None:
            return str(self.today().year)
        return season.upstream_year

    def standings(self, league: str, season: Optional[str] = None, force_refresh: bool = False) -> Resolution:
        league = get_league(league).code
        season = season or self.default_season(league)
        return self._orchestrator.get(EntityRequest(
            entity_type=EntityType.STANDINGS,
            params={"league": league, "season": season},
            fetch=lambda: self._provider.fetch_standings(league, season),
            describe=_reference,
            force_refresh=force_refresh,
        ))

    def roster(self, team_id: str, force_refresh: bool = False) -> Resolution:
        parse_prefixed_id(team_id, "team")
        return self._orchestrator.get(EntityRequest(
            entity_type=EntityType.ROSTER,
            params={"team_id": team_id},
            fetch=lambda: self._provider.fetch_roster(team_id),
            describe=_reference,
            force_refresh=force_refresh,
        ))

    def player_stats(self, player_id: str, season: Optional[str] = None, force_refresh: bool = False) -> Resolution:
        lg, _ = parse_prefixed_id(player_id, "player")
        season = season or self.default_season(lg.code)
        return self._orchestrator.get(EntityRequest(
            entity_type=EntityType.PLAYER,
            params={"player_id": player_id, "season": season},
            fetch=lambda: self._provider.fetch_player_stats(player_id, season),
            describe=_reference,
            force_refresh=force_refresh,
        ))

    def invalidate(self, entity_type: EntityType, params: Dict[str, Any]) -> Dict[str, bool]:
        return self._orchestrator.invalidate(entity_type, params)
