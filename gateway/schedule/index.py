"""
Scoreboard-date index.

One record per (league, date) summarizing that date's games. A record with
game_count == 0 is a verified negative result; no record means the date was
never checked.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from gateway.models import ScoreboardDate
from .seasons import get_season_for_date, parse_date

logger = logging.getLogger("schedule.index")


@dataclass(frozen=True)
class DateRecord:
    league: str
    scoreboard_date: str
    season_id: Optional[str]
    game_count: int
    first_game_time_utc: Optional[str]
    last_game_time_utc: Optional[str]
    has_live_games: bool
    all_games_final: bool
    last_refreshed_at: datetime

    @property
    def verified_empty(self) -> bool:
        return self.game_count == 0


def _to_record(row: ScoreboardDate) -> DateRecord:
    refreshed = row.last_refreshed_at
    if refreshed is not None and refreshed.tzinfo is None:
        refreshed = refreshed.replace(tzinfo=timezone.utc)
    return DateRecord(
        league=row.league,
        scoreboard_date=row.scoreboard_date,
        season_id=row.season_id,
        game_count=row.game_count,
        first_game_time_utc=row.first_game_time_utc,
        last_game_time_utc=row.last_game_time_utc,
        has_live_games=bool(row.has_live_games),
        all_games_final=bool(row.all_games_final),
        last_refreshed_at=refreshed,
    )


def build_date_record(
    league: str,
    scoreboard_date: str,
    games: Iterable[Dict[str, Any]],
    refreshed_at: Optional[datetime] = None,
) -> DateRecord:
    """
    Summarize a date's game payloads (camelCase, as served) into a record.
    """
    games = list(games)
    start_times = sorted(g["startTime"] for g in games if g.get("startTime"))
    statuses = [g.get("status") for g in games]
    season = get_season_for_date(league, parse_date(scoreboard_date))
    return DateRecord(
        league=league.lower(),
        scoreboard_date=scoreboard_date,
        season_id=season.id if season else None,
        game_count=len(games),
        first_game_time_utc=start_times[0] if start_times else None,
        last_game_time_utc=start_times[-1] if start_times else None,
        has_live_games=any(s == "live" for s in statuses),
        all_games_final=bool(games) and all(s == "final" for s in statuses),
        last_refreshed_at=refreshed_at or datetime.now(timezone.utc),
    )


class ScheduleIndex:
    """SQLAlchemy-backed store of scoreboard-date records."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, league: str, scoreboard_date: str) -> Optional[DateRecord]:
        """Look up one date; read errors count as "never checked"."""
        session = self._session_factory()
        try:
            row = (
                session.query(ScoreboardDate)
                .filter(
                    ScoreboardDate.league == league.lower(),
                    ScoreboardDate.scoreboard_date == scoreboard_date,
                )
                .first()
            )
            return _to_record(row) if row else None
        except SQLAlchemyError as e:
            logger.warning(f"Schedule index read failed for {league}/{scoreboard_date}: {e}")
            return None
        finally:
            session.close()

    def upsert(self, record: DateRecord) -> bool:
        """
        Insert or replace the record for (league, date).

        Returns:
            True if stored; False if the write failed (logged)
        """
        fields = {
            "season_id": record.season_id,
            "game_count": record.game_count,
            "first_game_time_utc": record.first_game_time_utc,
            "last_game_time_utc": record.last_game_time_utc,
            "has_live_games": record.has_live_games,
            "all_games_final": record.all_games_final,
            "last_refreshed_at": record.last_refreshed_at,
        }
        # Two attempts: a concurrent insert of the same date turns the
        # second try into an update
        for _ in range(2):
            session = self._session_factory()
            try:
                row = (
                    session.query(ScoreboardDate)
                    .filter(
                        ScoreboardDate.league == record.league,
                        ScoreboardDate.scoreboard_date == record.scoreboard_date,
                    )
                    .first()
                )
                if row is None:
                    session.add(ScoreboardDate(
                        league=record.league,
                        scoreboard_date=record.scoreboard_date,
                        **fields,
                    ))
                else:
                    for name, value in fields.items():
                        setattr(row, name, value)
                session.commit()
                logger.debug(
                    f"Indexed {record.league}/{record.scoreboard_date}: {record.game_count} games"
                )
                return True
            except IntegrityError:
                session.rollback()
                continue
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Schedule index write failed for {record.league}/{record.scoreboard_date}: {e}")
                return False
            finally:
                session.close()
        logger.error(f"Schedule index write conflicted twice for {record.league}/{record.scoreboard_date}")
        return False

    def dates_with_games(self, league: str) -> List[str]:
        """Sorted YYYY-MM-DD dates with at least one game."""
        session = self._session_factory()
        try:
            rows = (
                session.query(ScoreboardDate.scoreboard_date)
                .filter(ScoreboardDate.league == league.lower(), ScoreboardDate.game_count > 0)
                .order_by(ScoreboardDate.scoreboard_date)
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            logger.warning(f"Schedule index query failed for {league}: {e}")
            return []
        finally:
            session.close()

    def stats(self) -> Dict[str, Any]:
        session = self._session_factory()
        try:
            total = session.query(func.count(ScoreboardDate.id)).scalar() or 0
            with_games = (
                session.query(func.count(ScoreboardDate.id))
                .filter(ScoreboardDate.game_count > 0)
                .scalar()
            ) or 0
            return {"dates": total, "dates_with_games": with_games, "verified_empty": total - with_games}
        except SQLAlchemyError as e:
            logger.warning(f"Schedule index stats failed: {e}")
            return {"dates": None}
        finally:
            session.close()
