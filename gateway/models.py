"""
Database models for the gateway
SQLAlchemy ORM models for durable cache records and the scoreboard-date index
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DurableRecord(Base):
    """
    Durable record - one permanent cache entry per canonical key
    Written once; a correction is an explicit delete followed by a new insert
    """
    __tablename__ = "durable_records"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # JSON
    policy_class = Column(String, nullable=False)
    cached_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<DurableRecord(key='{self.key}', policy_class='{self.policy_class}')>"


class ScoreboardDate(Base):
    """
    Scoreboard-date record - aggregate of one league's games on one calendar date
    game_count == 0 means the date was checked and has no games
    """
    __tablename__ = "scoreboard_dates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league = Column(String, nullable=False, index=True)
    scoreboard_date = Column(String, nullable=False, index=True)  # YYYY-MM-DD
    season_id = Column(String, nullable=True)
    game_count = Column(Integer, nullable=False, default=0)
    first_game_time_utc = Column(String, nullable=True)
    last_game_time_utc = Column(String, nullable=True)
    has_live_games = Column(Boolean, nullable=False, default=False)
    all_games_final = Column(Boolean, nullable=False, default=False)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Constraints - one record per league per date
    __table_args__ = (
        UniqueConstraint("league", "scoreboard_date", name="uix_league_date"),
    )

    def __repr__(self):
        return f"<ScoreboardDate(league='{self.league}', date='{self.scoreboard_date}', games={self.game_count})>"
