"""
Database connection and setup
SQLAlchemy engine and session factory for the durable store and schedule index
"""
import logging
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gateway.models import Base

logger = logging.getLogger("gateway.db")


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the given SQLAlchemy URL.

    SQLite files get their parent directory created; in-memory SQLite shares
    one connection so every session sees the same tables.
    """
    connect_args = {}
    engine_kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # Needed for SQLite
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
        else:
            db_path = database_url.split("///", 1)[-1]
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        database_url,
        connect_args=connect_args,
        echo=False,  # Set to True to see SQL queries
        **engine_kwargs,
    )


def init_db(engine: Engine) -> sessionmaker:
    """
    Initialize database - create all tables and return a session factory
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {engine.url}")
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
