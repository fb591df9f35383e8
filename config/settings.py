"""Configuration management using pydantic-settings."""
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Upstream provider
    upstream_base_url: str = "https://site.api.espn.com/apis/site/v2/sports"
    upstream_api_key: Optional[str] = None
    upstream_timeout_seconds: float = 15.0
    upstream_max_retries: int = 3
    upstream_standings_url: str = "https://site.api.espn.com/apis/v2/sports"
    upstream_athlete_url: str = "https://site.web.api.espn.com/apis/common/v3/sports"

    # Fast store (absent REDIS_URL degrades to the in-process store)
    redis_url: Optional[str] = None
    fast_store_max_entries: int = 5000
    fast_store_max_age_seconds: int = 7 * 24 * 60 * 60

    # Durable store and schedule index
    durable_store_url: str = "sqlite:///./data/durable.db"

    # Freshness policy
    # e.g. TTL_OVERRIDES='{"live": 30, "scheduled": 600}'
    ttl_overrides: Dict[str, int] = {}
    staleness_multiplier: float = 2.0
    serve_expired_on_error: bool = True

    # Coalescing and background work
    # Unset: coalesced waiters wait for the fetch to settle. When set it is
    # raised above the upstream retry budget.
    coalesce_timeout_seconds: Optional[float] = None
    revalidation_workers: int = 4
    sweep_interval_seconds: int = 300
    sync_pause_seconds: float = 1.1  # between upstream-bound dates during schedule sync

    # Leagues served by the gateway
    enabled_leagues: List[str] = ["nba", "nfl", "nhl", "ncaam", "ncaaf"]

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
