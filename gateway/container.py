"""
Application wiring.

build_container() constructs every long-lived object once at startup. The
FastAPI app keeps the container on app.state; tests build their own with a
fake provider, an in-memory database and a controlled clock.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from config.settings import Settings
from gateway.cache import (
    DurableStore,
    FastStore,
    FreshnessOrchestrator,
    PolicyTable,
    RequestCoalescer,
    build_fast_store,
)
from gateway.cache.core import utcnow
from gateway.db import create_db_engine, init_db
from gateway.providers import ESPNProvider, SportsDataProvider
from gateway.providers.espn import retry_budget_seconds
from gateway.schedule.index import ScheduleIndex
from gateway.schedule.sync import ScheduleSync
from gateway.services import SportsDataService

logger = logging.getLogger("gateway.container")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Headroom over the upstream retry budget for store writes after the fetch
COALESCE_TIMEOUT_MARGIN_SECONDS = 5.0


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger().setLevel(level.upper())


def coalesce_timeout(settings: Settings) -> Optional[float]:
    """
    Waiter timeout for the coalescer. None waits for every fetch to settle;
    a configured value is raised above the upstream retry budget so a
    waiter never gives up on a fetch that can still succeed.
    """
    configured = settings.coalesce_timeout_seconds
    if configured is None:
        return None
    floor = retry_budget_seconds(
        settings.upstream_timeout_seconds, settings.upstream_max_retries
    ) + COALESCE_TIMEOUT_MARGIN_SECONDS
    if configured < floor:
        logger.warning(
            f"COALESCE_TIMEOUT_SECONDS={configured} is below the upstream retry "
            f"budget, using {floor}s"
        )
        return floor
    return configured


@dataclass
class Container:
    settings: Settings
    engine: Engine
    fast_store: FastStore
    durable_store: DurableStore
    coalescer: RequestCoalescer
    policies: PolicyTable
    orchestrator: FreshnessOrchestrator
    provider: SportsDataProvider
    index: ScheduleIndex
    service: SportsDataService
    sync: ScheduleSync

    def start(self) -> None:
        """Start background work (the fast store sweep)."""
        if self.settings.sweep_interval_seconds > 0:
            self.orchestrator.start_sweeper(self.settings.sweep_interval_seconds)

    def shutdown(self) -> None:
        self.orchestrator.shutdown(wait=False)
        self.engine.dispose()
        logger.info("Gateway container shut down")


def build_container(
    settings: Settings,
    provider: Optional[SportsDataProvider] = None,
    fast_store: Optional[FastStore] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Container:
    """
    Construct the gateway's object graph.

    Args:
        settings: Loaded settings
        provider: Upstream provider (defaults to ESPN per settings)
        fast_store: Fast store override (defaults per REDIS_URL)
        clock: Time source shared by every component
    """
    engine = create_db_engine(settings.durable_store_url)
    session_factory = init_db(engine)

    if fast_store is None:
        fast_store = build_fast_store(
            settings.redis_url,
            max_entries=settings.fast_store_max_entries,
            max_age_seconds=settings.fast_store_max_age_seconds,
            clock=clock,
        )
    durable_store = DurableStore(session_factory, clock=clock)
    coalescer = RequestCoalescer(timeout=coalesce_timeout(settings))
    policies = PolicyTable(
        overrides=settings.ttl_overrides,
        staleness_multiplier=settings.staleness_multiplier,
    )
    orchestrator = FreshnessOrchestrator(
        fast_store=fast_store,
        durable_store=durable_store,
        coalescer=coalescer,
        policies=policies,
        max_revalidation_workers=settings.revalidation_workers,
        serve_expired_on_error=settings.serve_expired_on_error,
        clock=clock,
    )

    if provider is None:
        provider = ESPNProvider(
            base_url=settings.upstream_base_url,
            standings_base_url=settings.upstream_standings_url,
            athlete_base_url=settings.upstream_athlete_url,
            timeout=settings.upstream_timeout_seconds,
            max_attempts=settings.upstream_max_retries,
            api_key=settings.upstream_api_key,
        )

    index = ScheduleIndex(session_factory)
    service = SportsDataService(orchestrator, provider, index, clock=clock)
    sync = ScheduleSync(service, pause_seconds=settings.sync_pause_seconds)

    logger.info(
        f"Gateway container built: fast_store={fast_store.backend}, "
        f"durable_store={engine.url}, provider={provider.name}"
    )
    return Container(
        settings=settings,
        engine=engine,
        fast_store=fast_store,
        durable_store=durable_store,
        coalescer=coalescer,
        policies=policies,
        orchestrator=orchestrator,
        provider=provider,
        index=index,
        service=service,
        sync=sync,
    )
