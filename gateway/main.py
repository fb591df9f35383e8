"""
Scoreboard Gateway - Main FastAPI Application
Scores, box scores and reference data served through the freshness layer
"""
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import settings
from gateway.cache.keys import KEY_FIELDS, EntityType, build_key
from gateway.container import Container, build_container, configure_logging
from gateway.errors import BadRequest, GatewayError, UpstreamRateLimited
from gateway.leagues import get_league, parse_prefixed_id
from gateway.schedule.seasons import parse_date

# Version tracking
APP_VERSION = "v0.3.0"
APP_NAME = "Scoreboard Gateway"

# Requests may reach this many days either side of today
MAX_DATE_OFFSET_DAYS = 365

logger = logging.getLogger("gateway.api")

# Upstream provider names never reach clients
_HIDDEN_PROVIDER = re.compile(r"\s*\bfrom\s+espn\b|\bespn\b", re.IGNORECASE)


def sanitize_message(message: str) -> str:
    def replace(match):
        return "" if match.group(0).lower().strip().startswith("from") else "data provider"
    return _HIDDEN_PROVIDER.sub(replace, message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "container", None) is None:
        configure_logging(settings.log_level)
        app.state.container = build_container(settings)
    app.state.container.start()
    yield
    app.state.container.shutdown()


def get_container(request: Request) -> Container:
    return request.app.state.container


# ===== VALIDATION =====

def validate_league(container: Container, league: str) -> str:
    code = get_league(league).code
    if code not in container.settings.enabled_leagues:
        raise BadRequest(f"League not enabled: {league}", context={"league": league})
    return code


def validate_date(container: Container, value: str) -> str:
    try:
        day = parse_date(value)
    except ValueError:
        raise BadRequest(f"Invalid date '{value}': expected YYYY-MM-DD", context={"date": value})
    today = container.service.today()
    if abs((day - today).days) > MAX_DATE_OFFSET_DAYS:
        raise BadRequest(
            f"Date must be within {MAX_DATE_OFFSET_DAYS} days of today",
            context={"date": value},
        )
    return value


def validate_prefixed_id(container: Container, value: str, kind: str) -> str:
    league, _ = parse_prefixed_id(value, kind)
    validate_league(container, league.code)
    return value


def envelope(resolution, **meta_extra) -> dict:
    meta = resolution.meta.to_dict()
    meta.update(meta_extra)
    return {"data": resolution.value, "meta": meta}


class SyncRequest(BaseModel):
    """Body of POST /admin/sync"""
    league: str
    date: Optional[str] = None
    days_back: int = Field(7, ge=0, le=MAX_DATE_OFFSET_DAYS)
    days_forward: int = Field(30, ge=0, le=MAX_DATE_OFFSET_DAYS)


# ===== APP =====

def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Build the FastAPI app. A prebuilt container (tests) skips the one built
    from settings at startup.
    """
    app = FastAPI(
        title=APP_NAME,
        description="Sports scores and box scores with tiered caching and request coalescing",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.container = container

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message} {exc.context}")
        else:
            logger.info(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
        body = exc.to_dict()
        body["message"] = sanitize_message(body["message"])
        headers = {}
        if isinstance(exc, UpstreamRateLimited) and exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(status_code=exc.status_code, content=body, headers=headers)

    # ===== HEALTH & STATUS =====

    @app.get("/health")
    def health_check(container: Container = Depends(get_container)):
        """Health check: provider status, fast store connectivity, durable store reachability"""
        providers = [container.provider.health_check()]
        cache_connected = container.fast_store.ping()
        durable_ok = container.durable_store.stats().get("records") is not None
        stats = container.orchestrator.get_stats()

        status = "healthy"
        if not cache_connected or not durable_ok or any(p["status"] == "unhealthy" for p in providers):
            status = "unhealthy"
        elif any(p["status"] == "degraded" for p in providers):
            status = "degraded"

        body = {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "providers": providers,
            "cache": {
                "connected": cache_connected,
                "backend": container.fast_store.backend,
                "hitRate": stats["hit_rate_percent"],
            },
            "durableStore": {"connected": durable_ok},
        }
        return JSONResponse(status_code=503 if status == "unhealthy" else 200, content=body)

    @app.get("/version")
    def version_info():
        return {"name": APP_NAME, "version": APP_VERSION}

    @app.get("/cache/stats")
    def cache_stats(container: Container = Depends(get_container)):
        """Cache statistics for monitoring"""
        return {
            "data": {
                **container.orchestrator.get_stats(),
                "schedule_index": container.index.stats(),
            }
        }

    @app.delete("/cache/{entity}")
    def invalidate_cache(entity: str, request: Request, container: Container = Depends(get_container)):
        """
        Remove one entity from both stores, e.g.
        DELETE /cache/boxscore?game_id=nba_401584701
        """
        try:
            entity_type = EntityType(entity)
        except ValueError:
            raise BadRequest(
                f"Unknown entity type: {entity}",
                context={"allowed": [t.value for t in EntityType]},
            )
        params = {name: request.query_params.get(name) for name in KEY_FIELDS[entity_type]}
        try:
            key = build_key(entity_type, params)
        except ValueError as e:
            raise BadRequest(str(e), context={"required": list(KEY_FIELDS[entity_type])})
        result = container.service.invalidate(entity_type, params)
        return {"data": {"key": key, **result}}

    # ===== SCOREBOARD =====

    @app.get("/scoreboard")
    def get_scoreboard(
        league: str = Query(..., description="League code, e.g. nba"),
        date: Optional[str] = Query(None, description="YYYY-MM-DD (defaults to today, US/Eastern)"),
        refresh: bool = Query(False, description="Bypass caches"),
        container: Container = Depends(get_container),
    ):
        """All games for one league on one date"""
        league = validate_league(container, league)
        date = validate_date(container, date) if date else container.service.today().isoformat()
        resolution = container.service.scoreboard(league, date, force_refresh=refresh)
        return envelope(resolution)

    @app.get("/scoreboard/dates")
    def get_scoreboard_dates(
        league: str = Query(..., description="League code"),
        container: Container = Depends(get_container),
    ):
        """Dates with games for a league"""
        league = validate_league(container, league)
        resolution = container.service.scoreboard_dates(league)
        dates = resolution.value["dates"]
        meta = resolution.meta.to_dict()
        meta.update({"fromIndex": resolution.value["fromIndex"], "totalDates": len(dates)})
        return {"data": dates, "meta": meta}

    # ===== GAMES =====

    @app.get("/games/{game_id}")
    def get_game(
        game_id: str,
        refresh: bool = Query(False),
        container: Container = Depends(get_container),
    ):
        validate_prefixed_id(container, game_id, "game")
        resolution = container.service.game(game_id, force_refresh=refresh)
        return envelope(resolution)

    @app.get("/games/{game_id}/boxscore")
    def get_box_score(
        game_id: str,
        refresh: bool = Query(False),
        container: Container = Depends(get_container),
    ):
        """Box score; final games are served from permanent storage once stored"""
        validate_prefixed_id(container, game_id, "game")
        resolution = container.service.box_score(game_id, force_refresh=refresh)
        return envelope(resolution, storageType=resolution.meta.storage_type)

    # ===== REFERENCE DATA =====

    @app.get("/standings")
    def get_standings(
        league: str = Query(..., description="League code"),
        season: Optional[str] = Query(None, description="Season year, e.g. 2026"),
        container: Container = Depends(get_container),
    ):
        league = validate_league(container, league)
        if season is not None and not re.fullmatch(r"\d{4}", season):
            raise BadRequest(f"Invalid season '{season}': expected YYYY", context={"season": season})
        resolution = container.service.standings(league, season)
        return envelope(resolution)

    @app.get("/teams/{team_id}/roster")
    def get_roster(team_id: str, container: Container = Depends(get_container)):
        validate_prefixed_id(container, team_id, "team")
        resolution = container.service.roster(team_id)
        return envelope(resolution)

    # ===== PLAYERS =====

    @app.get("/players/{player_id}/stats")
    def get_player_stats(
        player_id: str,
        season: Optional[str] = Query(None, description="Season year, e.g. 2026"),
        refresh: bool = Query(False),
        container: Container = Depends(get_container),
    ):
        """Per-season averages and career line for one player"""
        validate_prefixed_id(container, player_id, "player")
        if season is not None and not re.fullmatch(r"\d{4}", season):
            raise BadRequest(f"Invalid season '{season}': expected YYYY", context={"season": season})
        resolution = container.service.player_stats(player_id, season, force_refresh=refresh)
        return envelope(resolution)

    # ===== ADMIN =====

    @app.post("/admin/sync")
    def run_schedule_sync(body: SyncRequest, container: Container = Depends(get_container)):
        """Run schedule ingestion for one date, or a window around today"""
        league = validate_league(container, body.league)
        if body.date:
            date = validate_date(container, body.date)
            result = container.sync.sync_date(league, date)
            return {"data": result.to_dict()}
        summary = container.sync.sync_range(league, body.days_back, body.days_forward)
        return {"data": summary.to_dict()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("gateway.main:app", host="0.0.0.0", port=8000)
