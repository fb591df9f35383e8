"""
Durable storage gate: only final, complete games and box scores are stored
permanently, and stored records are never overwritten by a re-fetch.
"""
import pytest

from gateway.cache.core import CacheSource
from gateway.cache.keys import EntityType, boxscore_key, build_key, scoreboard_key
from gateway.cache.orchestrator import EntityRequest
from gateway.errors import IncompletePayload, ValidationFailure
from gateway.services import describe_box_score
from tests.factories import (
    make_basketball_box,
    make_football_box,
    make_game,
    make_hockey_box,
)

GAME_ID = "nba_401810001"


def test_final_box_score_is_stored_and_served_from_durable_store(service, provider, container):
    """A complete final box score is fetched once, then served permanently"""
    provider.box_scores[GAME_ID] = make_basketball_box(GAME_ID)

    first = service.box_score(GAME_ID)
    assert first.source == CacheSource.NETWORK
    assert first.meta.storage_type == "api"
    assert container.durable_store.contains(boxscore_key(GAME_ID))

    second = service.box_score(GAME_ID)
    assert second.source == CacheSource.DURABLE
    assert second.meta.storage_type == "permanent"
    assert second.value == first.value
    assert provider.calls["fetch_box_score"] == 1


def test_durable_record_survives_fast_store_loss(service, provider, container):
    """The durable store answers even after the fast store is cleared"""
    provider.box_scores[GAME_ID] = make_basketball_box(GAME_ID)
    service.box_score(GAME_ID)

    container.fast_store.clear()
    resolution = service.box_score(GAME_ID)

    assert resolution.source == CacheSource.DURABLE
    assert provider.calls["fetch_box_score"] == 1


def test_final_box_score_without_starters_is_not_stored(service, provider, container, clock):
    """Upstream flips to final before player data exists; that payload stays short-lived"""
    provider.box_scores[GAME_ID] = make_basketball_box(GAME_ID, starters=0)

    first = service.box_score(GAME_ID)
    assert first.source == CacheSource.NETWORK
    assert first.meta.policy_class == "final_incomplete"
    assert not container.durable_store.contains(boxscore_key(GAME_ID))
    assert container.orchestrator.get_stats()["durable_rejections"] == 1

    # Served from the fast store while its short TTL lasts
    assert service.box_score(GAME_ID).source == CacheSource.CACHE
    assert provider.calls["fetch_box_score"] == 1

    # No stale window: once the TTL passes the next read goes upstream
    provider.box_scores[GAME_ID] = make_basketball_box(GAME_ID)
    clock.advance(61)
    repaired = service.box_score(GAME_ID)

    assert repaired.source == CacheSource.NETWORK
    assert provider.calls["fetch_box_score"] == 2
    assert container.durable_store.contains(boxscore_key(GAME_ID))
    assert service.box_score(GAME_ID).source == CacheSource.DURABLE


def test_live_box_score_is_not_stored(service, provider, container):
    provider.box_scores[GAME_ID] = make_basketball_box(GAME_ID, status="live")

    resolution = service.box_score(GAME_ID)

    assert resolution.meta.policy_class == "live_detail"
    assert not container.durable_store.contains(boxscore_key(GAME_ID))
    assert container.orchestrator.get_stats()["durable_rejections"] == 0


def test_football_box_score_without_rows_is_not_stored(service, provider, container):
    game_id = "nfl_401772001"
    provider.box_scores[game_id] = make_football_box(game_id, with_rows=False)

    resolution = service.box_score(game_id)

    assert resolution.meta.policy_class == "final_incomplete"
    assert not container.durable_store.contains(boxscore_key(game_id))


def test_hockey_box_score_needs_goalies(service, provider, container):
    incomplete_id, complete_id = "nhl_401802001", "nhl_401802002"
    provider.box_scores[incomplete_id] = make_hockey_box(incomplete_id, with_goalies=False)
    provider.box_scores[complete_id] = make_hockey_box(complete_id)

    service.box_score(incomplete_id)
    service.box_score(complete_id)

    assert not container.durable_store.contains(boxscore_key(incomplete_id))
    assert container.durable_store.contains(boxscore_key(complete_id))


def test_final_game_with_scores_is_stored(service, provider, container):
    provider.games[GAME_ID] = make_game(GAME_ID)

    service.game(GAME_ID)

    assert container.durable_store.contains(build_key(EntityType.GAME, {"game_id": GAME_ID}))
    assert service.game(GAME_ID).source == CacheSource.DURABLE


def test_final_game_missing_score_is_not_stored(service, provider, container):
    provider.games[GAME_ID] = make_game(GAME_ID, home_score=None)

    resolution = service.game(GAME_ID)

    assert resolution.meta.policy_class == "final_incomplete"
    assert not container.durable_store.contains(build_key(EntityType.GAME, {"game_id": GAME_ID}))


def test_final_scoreboard_is_never_stored(service, provider, container):
    """Scoreboards are date aggregates and stay in the fast store"""
    provider.scoreboards[("nba", "2026-01-15")] = [make_game(GAME_ID)]

    resolution = service.scoreboard("nba", "2026-01-15")

    assert resolution.meta.policy_class == "final_week"
    assert not container.durable_store.contains(scoreboard_key("nba", "2026-01-15"))


def test_forced_refetch_does_not_overwrite_durable_record(service, provider, container):
    """Stat corrections after storage need an explicit invalidation"""
    provider.box_scores[GAME_ID] = make_basketball_box(GAME_ID)
    original = service.box_score(GAME_ID).value

    corrected = make_basketball_box(GAME_ID)
    corrected["game"]["homeTeam"]["score"] = 115
    provider.box_scores[GAME_ID] = corrected

    refreshed = service.box_score(GAME_ID, force_refresh=True)
    assert refreshed.source == CacheSource.NETWORK
    assert refreshed.value["game"]["homeTeam"]["score"] == 115

    stored = service.box_score(GAME_ID)
    assert stored.source == CacheSource.DURABLE
    assert stored.value == original
    assert container.orchestrator.get_stats()["durable_writes"] == 1


def test_invalidation_allows_durable_rewrite(service, provider, container):
    provider.box_scores[GAME_ID] = make_basketball_box(GAME_ID)
    service.box_score(GAME_ID)

    corrected = make_basketball_box(GAME_ID)
    corrected["game"]["homeTeam"]["score"] = 115
    provider.box_scores[GAME_ID] = corrected

    result = service.invalidate(EntityType.BOXSCORE, {"game_id": GAME_ID})
    assert result == {"fast": True, "durable": True}

    assert service.box_score(GAME_ID).source == CacheSource.NETWORK
    stored = service.box_score(GAME_ID)
    assert stored.source == CacheSource.DURABLE
    assert stored.value["game"]["homeTeam"]["score"] == 115


def test_durable_entity_without_validator_is_never_stored(container):
    """A final box score request that carries no validator is treated as incomplete"""
    payload = make_basketball_box(GAME_ID, starters=0)
    request = EntityRequest(
        entity_type=EntityType.BOXSCORE,
        params={"game_id": GAME_ID},
        fetch=lambda: payload,
        describe=describe_box_score,
    )

    resolution = container.orchestrator.get(request)

    assert resolution.meta.policy_class == "final_incomplete"
    assert not container.durable_store.contains(boxscore_key(GAME_ID))
    assert container.orchestrator.get_stats()["durable_rejections"] == 1


def test_malformed_final_box_score_is_rejected_and_not_cached(service, provider, container):
    """A schema failure is an error, not an incomplete payload to cache briefly"""
    payload = make_basketball_box(GAME_ID)
    payload["boxScore"]["homeTeam"]["sport"] = "cricket"
    provider.box_scores[GAME_ID] = payload

    with pytest.raises(ValidationFailure) as exc_info:
        service.box_score(GAME_ID)

    assert not isinstance(exc_info.value, IncompletePayload)
    assert container.fast_store.get(boxscore_key(GAME_ID)) is None
    assert not container.durable_store.contains(boxscore_key(GAME_ID))

    with pytest.raises(ValidationFailure):
        service.box_score(GAME_ID)
    assert provider.calls["fetch_box_score"] == 2
