"""
Cache keys, policy classification and read-time freshness verdicts
"""
from datetime import datetime, timedelta, timezone

import pytest

from gateway.cache.core import CacheEntry, CacheMeta, CacheSource, FreshnessVerdict, evaluate_freshness
from gateway.cache.keys import EntityType, boxscore_key, build_key, scoreboard_key
from gateway.cache.ttl_policies import (
    EntityState,
    EntityStatus,
    PolicyClass,
    PolicyTable,
    final_policy_class,
)

NOW = datetime(2026, 1, 20, 17, 0, tzinfo=timezone.utc)


# ===== KEYS =====

def test_scoreboard_key_format():
    assert scoreboard_key("nba", "2026-01-15") == "scoreboard:nba:2026-01-15"
    assert boxscore_key("nba_401584701") == "boxscore:nba_401584701"


def test_key_is_deterministic_and_ignores_extra_params():
    a = build_key(EntityType.SCOREBOARD, {"league": "NBA", "date": "2026-01-15"})
    b = build_key(EntityType.SCOREBOARD, {"date": "2026-01-15", "league": "nba", "refresh": True})
    assert a == b


def test_distinct_queries_get_distinct_keys():
    keys = {
        build_key(EntityType.SCOREBOARD, {"league": "nba", "date": "2026-01-15"}),
        build_key(EntityType.SCOREBOARD, {"league": "nhl", "date": "2026-01-15"}),
        build_key(EntityType.GAME, {"game_id": "nba_1"}),
        build_key(EntityType.BOXSCORE, {"game_id": "nba_1"}),
    }
    assert len(keys) == 4


def test_separator_in_value_is_escaped():
    """'a:b' + 'c' must not collide with 'a' + 'b:c'"""
    first = build_key(EntityType.STANDINGS, {"league": "nba:2026", "season": "x"})
    second = build_key(EntityType.STANDINGS, {"league": "nba", "season": "2026:x"})
    assert first != second


def test_missing_field_is_rejected():
    with pytest.raises(ValueError):
        build_key(EntityType.SCOREBOARD, {"league": "nba"})


def test_unknown_entity_type_is_rejected():
    with pytest.raises(ValueError):
        build_key("scoreboard", {"league": "nba", "date": "2026-01-15"})


# ===== CLASSIFICATION =====

def test_live_scoreboard_and_live_game_policies():
    table = PolicyTable()
    live = EntityState(EntityStatus.LIVE)
    assert table.classify(EntityType.SCOREBOARD, live).policy_class == PolicyClass.LIVE
    assert table.classify(EntityType.BOXSCORE, live).policy_class == PolicyClass.LIVE_DETAIL
    assert table.classify(EntityType.SCOREBOARD, live).ttl_seconds == 60


def test_scheduled_policy():
    policy = PolicyTable().classify(EntityType.SCOREBOARD, EntityState(EntityStatus.SCHEDULED))
    assert policy.policy_class == PolicyClass.SCHEDULED
    assert policy.ttl_seconds == 300
    assert not policy.durable


@pytest.mark.parametrize("age, expected", [
    (timedelta(hours=2), PolicyClass.FINAL_RECENT),
    (timedelta(days=3), PolicyClass.FINAL_WEEK),
    (timedelta(days=30), PolicyClass.FINAL_SETTLED),
])
def test_final_age_tiers(age, expected):
    assert final_policy_class(NOW - age, NOW) == expected


def test_final_without_completion_time_uses_shortest_tier():
    assert final_policy_class(None, NOW) == PolicyClass.FINAL_RECENT


def test_only_games_and_box_scores_are_durable_candidates():
    table = PolicyTable()
    final = EntityState(EntityStatus.FINAL, completed_at=NOW - timedelta(days=2))
    assert table.classify(EntityType.BOXSCORE, final, now=NOW).durable
    assert table.classify(EntityType.GAME, final, now=NOW).durable
    assert not table.classify(EntityType.SCOREBOARD, final, now=NOW).durable


def test_no_data_verified_and_unverified():
    table = PolicyTable()
    verified = table.classify(EntityType.SCOREBOARD, EntityState(EntityStatus.NO_DATA, verified=True))
    unverified = table.classify(EntityType.SCOREBOARD, EntityState(EntityStatus.NO_DATA))
    assert verified.policy_class == PolicyClass.NO_GAMES_VERIFIED
    assert unverified.policy_class == PolicyClass.NO_GAMES_UNVERIFIED
    assert verified.ttl_seconds > unverified.ttl_seconds


def test_reference_policies():
    table = PolicyTable()
    ref = EntityState(EntityStatus.REFERENCE)
    assert table.classify(EntityType.STANDINGS, ref).policy_class == PolicyClass.STANDINGS
    assert table.classify(EntityType.ROSTER, ref).policy_class == PolicyClass.ROSTER
    assert table.classify(EntityType.SCOREBOARD_DATES, ref).policy_class == PolicyClass.DATE_LIST
    assert table.classify(EntityType.PLAYER, ref).policy_class == PolicyClass.PLAYER_STATS
    assert not table.classify(EntityType.PLAYER, ref).durable
    with pytest.raises(ValueError):
        table.classify(EntityType.BOXSCORE, ref)


def test_negative_and_incomplete_policies_have_no_stale_window():
    table = PolicyTable(staleness_multiplier=3.0)
    assert table.resolve(PolicyClass.NOT_FOUND).window_seconds == 60
    assert table.incomplete().window_seconds == 60
    assert table.resolve(PolicyClass.LIVE).window_seconds == 180


def test_overrides_replace_ttl():
    table = PolicyTable(overrides={"live": 30, "scheduled": 600})
    assert table.resolve(PolicyClass.LIVE).ttl_seconds == 30
    assert table.resolve(PolicyClass.SCHEDULED).ttl_seconds == 600
    assert table.resolve(PolicyClass.STANDINGS).ttl_seconds == 18 * 60 * 60


def test_unknown_override_fails_at_startup():
    with pytest.raises(ValueError):
        PolicyTable(overrides={"not-a-policy": 10})


def test_unknown_stored_policy_name_is_short_lived():
    assert PolicyTable().resolve_name("retired_class").policy_class == PolicyClass.FINAL_INCOMPLETE


# ===== VERDICTS =====

def _entry(age_seconds, policy_class="live"):
    return CacheEntry(value={}, cached_at=NOW - timedelta(seconds=age_seconds), policy_class=policy_class)


def test_verdict_boundaries():
    assert evaluate_freshness(None, 60, 2.0, NOW) == FreshnessVerdict.MISS
    assert evaluate_freshness(_entry(59), 60, 2.0, NOW) == FreshnessVerdict.FRESH
    assert evaluate_freshness(_entry(60), 60, 2.0, NOW) == FreshnessVerdict.STALE
    assert evaluate_freshness(_entry(119), 60, 2.0, NOW) == FreshnessVerdict.STALE
    assert evaluate_freshness(_entry(120), 60, 2.0, NOW) == FreshnessVerdict.EXPIRED


def test_verdict_never_improves_with_age():
    order = [FreshnessVerdict.FRESH, FreshnessVerdict.STALE, FreshnessVerdict.EXPIRED]
    verdicts = [order.index(evaluate_freshness(_entry(age), 60, 2.0, NOW)) for age in range(0, 300, 5)]
    assert verdicts == sorted(verdicts)


def test_override_applies_to_existing_entries():
    """Entries carry only their policy class, so a new TTL table takes effect on the next read"""
    entry = _entry(45)
    default = PolicyTable().resolve_name(entry.policy_class)
    shorter = PolicyTable(overrides={"live": 30}).resolve_name(entry.policy_class)
    assert evaluate_freshness(entry, default.ttl_seconds, default.staleness_multiplier, NOW) == FreshnessVerdict.FRESH
    assert evaluate_freshness(entry, shorter.ttl_seconds, shorter.staleness_multiplier, NOW) == FreshnessVerdict.STALE


def test_entry_round_trips_through_dict():
    entry = _entry(10, "final_week")
    assert CacheEntry.from_dict(entry.to_dict()) == entry


def test_meta_reports_cache_hit_and_storage_type():
    meta = CacheMeta(source=CacheSource.DURABLE, last_updated=NOW.isoformat())
    assert meta.cache_hit
    assert meta.storage_type == "permanent"
    assert meta.to_dict()["cacheHit"] is True

    network = CacheMeta(source=CacheSource.NETWORK, last_updated=NOW.isoformat(), policy_class="live", ttl_seconds=60)
    assert not network.cache_hit
    assert network.storage_type == "api"
    assert network.to_dict()["_debug"]["policyClass"] == "live"

    assert not CacheMeta(source=CacheSource.INDEX, last_updated="").cache_hit
