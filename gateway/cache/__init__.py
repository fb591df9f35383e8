"""
Freshness and coalescing layer: tiered TTL policies, fast and durable stores,
request coalescing, and stale-while-revalidate orchestration.
"""
from .core import CacheEntry, CacheMeta, CacheSource, FreshnessVerdict, evaluate_freshness
from .keys import EntityType, build_key
from .ttl_policies import (
    TTL_CONFIG,
    EntityState,
    EntityStatus,
    FreshnessPolicy,
    PolicyClass,
    PolicyTable,
)
from .coalescer import RequestCoalescer
from .fast_store import FastStore, MemoryFastStore, RedisFastStore, build_fast_store
from .durable_store import DurableStore
from .orchestrator import EntityRequest, FreshnessOrchestrator, IndexShortcut, Resolution

__all__ = [
    # Core types
    "CacheEntry",
    "CacheMeta",
    "CacheSource",
    "FreshnessVerdict",
    "evaluate_freshness",
    # Keys
    "EntityType",
    "build_key",
    # TTL policies
    "TTL_CONFIG",
    "EntityState",
    "EntityStatus",
    "FreshnessPolicy",
    "PolicyClass",
    "PolicyTable",
    # Coalescing
    "RequestCoalescer",
    # Stores
    "FastStore",
    "MemoryFastStore",
    "RedisFastStore",
    "build_fast_store",
    "DurableStore",
    # Orchestration
    "EntityRequest",
    "FreshnessOrchestrator",
    "IndexShortcut",
    "Resolution",
]
