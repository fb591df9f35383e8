"""
Core cache data structures.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time. Default clock for every component."""
    return datetime.now(timezone.utc)


class FreshnessVerdict(Enum):
    """Read-time classification of a fast store entry. Never stored."""
    FRESH = "fresh"       # Within TTL
    STALE = "stale"       # Past TTL but within the staleness window, revalidating
    EXPIRED = "expired"   # Past the staleness window, must refetch
    MISS = "miss"         # No entry


class CacheSource(Enum):
    """Where the value returned to the caller came from."""
    DURABLE = "durable"
    INDEX = "index"
    CACHE = "cache"
    CACHE_STALE = "cache-stale"
    CACHE_FALLBACK = "cache-fallback"  # Expired entry served because upstream failed
    NETWORK = "network"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached value with the metadata needed to judge its freshness.

    TTLs are deliberately absent: they are looked up from policy_class when
    the entry is read.
    """
    value: Any
    cached_at: datetime
    policy_class: str

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds since the entry was written."""
        return ((now or utcnow()) - self.cached_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "cachedAt": self.cached_at.isoformat(),
            "policyClass": self.policy_class,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        cached_at = datetime.fromisoformat(data["cachedAt"])
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        return cls(
            value=data["value"],
            cached_at=cached_at,
            policy_class=data["policyClass"],
        )


def evaluate_freshness(
    entry: Optional[CacheEntry],
    ttl_seconds: float,
    staleness_multiplier: float,
    now: Optional[datetime] = None,
) -> FreshnessVerdict:
    """
    Compute the freshness verdict for an entry.

    fresh:   age < ttl
    stale:   ttl <= age < ttl * multiplier
    expired: age >= ttl * multiplier (or ttl)
    """
    if entry is None:
        return FreshnessVerdict.MISS

    age = entry.age_seconds(now)
    if age < ttl_seconds:
        return FreshnessVerdict.FRESH
    if age < ttl_seconds * max(staleness_multiplier, 1.0):
        return FreshnessVerdict.STALE
    return FreshnessVerdict.EXPIRED


@dataclass
class CacheMeta:
    """
    Metadata about a cache access, included in API responses.
    """
    source: CacheSource
    last_updated: str  # ISO timestamp of when the value was obtained upstream
    policy_class: Optional[str] = None
    ttl_seconds: Optional[int] = None
    age_seconds: Optional[float] = None

    @property
    def cache_hit(self) -> bool:
        return self.source in (
            CacheSource.DURABLE,
            CacheSource.CACHE,
            CacheSource.CACHE_STALE,
            CacheSource.CACHE_FALLBACK,
        )

    @property
    def storage_type(self) -> str:
        """Box score style label: permanent, cache or api."""
        if self.source == CacheSource.DURABLE:
            return "permanent"
        if self.cache_hit:
            return "cache"
        return "api"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        result = {
            "cacheHit": self.cache_hit,
            "source": self.source.value,
            "lastUpdated": self.last_updated,
        }
        # Include debug info if available
        if self.policy_class:
            result["_debug"] = {
                "policyClass": self.policy_class,
                "ttl": self.ttl_seconds,
                "age": round(self.age_seconds, 1) if self.age_seconds else None,
            }
        return result
