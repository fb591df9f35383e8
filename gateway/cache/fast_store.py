"""
Fast store: volatile, low-latency cache of CacheEntry objects.

Two backends:
- MemoryFastStore: per-process, bounded, evicts oldest writes first
- RedisFastStore: shared external cache, JSON envelopes

Neither backend interprets freshness; the orchestrator does that with the
policy table. Both treat their own failures as misses and never raise into
the request path.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import redis

from .core import CacheEntry, utcnow
from .ttl_policies import FreshnessPolicy

logger = logging.getLogger("cache.fast")

# Extra seconds Redis keeps an entry past its policy window
REDIS_EXPIRY_SLACK_SECONDS = 60


class FastStore(ABC):
    """Interface shared by fast store backends."""

    backend = "none"

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, policy: FreshnessPolicy) -> bool:
        """Overwrite the entry for key. Returns False if the write was dropped."""
        ...

    @abstractmethod
    def evict(self, key: str) -> bool:
        ...

    @abstractmethod
    def clear(self) -> int:
        ...

    def sweep(self, window_for: Callable[[str], float]) -> int:
        """Delete entries older than their policy window. Returns count removed."""
        return 0

    def ping(self) -> bool:
        return True

    def stats(self) -> Dict[str, Any]:
        return {"backend": self.backend}


class MemoryFastStore(FastStore):
    """
    In-process fast store.

    Entries are kept in write order; an overwrite moves the key to the end.
    When the entry count exceeds max_entries the oldest writes are evicted.
    """

    backend = "memory"

    def __init__(
        self,
        max_entries: int = 5000,
        max_age_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            max_entries: Entry ceiling before oldest-first eviction
            max_age_seconds: Hard expiry safety net applied on read
            clock: Time source (injectable for tests)
        """
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._max_entries = max_entries
        self._max_age_seconds = max_age_seconds
        self._clock = clock
        self._evictions = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if (
                self._max_age_seconds is not None
                and entry.age_seconds(self._clock()) >= self._max_age_seconds
            ):
                del self._entries[key]
                return None
            return entry

    def set(self, key: str, value: Any, policy: FreshnessPolicy) -> bool:
        try:
            entry = CacheEntry(
                value=value,
                cached_at=self._clock(),
                policy_class=policy.policy_class.value,
            )
            with self._lock:
                self._entries.pop(key, None)
                self._entries[key] = entry
                while len(self._entries) > self._max_entries:
                    evicted_key, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                    logger.debug(f"Evicted oldest entry: {evicted_key}")
            return True
        except Exception as e:
            logger.warning(f"Fast store write failed for {key}: {e}")
            return False

    def evict(self, key: str) -> bool:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
                logger.info(f"Evicted cache entry: {key}")
                return True
            return False

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            logger.info(f"Cleared {count} cache entries")
            return count

    def sweep(self, window_for: Callable[[str], float]) -> int:
        now = self._clock()
        with self._lock:
            to_delete = [
                key for key, entry in self._entries.items()
                if entry.age_seconds(now) >= window_for(entry.policy_class)
            ]
            for key in to_delete:
                del self._entries[key]
        if to_delete:
            logger.info(f"Swept {len(to_delete)} expired entries")
        return len(to_delete)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "backend": self.backend,
                "entries": len(self._entries),
                "max_entries": self._max_entries,
                "evictions": self._evictions,
            }


class RedisFastStore(FastStore):
    """
    Redis-backed fast store.

    Each entry is stored as a JSON envelope (CacheEntry.to_dict) with a Redis
    expiry of the policy window plus slack, so Redis itself is the hard-expiry
    safety net and the background sweep has nothing to do.
    """

    backend = "redis"

    def __init__(self, client, prefix: str = "gw:", clock: Callable[[], datetime] = utcnow):
        """
        Args:
            client: redis.Redis instance (decode_responses=True)
            prefix: Namespace prepended to every key
            clock: Time source (injectable for tests)
        """
        self._client = client
        self._prefix = prefix
        self._clock = clock
        self._errors = 0

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self._client.get(self._k(key))
        except Exception as e:
            self._errors += 1
            logger.error(f"Cache get error for key {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            # Unreadable entry is a miss
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    def set(self, key: str, value: Any, policy: FreshnessPolicy) -> bool:
        try:
            entry = CacheEntry(
                value=value,
                cached_at=self._clock(),
                policy_class=policy.policy_class.value,
            )
            payload = json.dumps(entry.to_dict())
            expiry = int(policy.window_seconds) + REDIS_EXPIRY_SLACK_SECONDS
            self._client.setex(self._k(key), expiry, payload)
            return True
        except Exception as e:
            self._errors += 1
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    def evict(self, key: str) -> bool:
        try:
            return bool(self._client.delete(self._k(key)))
        except Exception as e:
            self._errors += 1
            logger.error(f"Cache delete error for key {key}: {e}")
            return False

    def clear(self) -> int:
        try:
            keys = list(self._client.scan_iter(match=f"{self._prefix}*"))
            if keys:
                self._client.delete(*keys)
            logger.info(f"Cleared {len(keys)} cache keys matching pattern: {self._prefix}*")
            return len(keys)
        except Exception as e:
            self._errors += 1
            logger.error(f"Cache clear error: {e}")
            return 0

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except Exception:
            logger.warning("Redis health check failed")
            return False

    def stats(self) -> Dict[str, Any]:
        return {"backend": self.backend, "errors": self._errors}


def build_fast_store(
    redis_url: Optional[str],
    max_entries: int = 5000,
    max_age_seconds: Optional[float] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastStore:
    """
    Create the fast store for the configured environment.

    No REDIS_URL, or an unreachable Redis, degrades to the memory store.
    """
    if redis_url:
        try:
            client = redis.Redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=2,
            )
            client.ping()
            logger.info("Redis fast store connected")
            return RedisFastStore(client, clock=clock)
        except Exception as e:
            logger.warning(f"Redis not available ({e}), running with in-memory cache")

    return MemoryFastStore(max_entries=max_entries, max_age_seconds=max_age_seconds, clock=clock)
