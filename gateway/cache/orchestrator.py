"""
Freshness orchestration: durable store, index shortcut, fast store with
stale-while-revalidate, then a coalesced upstream fetch.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from gateway.errors import IncompletePayload, NotFound, UpstreamRateLimited, UpstreamUnavailable
from .coalescer import RequestCoalescer
from .core import CacheEntry, CacheMeta, CacheSource, FreshnessVerdict, evaluate_freshness, utcnow
from .durable_store import DurableStore
from .fast_store import FastStore
from .keys import EntityType, build_key
from .ttl_policies import EntityState, FreshnessPolicy, PolicyClass, PolicyTable

logger = logging.getLogger("cache.orchestrator")


@dataclass
class IndexShortcut:
    """An answer for a date-scoped query that needs no upstream call."""
    value: Any
    policy_class: PolicyClass
    reason: str


@dataclass
class EntityRequest:
    """
    Everything the orchestrator needs to resolve one entity.

    fetch:     upstream call returning a JSON-serializable value
    describe:  maps a fetched value to its EntityState for classification
    validate:  raises IncompletePayload when a durable candidate lacks
               substructure, ValidationFailure when it is malformed
    shortcut:  date-scoped queries only; returns an IndexShortcut or None
    on_fetched: write-back hook run once per successful upstream fetch
    """
    entity_type: EntityType
    params: Dict[str, Any]
    fetch: Callable[[], Any]
    describe: Callable[[Any], EntityState]
    validate: Optional[Callable[[Any], None]] = None
    shortcut: Optional[Callable[[], Optional[IndexShortcut]]] = None
    on_fetched: Optional[Callable[[Any], None]] = None
    force_refresh: bool = False
    key: str = field(init=False)

    def __post_init__(self):
        self.key = build_key(self.entity_type, self.params)


@dataclass
class Resolution:
    """Value returned to the caller plus how it was obtained."""
    value: Any
    meta: CacheMeta

    @property
    def source(self) -> CacheSource:
        return self.meta.source


@dataclass
class _FetchResult:
    value: Any
    policy: FreshnessPolicy
    fetched_at: datetime


class FreshnessOrchestrator:
    """
    Main cache orchestration with:
    - Durable store for final entities, consulted first
    - Index shortcut for verified-empty and off-season dates
    - Tiered TTL from the policy table, resolved at read time
    - Stale-while-revalidate with detached background refresh
    - Request coalescing for concurrent duplicate requests
    """

    def __init__(
        self,
        fast_store: FastStore,
        durable_store: DurableStore,
        coalescer: RequestCoalescer,
        policies: PolicyTable,
        max_revalidation_workers: int = 4,
        serve_expired_on_error: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            fast_store: Volatile TTL store
            durable_store: Permanent store for final entities
            coalescer: Shared in-flight request registry
            policies: Policy table used for classification and read-time TTLs
            max_revalidation_workers: Thread pool size for background refresh
            serve_expired_on_error: Serve an expired entry when upstream fails
            clock: Time source (injectable for tests)
        """
        self._fast = fast_store
        self._durable = durable_store
        self._coalescer = coalescer
        self._policies = policies
        self._serve_expired_on_error = serve_expired_on_error
        self._clock = clock

        # Background revalidation
        self._revalidation_pool = ThreadPoolExecutor(
            max_workers=max_revalidation_workers,
            thread_name_prefix="cache-revalidate",
        )
        self._revalidating: set = set()
        self._revalidating_lock = threading.Lock()

        # Periodic sweep of old fast store entries
        self._sweep_stop = threading.Event()
        self._sweep_thread: Optional[threading.Thread] = None

        # Stats tracking
        self._stats_lock = threading.Lock()
        self._stats = {
            "hits_durable": 0,
            "hits_index": 0,
            "hits_fresh": 0,
            "hits_stale": 0,
            "hits_fallback": 0,
            "misses": 0,
            "revalidations": 0,
            "revalidation_failures": 0,
            "failures": 0,
            "durable_writes": 0,
            "durable_rejections": 0,
        }

    @property
    def fast_store(self) -> FastStore:
        return self._fast

    @property
    def durable_store(self) -> DurableStore:
        return self._durable

    @property
    def policies(self) -> PolicyTable:
        return self._policies

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def get(self, request: EntityRequest) -> Resolution:
        """
        Resolve an entity from the cheapest source that can answer it.

        Raises:
            NotFound: Upstream (or a recent negative entry) says it doesn't exist
            UpstreamUnavailable, UpstreamRateLimited, ValidationFailure:
                The upstream fetch failed and no usable cached value exists
        """
        key = request.key

        # Force refresh bypasses every store read
        if request.force_refresh:
            logger.info(f"FORCE REFRESH: {key}")
            return self._fetch_sync(request, stale_entry=None)

        # 1. Durable store
        durable_entry = self._durable.get(key)
        if durable_entry is not None:
            logger.debug(f"DURABLE HIT: {key}")
            self._count("hits_durable")
            return self._resolution(durable_entry.value, CacheSource.DURABLE, durable_entry)

        # 2. Index shortcut (date-scoped queries only)
        if request.shortcut is not None:
            shortcut = request.shortcut()
            if shortcut is not None:
                logger.debug(f"INDEX SHORTCUT ({shortcut.reason}): {key}")
                policy = self._policies.resolve(shortcut.policy_class)
                self._fast.set(key, shortcut.value, policy)
                self._count("hits_index")
                return Resolution(
                    value=shortcut.value,
                    meta=CacheMeta(
                        source=CacheSource.INDEX,
                        last_updated=self._clock().isoformat(),
                        policy_class=policy.policy_class.value,
                        ttl_seconds=policy.ttl_seconds,
                        age_seconds=0,
                    ),
                )

        # 3. Fast store
        entry = self._fast.get(key)
        verdict = self._verdict(entry)

        if verdict == FreshnessVerdict.FRESH:
            logger.debug(f"CACHE HIT (fresh): {key} [age={entry.age_seconds(self._clock()):.1f}s]")
            self._raise_if_negative(key, entry)
            self._count("hits_fresh")
            return self._resolution(entry.value, CacheSource.CACHE, entry)

        if verdict == FreshnessVerdict.STALE:
            self._raise_if_negative(key, entry)
            logger.info(
                f"CACHE HIT (stale, revalidating): {key} "
                f"[age={entry.age_seconds(self._clock()):.1f}s]"
            )
            self._trigger_background_refresh(request)
            self._count("hits_stale")
            return self._resolution(entry.value, CacheSource.CACHE_STALE, entry)

        if verdict == FreshnessVerdict.EXPIRED:
            logger.info(f"CACHE EXPIRED: {key} [age={entry.age_seconds(self._clock()):.1f}s]")
        else:
            logger.info(f"CACHE MISS: {key}")

        # 4. Coalesced upstream fetch
        return self._fetch_sync(request, stale_entry=entry)

    def _verdict(self, entry: Optional[CacheEntry]) -> FreshnessVerdict:
        if entry is None:
            return FreshnessVerdict.MISS
        policy = self._policies.resolve_name(entry.policy_class)
        return evaluate_freshness(
            entry, policy.ttl_seconds, policy.staleness_multiplier, self._clock()
        )

    def _raise_if_negative(self, key: str, entry: CacheEntry) -> None:
        if entry.policy_class == PolicyClass.NOT_FOUND.value:
            raise NotFound(f"Entity '{key}' not found", context={"key": key, "cached": True})

    def _fetch_sync(self, request: EntityRequest, stale_entry: Optional[CacheEntry]) -> Resolution:
        self._count("misses")
        try:
            result = self._coalescer.dedupe(request.key, lambda: self._fetch_and_store(request))
        except (UpstreamUnavailable, UpstreamRateLimited) as e:
            self._count("failures")
            if (
                self._serve_expired_on_error
                and stale_entry is not None
                and stale_entry.policy_class != PolicyClass.NOT_FOUND.value
            ):
                logger.warning(f"Upstream failed for {request.key}, serving expired entry: {e}")
                self._count("hits_fallback")
                return self._resolution(stale_entry.value, CacheSource.CACHE_FALLBACK, stale_entry)
            raise
        except Exception:
            self._count("failures")
            raise

        return Resolution(
            value=result.value,
            meta=CacheMeta(
                source=CacheSource.NETWORK,
                last_updated=result.fetched_at.isoformat(),
                policy_class=result.policy.policy_class.value,
                ttl_seconds=result.policy.ttl_seconds,
                age_seconds=0,
            ),
        )

    def _fetch_and_store(self, request: EntityRequest) -> _FetchResult:
        """
        Fetch upstream, classify, and write back. Runs once per in-flight
        episode; every coalesced caller shares the returned result.
        """
        key = request.key
        try:
            value = request.fetch()
        except NotFound:
            # Brief negative cache; other failures are never cached
            self._fast.set(key, None, self._policies.resolve(PolicyClass.NOT_FOUND))
            raise

        fetched_at = self._clock()
        policy = self._policies.classify(request.entity_type, request.describe(value), now=fetched_at)

        if policy.durable:
            policy = self._gate_durable(request, value, policy)

        # Fast store first so concurrent readers get a fast path even for
        # entities about to land in the durable store
        self._fast.set(key, value, policy)

        if policy.durable:
            if self._durable.set(key, value, policy.policy_class.value):
                self._count("durable_writes")

        if request.on_fetched is not None:
            try:
                request.on_fetched(value)
            except Exception as e:
                logger.warning(f"Write-back hook failed for {key}: {e}")

        return _FetchResult(value=value, policy=policy, fetched_at=fetched_at)

    def _gate_durable(self, request: EntityRequest, value: Any, policy: FreshnessPolicy) -> FreshnessPolicy:
        """
        Keep a durable classification only for a payload that passed its
        validator. Malformed payloads raise and are never cached; incomplete
        ones are downgraded to the short-lived incomplete policy.
        """
        if request.validate is None:
            logger.error(f"Durable write rejected for {request.key}: no validator for a durable entity")
            self._count("durable_rejections")
            return self._policies.incomplete()
        try:
            request.validate(value)
        except IncompletePayload as e:
            logger.warning(
                f"Durable write rejected for {request.key}: {e.message} "
                f"(context={e.context})"
            )
            self._count("durable_rejections")
            return self._policies.incomplete()
        return policy

    def _trigger_background_refresh(self, request: EntityRequest) -> None:
        """Trigger background refresh without blocking."""
        key = request.key
        with self._revalidating_lock:
            if key in self._revalidating:
                logger.debug(f"Already revalidating: {key}")
                return
            self._revalidating.add(key)

        def do_revalidate():
            try:
                logger.debug(f"Background revalidation started: {key}")
                # Same coalescing key as foreground fetches: one upstream call per key
                self._coalescer.dedupe(key, lambda: self._fetch_and_store(request))
                self._count("revalidations")
                logger.debug(f"Background revalidation complete: {key}")
            except Exception as e:
                self._count("revalidation_failures")
                logger.warning(f"Background revalidation failed: {key} - {e}")
            finally:
                with self._revalidating_lock:
                    self._revalidating.discard(key)

        try:
            self._revalidation_pool.submit(do_revalidate)
        except RuntimeError as e:
            # Pool already shut down
            with self._revalidating_lock:
                self._revalidating.discard(key)
            logger.warning(f"Background revalidation not scheduled for {key}: {e}")

    def _resolution(self, value: Any, source: CacheSource, entry: CacheEntry) -> Resolution:
        policy = self._policies.resolve_name(entry.policy_class)
        return Resolution(
            value=value,
            meta=CacheMeta(
                source=source,
                last_updated=entry.cached_at.isoformat(),
                policy_class=entry.policy_class,
                ttl_seconds=policy.ttl_seconds,
                age_seconds=entry.age_seconds(self._clock()),
            ),
        )

    def invalidate(self, entity_type: EntityType, params: Dict[str, Any]) -> Dict[str, bool]:
        """
        Remove an entity from both stores.

        This is the only way to replace a durable record.
        """
        key = build_key(entity_type, params)
        result = {
            "fast": self._fast.evict(key),
            "durable": self._durable.invalidate(key),
        }
        logger.info(f"Invalidated {key}: {result}")
        return result

    def sweep(self) -> int:
        """Remove fast store entries past their policy window."""
        return self._fast.sweep(self._policies.window_for)

    def start_sweeper(self, interval_seconds: float) -> None:
        """Run sweep() every interval on a daemon thread."""
        if self._sweep_thread is not None:
            return

        def loop():
            while not self._sweep_stop.wait(interval_seconds):
                try:
                    self.sweep()
                except Exception as e:
                    logger.warning(f"Cache sweep failed: {e}")

        self._sweep_thread = threading.Thread(target=loop, name="cache-sweeper", daemon=True)
        self._sweep_thread.start()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the sweeper and the background refresh pool."""
        self._sweep_stop.set()
        if self._sweep_thread is not None:
            self._sweep_thread.join(timeout=5)
            self._sweep_thread = None
        self._revalidation_pool.shutdown(wait=wait)

    def wait_for_revalidations(self, timeout: float = 5.0) -> bool:
        """Block until no background refresh is running. Used by tests and shutdown."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._revalidating_lock:
                if not self._revalidating:
                    return True
            time.sleep(0.01)
        return False

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        total_hits = (
            stats["hits_durable"] + stats["hits_index"] + stats["hits_fresh"]
            + stats["hits_stale"] + stats["hits_fallback"]
        )
        total_requests = total_hits + stats["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        with self._revalidating_lock:
            revalidating = len(self._revalidating)

        return {
            **stats,
            "hit_rate_percent": round(hit_rate, 1),
            "fast_store": self._fast.stats(),
            "durable_store": self._durable.stats(),
            "coalescer": self._coalescer.get_stats(),
            "revalidating_count": revalidating,
        }
