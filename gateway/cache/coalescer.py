"""
Request coalescing to prevent duplicate upstream API calls.

When multiple concurrent requests ask for the same data, only one
upstream call is made and all requesters share the result.
"""
import threading
import time
import logging
from typing import Dict, Optional, Callable, Any
from dataclasses import dataclass, field

from gateway.errors import UpstreamUnavailable

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request (the in-flight token for a key)."""
    event: threading.Event = field(default_factory=threading.Event)
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same cache key share one upstream call.

    Pattern:
    - First request for a key initiates the fetch
    - Subsequent requests for the same key wait on the Event
    - When fetch completes, all waiters receive the same result or the
      same exception object
    - The token is dropped as soon as the fetch settles, so a failure is
      never handed to a caller that arrives afterwards

    Usage:
        coalescer = RequestCoalescer()
        result = coalescer.dedupe(
            "scoreboard:nba:2026-01-15",
            lambda: provider.fetch_by_date_and_league("nba", "2026-01-15"),
        )
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a waiter blocks on an in-flight request.
                None (the default) waits for the fetch to settle, so every
                caller gets the initiator's outcome. A finite timeout must
                exceed the producer's own worst-case duration. The producer
                itself is never interrupted.
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._lock = threading.Lock()
        self._timeout = timeout
        self._stats = {"initiated": 0, "coalesced": 0, "failed": 0}

    def dedupe(self, cache_key: str, producer: Callable[[], Any]) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Args:
            cache_key: Unique key for this request
            producer: Function to call if we need to fetch

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            UpstreamUnavailable: If waiting for an in-flight request times out
            Exception: Any error from producer is propagated to every caller
        """
        with self._lock:
            in_flight = self._in_flight.get(cache_key)
            if in_flight is not None:
                # Join existing request
                in_flight.waiter_count += 1
                self._stats["coalesced"] += 1
                logger.debug(
                    f"Coalescing request for {cache_key} "
                    f"(waiters: {in_flight.waiter_count})"
                )
                is_initiator = False
            else:
                # Start new request
                in_flight = InFlightRequest()
                self._in_flight[cache_key] = in_flight
                self._stats["initiated"] += 1
                is_initiator = True
                logger.debug(f"Initiating fetch for {cache_key}")

        if is_initiator:
            try:
                in_flight.result = producer()
            except BaseException as e:
                in_flight.error = e
                with self._lock:
                    self._stats["failed"] += 1
                logger.warning(f"Fetch failed for {cache_key}: {e}")
            finally:
                # Remove the token before waking waiters so that anyone
                # arriving after settlement starts a fresh attempt
                with self._lock:
                    if self._in_flight.get(cache_key) is in_flight:
                        del self._in_flight[cache_key]
                in_flight.event.set()

            if in_flight.error is not None:
                raise in_flight.error
            return in_flight.result

        # We're a waiter - wait for the initiator to complete
        completed = in_flight.event.wait(timeout=self._timeout)

        if not completed:
            logger.error(f"Timeout waiting for coalesced request: {cache_key}")
            raise UpstreamUnavailable(
                f"Request for {cache_key} timed out after {self._timeout}s",
                context={"key": cache_key},
            )

        if in_flight.error is not None:
            raise in_flight.error

        return in_flight.result

    def is_pending(self, cache_key: str) -> bool:
        """Check if a request for the key is currently in flight."""
        with self._lock:
            return cache_key in self._in_flight

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": list(self._in_flight.keys()),
                **self._stats,
            }
