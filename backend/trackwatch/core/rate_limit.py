"""Sliding-window rate limiter keyed by a case-insensitive name (e.g. a username)."""
import math
import threading
import time
from typing import Callable, NamedTuple

from trackwatch.core.ttl_store import InMemoryTTLStore, KeyValueStore


class RateLimitDecision(NamedTuple):
    allowed: bool
    retry_after: int  # seconds; 0 when allowed


class SlidingWindowRateLimiter:
    """At most `limit` hits per key within any `window_seconds` span."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._store = store if store is not None else InMemoryTTLStore(clock=clock)
        self._lock = threading.Lock()

    @staticmethod
    def _key(name: str) -> str:
        return f"rl:{(name or '').strip().lower()}"

    def hit(self, name: str) -> RateLimitDecision:
        """Record a hit for name if under the limit; otherwise refuse with the wait time."""
        key = self._key(name)
        with self._lock:
            now = self._clock()
            window_start = now - self.window_seconds
            stamps = [t for t in (self._store.get(key) or []) if t > window_start]
            if len(stamps) >= self.limit:
                retry_after = max(1, math.ceil(stamps[0] + self.window_seconds - now))
                self._store.set(key, stamps, self.window_seconds)
                return RateLimitDecision(False, retry_after)
            stamps.append(now)
            self._store.set(key, stamps, self.window_seconds)
            return RateLimitDecision(True, 0)
