"""
Small key/value store with per-key expiry, used for in-process throttling state.

Callers depend on the KeyValueStore protocol so the in-memory backend can be swapped
(e.g. for a shared cache) without touching them. Expired keys are swept lazily on
access; there are no timers.
"""
import threading
import time
from typing import Any, Callable, Protocol


class KeyValueStore(Protocol):
    """get / set with a time-to-live / sweep of expired keys."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        ...

    def sweep(self) -> int:
        """Drop expired keys; return how many were removed."""
        ...


class InMemoryTTLStore:
    """Process-local KeyValueStore. Thread-safe."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            self._sweep_locked()
            item = self._data.get(key)
            return item[0] if item else None

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._sweep_locked()
            self._data[key] = (value, self._clock() + ttl_seconds)

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (_v, expires_at) in self._data.items() if expires_at <= now]
        for k in expired:
            del self._data[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
