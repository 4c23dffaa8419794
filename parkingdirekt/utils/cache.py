"""Thread-safe in-process TTL cache.

Entries live only in the current process. Other instances keep serving their
own copies until the TTL runs out, so the TTL is the staleness bound.
"""
import threading
import time
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")

_MISSING = object()


class TTLCache(Generic[V]):
    """Key/value cache where every entry expires a fixed time after it was set."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        """
        Initialize cache.

        Args:
            ttl_seconds: Lifetime of each entry
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[V, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[V]:
        """Get a live value, or None when missing or expired."""
        value = self.lookup(key)
        return None if value is _MISSING else value  # type: ignore[return-value]

    def lookup(self, key: Hashable) -> Any:
        """Like get(), but returns a sentinel on miss so falsy values can be cached."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISSING
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return _MISSING
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, *prefix: Hashable) -> int:
        """
        Drop every tuple key that starts with the given elements.

        Returns:
            Number of entries removed
        """
        size = len(prefix)
        with self._lock:
            doomed = [
                key for key in self._entries
                if isinstance(key, tuple) and key[:size] == prefix
            ]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def is_miss(value: Any) -> bool:
        return value is _MISSING
