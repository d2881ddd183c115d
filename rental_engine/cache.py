"""
Small in-memory TTL cache for read-mostly lookups.

Used by the rate configuration service so that protection tiers and driver fee
settings are fetched at most once per staleness window. Any staleness is
corrected by the server-side price re-validation at booking time.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    In-memory key/value cache with time-to-live expiration.

    Example:
        >>> cache = TTLCache(ttl_seconds=30)
        >>> cache.get_or_load("rates:1", lambda: fetch_rates(1))  # loads
        >>> cache.get_or_load("rates:1", lambda: fetch_rates(1))  # cached
    """

    def __init__(self, ttl_seconds: float = 30, clock: Optional[Callable[[], float]] = None):
        self._cache: Dict[str, Tuple[float, Any]] = {}
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock:
            if key in self._cache:
                timestamp, value = self._cache[key]
                if now - timestamp < self._ttl:
                    return value

        # Load outside the lock; a concurrent duplicate load is harmless.
        result = loader()

        with self._lock:
            self._cache[key] = (self._clock(), result)
        return result

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            timestamp, value = entry
            if now - timestamp >= self._ttl:
                del self._cache[key]
                return None
            return value

    def put(self, key: str, value: Any):
        now = self._clock()
        with self._lock:
            # Drop expired entries so write-only keys do not accumulate
            expired = [k for k, (timestamp, _) in self._cache.items() if now - timestamp >= self._ttl]
            for k in expired:
                del self._cache[k]
            self._cache[key] = (now, value)

    def invalidate(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

    def __len__(self) -> int:
        return len(self._cache)
