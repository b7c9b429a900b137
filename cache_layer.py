from __future__ import annotations

import os
import threading
from typing import Any, Callable

from cachetools import TTLCache


# Stored in place of a negative lookup so "not cached" and "cached as absent" differ.
MISSING = object()


class _InMemoryTTLCache:
    def __init__(self, ttl: int, max_items: int):
        self._ttl = max(1, min(3600, int(ttl)))
        self._max_items = max(16, min(500_000, int(max_items)))
        self._cache = TTLCache(maxsize=self._max_items, ttl=self._ttl)
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def configure(self, ttl: int) -> None:
        with self._lock:
            self._ttl = max(1, min(3600, int(ttl)))
            self._cache = TTLCache(maxsize=self._max_items, ttl=self._ttl)

    def get(self, key: str) -> Any:
        """Cached value, MISSING for a cached negative, or None when not cached."""
        with self._lock:
            if key in self._cache:
                self._hits += 1
                return self._cache[key]
            self._misses += 1
            return None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = MISSING if value is None else value

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return None if cached is MISSING else cached
        # Compute outside the lock; a concurrent miss just computes twice.
        computed = factory()
        self.set(key, computed)
        return computed

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "ttl": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
            }


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        return default


_cache = _InMemoryTTLCache(
    ttl=_env_int("ADMIN_ROLE_CACHE_TTL_SECONDS", 60),
    max_items=_env_int("CACHE_MAX_ITEMS", 10_000),
)


def configure_cache(ttl_seconds: int) -> None:
    _cache.configure(ttl_seconds)


def cache_get_or_set(key: str, factory: Callable[[], Any]) -> Any:
    """Cached value for `key`, computing and caching it on a miss. None results are cached too."""
    return _cache.get_or_set(key, factory)


def cache_invalidate(key: str) -> None:
    _cache.invalidate(key)


def cache_clear() -> None:
    _cache.clear()


def cache_stats() -> dict[str, Any]:
    return _cache.stats()
