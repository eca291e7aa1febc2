"""Key/value cache used for permission sets, 2FA rate limits and trusted devices."""

from __future__ import annotations

import fnmatch
import threading
import time
from typing import Protocol

from redis import Redis

from tenant_auth.config import settings
from tenant_auth.logging import get_logger

logger = get_logger(__name__)


def cache_key(*parts: object) -> str:
    """Join key parts with ':' (e.g. user_perms:1:42)"""
    return ":".join(str(part) for part in parts)


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete(self, *keys: str) -> None: ...

    def incr(self, key: str, ttl_seconds: int) -> int: ...

    def delete_pattern(self, pattern: str) -> int: ...


class RedisCache:
    """Thin Redis wrapper; every value is stored as a string with a TTL."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 3.0):
        self.client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def get(self, key: str) -> str | None:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.client.set(key, value, ex=max(1, ttl_seconds))

    def delete(self, *keys: str) -> None:
        if keys:
            self.client.delete(*keys)

    def incr(self, key: str, ttl_seconds: int) -> int:
        # The window starts at the first increment
        pipe = self.client.pipeline()
        pipe.set(key, 0, ex=max(1, ttl_seconds), nx=True)
        pipe.incr(key)
        _, count = pipe.execute()
        return int(count)

    def delete_pattern(self, pattern: str) -> int:
        keys = list(self.client.scan_iter(match=pattern, count=500))
        if keys:
            self.client.delete(*keys)
        return len(keys)


class MemoryCache:
    """In-process cache for tests and single-worker deployments."""

    def __init__(self):
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _alive(self, key: str) -> tuple[str, float] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= time.monotonic():
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._alive(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, time.monotonic() + max(1, ttl_seconds))

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def incr(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            entry = self._alive(key)
            if entry is None:
                count, expires_at = 1, time.monotonic() + max(1, ttl_seconds)
            else:
                count, expires_at = int(entry[0]) + 1, entry[1]
            self._data[key] = (str(count), expires_at)
            return count

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                del self._data[key]
            return len(matched)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


_cache: CacheBackend | None = None


def get_cache() -> CacheBackend:
    """
    FastAPI dependency returning the process-wide cache.

    Redis is used when REDIS_URL is configured, otherwise a MemoryCache.
    """
    global _cache
    if _cache is None:
        if settings.REDIS_URL:
            _cache = RedisCache(settings.REDIS_URL)
            logger.info("cache_backend_selected", backend="redis")
        else:
            _cache = MemoryCache()
            logger.info("cache_backend_selected", backend="memory")
    return _cache
