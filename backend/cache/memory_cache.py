"""Process-local cache backed by cachetools."""

import fnmatch
import logging
import threading
import time
from typing import Callable, NamedTuple, Optional

from cachetools import TLRUCache

logger = logging.getLogger(__name__)


class _Entry(NamedTuple):
    payload: bytes
    ttl_seconds: int


def _expires_at(_key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl_seconds


class MemoryCache:
    """In-process TTL cache.

    Used on its own when no distributed store is configured, and as the
    fallback tier behind :class:`cache.redis_cache.RedisCache`. Each entry
    carries its own TTL; the least recently used entry is evicted once
    ``max_entries`` is reached.
    """

    def __init__(
        self,
        max_entries: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._cache: TLRUCache = TLRUCache(maxsize=max_entries, ttu=_expires_at, timer=timer)
        # cachetools caches are not thread-safe
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._cache.get(key)
        return entry.payload if entry is not None else None

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            self._cache[key] = _Entry(value, ttl_seconds)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def delete_by_pattern(self, pattern: str) -> int:
        with self._lock:
            self._cache.expire()
            matched = [k for k in list(self._cache.keys()) if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                self._cache.pop(key, None)
        if matched:
            logger.debug("Local cache: deleted %d keys matching %s", len(matched), pattern)
        return len(matched)

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)
