"""Distributed cache backed by Redis, degrading to a local cache on failure."""

import logging
import threading
import time
from typing import Callable, Optional

import redis

from cache.memory_cache import MemoryCache

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis-backed cache shared across processes.

    Any ``redis.RedisError`` (connection refused, timeout, ...) is logged
    once per outage and the call is served by the local fallback instead,
    so callers never see a cache failure. After a failure Redis is not
    retried until ``retry_after_seconds`` has passed.
    """

    def __init__(
        self,
        client: redis.Redis,
        fallback: Optional[MemoryCache] = None,
        retry_after_seconds: float = 30.0,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._fallback = fallback or MemoryCache()
        self._retry_after = retry_after_seconds
        self._timer = timer
        self._lock = threading.Lock()
        self._unavailable_until: Optional[float] = None

    @classmethod
    def from_url(
        cls,
        url: str,
        fallback: Optional[MemoryCache] = None,
        socket_timeout: float = 2.0,
        retry_after_seconds: float = 30.0,
    ) -> "RedisCache":
        """Create a cache with one pooled connection reused by every caller."""
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, fallback=fallback, retry_after_seconds=retry_after_seconds)

    @property
    def degraded(self) -> bool:
        """True while Redis is considered down and the fallback is serving."""
        with self._lock:
            return self._unavailable_until is not None and self._timer() < self._unavailable_until

    def _mark_failed(self, operation: str, error: Exception) -> None:
        with self._lock:
            first_failure = self._unavailable_until is None
            self._unavailable_until = self._timer() + self._retry_after
        if first_failure:
            logger.warning(
                "Redis unavailable during %s (%s); using local cache for %.0fs",
                operation, error, self._retry_after,
            )
        else:
            logger.debug("Redis still unavailable during %s: %s", operation, error)

    def _mark_recovered(self) -> None:
        with self._lock:
            was_down = self._unavailable_until is not None
            self._unavailable_until = None
        if was_down:
            logger.info("Redis connection restored")

    def get(self, key: str) -> Optional[bytes]:
        if self.degraded:
            return self._fallback.get(key)
        try:
            value = self._client.get(key)
        except redis.RedisError as e:
            self._mark_failed("get", e)
            return self._fallback.get(key)
        self._mark_recovered()
        return value

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        if self.degraded:
            self._fallback.set(key, value, ttl_seconds)
            return
        try:
            self._client.set(key, value, ex=ttl_seconds)
        except redis.RedisError as e:
            self._mark_failed("set", e)
            self._fallback.set(key, value, ttl_seconds)
            return
        self._mark_recovered()

    def exists(self, key: str) -> bool:
        if self.degraded:
            return self._fallback.exists(key)
        try:
            found = self._client.exists(key) == 1
        except redis.RedisError as e:
            self._mark_failed("exists", e)
            return self._fallback.exists(key)
        self._mark_recovered()
        return found

    def delete_by_pattern(self, pattern: str) -> int:
        # Entries written while degraded live in the fallback; clear both tiers
        deleted = self._fallback.delete_by_pattern(pattern)
        if self.degraded:
            return deleted
        try:
            keys = list(self._client.scan_iter(match=pattern, count=500))
            if keys:
                deleted += self._client.delete(*keys)
        except redis.RedisError as e:
            self._mark_failed("delete_by_pattern", e)
            return deleted
        self._mark_recovered()
        if deleted:
            logger.info("Cache: deleted %d keys matching %s", deleted, pattern)
        return deleted

    def close(self) -> None:
        """Release the connection pool."""
        self._client.close()
