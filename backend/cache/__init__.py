"""Tiered key/value cache.

The backend is chosen once at startup from configuration:

- ``memory``: process-local :class:`MemoryCache`
- ``redis``: shared :class:`RedisCache` that degrades to a local
  :class:`MemoryCache` while Redis is unreachable
"""

import logging

from cache.memory_cache import MemoryCache
from cache.protocol import Cache
from cache.redis_cache import RedisCache
from config import Settings

logger = logging.getLogger(__name__)


def create_cache(settings: Settings) -> Cache:
    """Build the cache backend named by ``settings.CACHE_BACKEND``."""
    local = MemoryCache(max_entries=settings.LOCAL_CACHE_MAX_ENTRIES)
    if settings.CACHE_BACKEND == "redis":
        if not settings.REDIS_URL:
            logger.warning("CACHE_BACKEND=redis but REDIS_URL is empty; using local cache")
            return local
        logger.info("Using Redis cache with local fallback")
        return RedisCache.from_url(
            settings.REDIS_URL,
            fallback=local,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            retry_after_seconds=settings.REDIS_RETRY_AFTER_SECONDS,
        )
    logger.info("Using local in-process cache")
    return local


__all__ = ["Cache", "MemoryCache", "RedisCache", "create_cache"]
