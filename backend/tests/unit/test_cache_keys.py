"""Tests for cache key grammar, TTL policy and backend selection."""

from datetime import date
from unittest.mock import MagicMock

import redis

from cache import create_cache
from cache.keys import (
    ONE_DAY_SECONDS,
    current_price_key,
    historical_price_key,
    historical_ttl_seconds,
    leaderboard_key,
    portfolio_snapshot_key,
    unix_day,
)
from cache.memory_cache import MemoryCache
from cache.redis_cache import RedisCache
from config import Settings


class TestKeys:
    def test_current_price_key(self):
        assert current_price_key("AAPL") == "price:current:AAPL"

    def test_historical_key_uses_utc_midnight(self):
        assert unix_day(date(2023, 11, 14)) == 1699920000
        assert historical_price_key("@BTC", date(2023, 11, 14)) == "price:hist:@BTC:1699920000"

    def test_leaderboard_key(self):
        assert leaderboard_key("weekly") == "leaderboard:weekly"

    def test_portfolio_snapshot_key(self):
        assert portfolio_snapshot_key(42, date(2024, 5, 1)) == "portfolio:42:2024-05-01"


class TestHistoricalTtl:
    today = date(2024, 5, 15)

    def test_recent_quotes_live_one_day(self):
        assert historical_ttl_seconds(date(2024, 5, 14), self.today) == ONE_DAY_SECONDS

    def test_week_old_quotes_live_a_week(self):
        assert historical_ttl_seconds(date(2024, 5, 8), self.today) == 7 * ONE_DAY_SECONDS

    def test_older_quotes_live_thirty_days(self):
        assert historical_ttl_seconds(date(2024, 1, 2), self.today) == 30 * ONE_DAY_SECONDS

    def test_older_never_shorter(self):
        ages = [historical_ttl_seconds(date(2024, 5, 15 - n), self.today) for n in range(1, 15)]
        assert ages == sorted(ages)


class TestCreateCache:
    def test_memory_backend(self):
        cache = create_cache(Settings(CACHE_BACKEND="memory"))
        assert isinstance(cache, MemoryCache)

    def test_redis_backend_without_url_falls_back_to_memory(self):
        cache = create_cache(Settings(CACHE_BACKEND="redis", REDIS_URL=""))
        assert isinstance(cache, MemoryCache)

    def test_redis_backend(self, monkeypatch):
        monkeypatch.setattr(redis.Redis, "from_url", lambda url, **kwargs: MagicMock())
        cache = create_cache(Settings(CACHE_BACKEND="redis", REDIS_URL="redis://localhost:6379/0"))
        assert isinstance(cache, RedisCache)
