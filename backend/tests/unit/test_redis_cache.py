"""Tests for the Redis-backed cache and its local fallback (mocked redis client)."""

from unittest.mock import MagicMock

import redis

from cache.memory_cache import MemoryCache
from cache.redis_cache import RedisCache


class FakeTimer:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _make_cache(client=None, retry_after: float = 30.0):
    client = client or MagicMock()
    timer = FakeTimer()
    fallback = MemoryCache(timer=timer)
    cache = RedisCache(client, fallback=fallback, retry_after_seconds=retry_after, timer=timer)
    return cache, client, fallback, timer


class TestHealthyRedis:
    def test_get_reads_from_redis(self):
        cache, client, _, _ = _make_cache()
        client.get.return_value = b"180"
        assert cache.get("price:current:AAPL") == b"180"
        client.get.assert_called_once_with("price:current:AAPL")

    def test_set_writes_with_ttl(self):
        cache, client, fallback, _ = _make_cache()
        cache.set("price:current:AAPL", b"180", 300)
        client.set.assert_called_once_with("price:current:AAPL", b"180", ex=300)
        assert fallback.get("price:current:AAPL") is None

    def test_exists(self):
        cache, client, _, _ = _make_cache()
        client.exists.return_value = 1
        assert cache.exists("portfolio:1:2024-05-15") is True
        client.exists.return_value = 0
        assert cache.exists("portfolio:1:2024-05-15") is False

    def test_delete_by_pattern_scans_and_deletes(self):
        cache, client, _, _ = _make_cache()
        client.scan_iter.return_value = iter([b"leaderboard:daily", b"leaderboard:total"])
        client.delete.return_value = 2

        assert cache.delete_by_pattern("leaderboard:*") == 2
        client.scan_iter.assert_called_once_with(match="leaderboard:*", count=500)
        client.delete.assert_called_once_with(b"leaderboard:daily", b"leaderboard:total")

    def test_zero_ttl_is_not_written(self):
        cache, client, _, _ = _make_cache()
        cache.set("k", b"v", 0)
        client.set.assert_not_called()


class TestDegradation:
    def test_get_failure_falls_back_silently(self):
        cache, client, fallback, _ = _make_cache()
        fallback.set("price:current:AAPL", b"179", 300)
        client.get.side_effect = redis.ConnectionError("refused")

        assert cache.get("price:current:AAPL") == b"179"
        assert cache.degraded

    def test_set_failure_writes_to_fallback(self):
        cache, client, fallback, _ = _make_cache()
        client.set.side_effect = redis.TimeoutError("slow")

        cache.set("price:current:AAPL", b"180", 300)

        assert fallback.get("price:current:AAPL") == b"180"

    def test_redis_not_retried_during_cooldown(self):
        cache, client, _, timer = _make_cache(retry_after=30.0)
        client.get.side_effect = redis.ConnectionError("refused")
        cache.get("a")
        assert client.get.call_count == 1

        timer.now += 10
        cache.get("b")
        cache.set("c", b"1", 300)
        assert client.get.call_count == 1
        client.set.assert_not_called()

    def test_recovers_after_cooldown(self):
        cache, client, _, timer = _make_cache(retry_after=30.0)
        client.get.side_effect = redis.ConnectionError("refused")
        cache.get("a")

        timer.now += 31
        client.get.side_effect = None
        client.get.return_value = b"ok"

        assert cache.get("a") == b"ok"
        assert not cache.degraded

    def test_outage_logged_once(self, caplog):
        cache, client, _, timer = _make_cache(retry_after=0.0)
        client.get.side_effect = redis.ConnectionError("refused")
        with caplog.at_level("WARNING", logger="cache.redis_cache"):
            cache.get("a")
            timer.now += 1
            cache.get("b")
        warnings = [r for r in caplog.records if r.levelname == "WARNING"]
        assert len(warnings) == 1

    def test_delete_by_pattern_clears_fallback_when_degraded(self):
        cache, client, fallback, _ = _make_cache()
        client.set.side_effect = redis.ConnectionError("refused")
        cache.set("leaderboard:daily", b"[]", 300)

        assert cache.delete_by_pattern("leaderboard:*") == 1
        client.scan_iter.assert_not_called()
        assert fallback.get("leaderboard:daily") is None


class TestFromUrl:
    def test_builds_client_with_timeouts(self, monkeypatch):
        created = {}

        def fake_from_url(url, **kwargs):
            created["url"] = url
            created.update(kwargs)
            return MagicMock()

        monkeypatch.setattr(redis.Redis, "from_url", fake_from_url)
        cache = RedisCache.from_url("redis://localhost:6379/0", socket_timeout=1.5)

        assert isinstance(cache, RedisCache)
        assert created["url"] == "redis://localhost:6379/0"
        assert created["socket_timeout"] == 1.5
        assert created["socket_connect_timeout"] == 1.5
