"""Tests for Settings validation."""

import pytest
from pydantic import ValidationError

from config import Settings


class TestDefaults:
    def test_engine_defaults(self, monkeypatch):
        for name in ("CACHE_BACKEND", "UPSTREAM_CONCURRENCY", "UNUSABLE_EQUITY_SYMBOLS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.CACHE_BACKEND == "memory"
        assert settings.UPSTREAM_CONCURRENCY == 8
        assert settings.COINGECKO_BATCH_SIZE == 100
        assert settings.YAHOO_BATCH_SIZE == 1
        assert settings.UNUSABLE_EQUITY_SYMBOLS == ["TEM"]


class TestCacheBackend:
    def test_normalized(self):
        assert Settings(CACHE_BACKEND=" Redis ").CACHE_BACKEND == "redis"

    def test_unknown_rejected(self):
        with pytest.raises(ValidationError, match="CACHE_BACKEND"):
            Settings(CACHE_BACKEND="memcached")


class TestSymbolLists:
    def test_comma_separated_env(self, monkeypatch):
        monkeypatch.setenv("UNUSABLE_EQUITY_SYMBOLS", "TEM, RDDT,")
        assert Settings().UNUSABLE_EQUITY_SYMBOLS == ["TEM", "RDDT"]

    def test_empty_env(self, monkeypatch):
        monkeypatch.setenv("UNUSABLE_CRYPTO_SYMBOLS", "")
        assert Settings().UNUSABLE_CRYPTO_SYMBOLS == []


class TestRanges:
    @pytest.mark.parametrize("ttl", [299, 901])
    def test_leaderboard_ttl_bounds(self, ttl):
        with pytest.raises(ValidationError, match="LEADERBOARD_TTL_SECONDS"):
            Settings(LEADERBOARD_TTL_SECONDS=ttl)

    def test_leaderboard_ttl_in_range(self):
        assert Settings(LEADERBOARD_TTL_SECONDS=900).LEADERBOARD_TTL_SECONDS == 900

    @pytest.mark.parametrize("concurrency", [0, 33])
    def test_concurrency_bounds(self, concurrency):
        with pytest.raises(ValidationError, match="UPSTREAM_CONCURRENCY"):
            Settings(UPSTREAM_CONCURRENCY=concurrency)
