"""Application configuration using pydantic-settings."""

from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database (read-only holdings store)
    DATABASE_URL: str = "sqlite:///./leaderboard.db"

    # Cache backend: "memory" (process-local) or "redis" (distributed)
    CACHE_BACKEND: str = "memory"
    REDIS_URL: str = ""
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0
    REDIS_RETRY_AFTER_SECONDS: float = 30.0
    LOCAL_CACHE_MAX_ENTRIES: int = 10000

    # Cache TTLs
    LIVE_QUOTE_TTL_SECONDS: int = 300
    LEADERBOARD_TTL_SECONDS: int = 300
    SNAPSHOT_TTL_DAYS: int = 90

    # CoinGecko (optional demo key for higher rate limits)
    COINGECKO_API_KEY: str = ""
    COINGECKO_BATCH_SIZE: int = 100

    # Yahoo Finance has no reliable batch quote endpoint; one ticker per call
    YAHOO_BATCH_SIZE: int = 1

    # Upstream fetch limits, shared by every caller in the process
    UPSTREAM_CONCURRENCY: int = 8
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0
    HISTORY_WINDOW_DAYS: int = 7

    # Symbols whose provider history is known to be unreliable
    UNUSABLE_EQUITY_SYMBOLS: Annotated[list[str], NoDecode] = ["TEM"]
    UNUSABLE_CRYPTO_SYMBOLS: Annotated[list[str], NoDecode] = []

    @field_validator("CACHE_BACKEND", mode="before")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        """Normalize CACHE_BACKEND and reject unknown backends."""
        v = str(v).strip().lower()
        if v not in {"memory", "redis"}:
            raise ValueError(f"CACHE_BACKEND must be 'memory' or 'redis', got {v!r}")
        return v

    @field_validator("UNUSABLE_EQUITY_SYMBOLS", "UNUSABLE_CRYPTO_SYMBOLS", mode="before")
    @classmethod
    def split_symbol_list(cls, v):
        """Accept a comma-separated string as well as a list.

        ``UNUSABLE_EQUITY_SYMBOLS=TEM,RDDT`` in the environment becomes
        ``["TEM", "RDDT"]``.
        """
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("LEADERBOARD_TTL_SECONDS")
    @classmethod
    def validate_leaderboard_ttl(cls, v: int) -> int:
        """Leaderboard snapshots live between 5 and 15 minutes."""
        if not 300 <= v <= 900:
            raise ValueError(f"LEADERBOARD_TTL_SECONDS must be within 300..900, got {v}")
        return v

    @field_validator("UPSTREAM_CONCURRENCY")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if not 1 <= v <= 32:
            raise ValueError(f"UPSTREAM_CONCURRENCY must be within 1..32, got {v}")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
