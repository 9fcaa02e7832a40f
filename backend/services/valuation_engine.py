"""Builds the valuation engine once at startup and hands it to callers."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from cache import create_cache
from cache.keys import ONE_DAY_SECONDS
from cache.protocol import Cache
from config import Settings
from integrations.coingecko_client import CoinGeckoClient
from integrations.market_data_protocol import InstrumentKind
from integrations.symbol_policy import UnusableSymbols
from integrations.yahoo_finance_client import YahooFinanceClient
from services.batch_fetch_service import BatchFetchCoordinator
from services.historical_price_service import HistoricalPriceService
from services.holdings_service import HoldingsProvider
from services.leaderboard_service import LeaderboardService
from services.market_data_service import MarketDataService
from services.portfolio_valuation_service import PortfolioValuationService
from services.snapshot_service import SnapshotService
from utils.dates import utc_today

logger = logging.getLogger(__name__)


@dataclass
class ValuationEngine:
    """Every long-lived engine component, constructed once per process."""

    cache: Cache
    coordinator: BatchFetchCoordinator
    market_data: MarketDataService
    historical: HistoricalPriceService
    valuation: PortfolioValuationService
    snapshots: SnapshotService
    leaderboard: LeaderboardService
    holdings_provider: HoldingsProvider

    def close(self) -> None:
        """Stop worker pools and release provider and cache connections."""
        self.leaderboard.shutdown(wait=True)
        self.coordinator.shutdown(wait=True)
        for kind in InstrumentKind:
            close = getattr(self.coordinator.provider_for(kind), "close", None)
            if close is not None:
                close()
        close_cache = getattr(self.cache, "close", None)
        if close_cache is not None:
            close_cache()
        logger.info("Valuation engine stopped")


def create_valuation_engine(
    settings: Settings,
    holdings_provider: HoldingsProvider,
    cache: Optional[Cache] = None,
    equity_provider=None,
    crypto_provider=None,
    today: Callable[[], date] = utc_today,
) -> ValuationEngine:
    """Wire the engine from settings.

    ``cache``, the two providers and the ``today`` clock may be passed in to
    replace the configured ones (tests use in-memory fakes).
    """
    cache = cache if cache is not None else create_cache(settings)
    unusable = UnusableSymbols.from_lists(
        settings.UNUSABLE_EQUITY_SYMBOLS, settings.UNUSABLE_CRYPTO_SYMBOLS
    )
    if equity_provider is None:
        equity_provider = YahooFinanceClient(
            unusable_symbols=unusable, max_batch_size=settings.YAHOO_BATCH_SIZE
        )
    if crypto_provider is None:
        crypto_provider = CoinGeckoClient(
            api_key=settings.COINGECKO_API_KEY or None,
            unusable_symbols=unusable,
            max_batch_size=settings.COINGECKO_BATCH_SIZE,
        )

    coordinator = BatchFetchCoordinator(
        providers={
            InstrumentKind.EQUITY: equity_provider,
            InstrumentKind.CRYPTO: crypto_provider,
        },
        cache=cache,
        max_concurrency=settings.UPSTREAM_CONCURRENCY,
        live_quote_ttl=settings.LIVE_QUOTE_TTL_SECONDS,
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        today=today,
    )
    market_data = MarketDataService(coordinator)
    historical = HistoricalPriceService(
        market_data,
        coordinator,
        cache,
        window_days=settings.HISTORY_WINDOW_DAYS,
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        today=today,
    )
    valuation = PortfolioValuationService(market_data, historical, holdings_provider, today=today)
    snapshots = SnapshotService(
        cache, ttl_seconds=settings.SNAPSHOT_TTL_DAYS * ONE_DAY_SECONDS, today=today
    )
    leaderboard = LeaderboardService(
        valuation,
        holdings_provider,
        cache,
        max_workers=coordinator.max_concurrency,
        ttl_seconds=settings.LEADERBOARD_TTL_SECONDS,
        snapshots=snapshots,
    )
    logger.info(
        "Valuation engine started (cache=%s, upstream concurrency=%d)",
        settings.CACHE_BACKEND, settings.UPSTREAM_CONCURRENCY,
    )
    return ValuationEngine(
        cache=cache,
        coordinator=coordinator,
        market_data=market_data,
        historical=historical,
        valuation=valuation,
        snapshots=snapshots,
        leaderboard=leaderboard,
        holdings_provider=holdings_provider,
    )
