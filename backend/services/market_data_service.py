"""Market data service: routes symbols to the matching price provider."""

import logging
from typing import Optional

from integrations.market_data_protocol import InstrumentKind, PricePoint, PriceProvider
from services.batch_fetch_service import BatchFetchCoordinator
from utils.ticker import classify_symbol, to_instrument

logger = logging.getLogger(__name__)


class MarketDataService:
    """Resolves current prices, routing crypto symbols to the crypto
    provider (e.g., CoinGecko) and everything else to the equity
    provider (e.g., Yahoo Finance).

    The cache is consulted first; misses go through the shared
    :class:`BatchFetchCoordinator`, which writes successful quotes back
    to the cache at the live-quote TTL.
    """

    def __init__(self, coordinator: BatchFetchCoordinator):
        self._coordinator = coordinator

    @staticmethod
    def classify(symbol: str) -> InstrumentKind:
        return classify_symbol(symbol)

    def provider_for(self, symbol: str) -> PriceProvider:
        return self._coordinator.provider_for(self.classify(symbol))

    def resolve_current(
        self, symbol: str, timeout: Optional[float] = None
    ) -> Optional[PricePoint]:
        """Current price for one symbol, or None when no provider has it."""
        return self.resolve_current_many([symbol], timeout=timeout).get(to_instrument(symbol).symbol)

    def resolve_current_many(
        self, symbols: list[str], timeout: Optional[float] = None
    ) -> dict[str, PricePoint]:
        """Current prices for many symbols, batched per provider.

        Args:
            symbols: Symbols in any case; ``@``-prefixed symbols are crypto.
            timeout: Seconds to wait for upstream fetches.

        Returns:
            Dict mapping each normalized symbol to its PricePoint, in request
            order. Unresolvable symbols are absent.
        """
        if not symbols:
            return {}
        instruments = [to_instrument(s) for s in symbols]
        result = self._coordinator.fetch_current_prices(instruments, timeout=timeout)
        missing = [i.symbol for i in instruments if i.symbol not in result]
        if missing:
            logger.info("No current price for %d symbols: %s", len(missing), ", ".join(missing))
        return result

    def last_known_price(self, symbol: str) -> Optional[PricePoint]:
        """Cached current price, without touching any provider."""
        return self._coordinator.read_cached_quote(to_instrument(symbol).symbol)
