"""External market data integrations.

- Yahoo Finance client: equity quotes and daily history
- CoinGecko client: crypto quotes and daily history
- Market data protocol: the interface both implement
"""

from integrations.market_data_protocol import InstrumentKind, PriceProvider, PriceResult

__all__ = ["InstrumentKind", "PriceProvider", "PriceResult"]
