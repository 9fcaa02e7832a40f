"""CoinGecko market data provider for cryptocurrency prices."""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from integrations.exceptions import (
    PriceNotFoundError,
    ProviderDataError,
    RateLimitedError,
    TransientProviderError,
    UnusableSymbolError,
)
from integrations.market_data_protocol import InstrumentKind, PriceResult
from integrations.symbol_policy import UnusableSymbols
from utils.ticker import strip_crypto_sigil

logger = logging.getLogger(__name__)

# Hardcoded mapping for the most common crypto symbols.
# Unmapped symbols fall back to the lower-cased ticker as the coin id,
# which CoinGecko may not recognise; that lookup then resolves to NotFound.
_KNOWN_COIN_IDS: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "SUI": "sui",
    "DOGE": "dogecoin",
    "ADA": "cardano",
    "XRP": "ripple",
    "DOT": "polkadot",
    "AVAX": "avalanche-2",
    "MATIC": "matic-network",
    "POL": "matic-network",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "ATOM": "cosmos",
    "LTC": "litecoin",
    "NEAR": "near",
    "APT": "aptos",
    "ARB": "arbitrum",
    "OP": "optimism",
    "FIL": "filecoin",
    "AAVE": "aave",
    "MKR": "maker",
    "SHIB": "shiba-inu",
    "XLM": "stellar",
    "ALGO": "algorand",
    "FTM": "fantom",
    "PEPE": "pepe",
    "RENDER": "render-token",
    "INJ": "injective-protocol",
    "SEI": "sei-network",
    "BNB": "binancecoin",
}

_DISPLAY_NAMES: dict[str, str] = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "SOL": "Solana",
    "DOGE": "Dogecoin",
    "ADA": "Cardano",
    "DOT": "Polkadot",
    "XRP": "XRP",
    "LTC": "Litecoin",
    "AVAX": "Avalanche",
    "LINK": "Chainlink",
    "MATIC": "Polygon",
    "UNI": "Uniswap",
    "SHIB": "Shiba Inu",
    "ATOM": "Cosmos",
    "XLM": "Stellar",
    "ALGO": "Algorand",
    "BNB": "Binance Coin",
}


class SimplePriceEntry(BaseModel):
    """One coin in a /simple/price response."""

    model_config = ConfigDict(extra="ignore")

    usd: Optional[float] = None


_SIMPLE_PRICE_RESPONSE = TypeAdapter(dict[str, SimplePriceEntry])


class CoinMarketData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    current_price: dict[str, float] = {}


class CoinHistoryResponse(BaseModel):
    """A /coins/{id}/history response. ``market_data`` is absent for unknown dates."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    market_data: Optional[CoinMarketData] = None


class MarketChartResponse(BaseModel):
    """A /coins/{id}/market_chart/range response: ``[[timestamp_ms, price], ...]``."""

    model_config = ConfigDict(extra="ignore")

    prices: list[tuple[float, float]] = []


def _to_decimal(value: float) -> Decimal:
    return Decimal(str(round(float(value), 6)))


def crypto_display_name(symbol: str) -> str:
    """Human-readable coin name, falling back to the bare ticker."""
    bare = strip_crypto_sigil(symbol)
    return _DISPLAY_NAMES.get(bare, bare)


class CoinGeckoClient:
    """Price provider using the CoinGecko API for crypto prices."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        unusable_symbols: Optional[UnusableSymbols] = None,
        max_batch_size: int = 100,
    ):
        """Initialize with optional API key.

        Args:
            api_key: CoinGecko demo API key. If provided, uses the
                     x-cg-demo-api-key header for higher rate limits.
                     If None, uses the keyless public API.
            unusable_symbols: Known-bad symbols; lookups for these raise
                     UnusableSymbolError without a network call.
            max_batch_size: Maximum ids per /simple/price call.
        """
        headers: dict[str, str] = {"accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._client = httpx.Client(
            base_url="https://api.coingecko.com/api/v3",
            headers=headers,
            timeout=30.0,
        )
        self._unusable = unusable_symbols or UnusableSymbols()
        self._max_batch_size = max_batch_size

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    @property
    def provider_name(self) -> str:
        return "coingecko"

    @property
    def kind(self) -> InstrumentKind:
        return InstrumentKind.CRYPTO

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    def is_unusable(self, symbol: str) -> bool:
        return self._unusable.contains(InstrumentKind.CRYPTO, symbol)

    def _ensure_usable(self, symbol: str) -> None:
        if self.is_unusable(symbol):
            raise UnusableSymbolError(symbol, self.provider_name)

    def _resolve_coin_id(self, symbol: str) -> str:
        """Resolve a ticker symbol (with or without ``@``) to a CoinGecko coin ID."""
        bare = strip_crypto_sigil(symbol)
        return _KNOWN_COIN_IDS.get(bare, bare.lower())

    def _get(self, path: str, params: dict[str, str]) -> Any:
        """GET a CoinGecko endpoint and classify failures.

        Raises:
            RateLimitedError: HTTP 429.
            PriceNotFoundError: HTTP 404 or other client errors.
            TransientProviderError: network failures and 5xx responses.
            ProviderDataError: body is not JSON.
        """
        try:
            response = self._client.request("GET", path, params=params)
        except httpx.TransportError as e:
            raise TransientProviderError(
                f"CoinGecko: request to {path} failed: {e}", self.provider_name
            ) from e

        status = response.status_code
        if status == 429:
            raise RateLimitedError(f"CoinGecko: rate limited on {path}", self.provider_name)
        if status >= 500:
            raise TransientProviderError(
                f"CoinGecko: HTTP {status} on {path}", self.provider_name, status_code=status
            )
        if status == 404:
            raise PriceNotFoundError(f"CoinGecko: {path} not found", self.provider_name)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PriceNotFoundError(
                f"CoinGecko: HTTP {status} on {path}", self.provider_name
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise ProviderDataError(
                f"CoinGecko: invalid JSON from {path}", self.provider_name
            ) from e

    def current_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """Fetch current USD prices for many coins in one /simple/price call.

        Args:
            symbols: Crypto symbols (e.g., ["@BTC", "@ETH"]). Unusable
                     symbols are skipped.

        Returns:
            Dict mapping each input symbol to its price. Coins CoinGecko
            does not know are omitted.
        """
        usable = [s for s in symbols if not self.is_unusable(s)]
        if not usable:
            return {}
        if len(usable) > self._max_batch_size:
            raise ValueError(
                f"CoinGecko: batch of {len(usable)} exceeds max {self._max_batch_size}"
            )

        ids_by_symbol = {s: self._resolve_coin_id(s) for s in usable}
        coin_ids = list(dict.fromkeys(ids_by_symbol.values()))

        logger.info("CoinGecko: fetching current prices for %d coins", len(coin_ids))
        data = self._get(
            "/simple/price",
            params={"ids": ",".join(coin_ids), "vs_currencies": "usd"},
        )
        try:
            entries = _SIMPLE_PRICE_RESPONSE.validate_python(data)
        except ValidationError as e:
            raise ProviderDataError(
                "CoinGecko: unexpected /simple/price payload", self.provider_name
            ) from e

        result: dict[str, Decimal] = {}
        for symbol, coin_id in ids_by_symbol.items():
            entry = entries.get(coin_id)
            if entry is None or entry.usd is None or entry.usd <= 0:
                logger.debug("CoinGecko: no price for %s (%s)", symbol, coin_id)
                continue
            result[symbol] = _to_decimal(entry.usd)
        return result

    def current_price(self, symbol: str) -> Decimal:
        self._ensure_usable(symbol)
        prices = self.current_prices([symbol])
        if symbol not in prices:
            raise PriceNotFoundError(f"CoinGecko: no price for {symbol}", self.provider_name)
        return prices[symbol]

    def historical_price(self, symbol: str, price_date: date) -> Decimal:
        """Fetch the USD price of a coin on a date via /coins/{id}/history."""
        self._ensure_usable(symbol)
        coin_id = self._resolve_coin_id(symbol)
        data = self._get(
            f"/coins/{coin_id}/history",
            params={"date": price_date.strftime("%d-%m-%Y"), "localization": "false"},
        )
        try:
            parsed = CoinHistoryResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderDataError(
                f"CoinGecko: unexpected history payload for {coin_id}", self.provider_name
            ) from e

        usd = parsed.market_data.current_price.get("usd") if parsed.market_data else None
        if usd is None or usd <= 0:
            raise PriceNotFoundError(
                f"CoinGecko: no price for {symbol} on {price_date}", self.provider_name
            )
        return _to_decimal(usd)

    def get_price_history(
        self, symbol: str, start_date: date, end_date: date
    ) -> list[PriceResult]:
        """Fetch daily crypto prices from CoinGecko.

        Args:
            symbol: Crypto symbol (e.g., "@BTC").
            start_date: Start date (inclusive).
            end_date: End date (inclusive).

        Returns:
            Daily PriceResults in date order. The last data point of each
            UTC day is used as that day's close.
        """
        self._ensure_usable(symbol)
        coin_id = self._resolve_coin_id(symbol)

        logger.info(
            "CoinGecko: fetching price history for %s (%s to %s)",
            symbol, start_date, end_date,
        )

        # Convert dates to unix timestamps
        from_ts = int(datetime.combine(start_date, datetime.min.time(), tzinfo=timezone.utc).timestamp())
        to_ts = int(datetime.combine(end_date, datetime.max.time(), tzinfo=timezone.utc).timestamp())

        data = self._get(
            f"/coins/{coin_id}/market_chart/range",
            params={"vs_currency": "usd", "from": str(from_ts), "to": str(to_ts)},
        )
        try:
            chart = MarketChartResponse.model_validate(data)
        except ValidationError as e:
            raise ProviderDataError(
                f"CoinGecko: unexpected market chart payload for {coin_id}", self.provider_name
            ) from e

        if not chart.prices:
            logger.warning("CoinGecko: no price data for %s (%s)", symbol, coin_id)
            return []

        # For ranges < 90 days, data is hourly; pick last price per day
        daily_prices: dict[date, Decimal] = {}
        for timestamp_ms, price in chart.prices:
            price_date = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()
            daily_prices[price_date] = _to_decimal(price)

        return [
            PriceResult(
                symbol=symbol,
                price_date=price_date,
                close_price=close_price,
                source=self.provider_name,
            )
            for price_date, close_price in sorted(daily_prices.items())
            if start_date <= price_date <= end_date
        ]
