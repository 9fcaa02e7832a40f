"""Yahoo Finance market data provider implementation."""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFException, YFRateLimitError

from integrations.exceptions import (
    PriceNotFoundError,
    RateLimitedError,
    TransientProviderError,
    UnusableSymbolError,
)
from integrations.market_data_protocol import InstrumentKind, PriceResult
from integrations.symbol_policy import UnusableSymbols

logger = logging.getLogger(__name__)

# Lookback used for single-date requests so weekends and holidays still
# find the previous trading day's close.
_SINGLE_DATE_LOOKBACK_DAYS = 10


def _to_decimal(value: float) -> Decimal:
    return Decimal(str(round(float(value), 6)))


def _extract_closes(df: pd.DataFrame) -> pd.Series:
    """Return the non-null Close series of a ``Ticker.history`` frame."""
    if df.empty or "Close" not in df.columns:
        return pd.Series(dtype=float)
    return df["Close"].dropna()


def _raise_errors_kwargs() -> dict[str, bool]:
    """yfinance logs fetch errors and returns an empty frame unless told otherwise.

    Releases with ``yf.config`` switch this off globally; older ones take a
    per-call ``raise_errors`` flag.
    """
    debug = getattr(getattr(yf, "config", None), "debug", None)
    if debug is not None and hasattr(debug, "hide_exceptions"):
        debug.hide_exceptions = False
        return {}
    return {"raise_errors": True}


class YahooFinanceClient:
    """Price provider using Yahoo Finance (yfinance library).

    Handles equities, ETFs, and other traditional securities.
    Crypto symbols are routed to a dedicated crypto provider
    (e.g., CoinGecko) by the MarketDataService.
    """

    def __init__(
        self,
        unusable_symbols: Optional[UnusableSymbols] = None,
        max_batch_size: int = 1,
    ):
        self._unusable = unusable_symbols or UnusableSymbols()
        self._max_batch_size = max_batch_size
        self._history_kwargs = _raise_errors_kwargs()

    @property
    def provider_name(self) -> str:
        return "yahoo"

    @property
    def kind(self) -> InstrumentKind:
        return InstrumentKind.EQUITY

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    def is_unusable(self, symbol: str) -> bool:
        return self._unusable.contains(InstrumentKind.EQUITY, symbol)

    def _ensure_usable(self, symbol: str) -> None:
        if self.is_unusable(symbol):
            raise UnusableSymbolError(symbol, self.provider_name)

    def _history(self, symbol: str, **kwargs) -> pd.DataFrame:
        """Fetch one ticker's daily bars and classify failures.

        Missing or delisted data comes back as an empty frame.
        """
        try:
            return yf.Ticker(symbol).history(
                interval="1d", auto_adjust=True, **self._history_kwargs, **kwargs
            )
        except YFRateLimitError as e:
            raise RateLimitedError(
                f"Yahoo Finance: rate limited for {symbol}", self.provider_name
            ) from e
        except YFException as e:
            logger.debug("Yahoo Finance: no data for %s: %s", symbol, e)
            return pd.DataFrame()
        except Exception as e:
            raise TransientProviderError(
                f"Yahoo Finance: request failed for {symbol}: {e}", self.provider_name
            ) from e

    def current_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """Fetch the latest close (intraday during market hours) for each symbol.

        Symbols with no data are omitted from the result. A rate limit on
        any symbol fails the whole batch.
        """
        usable = [s for s in symbols if not self.is_unusable(s)]
        if not usable:
            return {}
        if len(usable) > self._max_batch_size:
            raise ValueError(
                f"Yahoo Finance: batch of {len(usable)} exceeds max {self._max_batch_size}"
            )

        logger.info("Yahoo Finance: fetching current prices for %d symbols", len(usable))
        result: dict[str, Decimal] = {}
        for symbol in usable:
            closes = _extract_closes(self._history(symbol, period="5d"))
            if closes.empty:
                logger.debug("Yahoo Finance: no quote for %s", symbol)
                continue
            result[symbol] = _to_decimal(closes.iloc[-1])
        return result

    def current_price(self, symbol: str) -> Decimal:
        self._ensure_usable(symbol)
        prices = self.current_prices([symbol])
        if symbol not in prices:
            raise PriceNotFoundError(f"Yahoo Finance: no quote for {symbol}", self.provider_name)
        return prices[symbol]

    def historical_price(self, symbol: str, price_date: date) -> Decimal:
        """Return the most recent close on or before ``price_date``.

        Uses a 10-day lookback to handle weekends and holidays.
        """
        history = self.get_price_history(
            symbol, price_date - timedelta(days=_SINGLE_DATE_LOOKBACK_DAYS), price_date
        )
        if not history:
            raise PriceNotFoundError(
                f"Yahoo Finance: no close for {symbol} on or before {price_date}",
                self.provider_name,
            )
        return history[-1].close_price

    def get_price_history(
        self, symbol: str, start_date: date, end_date: date
    ) -> list[PriceResult]:
        """Fetch daily closing prices from Yahoo Finance.

        Args:
            symbol: Ticker symbol.
            start_date: Start date (inclusive).
            end_date: End date (inclusive).

        Returns:
            PriceResults in date order; empty when Yahoo has no data.
        """
        self._ensure_usable(symbol)

        logger.info(
            "Yahoo Finance: fetching price history for %s (%s to %s)",
            symbol, start_date, end_date,
        )

        # yfinance end is exclusive, so add one day
        df = self._history(
            symbol,
            start=start_date.isoformat(),
            end=(end_date + timedelta(days=1)).isoformat(),
        )

        closes = _extract_closes(df)
        results = []
        for ts, price in closes.items():
            price_date = ts.date()
            if start_date <= price_date <= end_date:
                results.append(
                    PriceResult(
                        symbol=symbol,
                        price_date=price_date,
                        close_price=_to_decimal(price),
                        source=self.provider_name,
                    )
                )
        return results
