"""Historical price resolution with a bounded fallback chain.

Per (symbol, date) lookup:

1. Cached value for that date: returned as is.
2. Date in the future: the current price is returned instead.
3. Date is today: no historical quote exists yet, so the caller's
   reference price (usually the recorded purchase price) is used.
4. Otherwise the provider's daily history around the date is searched and
   the closest trading day wins (ties go to the earlier day). The result is
   cached with an age-dependent TTL.
5. If the provider is unusable, rate limited, erroring, or has no data, the
   lookup degrades to the last known current price, then to the reference
   price, then to None.

Every degradation is logged; nothing is raised to the caller, and no
number is produced that is not either a real quote or the caller's own
reference price.
"""

import logging
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from cache.keys import historical_price_key, historical_ttl_seconds
from cache.protocol import Cache
from integrations.exceptions import PriceNotFoundError, ProviderError, RateLimitedError
from integrations.market_data_protocol import (
    Instrument,
    PricePoint,
    PriceResult,
    PriceSource,
)
from services.batch_fetch_service import BatchFetchCoordinator
from services.market_data_service import MarketDataService
from utils.dates import utc_today
from utils.ticker import to_instrument

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    """How a historical price was obtained."""

    CACHE_HIT = "cache_hit"
    FUTURE_DATE = "future_date"
    TOO_RECENT = "too_recent"
    WINDOW_SEARCH = "window_search"
    FALLBACK_CURRENT = "fallback_current"
    FALLBACK_REFERENCE = "fallback_reference"

    @property
    def is_quote(self) -> bool:
        """True when the price came from a provider quote rather than the caller."""
        return self not in (Resolution.TOO_RECENT, Resolution.FALLBACK_REFERENCE)


@dataclass(frozen=True)
class HistoricalLookup:
    symbol: str
    target_date: date
    reference_price: Optional[Decimal] = None


@dataclass(frozen=True)
class HistoricalPrice:
    symbol: str
    target_date: date
    price: Decimal
    price_date: Optional[date]  # trading day of the quote; None for a reference price
    resolution: Resolution


def closest_price(history: list[PriceResult], target: date) -> Optional[PriceResult]:
    """Pick the point nearest to ``target``; ties prefer the earlier date."""
    if not history:
        return None
    return min(history, key=lambda p: (abs((p.price_date - target).days), p.price_date))


class HistoricalPriceService:
    """Best-effort historical prices that never block a valuation."""

    def __init__(
        self,
        market_data: MarketDataService,
        coordinator: BatchFetchCoordinator,
        cache: Cache,
        window_days: int = 7,
        timeout: Optional[float] = 30.0,
        today: Callable[[], date] = utc_today,
    ):
        self._market_data = market_data
        self._coordinator = coordinator
        self._cache = cache
        self._window_days = window_days
        self._timeout = timeout
        self._today = today

    def historical_price(
        self,
        symbol: str,
        target_date: date,
        reference_price: Optional[Decimal] = None,
        timeout: Optional[float] = None,
    ) -> Optional[HistoricalPrice]:
        """Resolve one historical price. Returns None only when no fallback exists."""
        lookup = HistoricalLookup(symbol, target_date, reference_price)
        return self.resolve_many([lookup], timeout=timeout)[0]

    def resolve_many(
        self,
        lookups: list[HistoricalLookup],
        timeout: Optional[float] = None,
    ) -> list[Optional[HistoricalPrice]]:
        """Resolve many lookups, issuing their provider fetches concurrently.

        Results are returned in the order of ``lookups``.
        """
        today = self._today()
        results: list[Optional[HistoricalPrice]] = [None] * len(lookups)
        future_dated: list[int] = []
        searches: dict[tuple[Instrument, date], list[int]] = {}

        for i, lookup in enumerate(lookups):
            instrument = to_instrument(lookup.symbol)
            target = lookup.target_date

            cached = self._read_cached(instrument.symbol, target)
            if cached is not None:
                results[i] = HistoricalPrice(
                    instrument.symbol, target, cached.price, cached.price_date, Resolution.CACHE_HIT
                )
                continue

            if target > today:
                future_dated.append(i)
                continue

            if target == today:
                logger.debug(
                    "%s: %s is today, no historical quote yet; using reference price",
                    instrument.symbol, target,
                )
                if lookup.reference_price is not None:
                    results[i] = HistoricalPrice(
                        instrument.symbol, target, lookup.reference_price, None, Resolution.TOO_RECENT
                    )
                continue

            if self._coordinator.is_unusable(instrument):
                results[i] = self._fallback(instrument, lookup, "symbol is marked unusable")
                continue

            searches.setdefault((instrument, target), []).append(i)

        if future_dated:
            self._resolve_future_dated(lookups, future_dated, results)

        if searches:
            self._resolve_searches(lookups, searches, today, results, timeout)

        return results

    def _resolve_future_dated(
        self,
        lookups: list[HistoricalLookup],
        indexes: list[int],
        results: list[Optional[HistoricalPrice]],
    ) -> None:
        current = self._market_data.resolve_current_many([lookups[i].symbol for i in indexes])
        for i in indexes:
            instrument = to_instrument(lookups[i].symbol)
            point = current.get(instrument.symbol)
            logger.info(
                "%s: %s is in the future; using current price",
                instrument.symbol, lookups[i].target_date,
            )
            if point is not None:
                results[i] = HistoricalPrice(
                    instrument.symbol,
                    lookups[i].target_date,
                    point.price,
                    point.price_date,
                    Resolution.FUTURE_DATE,
                )

    def _resolve_searches(
        self,
        lookups: list[HistoricalLookup],
        searches: dict[tuple[Instrument, date], list[int]],
        today: date,
        results: list[Optional[HistoricalPrice]],
        timeout: Optional[float],
    ) -> None:
        yesterday = today - timedelta(days=1)
        window = timedelta(days=self._window_days)
        futures: dict[tuple[Instrument, date], Future] = {}
        for instrument, target in searches:
            start = target - window
            end = min(target + window, yesterday)
            futures[(instrument, target)] = self._coordinator.submit_price_history(
                instrument, start, end
            )

        wait = self._timeout if timeout is None else timeout
        deadline = None if wait is None else time.monotonic() + wait
        for (instrument, target), future in futures.items():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            reason = None
            try:
                history = future.result(timeout=remaining)
            except FuturesTimeoutError:
                reason = "timed out waiting for provider"
            except RateLimitedError:
                reason = "provider rate limited"
            except PriceNotFoundError as e:
                reason = f"not found ({e})"
            except ProviderError as e:
                reason = f"provider error ({e})"
            else:
                point = closest_price(history, target)
                if point is None:
                    reason = "no data in search window"
                else:
                    self._write_cached(instrument, target, point, today)
                    for i in searches[(instrument, target)]:
                        results[i] = HistoricalPrice(
                            instrument.symbol, target, point.close_price, point.price_date,
                            Resolution.WINDOW_SEARCH,
                        )
                    continue

            for i in searches[(instrument, target)]:
                results[i] = self._fallback(instrument, lookups[i], reason)

    def _fallback(
        self, instrument: Instrument, lookup: HistoricalLookup, reason: str
    ) -> Optional[HistoricalPrice]:
        """Degrade to the last known current price, then the reference price."""
        known = self._market_data.last_known_price(instrument.symbol)
        if known is not None:
            logger.warning(
                "Historical price for %s on %s unavailable: %s; using last known price %s",
                instrument.symbol, lookup.target_date, reason, known.price,
            )
            return HistoricalPrice(
                instrument.symbol, lookup.target_date, known.price, known.price_date,
                Resolution.FALLBACK_CURRENT,
            )
        if lookup.reference_price is not None:
            logger.warning(
                "Historical price for %s on %s unavailable: %s; using reference price %s",
                instrument.symbol, lookup.target_date, reason, lookup.reference_price,
            )
            return HistoricalPrice(
                instrument.symbol, lookup.target_date, lookup.reference_price, None,
                Resolution.FALLBACK_REFERENCE,
            )
        logger.warning(
            "Historical price for %s on %s unavailable: %s; no fallback",
            instrument.symbol, lookup.target_date, reason,
        )
        return None

    def _read_cached(self, symbol: str, target: date) -> Optional[PricePoint]:
        payload = self._cache.get(historical_price_key(symbol, target))
        if payload is None:
            return None
        try:
            return PricePoint.from_payload(payload)
        except (ValueError, KeyError):
            logger.warning("Discarding unreadable cached historical price for %s on %s", symbol, target)
            return None

    def _write_cached(
        self, instrument: Instrument, target: date, point: PriceResult, today: date
    ) -> None:
        cached = PricePoint(instrument, point.price_date, point.close_price, PriceSource.LIVE)
        self._cache.set(
            historical_price_key(instrument.symbol, target),
            cached.to_payload(),
            historical_ttl_seconds(target, today),
        )
