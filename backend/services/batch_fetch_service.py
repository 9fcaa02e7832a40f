"""Batch fetch coordinator: deduplicated, rate-aware upstream price fetching.

Every upstream call in the process runs on one shared worker pool, so a
leaderboard recomputation cannot starve other requests of provider quota.
Concurrent requests for the same symbol share a single in-flight fetch.
"""

import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date
from functools import partial
from typing import Callable, Hashable, Optional, TypeVar

from cache.keys import LIVE_QUOTE_TTL_SECONDS, current_price_key
from cache.protocol import Cache
from integrations.exceptions import ProviderError, RateLimitedError, TransientProviderError
from integrations.market_data_protocol import (
    Instrument,
    InstrumentKind,
    PricePoint,
    PriceProvider,
    PriceResult,
    PriceSource,
)
from utils.dates import utc_today

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _chunks(items: list[T], size: int) -> list[list[T]]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchFetchCoordinator:
    """Coordinates upstream price fetches for every caller in the process.

    - Identical in-flight requests are collapsed: N concurrent callers for
      the same symbol trigger one upstream call and share its result.
    - Symbols are partitioned by provider and chunked to the provider's
      batch size.
    - Outstanding upstream calls never exceed ``max_concurrency``.
    - A rate-limited chunk stops the remaining chunks of that provider for
      the current round; callers get whatever was fetched or cached.

    A caller's timeout only abandons that caller's wait. The fetch keeps
    running and still populates the cache for other waiters.
    """

    def __init__(
        self,
        providers: dict[InstrumentKind, PriceProvider],
        cache: Cache,
        max_concurrency: int = 8,
        live_quote_ttl: int = LIVE_QUOTE_TTL_SECONDS,
        timeout: Optional[float] = 30.0,
        today: Callable[[], date] = utc_today,
    ):
        self._providers = providers
        self._cache = cache
        self._max_concurrency = max_concurrency
        self._live_quote_ttl = live_quote_ttl
        self._timeout = timeout
        self._today = today
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrency, thread_name_prefix="upstream"
        )
        # Reentrant: a done-callback may run inline while the lock is held
        self._lock = threading.RLock()
        self._in_flight: dict[Hashable, Future] = {}

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def provider_for(self, kind: InstrumentKind) -> PriceProvider:
        return self._providers[kind]

    def is_unusable(self, instrument: Instrument) -> bool:
        return self.provider_for(instrument.kind).is_unusable(instrument.symbol)

    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Current prices
    # ------------------------------------------------------------------

    def fetch_current_prices(
        self,
        instruments: list[Instrument],
        timeout: Optional[float] = None,
    ) -> dict[str, PricePoint]:
        """Resolve current prices for many instruments.

        Cached quotes are returned without an upstream call. Misses are
        fetched in provider-sized batches.

        Args:
            instruments: Instruments to price; duplicates are collapsed.
            timeout: Seconds this caller is willing to wait. Defaults to the
                coordinator's timeout.

        Returns:
            Dict keyed by symbol in request order. Symbols that could not be
            priced (NotFound, rate limited, unusable, timed out) are absent.
        """
        ordered = list(dict.fromkeys(instruments))
        resolved: dict[str, PricePoint] = {}
        misses: dict[InstrumentKind, list[Instrument]] = defaultdict(list)

        for instrument in ordered:
            cached = self._read_cached_quote(instrument.symbol)
            if cached is not None:
                resolved[instrument.symbol] = cached
                continue
            if self.is_unusable(instrument):
                logger.info("Skipping unusable symbol %s", instrument.symbol)
                continue
            misses[instrument.kind].append(instrument)

        pending: dict[str, Future] = {}
        for kind, batch in misses.items():
            pending.update(self._submit_current_round(self.provider_for(kind), batch))

        wait = self._timeout if timeout is None else timeout
        deadline = None if wait is None else time.monotonic() + wait
        for symbol, future in pending.items():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                points = future.result(timeout=remaining)
            except FuturesTimeoutError:
                logger.warning("Timed out waiting for current price of %s", symbol)
                continue
            if symbol in points:
                resolved[symbol] = points[symbol]

        return {i.symbol: resolved[i.symbol] for i in ordered if i.symbol in resolved}

    def fetch_current_price(
        self, instrument: Instrument, timeout: Optional[float] = None
    ) -> Optional[PricePoint]:
        return self.fetch_current_prices([instrument], timeout=timeout).get(instrument.symbol)

    def read_cached_quote(self, symbol: str) -> Optional[PricePoint]:
        """Return the cached live quote for a symbol without any upstream call."""
        return self._read_cached_quote(symbol)

    def _read_cached_quote(self, symbol: str) -> Optional[PricePoint]:
        payload = self._cache.get(current_price_key(symbol))
        if payload is None:
            return None
        try:
            return PricePoint.from_payload(payload)
        except (ValueError, KeyError):
            logger.warning("Discarding unreadable cached quote for %s", symbol)
            return None

    def _submit_current_round(
        self, provider: PriceProvider, instruments: list[Instrument]
    ) -> dict[str, Future]:
        """Attach to existing fetches or submit new chunks for one provider.

        Only the in-flight table is touched under the lock. A fetch that
        finished after the caller's cache lookup may be repeated.
        """
        rate_limited = threading.Event()
        futures: dict[str, Future] = {}
        with self._lock:
            new: list[Instrument] = []
            for instrument in instruments:
                existing = self._in_flight.get(("current", instrument.symbol))
                if existing is not None:
                    futures[instrument.symbol] = existing
                    continue
                new.append(instrument)

            chunks = _chunks(new, provider.max_batch_size)
            if chunks:
                logger.debug(
                    "%s: fetching %d symbols in %d chunks",
                    provider.provider_name, len(new), len(chunks),
                )
            for chunk in chunks:
                future = self._executor.submit(
                    self._fetch_current_chunk, provider, chunk, rate_limited
                )
                keys = [("current", i.symbol) for i in chunk]
                for key, instrument in zip(keys, chunk):
                    self._in_flight[key] = future
                    futures[instrument.symbol] = future
                future.add_done_callback(partial(self._release, keys))
        return futures

    def _fetch_current_chunk(
        self,
        provider: PriceProvider,
        chunk: list[Instrument],
        rate_limited: threading.Event,
    ) -> dict[str, PricePoint]:
        if rate_limited.is_set():
            logger.warning(
                "%s: rate limited earlier in this round; skipping %d symbols",
                provider.provider_name, len(chunk),
            )
            return {}

        symbols = [i.symbol for i in chunk]
        try:
            prices = self._call_with_retry(provider.current_prices, symbols)
        except RateLimitedError:
            rate_limited.set()
            logger.warning(
                "%s: rate limited; returning partial results for this round",
                provider.provider_name,
            )
            return {}
        except ProviderError as e:
            logger.warning("%s: current prices unavailable for %s: %s", provider.provider_name, symbols, e)
            return {}

        today = self._today()
        points: dict[str, PricePoint] = {}
        for instrument in chunk:
            price = prices.get(instrument.symbol)
            if price is None:
                continue
            point = PricePoint(instrument, today, price, PriceSource.LIVE)
            self._cache.set(current_price_key(instrument.symbol), point.to_payload(), self._live_quote_ttl)
            points[instrument.symbol] = point
        return points

    # ------------------------------------------------------------------
    # Price history
    # ------------------------------------------------------------------

    def submit_price_history(
        self, instrument: Instrument, start_date: date, end_date: date
    ) -> "Future[list[PriceResult]]":
        """Start (or join) a history fetch for one symbol and date range.

        The returned future raises the provider's ``ProviderError`` on
        failure; transient errors have already been retried once.
        """
        key = ("history", instrument.symbol, start_date, end_date)
        with self._lock:
            existing = self._in_flight.get(key)
            if existing is not None:
                return existing
            provider = self.provider_for(instrument.kind)
            future = self._executor.submit(
                self._call_with_retry,
                provider.get_price_history,
                instrument.symbol,
                start_date,
                end_date,
            )
            self._in_flight[key] = future
            future.add_done_callback(partial(self._release, [key]))
            return future

    # ------------------------------------------------------------------

    def _call_with_retry(self, fn: Callable[..., T], *args) -> T:
        """Call a provider method, retrying a transient failure once."""
        try:
            return fn(*args)
        except TransientProviderError as e:
            logger.warning("%s failed transiently (%s); retrying once", getattr(fn, "__name__", fn), e)
            return fn(*args)

    def _release(self, keys: list[Hashable], future: Future) -> None:
        with self._lock:
            for key in keys:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]
