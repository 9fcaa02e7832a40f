"""Portfolio valuation service: per-holding and aggregate gain metrics."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Optional

from services.historical_price_service import (
    HistoricalLookup,
    HistoricalPrice,
    HistoricalPriceService,
)
from services.holdings_service import Holding, HoldingsProvider
from services.market_data_service import MarketDataService
from utils.dates import utc_today
from utils.ticker import to_instrument

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
_TWO_PLACES = Decimal("0.01")
DISTRIBUTION_SIZE = 5


class GainWindow(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    TOTAL = "total"


def percentage(gain: Decimal, base: Decimal) -> Decimal:
    """``gain / base * 100`` rounded to cents; 0 when ``base`` is 0."""
    if base == 0:
        return ZERO.quantize(_TWO_PLACES)
    return (gain / base * 100).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class GainMetric:
    window: GainWindow
    absolute: Decimal
    percentage: Decimal


@dataclass
class HoldingValuation:
    """A holding enriched with its current value and gain."""

    holding: Holding
    current_price: Decimal
    price_resolved: bool  # False: valued at last-known or purchase price
    current_value: Decimal
    purchase_value: Decimal
    gain: Decimal
    gain_percentage: Decimal
    daily_baseline_value: Decimal
    weekly_baseline_value: Decimal

    @property
    def symbol(self) -> str:
        return self.holding.symbol


@dataclass
class PortfolioSummary:
    total_current_value: Decimal = ZERO
    total_purchase_value: Decimal = ZERO
    total_gain: Decimal = ZERO
    total_gain_percentage: Decimal = ZERO
    daily_baseline_value: Decimal = ZERO
    daily_gain: Decimal = ZERO
    daily_gain_percentage: Decimal = ZERO
    weekly_baseline_value: Decimal = ZERO
    weekly_gain: Decimal = ZERO
    weekly_gain_percentage: Decimal = ZERO
    top_gainer: Optional[str] = None
    top_gainer_percentage: Optional[Decimal] = None

    def metric(self, window: GainWindow) -> GainMetric:
        if window is GainWindow.DAILY:
            return GainMetric(window, self.daily_gain, self.daily_gain_percentage)
        if window is GainWindow.WEEKLY:
            return GainMetric(window, self.weekly_gain, self.weekly_gain_percentage)
        return GainMetric(window, self.total_gain, self.total_gain_percentage)


@dataclass(frozen=True)
class LatestPurchase:
    symbol: str
    purchase_date: date
    purchase_price: Decimal


@dataclass(frozen=True)
class DistributionSlice:
    symbol: str
    value: Decimal


@dataclass
class PortfolioValuation:
    user_id: int
    as_of: date
    holdings: list[HoldingValuation] = field(default_factory=list)
    summary: PortfolioSummary = field(default_factory=PortfolioSummary)
    latest_purchase: Optional[LatestPurchase] = None
    distribution: list[DistributionSlice] = field(default_factory=list)


class PortfolioValuationService:
    """Turns holdings plus resolved prices into gain metrics.

    For each holding the current price, the price one day ago and the
    price seven days ago are resolved independently; each is subject to
    the historical fallback chain. Horizon gains compare the current
    portfolio value with the quantity-weighted value at the horizon.
    """

    def __init__(
        self,
        market_data: MarketDataService,
        historical: HistoricalPriceService,
        holdings_provider: Optional[HoldingsProvider] = None,
        today: Callable[[], date] = utc_today,
    ):
        self._market_data = market_data
        self._historical = historical
        self._holdings_provider = holdings_provider
        self._today = today

    def value_user(self, user_id: int, timeout: Optional[float] = None) -> PortfolioValuation:
        """Load a user's holdings and value them.

        Raises:
            HoldingsUnavailableError: the holdings store could not be read.
        """
        if self._holdings_provider is None:
            raise RuntimeError("PortfolioValuationService has no holdings provider")
        holdings = self._holdings_provider.get_holdings(user_id)
        return self.value_holdings(user_id, holdings, timeout=timeout)

    def value_holdings(
        self,
        user_id: int,
        holdings: list[Holding],
        timeout: Optional[float] = None,
    ) -> PortfolioValuation:
        """Value a holding set.

        Price-resolution failures never raise: a holding without a current
        price is valued at its last-known (or purchase) price and left out
        of the top-gainer ranking.
        """
        today = self._today()
        valuation = PortfolioValuation(user_id=user_id, as_of=today)
        if not holdings:
            return valuation
        # Price lookups are keyed by normalized symbol
        holdings = [replace(h, symbol=to_instrument(h.symbol).symbol) for h in holdings]

        daily_date = today - timedelta(days=1)
        weekly_date = today - timedelta(days=7)

        symbols = list(dict.fromkeys(h.symbol for h in holdings))
        current = self._market_data.resolve_current_many(symbols, timeout=timeout)

        # Only look up a horizon price when the lot was already held then
        lookups: list[HistoricalLookup] = []
        lookup_index: dict[tuple[int, date], int] = {}
        for i, holding in enumerate(holdings):
            for horizon in (daily_date, weekly_date):
                if holding.purchase_date <= horizon:
                    lookup_index[(i, horizon)] = len(lookups)
                    lookups.append(HistoricalLookup(holding.symbol, horizon, holding.purchase_price))
        resolved = self._historical.resolve_many(lookups, timeout=timeout) if lookups else []

        def horizon_price(i: int, horizon: date) -> Optional[HistoricalPrice]:
            idx = lookup_index.get((i, horizon))
            return resolved[idx] if idx is not None else None

        for i, holding in enumerate(holdings):
            point = current.get(holding.symbol)
            daily = horizon_price(i, daily_date)
            weekly = horizon_price(i, weekly_date)

            if point is not None:
                price, price_resolved = point.price, True
            elif daily is not None and daily.resolution.is_quote:
                price, price_resolved = daily.price, False
            else:
                price, price_resolved = holding.purchase_price, False
            if not price_resolved:
                logger.warning(
                    "No current price for %s (user %s); valuing at %s",
                    holding.symbol, user_id, price,
                )

            valuation.holdings.append(
                self._value_holding(
                    holding,
                    price,
                    price_resolved,
                    daily_baseline=self._baseline_price(holding, daily_date, daily, price),
                    weekly_baseline=self._baseline_price(holding, weekly_date, weekly, price),
                )
            )

        valuation.summary = self._summarize(valuation.holdings)
        valuation.latest_purchase = self._latest_purchase(holdings)
        valuation.distribution = self._distribution(valuation.holdings)
        return valuation

    @staticmethod
    def _baseline_price(
        holding: Holding,
        horizon: date,
        resolved: Optional[HistoricalPrice],
        current_price: Decimal,
    ) -> Decimal:
        """Per-unit value of a holding at a horizon date."""
        if holding.purchase_date > horizon:
            # Bought after the horizon: its starting point is what was paid
            return holding.purchase_price
        if resolved is None:
            # Nothing known about the past; the horizon contributes no change
            return current_price
        return resolved.price

    @staticmethod
    def _value_holding(
        holding: Holding,
        price: Decimal,
        price_resolved: bool,
        daily_baseline: Decimal,
        weekly_baseline: Decimal,
    ) -> HoldingValuation:
        current_value = holding.quantity * price
        purchase_value = holding.purchase_value
        gain = current_value - purchase_value
        return HoldingValuation(
            holding=holding,
            current_price=price,
            price_resolved=price_resolved,
            current_value=current_value,
            purchase_value=purchase_value,
            gain=gain,
            gain_percentage=percentage(gain, purchase_value),
            daily_baseline_value=holding.quantity * daily_baseline,
            weekly_baseline_value=holding.quantity * weekly_baseline,
        )

    @staticmethod
    def _summarize(valued: list[HoldingValuation]) -> PortfolioSummary:
        summary = PortfolioSummary()
        for hv in valued:
            summary.total_current_value += hv.current_value
            summary.total_purchase_value += hv.purchase_value
            summary.daily_baseline_value += hv.daily_baseline_value
            summary.weekly_baseline_value += hv.weekly_baseline_value

            # Strict comparison: on ties the first holding keeps the title
            if hv.price_resolved and (
                summary.top_gainer_percentage is None
                or hv.gain_percentage > summary.top_gainer_percentage
            ):
                summary.top_gainer = hv.symbol
                summary.top_gainer_percentage = hv.gain_percentage

        current = summary.total_current_value
        summary.total_gain = current - summary.total_purchase_value
        summary.total_gain_percentage = percentage(summary.total_gain, summary.total_purchase_value)
        summary.daily_gain = current - summary.daily_baseline_value
        summary.daily_gain_percentage = percentage(summary.daily_gain, summary.daily_baseline_value)
        summary.weekly_gain = current - summary.weekly_baseline_value
        summary.weekly_gain_percentage = percentage(summary.weekly_gain, summary.weekly_baseline_value)
        return summary

    @staticmethod
    def _latest_purchase(holdings: list[Holding]) -> Optional[LatestPurchase]:
        latest = None
        for holding in holdings:
            if latest is None or holding.purchase_date > latest.purchase_date:
                latest = holding
        if latest is None:
            return None
        return LatestPurchase(latest.symbol, latest.purchase_date, latest.purchase_price)

    @staticmethod
    def _distribution(valued: list[HoldingValuation]) -> list[DistributionSlice]:
        """Top holdings by current value, lots of the same symbol combined."""
        by_symbol: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for hv in valued:
            if hv.price_resolved:
                by_symbol[hv.symbol] += hv.current_value
        ranked = sorted(by_symbol.items(), key=lambda item: (-item[1], item[0]))
        return [DistributionSlice(symbol, value) for symbol, value in ranked[:DISTRIBUTION_SIZE]]
