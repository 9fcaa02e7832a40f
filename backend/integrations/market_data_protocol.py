"""Market data provider protocol definitions.

Defines the value objects shared by the pricing engine and the
interface every price provider adapter implements.
"""

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol


class InstrumentKind(str, Enum):
    EQUITY = "equity"
    CRYPTO = "crypto"


class PriceSource(str, Enum):
    """Where a PricePoint came from on this read."""

    CACHE = "cache"
    LIVE = "live"


@dataclass(frozen=True)
class Instrument:
    """A tradable symbol. Kind is derived from the symbol and never changes."""

    symbol: str
    kind: InstrumentKind


@dataclass(frozen=True)
class PricePoint:
    """A resolved price for an instrument on a date."""

    instrument: Instrument
    price_date: date
    price: Decimal
    source: PriceSource

    @property
    def symbol(self) -> str:
        return self.instrument.symbol

    def to_payload(self) -> bytes:
        """Serialize for the cache. Source is not stored; it is set on read."""
        return json.dumps(
            {
                "symbol": self.instrument.symbol,
                "kind": self.instrument.kind.value,
                "price_date": self.price_date.isoformat(),
                "price": str(self.price),
            },
            sort_keys=True,
        ).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes) -> "PricePoint":
        data = json.loads(payload)
        return cls(
            instrument=Instrument(data["symbol"], InstrumentKind(data["kind"])),
            price_date=date.fromisoformat(data["price_date"]),
            price=Decimal(data["price"]),
            source=PriceSource.CACHE,
        )


@dataclass
class PriceResult:
    """A single closing price for a symbol on a specific date."""

    symbol: str
    price_date: date  # Actual trading date (may differ from requested for weekends/holidays)
    close_price: Decimal
    source: str  # e.g., "yahoo"


class PriceProvider(Protocol):
    """Protocol for price provider adapters.

    Implementations translate transport failures into the exceptions in
    :mod:`integrations.exceptions` and never let raw network errors escape.
    """

    @property
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'yahoo')."""
        ...

    @property
    def kind(self) -> InstrumentKind:
        """The instrument kind this provider serves."""
        ...

    @property
    def max_batch_size(self) -> int:
        """Largest number of symbols accepted by one current_prices call."""
        ...

    def is_unusable(self, symbol: str) -> bool:
        """True when the symbol is on this provider's known-bad list."""
        ...

    def current_price(self, symbol: str) -> Decimal:
        """Latest price for one symbol.

        Raises:
            PriceNotFoundError, RateLimitedError, TransientProviderError
        """
        ...

    def current_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """Latest prices for many symbols in one upstream call.

        Symbols without data are omitted from the result.
        """
        ...

    def historical_price(self, symbol: str, price_date: date) -> Decimal:
        """Closing price for one symbol on (or nearest before) a date."""
        ...

    def get_price_history(
        self, symbol: str, start_date: date, end_date: date
    ) -> list[PriceResult]:
        """Daily closing prices for the range, both ends inclusive.

        Returns an empty list when the provider has no data in the range.
        """
        ...
