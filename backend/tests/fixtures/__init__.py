"""Test fixtures and sample data."""
from tests.fixtures.mocks import (
    FIXED_TODAY,
    FixedClock,
    MockHoldingsProvider,
    MockPriceProvider,
    make_holding,
)

__all__ = [
    "FIXED_TODAY",
    "FixedClock",
    "MockHoldingsProvider",
    "MockPriceProvider",
    "make_holding",
]
