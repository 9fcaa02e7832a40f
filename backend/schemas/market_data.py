"""Pydantic schemas for market data endpoints."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class PriceResponse(BaseModel):
    """A resolved price for a symbol.

    ``resolution`` is set for historical lookups and says how the price
    was obtained (cache hit, window search, fallback, ...).
    """

    symbol: str
    kind: str
    price: Decimal
    price_date: Optional[date] = None
    source: str
    resolution: Optional[str] = None
    display_name: Optional[str] = None
