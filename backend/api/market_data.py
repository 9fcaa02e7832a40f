"""Market data API endpoints."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_valuation_engine
from integrations.coingecko_client import crypto_display_name
from integrations.market_data_protocol import InstrumentKind, PriceSource
from schemas.leaderboard import CacheInvalidationResponse
from schemas.market_data import PriceResponse
from services.historical_price_service import Resolution
from services.valuation_engine import ValuationEngine
from utils.ticker import to_instrument

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/market-data", tags=["market-data"])


@router.get("/price/{symbol}", response_model=PriceResponse)
def get_price(
    symbol: str,
    on: Optional[date] = Query(None, alias="date", description="Historical date; omit for the current price"),
    engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Resolve the current price of a symbol, or its price on a date.

    Crypto symbols carry an ``@`` prefix (``@BTC``). Historical lookups
    follow the fallback chain and report how the price was obtained.
    """
    instrument = to_instrument(symbol)
    display_name = (
        crypto_display_name(instrument.symbol) if instrument.kind is InstrumentKind.CRYPTO else None
    )

    if on is None:
        point = engine.market_data.resolve_current(instrument.symbol)
        if point is None:
            raise HTTPException(status_code=404, detail=f"No price found for {instrument.symbol}")
        return PriceResponse(
            symbol=instrument.symbol,
            kind=instrument.kind.value,
            price=point.price,
            price_date=point.price_date,
            source=point.source.value,
            display_name=display_name,
        )

    resolved = engine.historical.historical_price(instrument.symbol, on)
    if resolved is None:
        raise HTTPException(
            status_code=404, detail=f"No price found for {instrument.symbol} on {on.isoformat()}"
        )
    return PriceResponse(
        symbol=instrument.symbol,
        kind=instrument.kind.value,
        price=resolved.price,
        price_date=resolved.price_date,
        source=(
            PriceSource.CACHE if resolved.resolution is Resolution.CACHE_HIT else PriceSource.LIVE
        ).value,
        resolution=resolved.resolution.value,
        display_name=display_name,
    )


@router.delete("/cache", response_model=CacheInvalidationResponse)
def invalidate_cache(
    pattern: str = Query(..., min_length=1, description="Glob over cache keys, e.g. price:current:*"),
    engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Delete cached entries whose keys match ``pattern``."""
    deleted = engine.cache.delete_by_pattern(pattern)
    logger.info("Cache invalidation %s removed %d entries", pattern, deleted)
    return CacheInvalidationResponse(pattern=pattern, deleted=deleted)
