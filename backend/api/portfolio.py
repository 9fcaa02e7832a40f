"""Portfolio API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_valuation_engine
from schemas.portfolio import (
    PortfolioHistoryResponse,
    PortfolioValuationResponse,
    SnapshotResponse,
)
from services.holdings_service import HoldingsUnavailableError
from services.valuation_engine import ValuationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


@router.get("/{user_id}", response_model=PortfolioValuationResponse)
def get_portfolio_valuation(
    user_id: int,
    engine: ValuationEngine = Depends(get_valuation_engine),
):
    """
    Value one user's holdings.

    Holdings without a current price are valued at their last known or
    purchase price and flagged with ``price_resolved=false``.
    """
    try:
        valuation = engine.valuation.value_user(user_id)
    except HoldingsUnavailableError as e:
        logger.error("Valuation for user %s unavailable: %s", user_id, e)
        raise HTTPException(status_code=503, detail="Holdings data is unavailable")
    return PortfolioValuationResponse.from_valuation(valuation)


@router.get("/{user_id}/history", response_model=PortfolioHistoryResponse)
def get_portfolio_history(
    user_id: int,
    days: int = Query(7, ge=1, le=90, description="Number of days to look back"),
    engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Recorded daily portfolio values, newest first. Days without a snapshot are skipped."""
    snapshots = engine.snapshots.history(user_id, days=days)
    return PortfolioHistoryResponse(
        user_id=user_id,
        snapshots=[
            SnapshotResponse(date=s.snapshot_date, total_value=s.total_value) for s in snapshots
        ],
    )
