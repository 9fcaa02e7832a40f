"""Leaderboard API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_valuation_engine
from schemas.leaderboard import (
    LeaderboardEntryResponse,
    LeaderboardRefreshResponse,
    LeaderboardResponse,
)
from services.holdings_service import HoldingsUnavailableError
from services.leaderboard_service import LeaderboardWindow
from services.valuation_engine import ValuationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("", response_model=LeaderboardResponse)
def get_leaderboard(
    window: LeaderboardWindow = Query(LeaderboardWindow.TOTAL, description="daily, weekly or total"),
    force_refresh: bool = Query(False, description="Recompute instead of serving the cached ranking"),
    engine: ValuationEngine = Depends(get_valuation_engine),
):
    """
    Rank every user by gain over the requested window.

    Returns:
        Entries sorted by gain percentage descending, ties by user id
    """
    try:
        entries = engine.leaderboard.get_leaderboard(window, force_refresh=force_refresh)
    except HoldingsUnavailableError as e:
        logger.error("Leaderboard %s unavailable: %s", window.value, e)
        raise HTTPException(status_code=503, detail="Holdings data is unavailable")
    return LeaderboardResponse(
        window=window,
        entries=[LeaderboardEntryResponse.from_entry(e) for e in entries],
    )


@router.post("/refresh", response_model=LeaderboardRefreshResponse)
def refresh_leaderboards(
    record_snapshots: bool = Query(True, description="Also record today's portfolio snapshots"),
    engine: ValuationEngine = Depends(get_valuation_engine),
):
    """Recompute and cache every window in one pass."""
    try:
        rankings = engine.leaderboard.refresh_all(record_snapshots=record_snapshots)
    except HoldingsUnavailableError as e:
        logger.error("Leaderboard refresh failed: %s", e)
        raise HTTPException(status_code=503, detail="Holdings data is unavailable")
    return LeaderboardRefreshResponse(
        windows={window.value: len(entries) for window, entries in rankings.items()}
    )
