"""Pydantic schemas for leaderboard endpoints."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from services.leaderboard_service import LeaderboardWindow, RankedEntry


class LatestPurchaseResponse(BaseModel):
    """Most recent purchase in a user's portfolio."""

    symbol: str
    date: date
    price: Decimal


class DistributionSliceResponse(BaseModel):
    """Current value held in one symbol."""

    symbol: str
    value: Decimal


class LeaderboardEntryResponse(BaseModel):
    """One ranked user."""

    user_id: int
    rank: int
    current_worth: Decimal
    starting_amount: Decimal
    gain: Decimal
    gain_percentage: Decimal
    top_gainer: Optional[str] = None
    top_gainer_percentage: Optional[Decimal] = None
    latest_purchase: Optional[LatestPurchaseResponse] = None
    distribution: list[DistributionSliceResponse] = []

    @classmethod
    def from_entry(cls, entry: RankedEntry) -> "LeaderboardEntryResponse":
        latest = entry.latest_purchase
        return cls(
            user_id=entry.user_id,
            rank=entry.rank,
            current_worth=entry.current_worth,
            starting_amount=entry.starting_amount,
            gain=entry.gain,
            gain_percentage=entry.gain_percentage,
            top_gainer=entry.top_gainer,
            top_gainer_percentage=entry.top_gainer_percentage,
            latest_purchase=(
                LatestPurchaseResponse(
                    symbol=latest.symbol, date=latest.purchase_date, price=latest.purchase_price
                )
                if latest is not None
                else None
            ),
            distribution=[
                DistributionSliceResponse(symbol=s.symbol, value=s.value) for s in entry.distribution
            ],
        )


class LeaderboardResponse(BaseModel):
    """Ranked leaderboard for one window."""

    window: LeaderboardWindow
    entries: list[LeaderboardEntryResponse]


class LeaderboardRefreshResponse(BaseModel):
    """Number of ranked users per refreshed window."""

    windows: dict[str, int]


class CacheInvalidationResponse(BaseModel):
    """Cache entries removed by an invalidation request."""

    pattern: str
    deleted: int
