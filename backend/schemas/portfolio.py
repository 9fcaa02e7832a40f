"""Pydantic schemas for portfolio valuation endpoints."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.leaderboard import DistributionSliceResponse, LatestPurchaseResponse
from services.portfolio_valuation_service import HoldingValuation, PortfolioValuation


class HoldingValuationResponse(BaseModel):
    """A single holding with its current value and gain."""

    symbol: str
    company_name: Optional[str] = None
    quantity: Decimal
    purchase_price: Decimal
    purchase_date: date
    current_price: Decimal
    price_resolved: bool
    current_value: Decimal
    purchase_value: Decimal
    gain: Decimal
    gain_percentage: Decimal

    @classmethod
    def from_valuation(cls, hv: HoldingValuation) -> "HoldingValuationResponse":
        return cls(
            symbol=hv.symbol,
            company_name=hv.holding.company_name,
            quantity=hv.holding.quantity,
            purchase_price=hv.holding.purchase_price,
            purchase_date=hv.holding.purchase_date,
            current_price=hv.current_price,
            price_resolved=hv.price_resolved,
            current_value=hv.current_value,
            purchase_value=hv.purchase_value,
            gain=hv.gain,
            gain_percentage=hv.gain_percentage,
        )


class PortfolioSummaryResponse(BaseModel):
    """Aggregate values and gains across every holding."""

    model_config = ConfigDict(from_attributes=True)

    total_current_value: Decimal
    total_purchase_value: Decimal
    total_gain: Decimal
    total_gain_percentage: Decimal
    daily_baseline_value: Decimal
    daily_gain: Decimal
    daily_gain_percentage: Decimal
    weekly_baseline_value: Decimal
    weekly_gain: Decimal
    weekly_gain_percentage: Decimal
    top_gainer: Optional[str] = None
    top_gainer_percentage: Optional[Decimal] = None


class PortfolioValuationResponse(BaseModel):
    """Response for the portfolio valuation endpoint."""

    user_id: int
    as_of: date
    holdings: list[HoldingValuationResponse]
    summary: PortfolioSummaryResponse
    latest_purchase: Optional[LatestPurchaseResponse] = None
    distribution: list[DistributionSliceResponse]

    @classmethod
    def from_valuation(cls, valuation: PortfolioValuation) -> "PortfolioValuationResponse":
        latest = valuation.latest_purchase
        return cls(
            user_id=valuation.user_id,
            as_of=valuation.as_of,
            holdings=[HoldingValuationResponse.from_valuation(hv) for hv in valuation.holdings],
            summary=PortfolioSummaryResponse.model_validate(valuation.summary),
            latest_purchase=(
                LatestPurchaseResponse(
                    symbol=latest.symbol, date=latest.purchase_date, price=latest.purchase_price
                )
                if latest is not None
                else None
            ),
            distribution=[
                DistributionSliceResponse(symbol=s.symbol, value=s.value)
                for s in valuation.distribution
            ],
        )


class SnapshotResponse(BaseModel):
    """Recorded portfolio value on one day."""

    date: date
    total_value: Decimal


class PortfolioHistoryResponse(BaseModel):
    """Daily snapshots, newest first."""

    user_id: int
    snapshots: list[SnapshotResponse]
