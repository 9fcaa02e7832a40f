"""Leaderboard service: ranks every user's portfolio by gain over a window."""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from cache.keys import LEADERBOARD_TTL_SECONDS, leaderboard_key
from cache.protocol import Cache
from services.holdings_service import HoldingsProvider
from services.portfolio_valuation_service import (
    DistributionSlice,
    GainWindow,
    LatestPurchase,
    PortfolioValuation,
    PortfolioValuationService,
)
from services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

# Re-exported: the leaderboard's windows are the valuation's gain windows
LeaderboardWindow = GainWindow


def _decimal_or_none(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


@dataclass(frozen=True)
class RankedEntry:
    user_id: int
    rank: int
    current_worth: Decimal
    starting_amount: Decimal
    gain: Decimal
    gain_percentage: Decimal
    top_gainer: Optional[str] = None
    top_gainer_percentage: Optional[Decimal] = None
    latest_purchase: Optional[LatestPurchase] = None
    distribution: tuple[DistributionSlice, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        latest = None
        if self.latest_purchase is not None:
            latest = {
                "date": self.latest_purchase.purchase_date.isoformat(),
                "price": str(self.latest_purchase.purchase_price),
                "symbol": self.latest_purchase.symbol,
            }
        return {
            "current_worth": str(self.current_worth),
            "distribution": [{"symbol": d.symbol, "value": str(d.value)} for d in self.distribution],
            "gain": str(self.gain),
            "gain_percentage": str(self.gain_percentage),
            "latest_purchase": latest,
            "rank": self.rank,
            "starting_amount": str(self.starting_amount),
            "top_gainer": self.top_gainer,
            "top_gainer_percentage": (
                str(self.top_gainer_percentage) if self.top_gainer_percentage is not None else None
            ),
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RankedEntry":
        latest = data.get("latest_purchase")
        return cls(
            user_id=int(data["user_id"]),
            rank=int(data["rank"]),
            current_worth=Decimal(data["current_worth"]),
            starting_amount=Decimal(data["starting_amount"]),
            gain=Decimal(data["gain"]),
            gain_percentage=Decimal(data["gain_percentage"]),
            top_gainer=data.get("top_gainer"),
            top_gainer_percentage=_decimal_or_none(data.get("top_gainer_percentage")),
            latest_purchase=(
                LatestPurchase(
                    latest["symbol"], date.fromisoformat(latest["date"]), Decimal(latest["price"])
                )
                if latest
                else None
            ),
            distribution=tuple(
                DistributionSlice(d["symbol"], Decimal(d["value"]))
                for d in data.get("distribution", [])
            ),
        )


def encode_entries(entries: list[RankedEntry]) -> bytes:
    """Serialize a ranking; identical rankings give identical bytes."""
    return json.dumps([e.to_dict() for e in entries], sort_keys=True, separators=(",", ":")).encode()


def decode_entries(payload: bytes) -> list[RankedEntry]:
    return [RankedEntry.from_dict(item) for item in json.loads(payload)]


def rank_valuations(
    valuations: list[PortfolioValuation], window: LeaderboardWindow
) -> list[RankedEntry]:
    """Sort by the window's gain percentage, descending; ties by user id."""
    ordered = sorted(
        valuations,
        key=lambda v: (-v.summary.metric(window).percentage, v.user_id),
    )
    entries = []
    for rank, valuation in enumerate(ordered, start=1):
        summary = valuation.summary
        metric = summary.metric(window)
        if window is LeaderboardWindow.DAILY:
            starting = summary.daily_baseline_value
        elif window is LeaderboardWindow.WEEKLY:
            starting = summary.weekly_baseline_value
        else:
            starting = summary.total_purchase_value
        entries.append(
            RankedEntry(
                user_id=valuation.user_id,
                rank=rank,
                current_worth=summary.total_current_value,
                starting_amount=starting,
                gain=metric.absolute,
                gain_percentage=metric.percentage,
                top_gainer=summary.top_gainer,
                top_gainer_percentage=summary.top_gainer_percentage,
                latest_purchase=valuation.latest_purchase,
                distribution=tuple(valuation.distribution),
            )
        )
    return entries


class LeaderboardService:
    """Values every user's portfolio and ranks them per window.

    Users are valued in parallel on a dedicated pool sized to the upstream
    concurrency limit. The valuations themselves issue their provider calls
    through the shared fetch coordinator, so the system-wide upstream cap
    still applies. Ranked results are cached per window.
    """

    def __init__(
        self,
        valuation: PortfolioValuationService,
        holdings_provider: HoldingsProvider,
        cache: Cache,
        max_workers: int = 8,
        ttl_seconds: int = LEADERBOARD_TTL_SECONDS,
        snapshots: Optional[SnapshotService] = None,
    ):
        self._valuation = valuation
        self._holdings_provider = holdings_provider
        self._cache = cache
        self._ttl_seconds = ttl_seconds
        self._snapshots = snapshots
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="leaderboard"
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def get_leaderboard(
        self,
        window: LeaderboardWindow,
        force_refresh: bool = False,
        record_snapshots: bool = True,
    ) -> list[RankedEntry]:
        """Ranked entries for ``window``.

        Served from cache unless ``force_refresh`` is set or the cached
        ranking has expired. A recomputed ranking also records today's
        snapshots unless ``record_snapshots`` is False.

        Raises:
            HoldingsUnavailableError: holdings could not be read.
        """
        window = LeaderboardWindow(window)
        key = leaderboard_key(window.value)
        if not force_refresh:
            payload = self._cache.get(key)
            if payload is not None:
                try:
                    entries = decode_entries(payload)
                except (ValueError, KeyError, TypeError):
                    logger.warning("Discarding unreadable cached leaderboard %s", window.value)
                else:
                    logger.debug("Leaderboard %s served from cache", window.value)
                    return entries

        valuations = self.value_all_users()
        entries = rank_valuations(valuations, window)
        self._cache.set(key, encode_entries(entries), self._ttl_seconds)
        if record_snapshots:
            self._record_snapshots(valuations)
        logger.info("Leaderboard %s computed for %d users", window.value, len(entries))
        return entries

    def refresh_all(self, record_snapshots: bool = True) -> dict[LeaderboardWindow, list[RankedEntry]]:
        """Value every user once and re-rank and cache every window."""
        valuations = self.value_all_users()
        rankings = {}
        for window in LeaderboardWindow:
            entries = rank_valuations(valuations, window)
            self._cache.set(leaderboard_key(window.value), encode_entries(entries), self._ttl_seconds)
            rankings[window] = entries
        if record_snapshots:
            self._record_snapshots(valuations)
        logger.info("Refreshed all leaderboards for %d users", len(valuations))
        return rankings

    def invalidate(self, window: Optional[LeaderboardWindow] = None) -> int:
        """Drop cached rankings for one window, or all of them."""
        pattern = leaderboard_key(LeaderboardWindow(window).value if window else "*")
        removed = self._cache.delete_by_pattern(pattern)
        logger.info("Invalidated %d cached leaderboard(s) matching %s", removed, pattern)
        return removed

    def value_all_users(self) -> list[PortfolioValuation]:
        """Value every user in parallel. Holdings failures propagate."""
        user_ids = self._holdings_provider.list_user_ids()
        futures = [self._executor.submit(self._valuation.value_user, uid) for uid in user_ids]
        return [f.result() for f in futures]

    def _record_snapshots(self, valuations: list[PortfolioValuation]) -> None:
        if self._snapshots is None:
            return
        for valuation in valuations:
            self._snapshots.record(
                valuation.user_id, valuation.summary.total_current_value, as_of=valuation.as_of
            )
