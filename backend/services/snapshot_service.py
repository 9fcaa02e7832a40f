"""Daily portfolio snapshots, kept in the cache for history charts."""

import json
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional

from cache.keys import SNAPSHOT_TTL_SECONDS, portfolio_snapshot_key
from cache.protocol import Cache
from utils.dates import utc_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioSnapshot:
    user_id: int
    snapshot_date: date
    total_value: Decimal

    def to_payload(self) -> bytes:
        return json.dumps(
            {
                "date": self.snapshot_date.isoformat(),
                "total_value": str(self.total_value),
                "user_id": self.user_id,
            },
            sort_keys=True,
        ).encode()

    @classmethod
    def from_payload(cls, payload: bytes) -> "PortfolioSnapshot":
        data = json.loads(payload)
        return cls(
            user_id=int(data["user_id"]),
            snapshot_date=date.fromisoformat(data["date"]),
            total_value=Decimal(data["total_value"]),
        )


class SnapshotService:
    """Records at most one portfolio value per user per day."""

    def __init__(
        self,
        cache: Cache,
        ttl_seconds: int = SNAPSHOT_TTL_SECONDS,
        today: Callable[[], date] = utc_today,
    ):
        self._cache = cache
        self._ttl_seconds = ttl_seconds
        self._today = today

    def record(self, user_id: int, total_value: Decimal, as_of: Optional[date] = None) -> bool:
        """Write today's snapshot unless one already exists.

        Returns:
            True when a snapshot was written.
        """
        day = as_of or self._today()
        key = portfolio_snapshot_key(user_id, day)
        if self._cache.exists(key):
            return False
        snapshot = PortfolioSnapshot(user_id, day, total_value)
        self._cache.set(key, snapshot.to_payload(), self._ttl_seconds)
        logger.debug("Recorded snapshot for user %s on %s: %s", user_id, day, total_value)
        return True

    def get(self, user_id: int, day: date) -> Optional[PortfolioSnapshot]:
        payload = self._cache.get(portfolio_snapshot_key(user_id, day))
        if payload is None:
            return None
        try:
            return PortfolioSnapshot.from_payload(payload)
        except (ValueError, KeyError):
            logger.warning("Discarding unreadable snapshot for user %s on %s", user_id, day)
            return None

    def history(self, user_id: int, days: int = 7) -> list[PortfolioSnapshot]:
        """Snapshots from the last ``days`` days, newest first. Gaps are skipped."""
        today = self._today()
        snapshots = []
        for offset in range(days):
            snapshot = self.get(user_id, today - timedelta(days=offset))
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots
