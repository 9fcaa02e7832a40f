"""Read-only access to user holdings."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import User, UserStock
from utils.ticker import normalize_symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Holding:
    """One purchase lot. Owned by the holdings store; never modified here."""

    user_id: int
    symbol: str
    quantity: Decimal
    purchase_price: Decimal
    purchase_date: date
    company_name: str | None = None

    @property
    def purchase_value(self) -> Decimal:
        return self.quantity * self.purchase_price


class HoldingsUnavailableError(Exception):
    """The holdings store could not be read."""

    pass


class HoldingsProvider(Protocol):
    def list_user_ids(self) -> list[int]:
        ...

    def get_holdings(self, user_id: int) -> list[Holding]:
        ...


class SqlHoldingsProvider:
    """HoldingsProvider backed by the ``users`` / ``user_stocks`` tables.

    Opens a short-lived session per call so it can be used from worker
    threads.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def list_user_ids(self) -> list[int]:
        try:
            with self._session_factory() as db:
                return [row[0] for row in db.query(User.id).order_by(User.id).all()]
        except SQLAlchemyError as e:
            logger.error("Failed to list users", exc_info=True)
            raise HoldingsUnavailableError("Failed to list users") from e

    def get_holdings(self, user_id: int) -> list[Holding]:
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(UserStock)
                    .filter(UserStock.user_id == user_id)
                    .order_by(UserStock.symbol, UserStock.id)
                    .all()
                )
                return [
                    Holding(
                        user_id=row.user_id,
                        symbol=normalize_symbol(row.symbol),
                        quantity=Decimal(row.quantity),
                        purchase_price=Decimal(row.purchase_price),
                        purchase_date=row.purchase_date,
                        company_name=row.company_name,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            logger.error("Failed to load holdings for user %s", user_id, exc_info=True)
            raise HoldingsUnavailableError(f"Failed to load holdings for user {user_id}") from e
