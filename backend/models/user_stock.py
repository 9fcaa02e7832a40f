"""UserStock model - one purchase lot held by a user."""

from decimal import Decimal

from sqlalchemy import Column, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from database import Base


class UserStock(Base):
    """A holding of an equity or ``@``-prefixed crypto symbol.

    Written by the buy/sell flows; the valuation engine only reads it.
    """

    __tablename__ = "user_stocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    symbol = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    quantity = Column(Numeric(18, 8), nullable=False, default=Decimal("0"))
    purchase_price = Column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    purchase_date = Column(Date, nullable=False)

    # Relationships
    user = relationship("User", back_populates="stocks")
