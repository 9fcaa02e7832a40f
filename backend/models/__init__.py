"""SQLAlchemy ORM models."""

from .user import User
from .user_stock import UserStock

__all__ = ["User", "UserStock"]
