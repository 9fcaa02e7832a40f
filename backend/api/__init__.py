"""API route handlers."""
from . import leaderboard, market_data, portfolio

__all__ = ["leaderboard", "market_data", "portfolio"]
