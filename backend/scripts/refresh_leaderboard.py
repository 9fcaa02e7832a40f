#!/usr/bin/env python
"""Recompute and cache every leaderboard window.

Intended for a scheduler (cron, systemd timer) so requests are served from
a warm cache. Also records today's portfolio snapshots unless told not to.

Usage:
    cd backend
    uv run python -m scripts.refresh_leaderboard [--window daily] [--no-snapshots]
"""

import argparse
import sys

from config import settings
from database import get_session_local
from logging_config import setup_logging
from services.holdings_service import HoldingsUnavailableError, SqlHoldingsProvider
from services.leaderboard_service import LeaderboardWindow
from services.valuation_engine import create_valuation_engine


def _print_ranking(window: LeaderboardWindow, entries) -> None:
    print(f"{window.value}: {len(entries)} users")
    for entry in entries[:10]:
        print(
            f"  #{entry.rank:<3} user {entry.user_id:<6} "
            f"{entry.gain_percentage:>8}%  worth {entry.current_worth:.2f}"
        )


def main():
    parser = argparse.ArgumentParser(description="Refresh cached leaderboards")
    parser.add_argument(
        "--window",
        choices=[w.value for w in LeaderboardWindow],
        help="Refresh only this window (default: all)",
    )
    parser.add_argument(
        "--no-snapshots",
        action="store_true",
        help="Do not record today's portfolio snapshots",
    )
    args = parser.parse_args()

    setup_logging()
    engine = create_valuation_engine(settings, SqlHoldingsProvider(get_session_local()))
    try:
        if args.window:
            window = LeaderboardWindow(args.window)
            entries = engine.leaderboard.get_leaderboard(
                window, force_refresh=True, record_snapshots=not args.no_snapshots
            )
            _print_ranking(window, entries)
        else:
            rankings = engine.leaderboard.refresh_all(record_snapshots=not args.no_snapshots)
            for window, entries in rankings.items():
                _print_ranking(window, entries)
    except HoldingsUnavailableError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        engine.close()


if __name__ == "__main__":
    main()
