"""Cache key grammar and TTL policy.

Keys follow ``<domain>:<subject>:<qualifier...>``:

- ``price:current:<symbol>``
- ``price:hist:<symbol>:<unixDay>`` (UTC midnight of the target date, in seconds)
- ``leaderboard:<window>``
- ``portfolio:<userId>:<YYYY-MM-DD>``
"""

from datetime import date, datetime, time, timezone

ONE_DAY_SECONDS = 24 * 60 * 60

LIVE_QUOTE_TTL_SECONDS = 5 * 60
LEADERBOARD_TTL_SECONDS = 5 * 60
SNAPSHOT_TTL_SECONDS = 90 * ONE_DAY_SECONDS


def unix_day(day: date) -> int:
    return int(datetime.combine(day, time.min, tzinfo=timezone.utc).timestamp())


def current_price_key(symbol: str) -> str:
    return f"price:current:{symbol}"


def historical_price_key(symbol: str, day: date) -> str:
    return f"price:hist:{symbol}:{unix_day(day)}"


def leaderboard_key(window: str) -> str:
    return f"leaderboard:{window}"


def portfolio_snapshot_key(user_id: int, day: date) -> str:
    return f"portfolio:{user_id}:{day.isoformat()}"


def historical_ttl_seconds(target: date, today: date) -> int:
    """TTL for a date-specific quote: older quotes live longer.

    Quotes at most a day old can still be revised by the provider; a week
    or older are settled.
    """
    age_days = (today - target).days
    if age_days <= 1:
        return ONE_DAY_SECONDS
    if age_days <= 7:
        return 7 * ONE_DAY_SECONDS
    return 30 * ONE_DAY_SECONDS
