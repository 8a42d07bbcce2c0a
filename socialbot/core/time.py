"""Time and timezone utilities.

Everything stored by SocialBot is UTC. SQLite drops offsets on storage, so
values are normalized to UTC before they reach the database.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day_utc(now: Optional[datetime] = None) -> datetime:
    """Midnight (UTC) of the day containing ``now``."""
    now = to_utc(now) or utc_now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def minutes_from_now(minutes: int, now: Optional[datetime] = None) -> datetime:
    return (to_utc(now) or utc_now()) + timedelta(minutes=minutes)
