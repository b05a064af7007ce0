"""
Timezone utilities for cafeslot.

Reservations are booked against a venue's local calendar (booking date +
start label) while session timestamps are stored in UTC. These helpers
convert between the two.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pytz

from .config import settings


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    SQLite drops tzinfo on round-trip, so naive values read back from the
    store are assumed to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def get_venue_timezone(tz_name: Optional[str]) -> pytz.BaseTzInfo:
    """
    Get a venue's timezone, falling back to the configured default.

    Args:
        tz_name: IANA timezone name stored on the venue (may be empty)

    Returns:
        pytz timezone object
    """
    return pytz.timezone(tz_name or settings.default_venue_timezone)


def venue_now(tz_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Current (or given) instant expressed in the venue's local time."""
    instant = ensure_utc(now) if now is not None else utc_now()
    return instant.astimezone(get_venue_timezone(tz_name))


def venue_today(tz_name: Optional[str], now: Optional[datetime] = None) -> date:
    """'Today' in the venue's timezone."""
    return venue_now(tz_name, now).date()


def local_datetime(tz_name: Optional[str], day: date, minutes: int) -> datetime:
    """
    Build an aware local datetime for ``minutes`` after midnight on ``day``.

    Args:
        tz_name: Venue timezone name
        day: Calendar date in the venue's timezone
        minutes: Minutes after local midnight (may be 1440 for end-of-day)

    Returns:
        Aware datetime in the venue's timezone
    """
    tz = get_venue_timezone(tz_name)
    naive = datetime.combine(day, time(0, 0)) + timedelta(minutes=minutes)
    return tz.localize(naive)
