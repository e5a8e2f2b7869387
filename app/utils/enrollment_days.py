# app/utils/enrollment_days.py
"""
Elapsed drip days since enrollment.

Days are counted in a fixed business timezone (UTC+7) using plain offset
arithmetic, never the server's local zone or a tz database. The enrollment
day itself is day 1.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

BUSINESS_UTC_OFFSET_HOURS = 7


def as_utc(value: datetime) -> datetime:
    # Naive values coming back from the database are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def business_date(value: datetime, utc_offset_hours: int = BUSINESS_UTC_OFFSET_HOURS):
    """Calendar date of ``value`` in the shifted business frame."""
    return (as_utc(value) + timedelta(hours=utc_offset_hours)).date()


def days_since_enrollment(
    enrolled_at: datetime,
    now: Optional[datetime] = None,
    utc_offset_hours: int = BUSINESS_UTC_OFFSET_HOURS,
) -> int:
    """
    Return the 1-based drip day for ``now``.

    Both instants are shifted by the business offset and truncated to their
    calendar day; the whole-day difference plus one is returned, floored at 1
    so clock skew (``now`` before ``enrolled_at``) never yields 0 or less.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    enrolled_day = business_date(enrolled_at, utc_offset_hours)
    today = business_date(now, utc_offset_hours)

    return max(1, (today - enrolled_day).days + 1)
