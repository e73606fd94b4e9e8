# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Weekday policy — pure calendar math, no I/O.
Every date decision is made in one reference timezone.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from triage_rotation.core.config import settings

WEEKEND: frozenset[int] = frozenset({5, 6})  # Saturday, Sunday


def reference_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.REFERENCE_TIMEZONE)


def to_reference(instant: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert an instant to the reference timezone. Naive means UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(reference_zone(tz_name))


def local_date(instant: datetime, tz_name: Optional[str] = None) -> date:
    return to_reference(instant, tz_name).date()


def today(tz_name: Optional[str] = None) -> date:
    return local_date(datetime.now(timezone.utc), tz_name)


def is_business_day(day: date) -> bool:
    return day.weekday() not in WEEKEND


def should_defer(instant: datetime, tz_name: Optional[str] = None) -> bool:
    """True when the instant falls on a Saturday or Sunday (reference tz)."""
    return not is_business_day(local_date(instant, tz_name))


def next_business_day(instant: datetime, tz_name: Optional[str] = None) -> datetime:
    """Start of the first weekday strictly after the instant's local date."""
    day = local_date(instant, tz_name) + timedelta(days=1)
    while not is_business_day(day):
        day += timedelta(days=1)
    return datetime.combine(day, time.min, tzinfo=reference_zone(tz_name))
