"""
Time helpers.

Instants are stored as naive UTC datetimes. Local wall-clock values (business
hours, widget input without an offset) are interpreted in the deployment's
single BUSINESS_TIMEZONE.
"""

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import BUSINESS_TIMEZONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or BUSINESS_TIMEZONE)


def to_utc(value: datetime, tz: ZoneInfo) -> datetime:
    """Normalize an input datetime to naive UTC; naive input is local time in ``tz``"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime, tz: ZoneInfo) -> datetime:
    """Convert a stored naive-UTC instant to an aware local datetime"""
    return value.replace(tzinfo=timezone.utc).astimezone(tz)


def local_to_utc(day: date, at: time, tz: ZoneInfo) -> datetime:
    return to_utc(datetime.combine(day, at), tz)


def isoformat_utc(value: datetime) -> str:
    return value.replace(tzinfo=timezone.utc).isoformat()
