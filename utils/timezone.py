# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Time utilities - UTC clock plus local-time display helpers
"""
from datetime import datetime
import pytz
from typing import Optional

import config


def get_local_timezone():
    """Get the configured display timezone"""
    return pytz.timezone(config.TIMEZONE)


def get_local_time() -> datetime:
    """Get current time in the configured local timezone"""
    return datetime.now(get_local_timezone())


def utc_now() -> datetime:
    """Get current time as an aware UTC datetime"""
    return datetime.now(pytz.UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are assumed to be UTC"""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def utc_to_local(utc_dt: Optional[datetime]) -> Optional[datetime]:
    """Convert a UTC datetime to the configured local timezone"""
    if utc_dt is None:
        return None
    return ensure_utc(utc_dt).astimezone(get_local_timezone())


def format_local_time(dt: Optional[datetime], include_timezone: bool = True) -> str:
    """Format datetime in local time for display"""
    if dt is None:
        return "Never"

    local_dt = utc_to_local(dt)
    if include_timezone:
        return local_dt.strftime('%b %d, %Y at %I:%M %p %Z')
    return local_dt.strftime('%b %d, %Y at %I:%M %p')


def to_iso(dt: Optional[datetime]) -> str:
    """Serialize a datetime as an ISO 8601 UTC string ('' for None)"""
    if dt is None:
        return ''
    return ensure_utc(dt).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string into an aware UTC datetime"""
    if not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(value))


class SystemClock:
    """Wall clock returning aware UTC datetimes"""

    def now(self) -> datetime:
        return utc_now()


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime):
        self._now = ensure_utc(now)

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime):
        self._now = ensure_utc(now)

    def advance(self, delta):
        self._now = self._now + delta
