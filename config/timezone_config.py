"""
File: config/timezone_config.py
Purpose: Timezone helpers for cron evaluation and human-readable fire times
"""

from datetime import datetime
import pytz

from .settings import TIMEZONE

UTC = pytz.UTC


def get_timezone(name=None):
    """
    Resolve a timezone name, falling back to the configured default

    Raises:
        pytz.UnknownTimeZoneError: if the name is not a known zone
    """
    return pytz.timezone(name or TIMEZONE)


def is_valid_timezone(name):
    """Check a timezone name without raising"""
    try:
        pytz.timezone(name)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def from_timestamp(ts, tz_name=None):
    """Convert epoch seconds to an aware datetime in the given zone"""
    return datetime.fromtimestamp(ts, get_timezone(tz_name))


def localize(naive_dt, tz_name=None):
    """
    Attach a timezone to a naive datetime

    Args:
        naive_dt: datetime without tzinfo (aware values are returned as-is)
        tz_name: zone name, defaults to the configured TIMEZONE

    Returns:
        datetime: aware datetime
    """
    if naive_dt.tzinfo is not None:
        return naive_dt
    return get_timezone(tz_name).localize(naive_dt)


def format_time_display(ts, tz_name=None, show_utc=True):
    """
    Format an epoch timestamp for display

    Args:
        ts: epoch seconds
        tz_name: display zone, defaults to the configured TIMEZONE
        show_utc: Whether to show UTC time alongside local time

    Returns:
        str: e.g. "2026-01-31 20:00 EST (01:00 UTC)"
    """
    local_dt = from_timestamp(ts, tz_name)
    local_str = local_dt.strftime('%Y-%m-%d %H:%M %Z')

    if show_utc:
        utc_str = datetime.fromtimestamp(ts, UTC).strftime('(%H:%M UTC)')
        return f"{local_str} {utc_str}"

    return local_str
