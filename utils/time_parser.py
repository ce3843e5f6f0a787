"""
File: utils/time_parser.py
Purpose: Parse fire times for one-time jobs (epoch, ISO and human formats)
"""

from datetime import datetime, timedelta
import math
import re

from config.timezone_config import get_timezone, localize

# Values above this are epoch milliseconds (year 2286 in seconds)
_MILLIS_THRESHOLD = 10_000_000_000

_RELATIVE_RE = re.compile(r'^(\d+)\s*([smhd])$')
_RELATIVE_UNITS = {'s': 'seconds', 'm': 'minutes', 'h': 'hours', 'd': 'days'}


def parse_hour(text):
    """
    Parse hour (and minutes) from text with am/pm support

    Args:
        text: Hour string like "9am", "2pm", "18:00", "14", "6:30pm"

    Returns:
        tuple: (hour, minute) in 24-hour format

    Examples:
        "9am" → (9, 0)
        "2pm" → (14, 0)
        "12am" → (0, 0)
        "12pm" → (12, 0)
        "18:30" → (18, 30)
    """
    text = text.strip().lower()
    is_pm = text.endswith('pm')
    is_am = text.endswith('am')
    if is_pm or is_am:
        text = text[:-2].strip()

    if ':' in text:
        hour_str, minute_str = text.split(':', 1)
        hour, minute = int(hour_str), int(minute_str)
    else:
        hour, minute = int(text), 0

    if is_pm and hour != 12:
        hour += 12
    if is_am and hour == 12:
        hour = 0

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: {text}")
    return hour, minute


def _at_time_of_day(day, time_part, tz_name):
    hour, minute = parse_hour(time_part)
    naive = datetime.combine(day, datetime.min.time()) + timedelta(hours=hour, minutes=minute)
    return localize(naive, tz_name)


def parse_fire_at(value, now=None, tz_name=None):
    """
    Convert a persisted or user-supplied fire time to epoch seconds

    Args:
        value: number or string
        now: reference epoch seconds for relative forms (default: current time)
        tz_name: zone for naive date-times (default: configured TIMEZONE)

    Returns:
        float: epoch seconds

    Supported formats:
        - 1767225600000 → epoch milliseconds (schedules files)
        - 1767225600 → epoch seconds
        - "now", "30m", "2h", "1d" → relative to now
        - "today 18:00", "tomorrow 9am" → day at time, in tz_name
        - "2026-01-31 20:00" → exact date and time, in tz_name
        - "2026-01-31T20:00:00+00:00" → ISO 8601
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid fire time: {value!r}")

    if isinstance(value, (int, float)):
        ts = float(value)
        if not math.isfinite(ts):
            raise ValueError(f"Invalid fire time: {value!r}")
        return ts / 1000 if ts > _MILLIS_THRESHOLD else ts

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid fire time: {value!r}")

    text = value.strip().lower()
    if now is None:
        now = datetime.now(get_timezone(tz_name)).timestamp()

    try:
        return parse_fire_at(float(text))
    except ValueError:
        pass

    if text == 'now':
        return now

    match = _RELATIVE_RE.match(text)
    if match:
        amount, unit = match.groups()
        return now + timedelta(**{_RELATIVE_UNITS[unit]: int(amount)}).total_seconds()

    today = datetime.fromtimestamp(now, get_timezone(tz_name)).date()
    for keyword, offset in (('today', 0), ('tomorrow', 1)):
        if text.startswith(keyword):
            time_part = text[len(keyword):].strip()
            if not time_part:
                raise ValueError(f"Missing time of day: {value}")
            day = today + timedelta(days=offset)
            return _at_time_of_day(day, time_part, tz_name).timestamp()

    try:
        # Format: 2026-01-31 20:00
        return localize(datetime.strptime(text, '%Y-%m-%d %H:%M'), tz_name).timestamp()
    except ValueError:
        pass

    try:
        return localize(datetime.fromisoformat(value.strip()), tz_name).timestamp()
    except ValueError:
        pass

    raise ValueError(
        f"Invalid time format: {value}\n"
        "Use: epoch ms, now, 30m, 2h, today 18:00, tomorrow 9am, or 2026-01-31 20:00"
    )
