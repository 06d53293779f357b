"""Date and time utilities for the calendar client."""

from datetime import datetime, timedelta
from typing import Optional

import pytz


def to_local_time(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Express a datetime as wall-clock time in the user's zone.

    Naive datetimes are taken to already be wall-clock time in that zone.

    Args:
        dt: Datetime to convert
        tz_name: IANA zone name (None for the system zone)

    Returns:
        Timezone-aware datetime in the user's zone
    """
    if tz_name:
        tz = pytz.timezone(tz_name)
        if dt.tzinfo is None:
            return tz.localize(dt)
        return dt.astimezone(tz)
    # datetime.astimezone() with no argument targets the system zone
    return dt.astimezone()


def format_wire_timestamp(dt: datetime, tz_name: Optional[str] = None) -> str:
    """
    Format a datetime as YYYY-MM-DDTHH:MM:SS+HH:MM for the API.

    The offset is the user's local offset at that instant, never a UTC "Z":
    the server keeps the IANA zone separately and expands recurrences from the
    wall-clock time.
    """
    return to_local_time(dt, tz_name).replace(microsecond=0).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp returned by the server."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def get_event_window(
    lookback_days: int = 7,
    lookahead_days: int = 30,
    tz_name: Optional[str] = None,
) -> tuple[datetime, datetime]:
    """
    Get a [start, end) window of whole local days around today.

    Args:
        lookback_days: Days to look back from today
        lookahead_days: Days to look ahead from today
        tz_name: IANA zone name (None for the system zone)

    Returns:
        Tuple of (start, end) in the user's zone
    """
    now = to_local_time(datetime.now(pytz.utc), tz_name)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0).replace(tzinfo=None)
    start = to_local_time(today - timedelta(days=lookback_days), tz_name)
    # End at midnight after the last day to include all of its events
    end = to_local_time(today + timedelta(days=lookahead_days + 1), tz_name)
    return start, end
