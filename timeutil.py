"""Timestamp helpers. All times are UTC; clocks return epoch seconds."""

import time
from datetime import datetime, timedelta, timezone


def system_clock():
    return time.time()


def to_iso(ts):
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def parse_iso(ts):
    """Parse an ISO-8601 string to epoch seconds, or None if unparseable."""
    raw = str(ts or "").strip()
    if not raw:
        return None
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def utc_date(ts):
    """Calendar date string (YYYY-MM-DD) of an epoch timestamp."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).date().isoformat()


def previous_utc_date(ts):
    day = datetime.fromtimestamp(ts, tz=timezone.utc).date()
    return (day - timedelta(days=1)).isoformat()
