"""Datetime helpers."""

from datetime import datetime, timedelta, timezone


def utc_now_naive() -> datetime:
    """Current UTC time without tzinfo (what the mirror store columns hold)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def week_start(moment: datetime) -> datetime:
    """Sunday 00:00 UTC of the week containing ``moment``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    days_since_sunday = (moment.weekday() + 1) % 7
    start = moment - timedelta(days=days_since_sunday)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def week_end(moment: datetime) -> datetime:
    """Start of the week following the one containing ``moment`` (exclusive bound)."""
    return week_start(moment) + timedelta(days=7)


def ms_to_datetime(ts_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)


def datetime_to_ms(moment: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are treated as UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)
