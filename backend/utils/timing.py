"""Clock and duration helpers shared by the downtime services."""

from datetime import datetime, timedelta, timezone

_ONE_MS = timedelta(milliseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds from start to end (floored)."""
    return (ensure_utc(end) - ensure_utc(start)) // _ONE_MS


def floor_seconds(milliseconds: int) -> int:
    return milliseconds // 1000


def floor_minutes(milliseconds: int) -> int:
    return milliseconds // 60_000


def format_duration(seconds: int) -> str:
    """Render a duration as "Xm Ys", or "Ys" under a minute."""
    minutes, remaining = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}m {remaining}s"
    return f"{remaining}s"
