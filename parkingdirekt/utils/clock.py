"""Time helpers.

Timestamps are stored as naive UTC datetimes so values compare the same way
on SQLite and PostgreSQL.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def epoch_ms(value: datetime) -> int:
    """Milliseconds since the epoch for a naive UTC or aware datetime."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch(seconds: float) -> datetime:
    """Naive UTC datetime for a Unix timestamp in seconds."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
