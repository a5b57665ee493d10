"""Wall-clock access.

Time-dependent components (rate limiter, state store expiry, token age
gate) take a Clock so tests can drive time explicitly.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime

# Returns the current time as epoch milliseconds.
Clock = Callable[[], int]


def system_clock() -> int:
    return time.time_ns() // 1_000_000


def to_datetime(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds.

    Naive datetimes are read as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return round(value.timestamp() * 1000)


def iso_timestamp(epoch_ms: int) -> str:
    """Render epoch milliseconds as ISO-8601 with millisecond precision and a Z suffix."""
    return to_datetime(epoch_ms).isoformat(timespec="milliseconds").replace("+00:00", "Z")
