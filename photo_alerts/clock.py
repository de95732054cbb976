"""Time helpers shared by the metric store and the alert engine.

Every component that reads "now" takes a ``Clock`` so tests can drive time
explicitly instead of sleeping.
"""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def normalize_timestamp(timestamp: datetime) -> datetime:
    """Normalize a timestamp to UTC.

    - If naive: assume UTC
    - If other tz: convert to UTC
    """
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)

    if timestamp.tzinfo == timezone.utc:
        return timestamp

    return timestamp.astimezone(timezone.utc)
