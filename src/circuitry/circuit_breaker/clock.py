"""Clock used by circuit breakers to stamp and age ``OPEN`` states."""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current timezone-aware UTC instant."""
    return datetime.now(UTC)
