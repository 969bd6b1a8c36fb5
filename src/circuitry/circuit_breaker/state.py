"""Circuit breaker state primitives.

``CircuitState`` is a closed union of three immutable variants. Transition
operations always return a state value and never mutate the receiver.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class StateKind(StrEnum):
    """Circuit breaker state names."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class Closed:
    """Calls permitted; counts consecutive failures since the last reset.

    Attributes:
        failure_count: Consecutive failures recorded while ``CLOSED``.
    """

    failure_count: int = 0

    def __post_init__(self) -> None:
        if self.failure_count < 0:
            raise ValueError("failure_count must be >= 0")

    @property
    def kind(self) -> StateKind:
        return StateKind.CLOSED

    def is_call_permitted(self) -> bool:
        return True

    def reset(self) -> "Closed":
        """Clear the failure count after a successful call."""
        if self.failure_count == 0:
            return self
        return Closed()

    def increase_failure(self) -> "Closed":
        """Record one more failure below the threshold."""
        return Closed(self.failure_count + 1)

    def trip(self, now: datetime) -> "Open":
        """Open the circuit at ``now``."""
        return Open(opened_at=now)


@dataclass(frozen=True, slots=True)
class Open:
    """Calls forbidden until the reset timeout elapsed.

    Attributes:
        opened_at: Instant the breaker tripped.
    """

    opened_at: datetime

    @property
    def kind(self) -> StateKind:
        return StateKind.OPEN

    def is_call_permitted(self) -> bool:
        return False

    def try_reset(self) -> "HalfOpen":
        """Begin probation once the cooldown elapsed."""
        return HalfOpen()


@dataclass(frozen=True, slots=True)
class HalfOpen:
    """Probation: the next call outcome closes or re-opens the circuit."""

    @property
    def kind(self) -> StateKind:
        return StateKind.HALF_OPEN

    def is_call_permitted(self) -> bool:
        return True

    def reset(self) -> Closed:
        return Closed()

    def trip(self, now: datetime) -> Open:
        return Open(opened_at=now)


CircuitState = Closed | Open | HalfOpen
