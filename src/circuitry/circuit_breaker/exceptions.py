"""Circuit breaker exceptions.

Callers can distinguish between:
  - Misuse of the breaker (``AlreadyInUseError``).
  - A call being rejected because the circuit is open (``FailFastError``).
  - The protected operation's own failure, which is re-raised unchanged.

Every breaker exception carries a stable string ``kind``.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package.

    Attributes:
        kind: Stable identifier of the error kind.
    """

    kind = "circuit-breaker-error"

    def __init__(self, detail: str | None = None) -> None:
        message = f"circuit_breaker: {self.kind}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class AlreadyInUseError(CircuitBreakerError):
    """Raised by ``wrap`` when the breaker already protects a callable."""

    kind = "already-in-use"


class FailFastError(CircuitBreakerError):
    """Raised by a protected callable when the breaker forbids calls.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
    """

    kind = "fail-fast"

    def __init__(self, breaker_name: str) -> None:
        self.breaker_name = breaker_name
        super().__init__(breaker_name)
