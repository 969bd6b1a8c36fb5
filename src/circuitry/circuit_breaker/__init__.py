"""Circuit breaker for sync and async callables.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - States are immutable values (``Closed``, ``Open``, ``HalfOpen``) and the
    ``StateMachine`` that moves between them is immutable too. A
    ``CircuitBreaker`` owns the only mutable cell and replaces the machine
    after every protected call.
  - A breaker protects exactly one callable. Calling ``wrap`` twice raises
    ``AlreadyInUseError``.
  - Protected calls run concurrently; the state cell is replaced under a
    short lock around each lifecycle event. While half-open exactly one
    probation call is admitted and concurrent callers fail fast.
"""

from circuitry.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from circuitry.circuit_breaker.clock import Clock, utcnow
from circuitry.circuit_breaker.exceptions import (
    AlreadyInUseError,
    CircuitBreakerError,
    FailFastError,
)
from circuitry.circuit_breaker.machine import (
    Event,
    StateMachine,
    TransitionObserver,
)
from circuitry.circuit_breaker.state import (
    CircuitState,
    Closed,
    HalfOpen,
    Open,
    StateKind,
)

__all__ = [
    "AlreadyInUseError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "Clock",
    "Closed",
    "Event",
    "FailFastError",
    "HalfOpen",
    "Open",
    "StateKind",
    "StateMachine",
    "TransitionObserver",
    "utcnow",
]
