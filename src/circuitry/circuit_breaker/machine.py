"""Immutable circuit breaker state machine.

The machine computes the next state for each call lifecycle event. Every
transition yields a new ``StateMachine``; the receiver is never modified. The
owner of the machine runs the protected call between ``BEFORE_CALL`` and the
outcome event.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import assert_never

from circuitry.circuit_breaker.clock import Clock
from circuitry.circuit_breaker.state import CircuitState, Closed, HalfOpen, Open

ThresholdPolicy = Callable[[int], bool]
TimeoutPolicy = Callable[[datetime, datetime], bool]
TransitionObserver = Callable[[CircuitState, CircuitState], None]


class Event(StrEnum):
    """Lifecycle events emitted around every protected call."""

    BEFORE_CALL = "before_call"
    CALL_SUCCEEDED = "call_succeeded"
    CALL_FAILED = "call_failed"


@dataclass(frozen=True, slots=True)
class StateMachine:
    """Circuit state plus the policies that drive its transitions.

    Attributes:
        current_state: State the machine is in.
        is_threshold_reached: ``failure_count -> bool``; trips ``CLOSED``.
        is_timeout_reached: ``(opened_at, now) -> bool``; admits a probation call.
        clock: Source of the current instant.
        notify_transition: Optional ``(previous, next)`` observer called once
            per state change.
    """

    current_state: CircuitState
    is_threshold_reached: ThresholdPolicy
    is_timeout_reached: TimeoutPolicy
    clock: Clock
    notify_transition: TransitionObserver | None = None

    def should_fail_fast(self) -> bool:
        return not self.current_state.is_call_permitted()

    def _next(self, state: CircuitState) -> StateMachine:
        if state is self.current_state:
            return self
        if self.notify_transition is not None:
            self.notify_transition(self.current_state, state)
        return dataclasses.replace(self, current_state=state)

    def _from_closed(self, closed: Closed, event: Event) -> CircuitState:
        match event:
            case Event.BEFORE_CALL:
                return closed
            case Event.CALL_SUCCEEDED:
                return closed.reset()
            case Event.CALL_FAILED:
                if self.is_threshold_reached(closed.failure_count + 1):
                    return closed.trip(self.clock())
                return closed.increase_failure()
            case _:
                assert_never(event)

    def _from_open(self, open_: Open, event: Event) -> CircuitState:
        match event:
            case Event.BEFORE_CALL:
                if self.is_timeout_reached(open_.opened_at, self.clock()):
                    return open_.try_reset()
                return open_
            case Event.CALL_SUCCEEDED | Event.CALL_FAILED:
                # Outcome of a call admitted before the circuit tripped.
                return open_
            case _:
                assert_never(event)

    def _from_half_open(self, half_open: HalfOpen, event: Event) -> CircuitState:
        match event:
            case Event.BEFORE_CALL:
                return half_open
            case Event.CALL_SUCCEEDED:
                return half_open.reset()
            case Event.CALL_FAILED:
                return half_open.trip(self.clock())
            case _:
                assert_never(event)

    def transition(self, event: Event) -> StateMachine:
        """Apply one lifecycle event and return the resulting machine."""
        state = self.current_state
        match state:
            case Closed():
                return self._next(self._from_closed(state, event))
            case Open():
                return self._next(self._from_open(state, event))
            case HalfOpen():
                return self._next(self._from_half_open(state, event))
            case _:
                assert_never(state)
