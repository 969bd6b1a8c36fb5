"""Core circuit breaker implementation."""

import functools
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, ParamSpec, TypeVar, cast

from circuitry.circuit_breaker.clock import Clock, utcnow
from circuitry.circuit_breaker.exceptions import AlreadyInUseError, FailFastError
from circuitry.circuit_breaker.machine import Event, StateMachine, TransitionObserver
from circuitry.circuit_breaker.state import CircuitState, Closed, HalfOpen
from circuitry.logging import AnyLogger, log_exception, log_info, log_warning

T = TypeVar("T")
P = ParamSpec("P")

_logger = logging.getLogger(__name__)


def _is_async_callable(func: object) -> bool:
    if inspect.iscoroutinefunction(func):
        return True
    call = getattr(func, "__call__", None)
    return inspect.iscoroutinefunction(call)


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        max_failures: Consecutive failures while ``CLOSED`` that trip the
            breaker.
        reset_timeout_millis: Milliseconds to wait while ``OPEN`` before a
            probation call is allowed.
    """

    max_failures: int = 5
    reset_timeout_millis: int = 1000

    def __post_init__(self) -> None:
        if self.max_failures < 1:
            raise ValueError("max_failures must be >= 1")
        if self.reset_timeout_millis < 0:
            raise ValueError("reset_timeout_millis must be >= 0")

    @property
    def reset_timeout(self) -> timedelta:
        return timedelta(milliseconds=self.reset_timeout_millis)


class CircuitBreaker:
    """Stateful proxy around exactly one dangerous callable.

    The current ``StateMachine`` is replaced under a lock held only while an
    event is applied; the protected callable always runs outside it. While
    ``HALF_OPEN`` a single probation call is admitted and concurrent callers
    fail fast.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Clock | None = None,
        *,
        name: str = "circuit_breaker",
        logger: AnyLogger | None = None,
        on_transition: TransitionObserver | None = None,
    ) -> None:
        """Build a circuit breaker in ``CLOSED`` state.

        Args:
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            clock: Source of the current instant. Defaults to the UTC wall
                clock.
            name: Breaker name used in logs and errors.
            logger: Logger for breaker events. Defaults to the module logger.
            on_transition: Optional ``(previous, next)`` state change observer.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._clock = utcnow if clock is None else clock
        self._logger = _logger if logger is None else logger
        self._on_transition = on_transition
        self._machine = self._init_state_machine()
        self._in_use = False
        self._probation_in_flight = False
        self._lock = threading.Lock()

    def _init_state_machine(self) -> StateMachine:
        max_failures = self.config.max_failures
        reset_timeout = self.config.reset_timeout

        def is_threshold_reached(failure_count: int) -> bool:
            return failure_count >= max_failures

        def is_timeout_reached(opened_at: datetime, now: datetime) -> bool:
            return opened_at + reset_timeout < now

        return StateMachine(
            current_state=Closed(),
            is_threshold_reached=is_threshold_reached,
            is_timeout_reached=is_timeout_reached,
            clock=self._clock,
            notify_transition=self._notify_transition,
        )

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._machine.current_state

    def should_fail_fast(self) -> bool:
        """Whether calls are currently forbidden."""
        return not self._machine.current_state.is_call_permitted()

    def _notify_transition(self, previous: CircuitState, current: CircuitState) -> None:
        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=self.name,
            previous=str(previous.kind),
            current=str(current.kind),
        )
        if self._on_transition is None:
            return
        try:
            self._on_transition(previous, current)
        except Exception:
            log_exception(
                self._logger,
                "circuit_breaker.observer_failed",
                breaker=self.name,
            )

    def _acquire(self) -> None:
        with self._lock:
            if self._in_use:
                raise AlreadyInUseError(self.name)
            self._in_use = True

    def _before_call(self) -> bool:
        """Apply ``BEFORE_CALL`` and admit the call.

        Returns:
            Whether the admitted call is the half-open probation call.

        Raises:
            FailFastError: When the circuit is open or a probation call is in flight.
        """
        with self._lock:
            self._machine = self._machine.transition(Event.BEFORE_CALL)
            if not self._machine.should_fail_fast():
                if not isinstance(self._machine.current_state, HalfOpen):
                    return False
                if not self._probation_in_flight:
                    self._probation_in_flight = True
                    return True
        log_warning(self._logger, "circuit_breaker.call_rejected", breaker=self.name)
        raise FailFastError(self.name)

    def _after_call(self, event: Event | None, *, is_probation: bool) -> None:
        """Apply the outcome event of an admitted call.

        ``event`` is ``None`` when the call ended with a ``BaseException`` that
        is neither success nor failure; only the probation slot is released.
        """
        with self._lock:
            if is_probation:
                self._probation_in_flight = False
            elif isinstance(self._machine.current_state, HalfOpen):
                # Only the probation call decides a half-open circuit.
                return
            if event is not None:
                self._machine = self._machine.transition(event)

    async def _settle(self, call: Callable[[], Awaitable[T]], is_probation: bool) -> T:
        try:
            result = await call()
        except Exception:
            self._after_call(Event.CALL_FAILED, is_probation=is_probation)
            raise
        except BaseException:
            self._after_call(None, is_probation=is_probation)
            raise
        self._after_call(Event.CALL_SUCCEEDED, is_probation=is_probation)
        return result

    def wrap(self, func: Callable[P, T]) -> Callable[P, T]:
        """Return a protected version of ``func``.

        A breaker protects one callable for its whole lifetime. Coroutine
        functions get an async wrapper. A plain callable that returns an
        awaitable gets an awaitable back, and its outcome is recorded once
        that awaitable settles; it must be awaited.

        Raises:
            AlreadyInUseError: When this breaker already produced a wrapper.
        """
        self._acquire()
        if _is_async_callable(func):
            return cast(Callable[P, T], self._wrap_async(cast(Any, func)))
        return self._wrap_sync(func)

    def _wrap_sync(self, func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def protected(*args: P.args, **kwargs: P.kwargs) -> T:
            is_probation = self._before_call()
            try:
                result = func(*args, **kwargs)
            except Exception:
                self._after_call(Event.CALL_FAILED, is_probation=is_probation)
                raise
            except BaseException:
                self._after_call(None, is_probation=is_probation)
                raise
            if inspect.isawaitable(result):
                awaitable = result
                return cast(T, self._settle(lambda: awaitable, is_probation))
            self._after_call(Event.CALL_SUCCEEDED, is_probation=is_probation)
            return result

        return protected

    def _wrap_async(
        self, func: Callable[P, Awaitable[T]]
    ) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def protected(*args: P.args, **kwargs: P.kwargs) -> T:
            is_probation = self._before_call()
            call = functools.partial(func, *args, **kwargs)
            return await self._settle(call, is_probation)

        return protected
