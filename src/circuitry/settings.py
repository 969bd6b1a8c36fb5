from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from circuitry.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    Clock,
    TransitionObserver,
)
from circuitry.logging import AnyLogger, configure_structlog, get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Circuit breaker settings read from ``CIRCUIT_BREAKER_*`` variables."""

    model_config = prefixed_settings_config("CIRCUIT_BREAKER_")

    max_failures: int = 5
    reset_timeout_millis: int = 1000
    log_level: str = "INFO"

    @field_validator("max_failures")
    @classmethod
    def _validate_max_failures(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_failures must be >= 1")
        return value

    @field_validator("reset_timeout_millis")
    @classmethod
    def _validate_reset_timeout_millis(cls, value: int) -> int:
        if value < 0:
            raise ValueError("reset_timeout_millis must be >= 0")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    def to_config(self) -> CircuitBreakerConfig:
        """Build the breaker configuration record."""
        return CircuitBreakerConfig(
            max_failures=self.max_failures,
            reset_timeout_millis=self.reset_timeout_millis,
        )

    def build_breaker(
        self,
        *,
        name: str = "circuit_breaker",
        clock: Clock | None = None,
        logger: AnyLogger | None = None,
        on_transition: TransitionObserver | None = None,
    ) -> CircuitBreaker:
        """Build a breaker from these settings.

        Without an explicit ``logger`` structlog is configured at
        ``log_level`` and its logger receives the breaker events.
        """
        if logger is None:
            logger = configure_structlog(log_level=self.log_level)
        return CircuitBreaker(
            self.to_config(),
            clock,
            name=name,
            logger=logger,
            on_transition=on_transition,
        )
