from __future__ import annotations

import json
from collections.abc import Iterator

import pytest
import structlog
from pydantic import ValidationError

from circuitry.circuit_breaker import CircuitBreakerConfig, FailFastError
from circuitry.settings import BreakerSettings


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


def test_breaker_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("MAX_FAILURES", "RESET_TIMEOUT_MILLIS", "LOG_LEVEL"):
        monkeypatch.delenv(f"CIRCUIT_BREAKER_{key}", raising=False)

    settings = BreakerSettings()

    assert settings.max_failures == 5
    assert settings.reset_timeout_millis == 1000
    assert settings.log_level == "INFO"
    assert settings.to_config() == CircuitBreakerConfig()


def test_breaker_settings_reads_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CIRCUIT_BREAKER_MAX_FAILURES", "3")
    monkeypatch.setenv("circuit_breaker_reset_timeout_millis", "250")
    monkeypatch.setenv("CIRCUIT_BREAKER_LOG_LEVEL", " debug ")

    settings = BreakerSettings()

    assert settings.log_level == "DEBUG"
    assert settings.to_config() == CircuitBreakerConfig(
        max_failures=3, reset_timeout_millis=250
    )


def test_breaker_settings_rejects_non_positive_max_failures() -> None:
    with pytest.raises(ValidationError):
        BreakerSettings(max_failures=0)


def test_breaker_settings_rejects_negative_reset_timeout() -> None:
    with pytest.raises(ValidationError):
        BreakerSettings(reset_timeout_millis=-1)


def test_breaker_settings_rejects_unknown_log_level() -> None:
    with pytest.raises(ValidationError):
        BreakerSettings(log_level="TRACE")


def _events(err: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in err.splitlines()]


def test_build_breaker_logs_through_structlog_at_configured_level(
    capsys: pytest.CaptureFixture[str],
) -> None:
    settings = BreakerSettings(max_failures=1, reset_timeout_millis=10_000)
    breaker = settings.build_breaker(name="quotes")

    def _fail() -> None:
        raise RuntimeError("Boom")

    protected = breaker.wrap(_fail)
    with pytest.raises(RuntimeError):
        protected()
    with pytest.raises(FailFastError):
        protected()

    events = _events(capsys.readouterr().err)
    assert breaker.config == CircuitBreakerConfig(
        max_failures=1, reset_timeout_millis=10_000
    )
    assert [event["event"] for event in events] == [
        "circuit_breaker.state_changed",
        "circuit_breaker.call_rejected",
    ]
    assert events[0]["breaker"] == "quotes"
    assert events[0]["current"] == "open"


def test_build_breaker_honours_log_level(
    capsys: pytest.CaptureFixture[str],
) -> None:
    settings = BreakerSettings(max_failures=1, log_level="error")
    protected = settings.build_breaker().wrap(lambda: "ok")

    assert protected() == "ok"
    assert capsys.readouterr().err == ""
