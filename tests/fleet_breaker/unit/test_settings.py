from __future__ import annotations

from typing import Any, cast

import pytest
from pydantic import ValidationError

from fleet_breaker.circuit_breaker import BreakerConfig
from fleet_breaker.settings import BreakerSettings, RedisSettings


def _build_redis_settings(**overrides: object) -> RedisSettings:
    return RedisSettings(**cast(Any, overrides))


def test_breaker_settings_defaults_match_config_defaults() -> None:
    settings = BreakerSettings()

    assert settings.to_config() == BreakerConfig()


def test_breaker_settings_read_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CB_FAILURE_THRESHOLD", "2")
    monkeypatch.setenv("CB_FAIL_WINDOW_SECONDS", "15")
    monkeypatch.setenv("CB_OPEN_COOLDOWN_SECONDS", "60")
    monkeypatch.setenv("CB_HALF_OPEN_LEASE_SECONDS", "0")
    monkeypatch.setenv("cb_fail_open", "false")
    monkeypatch.setenv("CB_KEY_PREFIX", "verify:cb:")
    monkeypatch.setenv("CB_SINGLE_PROBE", "true")
    monkeypatch.setenv("CB_STORE_TIMEOUT_SECONDS", "0.25")

    config = BreakerSettings().to_config()

    assert config == BreakerConfig(
        failure_threshold=2,
        fail_window=15.0,
        open_cooldown=60.0,
        half_open_lease=0.0,
        fail_open=False,
        key_prefix="verify:cb:",
        single_probe=True,
        store_timeout=0.25,
    )


def test_breaker_settings_non_positive_threshold_falls_back_to_default(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CB_FAILURE_THRESHOLD", "0")

    config = BreakerSettings().to_config()

    assert config.failure_threshold == 5


def test_redis_settings_defaults() -> None:
    settings = RedisSettings()

    assert settings.url == "redis://localhost:6379/0"
    assert settings.socket_timeout_seconds == 2.0
    assert settings.socket_connect_timeout_seconds == 2.0
    assert settings.max_connections == 20


def test_redis_settings_strip_and_read_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("REDIS_URL", "  rediss://cache:6380/1  ")
    monkeypatch.setenv("REDIS_MAX_CONNECTIONS", "5")

    settings = RedisSettings()

    assert settings.url == "rediss://cache:6380/1"
    assert settings.max_connections == 5


@pytest.mark.parametrize("url", ["", "   ", "http://cache:6379"])
def test_redis_settings_reject_invalid_url(url: str) -> None:
    with pytest.raises(ValidationError):
        _build_redis_settings(url=url)


@pytest.mark.parametrize(
    "overrides",
    [
        {"socket_timeout_seconds": 0},
        {"socket_connect_timeout_seconds": -1},
        {"max_connections": 0},
    ],
)
def test_redis_settings_reject_invalid_pool_bounds(
    overrides: dict[str, object],
) -> None:
    with pytest.raises(ValidationError):
        _build_redis_settings(**overrides)
