from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from fleet_breaker.circuit_breaker.breaker import BreakerConfig


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class RedisSettings(BaseSettings):
    """Connection settings for the shared breaker state store."""

    model_config = prefixed_settings_config("REDIS_")

    url: str = "redis://localhost:6379/0"
    socket_timeout_seconds: float = 2.0
    socket_connect_timeout_seconds: float = 2.0
    max_connections: int = 20

    @field_validator("url", mode="before")
    @classmethod
    def _validate_url(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        if not normalized.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(
                f"{info.field_name} must use redis://, rediss:// or unix://"
            )
        return normalized

    @model_validator(mode="after")
    def _validate_redis_settings(self) -> RedisSettings:
        if self.socket_timeout_seconds <= 0:
            raise ValueError("socket_timeout_seconds must be > 0")
        if self.socket_connect_timeout_seconds <= 0:
            raise ValueError("socket_connect_timeout_seconds must be > 0")
        if self.max_connections < 1:
            raise ValueError("max_connections must be >= 1")
        return self


class BreakerSettings(BaseSettings):
    """Environment-driven circuit breaker configuration.

    Non-positive values are not rejected here: ``BreakerConfig`` replaces them
    with defaults and logs a warning, so a bad deployment value degrades to
    documented behavior instead of failing startup.
    """

    model_config = prefixed_settings_config("CB_")

    failure_threshold: int = 5
    fail_window_seconds: float = 10.0
    open_cooldown_seconds: float = 30.0
    half_open_lease_seconds: float = 5.0
    fail_open: bool = True
    key_prefix: str = "cb:"
    single_probe: bool = False
    store_timeout_seconds: float | None = None

    def to_config(self) -> BreakerConfig:
        """Build the immutable breaker configuration value."""
        from fleet_breaker.circuit_breaker.breaker import BreakerConfig

        return BreakerConfig(
            failure_threshold=self.failure_threshold,
            fail_window=self.fail_window_seconds,
            open_cooldown=self.open_cooldown_seconds,
            half_open_lease=self.half_open_lease_seconds,
            fail_open=self.fail_open,
            key_prefix=self.key_prefix,
            single_probe=self.single_probe,
            store_timeout=self.store_timeout_seconds,
        )
