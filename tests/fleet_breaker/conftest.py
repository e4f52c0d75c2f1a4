from __future__ import annotations

import pytest

import fleet_breaker.circuit_breaker.breaker as breaker_mod
import fleet_breaker.circuit_breaker.storage as storage_mod
from fleet_breaker.circuit_breaker import InMemoryBreakerStore
from tests.fleet_breaker.support.breaker_fakes import (
    FakeClock,
    FakeLogger,
    RecordingListener,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive breaker time and in-memory store expiry from one fake clock."""
    fake = FakeClock()
    monkeypatch.setattr(breaker_mod, "_now", fake.now)
    monkeypatch.setattr(storage_mod, "_now", fake.now)
    return fake


@pytest.fixture
def store(clock: FakeClock) -> InMemoryBreakerStore:
    """Provide an in-memory shared store on the fake clock."""
    return InMemoryBreakerStore()


@pytest.fixture
def listener() -> RecordingListener:
    """Provide a listener that records breaker events."""
    return RecordingListener()
