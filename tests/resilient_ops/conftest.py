from __future__ import annotations

import pytest

import resilient_ops.circuit_breaker.registry as registry_mod
from resilient_ops.circuit_breaker import CircuitBreakerRegistry, InMemoryBreakerStorage
from tests.resilient_ops.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive the registry's monotonic clock from the test."""
    clock = FakeClock()
    monkeypatch.setattr(registry_mod, "_monotonic", clock.monotonic)
    return clock


@pytest.fixture
def storage() -> InMemoryBreakerStorage:
    """Provide fresh in-memory breaker storage per test."""
    return InMemoryBreakerStorage()


@pytest.fixture
def registry(
    storage: InMemoryBreakerStorage, fake_logger: FakeLogger
) -> CircuitBreakerRegistry:
    """Provide a registry over the per-test storage and logger."""
    return CircuitBreakerRegistry(storage=storage, logger=fake_logger)
