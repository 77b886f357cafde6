from __future__ import annotations

import pytest

from origin_router.settings import RouterSettings
from tests.origin_router.support.fakes import FakeClock, FakeLogger, FakeTransport


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a fresh manually advanced clock per test."""
    return FakeClock()


@pytest.fixture
def fake_transport(fake_clock: FakeClock) -> FakeTransport:
    """Provide a scripted transport bound to the test clock."""
    return FakeTransport(clock=fake_clock)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def settings() -> RouterSettings:
    """Router settings with a probe interval long enough to never fire."""
    return RouterSettings(health_check_interval_ms=3_600_000)
