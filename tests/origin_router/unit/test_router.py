from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator

import httpx
import pytest
from pytest_httpx import HTTPXMock

from origin_router.errors import ConfigError, RouterError
from origin_router.location import (
    UNKNOWN_LOCATION,
    LocationLookupError,
    UserLocation,
)
from origin_router.logging import LOGGER_NAMESPACE
from origin_router.registry import HealthStatus
from origin_router.router import Router
from origin_router.scoring import region_term
from origin_router.settings import RouterSettings
from tests.origin_router.support.fakes import FakeClock, FakeLocator, FakeTransport

pytestmark = pytest.mark.asyncio

_A = "https://a.test"
_B = "https://b.test"
_C = "https://c.test"


def _settings(**overrides: object) -> RouterSettings:
    values: dict[str, object] = {"health_check_interval_ms": 3_600_000}
    values.update(overrides)
    return RouterSettings(**values)  # type: ignore[arg-type]


@pytest.fixture
def namespace_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger(LOGGER_NAMESPACE)
    level = logger.level
    yield logger
    logger.setLevel(level)


async def test_construction_rejects_invalid_backends() -> None:
    with pytest.raises(ConfigError):
        Router([])
    with pytest.raises(ConfigError):
        Router([{"url": _A, "weight": 0}])


async def test_timing_out_backend_is_excluded_after_threshold_passes(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    fake_transport.hang(f"{_B}/health")
    router = Router(
        [_A, _B],
        settings=_settings(health_check_timeout_ms=10, circuit_breaker_threshold=3),
        transport=fake_transport,
        clock=fake_clock,
    )

    async with router:
        await router.probe_all()
        await router.probe_all()

        snapshots = {stats.url: stats for stats in router.get_backend_stats()}
        assert snapshots[_B].circuit_breaker.tripped is True
        assert snapshots[_B].health == HealthStatus.UNHEALTHY
        assert snapshots[_B].last_error == "timeout after 0.01s"
        assert snapshots[_A].health == HealthStatus.HEALTHY

        for _ in range(3):
            await router.probe_all()
            assert router.selected_backend == _A

    assert len(fake_transport.calls_to(f"{_B}/health")) == 3
    assert len(fake_transport.calls_to(f"{_A}/health")) == 6


async def test_regional_routing_selects_exact_region_match(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    location = UserLocation(country="US", region="us-east")
    locator = FakeLocator(location)
    router = Router(
        [
            {"url": _A, "region": "global"},
            {"url": _B, "region": "us-east"},
        ],
        settings=_settings(enable_regional_routing=True),
        transport=fake_transport,
        clock=fake_clock,
        locator=locator,
    )

    async with router:
        assert router.get_user_location() == location
        assert router.selected_backend == _B

    assert locator.calls == 1
    assert region_term("us-east", location) == 1.0
    assert region_term("global", location) == 0.2


async def test_location_failure_falls_back_to_unknown(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [{"url": _A, "region": "global"}, {"url": _B, "region": "us-east"}],
        settings=_settings(enable_regional_routing=True),
        transport=fake_transport,
        clock=fake_clock,
        locator=FakeLocator(error=LocationLookupError("rate limited")),
    )

    async with router:
        assert router.get_user_location() == UNKNOWN_LOCATION
        assert router.selected_backend == _A


async def test_location_is_not_looked_up_without_regional_routing(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    locator = FakeLocator(UserLocation(country="US", region="us-east"))
    router = Router(
        [_A],
        settings=_settings(),
        transport=fake_transport,
        clock=fake_clock,
        locator=locator,
    )

    async with router:
        assert router.get_user_location() is None

    assert locator.calls == 0


async def test_default_http_stack(httpx_mock: HTTPXMock, fake_clock: FakeClock) -> None:
    httpx_mock.add_response(method="HEAD", url=f"{_A}/health")
    httpx_mock.add_response(method="GET", url=f"{_A}/items", json={"ok": True})
    router = Router([_A], settings=_settings(), clock=fake_clock)

    async with router:
        response = await router.get("/items")

    assert response.json() == {"ok": True}
    request = httpx_mock.get_requests()[-1]
    assert request.headers["X-Request-Source"] == "origin-router"
    assert router._client is None


async def test_default_locator_uses_ipapi(
    httpx_mock: HTTPXMock, fake_clock: FakeClock
) -> None:
    httpx_mock.add_response(
        method="GET",
        url="https://ipapi.co/json/",
        json={"country": "AU", "region": "Queensland"},
    )
    httpx_mock.add_response(method="HEAD", url=f"{_A}/health")
    router = Router(
        [{"url": _A, "region": "Queensland"}],
        settings=_settings(enable_regional_routing=True),
        clock=fake_clock,
    )

    async with router:
        location = router.get_user_location()

    assert location == UserLocation(country="AU", region="Queensland")


async def test_shared_http_client_is_left_open(
    httpx_mock: HTTPXMock, fake_clock: FakeClock
) -> None:
    httpx_mock.add_response(method="HEAD", url=f"{_A}/health")

    async with httpx.AsyncClient() as client:
        async with Router(
            [_A], settings=_settings(), clock=fake_clock, http_client=client
        ):
            pass

        assert not client.is_closed


async def test_shutdown_is_idempotent_and_terminal(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [_A], settings=_settings(), transport=fake_transport, clock=fake_clock
    )
    await router.start()
    assert router.selected_backend == _A

    await router.shutdown()
    await router.shutdown()

    assert router.selected_backend is None
    with pytest.raises(RouterError, match="shut down"):
        await router.get("/items")
    with pytest.raises(RouterError):
        await router.start()


async def test_start_twice_probes_once(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [_A], settings=_settings(), transport=fake_transport, clock=fake_clock
    )

    async with router:
        await router.start()

    assert len(fake_transport.calls_to(f"{_A}/health")) == 1


async def test_background_loop_probes_periodically(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [_A],
        settings=_settings(health_check_interval_ms=10),
        transport=fake_transport,
        clock=fake_clock,
    )

    async with router:
        await asyncio.sleep(0.1)

    probes_at_shutdown = len(fake_transport.calls)
    assert probes_at_shutdown >= 2

    await asyncio.sleep(0.05)
    assert len(fake_transport.calls) == probes_at_shutdown


async def test_interceptor_registration_is_chainable(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router([_A], transport=fake_transport, clock=fake_clock)

    chained = (
        router.add_request_interceptor(lambda options: options)
        .add_response_interceptor(lambda response: response)
        .add_error_interceptor(lambda error: error)
    )

    assert chained is router


async def test_update_config_validates_and_propagates(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [_A], settings=_settings(), transport=fake_transport, clock=fake_clock
    )

    with pytest.raises(ConfigError):
        await router.update_config(bogus=True)
    with pytest.raises(ConfigError):
        await router.update_config(max_retry_attempts=-1)
    assert router.settings.max_retry_attempts == 3

    updated = await router.update_config(
        circuit_breaker_threshold=1, health_check_endpoint="ping"
    )

    assert updated is router.settings
    async with router:
        assert fake_transport.calls_to(f"{_A}/ping")
        _, stats = router.registry.get(_A)
        stats.record_failure("boom", now=fake_clock.now())
        assert stats.breaker.tripped is True


async def test_update_config_restarts_probe_loop_on_interval_change(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [_A], settings=_settings(), transport=fake_transport, clock=fake_clock
    )

    async with router:
        old_task = router._probe_task
        await router.update_config(health_check_interval_ms=7_200_000)

        assert router._probe_task is not None
        assert router._probe_task is not old_task
        assert old_task is not None and old_task.done()
        assert len(fake_transport.calls_to(f"{_A}/health")) == 2

        await router.update_config(max_retry_attempts=1)
        assert len(fake_transport.calls_to(f"{_A}/health")) == 2


async def test_log_level_applies_on_start_and_update(
    fake_transport: FakeTransport,
    fake_clock: FakeClock,
    namespace_logger: logging.Logger,
) -> None:
    router = Router(
        [_A],
        settings=_settings(log_level="warning"),
        transport=fake_transport,
        clock=fake_clock,
    )
    namespace_logger.setLevel(logging.NOTSET)

    async with router:
        assert namespace_logger.level == logging.WARNING

        await router.update_config(log_level="debug")
        assert namespace_logger.level == logging.DEBUG


async def test_enabling_regional_routing_looks_up_location(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    locator = FakeLocator(UserLocation(country="DE", region="Bavaria"))
    router = Router(
        [_A],
        settings=_settings(),
        transport=fake_transport,
        clock=fake_clock,
        locator=locator,
    )

    async with router:
        await router.update_config(enable_regional_routing=True)

        assert router.get_user_location() == UserLocation(
            country="DE", region="Bavaria"
        )
    assert locator.calls == 1


async def test_reconfigure_backends_replaces_set(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [_A, _B], settings=_settings(), transport=fake_transport, clock=fake_clock
    )

    async with router:
        with pytest.raises(ConfigError):
            await router.reconfigure_backends([])
        assert router.registry.urls() == (_A, _B)

        await router.reconfigure_backends([{"url": _C, "region": "eu"}])

        assert router.selected_backend == _C
        (stats,) = router.get_backend_stats()
        assert stats.url == _C
        assert stats.requests == 1


async def test_backend_stats_follow_registration_order(
    fake_transport: FakeTransport, fake_clock: FakeClock
) -> None:
    router = Router(
        [_B, _A], settings=_settings(), transport=fake_transport, clock=fake_clock
    )

    async with router:
        stats = router.get_backend_stats()

    assert [item.url for item in stats] == [_B, _A]
    assert all(item.requests == item.successes + item.failures for item in stats)
