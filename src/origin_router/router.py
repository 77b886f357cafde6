"""Router facade wiring registry, prober, selector, pipeline and metrics."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from contextlib import suppress
from types import TracebackType
from typing import Any

import httpx

from origin_router.circuit_breaker import CircuitBreakerConfig
from origin_router.clock import Clock, SystemClock
from origin_router.errors import RouterError
from origin_router.interceptors import (
    ErrorInterceptor,
    ErrorInterceptorChain,
    RequestInterceptor,
    ResponseInterceptor,
    request_chain,
    response_chain,
)
from origin_router.location import (
    UNKNOWN_LOCATION,
    IpApiLocator,
    LocationProvider,
    UserLocation,
)
from origin_router.logging import apply_log_level, get_logger, log_info, log_warning
from origin_router.metrics import MetricsAggregator, MetricsSnapshot
from origin_router.pipeline import RequestPipeline
from origin_router.prober import HealthProber, OutcomeRecorder, run_probe_loop
from origin_router.registry import BackendRegistry, BackendSpec, BackendStatsSnapshot
from origin_router.selector import Selector
from origin_router.settings import RouterSettings
from origin_router.transport import HttpxTransport, RequestOptions, Transport

_logger = get_logger(__name__)


def breaker_config_for(settings: RouterSettings) -> CircuitBreakerConfig:
    return CircuitBreakerConfig(
        failure_threshold=settings.circuit_breaker_threshold,
        cooldown=settings.circuit_breaker_cooldown_ms / 1000.0,
    )


class Router:
    """Adaptive client-side router over a pool of backend origins.

    Construct one instance per backend pool and pass it to the code that
    makes outbound calls. ``start()`` (or ``async with``) runs the first
    probe pass and the background probe loop; ``shutdown()`` stops them.
    """

    def __init__(
        self,
        backends: Iterable[BackendSpec],
        *,
        settings: RouterSettings | None = None,
        transport: Transport | None = None,
        clock: Clock | None = None,
        locator: LocationProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Build a router over ``backends``.

        Args:
            backends: Backend urls, mappings or ``Backend`` instances.
            settings: Router settings. Defaults to ``RouterSettings()``.
            transport: Transport for probes and requests. Defaults to an
                ``HttpxTransport`` over ``http_client``.
            clock: Time source. Defaults to ``SystemClock()``.
            locator: Geolocation lookup used when regional routing is
                enabled. Defaults to ``IpApiLocator`` over ``http_client``.
            http_client: Shared httpx client for the default transport and
                locator. The router creates and closes its own when omitted.

        Raises:
            ConfigError: If the backend list is empty, has duplicates or
                invalid entries.
        """
        self._settings = RouterSettings() if settings is None else settings
        self._registry = BackendRegistry(
            backends, breaker_config=breaker_config_for(self._settings)
        )
        self._clock = SystemClock() if clock is None else clock
        self._client = http_client
        self._owns_client = False
        if transport is None:
            transport = HttpxTransport(client=self._ensure_client())
        self._transport = transport
        self._locator = locator
        self._user_location: UserLocation | None = None

        self._metrics = MetricsAggregator()
        self._request_interceptors = request_chain()
        self._response_interceptors = response_chain()
        self._error_interceptors = ErrorInterceptorChain()
        self._recorder = OutcomeRecorder(self._registry, self._clock)
        self._selector = Selector(
            registry=self._registry,
            settings=self._settings,
            location=self.get_user_location,
            on_selected=self._on_backend_selected,
        )
        self._prober = HealthProber(
            recorder=self._recorder,
            transport=self._transport,
            clock=self._clock,
            settings=self._settings,
            request_interceptors=self._request_interceptors,
            on_pass_complete=self._selector.reselect,
        )
        self._pipeline = RequestPipeline(
            selector=self._selector,
            recorder=self._recorder,
            metrics=self._metrics,
            transport=self._transport,
            clock=self._clock,
            settings=self._settings,
            probe_all=self._prober.probe_all,
            request_interceptors=self._request_interceptors,
            response_interceptors=self._response_interceptors,
            error_interceptors=self._error_interceptors,
        )
        self._stop_event = asyncio.Event()
        self._probe_task: asyncio.Task[None] | None = None
        self._started = False
        self._closed = False

    @property
    def settings(self) -> RouterSettings:
        return self._settings

    @property
    def selected_backend(self) -> str | None:
        return self._selector.selected

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    async def __aenter__(self) -> Router:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.shutdown()

    async def start(self) -> None:
        """Probe once and start the background probe loop.

        Also applies ``settings.log_level`` to the router loggers and looks
        up the user location when regional routing is enabled.
        """
        self._raise_if_closed()
        if self._started:
            return
        self._started = True
        apply_log_level(self._settings.log_level)
        if self._settings.enable_regional_routing and self._user_location is None:
            await self.detect_user_location()
        await self._start_probe_loop()
        log_info(
            _logger,
            "router.started",
            backends=len(self._registry),
            selected=self._selector.selected,
        )

    async def shutdown(self) -> None:
        """Stop background probing and clear the selection. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._stop_probe_loop()
        self._selector.clear()
        self._pipeline.reset_retry_counter()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
        self._client = None
        self._owns_client = False
        log_info(_logger, "router.shutdown")

    async def request(
        self,
        path: str,
        options: RequestOptions | None = None,
        **fields: Any,
    ) -> httpx.Response:
        """Send a request to the best backend, retrying on failure.

        Keyword ``fields`` (``method``, ``headers``, ``json`` ...) are merged
        over ``options``.

        Raises:
            NoAvailableBackendError: If no backend is eligible.
            InterceptorError: If a request or response interceptor raises.
                The interceptor's own exception is kept as ``__cause__``;
                these failures are not retried.
            RouterError: If the router has been shut down.
            Exception: The last failure, after error interceptors, once
                the retry budget is exhausted.
        """
        self._raise_if_closed()
        resolved = RequestOptions() if options is None else options
        if fields:
            resolved = resolved.merged(RequestOptions(**fields))
        return await self._pipeline.execute(path, resolved)

    async def get(
        self,
        path: str,
        options: RequestOptions | None = None,
        **fields: Any,
    ) -> httpx.Response:
        base = RequestOptions(method="GET")
        if options is not None:
            base = base.merged(options)
        return await self.request(path, base, **fields)

    async def post(
        self,
        path: str,
        json: Any = None,
        options: RequestOptions | None = None,
        **fields: Any,
    ) -> httpx.Response:
        base = RequestOptions(method="POST", json=json)
        if options is not None:
            base = base.merged(options)
        return await self.request(path, base, **fields)

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> Router:
        self._request_interceptors.add(interceptor)
        return self

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> Router:
        self._response_interceptors.add(interceptor)
        return self

    def add_error_interceptor(self, interceptor: ErrorInterceptor) -> Router:
        self._error_interceptors.add(interceptor)
        return self

    async def probe_all(self) -> None:
        """Run one probe pass now and re-select."""
        await self._prober.probe_all()

    def get_backend_stats(self) -> tuple[BackendStatsSnapshot, ...]:
        return self._registry.snapshot()

    def get_metrics(self) -> MetricsSnapshot:
        return self._metrics.snapshot()

    def get_user_location(self) -> UserLocation | None:
        return self._user_location

    async def detect_user_location(self) -> UserLocation:
        """Look up and cache the user location (``UNKNOWN_LOCATION`` on failure)."""
        locator = self._locator
        if locator is None:
            locator = IpApiLocator(
                client=self._ensure_client(),
                url=self._settings.location_lookup_url,
                timeout_seconds=self._settings.location_lookup_timeout_ms / 1000.0,
            )
        try:
            location = await locator.locate()
        except Exception as exc:
            log_warning(
                _logger,
                "location.lookup_failed",
                error=f"{exc.__class__.__name__}: {exc}",
            )
            location = UNKNOWN_LOCATION
        self._user_location = location
        return location

    async def update_config(self, **changes: object) -> RouterSettings:
        """Apply validated setting changes.

        The probe loop restarts when ``health_check_interval_ms`` changes.

        Raises:
            ConfigError: If a change is unknown or invalid.
        """
        previous = self._settings
        updated = previous.with_updates(**changes)
        self._settings = updated
        self._selector.settings = updated
        self._prober.settings = updated
        self._pipeline.settings = updated
        self._registry.configure_breakers(breaker_config_for(updated))
        if updated.log_level != previous.log_level and self._started:
            apply_log_level(updated.log_level)
        log_info(_logger, "config.updated", changed=sorted(changes))

        if (
            updated.enable_regional_routing
            and self._user_location is None
            and self._started
        ):
            await self.detect_user_location()
        if (
            updated.health_check_interval_ms != previous.health_check_interval_ms
            and self._started
            and not self._closed
        ):
            await self._stop_probe_loop()
            await self._start_probe_loop()
        return updated

    async def reconfigure_backends(self, backends: Iterable[BackendSpec]) -> None:
        """Replace the backend set, resetting statistics and the selection.

        Raises:
            ConfigError: If the new list is invalid; the old set is kept.
        """
        self._registry.register(backends)
        self._selector.clear()
        self._pipeline.reset_retry_counter()
        if self._started and not self._closed:
            await self._prober.probe_all()

    def _on_backend_selected(self, url: str) -> None:
        self._pipeline.reset_retry_counter()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    async def _start_probe_loop(self) -> None:
        await self._prober.probe_all()
        self._stop_event = asyncio.Event()
        self._probe_task = asyncio.create_task(
            run_probe_loop(
                probe_once=self._prober.probe_all,
                stop_event=self._stop_event,
                interval_seconds=self._settings.health_check_interval_ms / 1000.0,
            ),
            name="origin-router-probe-loop",
        )

    async def _stop_probe_loop(self) -> None:
        self._stop_event.set()
        task = self._probe_task
        if task is None:
            return
        self._probe_task = None
        grace_seconds = self._settings.health_check_timeout_ms / 1000.0 + 5.0
        try:
            await asyncio.wait_for(task, timeout=grace_seconds)
        except TimeoutError:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    def _raise_if_closed(self) -> None:
        if self._closed:
            raise RouterError("Router has been shut down.")
