"""Health probing and outcome recording for registered backends."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass

from origin_router.clock import Clock
from origin_router.errors import ProbeError, TransportError
from origin_router.interceptors import InterceptorChain
from origin_router.logging import get_logger, log_info, log_warning
from origin_router.registry import BackendRegistry
from origin_router.settings import RouterSettings
from origin_router.transport import RequestOptions, Transport

_logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one health probe."""

    url: str
    ok: bool
    latency_ms: float
    error: str | None = None


class OutcomeRecorder:
    """Fold request and probe outcomes into backend statistics."""

    def __init__(self, registry: BackendRegistry, clock: Clock) -> None:
        self.registry = registry
        self._clock = clock

    def record_outcome(
        self,
        url: str,
        success: bool,
        latency_ms: float,
        error: str | None = None,
    ) -> bool:
        """Record one attempt against ``url``.

        Outcomes for urls that are no longer registered (after
        reconfiguration) are dropped.

        Returns:
            ``True`` when a failure tripped the backend's breaker.
        """
        if url not in self.registry:
            return False
        _, stats = self.registry.get(url)
        now = self._clock.now()
        if success:
            stats.record_success(latency_ms, now=now)
            return False

        if not stats.record_failure(error or "unknown error", now=now):
            return False
        log_warning(
            _logger,
            "backend.circuit_tripped",
            url=url,
            consecutive_failures=stats.breaker.consecutive_failures,
            last_error=stats.last_error,
        )
        return True


class HealthProber:
    """Probe every eligible backend concurrently and record the outcomes."""

    def __init__(
        self,
        *,
        recorder: OutcomeRecorder,
        transport: Transport,
        clock: Clock,
        settings: RouterSettings,
        request_interceptors: InterceptorChain[RequestOptions],
        on_pass_complete: Callable[[], None] | None = None,
    ) -> None:
        """Create a prober.

        Args:
            recorder: Outcome recorder shared with the request pipeline.
            transport: Transport used to send probes.
            clock: Time source for timestamps and latency.
            settings: Router settings; read on every pass.
            request_interceptors: Chain applied to probe options.
            on_pass_complete: Callback run after every pass, used for
                re-selection.
        """
        self._recorder = recorder
        self._transport = transport
        self._clock = clock
        self.settings = settings
        self._request_interceptors = request_interceptors
        self._on_pass_complete = on_pass_complete
        self._inflight: asyncio.Task[tuple[ProbeResult, ...]] | None = None

    async def probe_all(self) -> tuple[ProbeResult, ...]:
        """Run one probe pass, sharing any pass already in flight."""
        task = self._inflight
        if task is None or task.done():
            task = asyncio.create_task(self._probe_pass(), name="origin-router-probe")
            self._inflight = task
            task.add_done_callback(self._on_pass_done)
        return await asyncio.shield(task)

    def _on_pass_done(self, task: asyncio.Task[tuple[ProbeResult, ...]]) -> None:
        if self._inflight is task:
            self._inflight = None
        with suppress(asyncio.CancelledError, Exception):
            task.exception()

    async def _probe_pass(self) -> tuple[ProbeResult, ...]:
        registry = self._recorder.registry
        now = self._clock.now()
        targets: list[str] = []
        for backend, stats in registry.entries():
            if stats.breaker.release_if_cooled(now):
                log_info(
                    _logger, "backend.circuit_reset", url=backend.url, reason="cooldown"
                )
            if stats.breaker.tripped:
                continue
            targets.append(backend.url)

        outcomes = await asyncio.gather(
            *(self.probe(url) for url in targets),
            return_exceptions=True,
        )
        results: list[ProbeResult] = []
        for url, outcome in zip(targets, outcomes, strict=True):
            if isinstance(outcome, ProbeResult):
                results.append(outcome)
                continue
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            results.append(
                ProbeResult(url=url, ok=False, latency_ms=0.0, error=repr(outcome))
            )

        log_info(
            _logger,
            "probe.pass_completed",
            probed=len(targets),
            healthy=sum(1 for result in results if result.ok),
        )
        if self._on_pass_complete is not None:
            self._on_pass_complete()
        return tuple(results)

    async def probe(self, url: str) -> ProbeResult:
        """Probe one backend and record the outcome; never raises ``ProbeError``."""
        start = self._clock.monotonic()
        try:
            await self._send_probe(url)
        except ProbeError as exc:
            latency_ms = max(self._clock.monotonic() - start, 0.0) * 1000.0
            self._recorder.record_outcome(url, False, latency_ms, exc.reason)
            log_warning(_logger, "probe.failed", url=url, reason=exc.reason)
            return ProbeResult(
                url=url, ok=False, latency_ms=latency_ms, error=exc.reason
            )

        latency_ms = max(self._clock.monotonic() - start, 0.0) * 1000.0
        self._recorder.record_outcome(url, True, latency_ms)
        return ProbeResult(url=url, ok=True, latency_ms=latency_ms)

    async def _send_probe(self, url: str) -> None:
        settings = self.settings
        timeout_seconds = settings.health_check_timeout_ms / 1000.0
        probe_url = f"{url}{settings.health_check_endpoint}"
        base = RequestOptions(
            method=settings.health_check_method, timeout=timeout_seconds
        )
        try:
            options = await self._request_interceptors.apply(base)
            response = await asyncio.wait_for(
                self._transport.send(probe_url, options),
                timeout=timeout_seconds,
            )
        except TimeoutError as exc:
            raise ProbeError(url, f"timeout after {timeout_seconds:g}s") from exc
        except TransportError as exc:
            if exc.status_code is not None:
                raise ProbeError(url, f"HTTP {exc.status_code}") from exc
            raise ProbeError(url, str(exc)) from exc
        except Exception as exc:
            raise ProbeError(url, f"{exc.__class__.__name__}: {exc}") from exc

        if not response.is_success:
            raise ProbeError(url, f"HTTP {response.status_code}")


async def run_probe_loop(
    *,
    probe_once: Callable[[], Awaitable[object]],
    stop_event: asyncio.Event,
    interval_seconds: float,
) -> None:
    """Run ``probe_once`` every ``interval_seconds`` until shutdown is requested.

    The first pass runs after one interval; callers probe once themselves
    before starting the loop.
    """
    interval = max(interval_seconds, 0.01)
    while not stop_event.is_set():
        with suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        if stop_event.is_set():
            return
        try:
            await probe_once()
        except Exception:
            log_warning(_logger, "probe.pass_failed", exc_info=True)
