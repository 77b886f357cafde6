"""Backend descriptors, their runtime statistics and the registry holding both."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from origin_router.circuit_breaker import (
    BreakerSnapshot,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from origin_router.errors import ConfigError

DEFAULT_REGION = "global"
HEALTHY_SUCCESS_RATE = 0.9
DEGRADED_SUCCESS_RATE = 0.7


class HealthStatus(StrEnum):
    """Health label derived from a backend's outcome counters."""

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def derive_health(successes: int, requests: int, *, tripped: bool) -> HealthStatus:
    """Classify a backend from its counters and breaker state."""
    if tripped:
        return HealthStatus.UNHEALTHY
    if requests == 0:
        return HealthStatus.UNKNOWN
    rate = successes / requests
    if rate > HEALTHY_SUCCESS_RATE:
        return HealthStatus.HEALTHY
    if rate > DEGRADED_SUCCESS_RATE:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


@dataclass(frozen=True)
class Backend:
    """One candidate origin the router may send requests to."""

    url: str
    region: str = DEFAULT_REGION
    weight: float = 1.0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))


BackendSpec = str | Mapping[str, Any] | Backend


class BackendStats:
    """Mutable outcome counters and breaker state for one backend.

    Only the prober and the request pipeline record outcomes; everything
    else reads through ``snapshot``.
    """

    def __init__(self, url: str, *, breaker_config: CircuitBreakerConfig) -> None:
        self.requests = 0
        self.successes = 0
        self.failures = 0
        self.total_latency_success_ms = 0.0
        self.last_error: str | None = None
        self.last_response_at: datetime | None = None
        self.breaker = CircuitBreaker(url, config=breaker_config)

    @property
    def avg_latency_ms(self) -> float:
        if self.successes == 0:
            return 0.0
        return self.total_latency_success_ms / self.successes

    @property
    def success_rate(self) -> float:
        if self.requests == 0:
            return 1.0
        return self.successes / self.requests

    @property
    def health(self) -> HealthStatus:
        return derive_health(
            self.successes, self.requests, tripped=self.breaker.tripped
        )

    def record_success(self, latency_ms: float, *, now: datetime) -> None:
        """Record one successful attempt; a tripped breaker stays tripped."""
        self.requests += 1
        self.successes += 1
        self.total_latency_success_ms += max(latency_ms, 0.0)
        self.last_error = None
        self.last_response_at = now
        self.breaker.record_success()

    def record_failure(self, error: str, *, now: datetime) -> bool:
        """Record one failed attempt.

        Returns:
            ``True`` when the failure tripped the breaker.
        """
        self.requests += 1
        self.failures += 1
        self.last_error = error
        self.last_response_at = now
        return self.breaker.record_failure(now)


@dataclass(frozen=True)
class BackendStatsSnapshot:
    """Read-only export of one backend and its statistics."""

    url: str
    region: str
    weight: float
    metadata: Mapping[str, Any]
    requests: int
    successes: int
    failures: int
    total_latency_success_ms: float
    avg_latency_ms: float
    success_rate: float
    last_error: str | None
    last_response_at: datetime | None
    health: HealthStatus
    circuit_breaker: BreakerSnapshot


def snapshot_backend(backend: Backend, stats: BackendStats) -> BackendStatsSnapshot:
    return BackendStatsSnapshot(
        url=backend.url,
        region=backend.region,
        weight=backend.weight,
        metadata=backend.metadata,
        requests=stats.requests,
        successes=stats.successes,
        failures=stats.failures,
        total_latency_success_ms=stats.total_latency_success_ms,
        avg_latency_ms=stats.avg_latency_ms,
        success_rate=stats.success_rate,
        last_error=stats.last_error,
        last_response_at=stats.last_response_at,
        health=stats.health,
        circuit_breaker=stats.breaker.snapshot(),
    )


def normalize_backend(spec: BackendSpec) -> Backend:
    """Normalize one backend spec into a ``Backend``.

    Raises:
        ConfigError: If the spec has no usable url or a non-positive weight.
    """
    if isinstance(spec, Backend):
        url, region, weight, metadata = (
            spec.url,
            spec.region,
            spec.weight,
            spec.metadata,
        )
    elif isinstance(spec, str):
        url, region, weight, metadata = spec, DEFAULT_REGION, 1.0, {}
    elif isinstance(spec, Mapping):
        url = spec.get("url")
        region = spec.get("region") or DEFAULT_REGION
        weight = spec.get("weight")
        if weight is None:
            weight = 1.0
        metadata = spec.get("metadata") or {}
    else:
        raise ConfigError(f"Unsupported backend spec: {spec!r}")

    if not isinstance(url, str) or not url.strip():
        raise ConfigError(f"Backend url must be a non-empty string: {spec!r}")
    if not isinstance(region, str):
        raise ConfigError(f"Backend region must be a string: {spec!r}")
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise ConfigError(f"Backend weight must be a number: {spec!r}")
    if weight <= 0:
        raise ConfigError(f"Backend weight must be > 0: {spec!r}")
    if not isinstance(metadata, Mapping):
        raise ConfigError(f"Backend metadata must be a mapping: {spec!r}")

    return Backend(
        url=url.strip().rstrip("/"),
        region=region,
        weight=float(weight),
        metadata=metadata,
    )


class BackendRegistry:
    """Registration-ordered backends with O(1) lookup of their statistics."""

    def __init__(
        self,
        specs: Iterable[BackendSpec],
        *,
        breaker_config: CircuitBreakerConfig | None = None,
    ) -> None:
        """Register the initial backend set.

        Args:
            specs: Backend urls, mappings or ``Backend`` instances.
            breaker_config: Breaker thresholds applied to every backend.

        Raises:
            ConfigError: If the list is empty, has duplicates or invalid
                entries.
        """
        self._breaker_config = (
            CircuitBreakerConfig() if breaker_config is None else breaker_config
        )
        self._entries: dict[str, tuple[Backend, BackendStats]] = {}
        self.register(specs)

    def register(self, specs: Iterable[BackendSpec]) -> None:
        """Replace the whole backend set with freshly initialized stats."""
        backends = [normalize_backend(spec) for spec in specs]
        if not backends:
            raise ConfigError("At least one backend is required.")

        entries: dict[str, tuple[Backend, BackendStats]] = {}
        for backend in backends:
            if backend.url in entries:
                raise ConfigError(f"Duplicate backend url: {backend.url}")
            entries[backend.url] = (
                backend,
                BackendStats(backend.url, breaker_config=self._breaker_config),
            )
        self._entries = entries

    def configure_breakers(self, config: CircuitBreakerConfig) -> None:
        """Apply new breaker thresholds to every registered backend."""
        self._breaker_config = config
        for _, stats in self._entries.values():
            stats.breaker.config = config

    def get(self, url: str) -> tuple[Backend, BackendStats]:
        """Return the backend and stats registered under ``url``.

        Raises:
            KeyError: If ``url`` is not registered.
        """
        return self._entries[url]

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> tuple[tuple[Backend, BackendStats], ...]:
        return tuple(self._entries.values())

    def urls(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def snapshot(self) -> tuple[BackendStatsSnapshot, ...]:
        return tuple(
            snapshot_backend(backend, stats)
            for backend, stats in self._entries.values()
        )
