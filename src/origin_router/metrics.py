"""Request counters aggregated globally, per path and per backend."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(slots=True)
class _Counters:
    requests: int = 0
    successes: int = 0
    failures: int = 0
    total_latency_ms: float = 0.0
    last_latency_ms: float = 0.0

    def record(self, success: bool, latency_ms: float) -> None:
        self.requests += 1
        self.last_latency_ms = latency_ms
        if success:
            self.successes += 1
            self.total_latency_ms += latency_ms
        else:
            self.failures += 1

    def freeze(self) -> CounterSnapshot:
        return CounterSnapshot(
            requests=self.requests,
            successes=self.successes,
            failures=self.failures,
            total_latency_ms=self.total_latency_ms,
            last_latency_ms=self.last_latency_ms,
        )


@dataclass(frozen=True)
class CounterSnapshot:
    """Immutable counters with derived latency and success-rate values."""

    requests: int = 0
    successes: int = 0
    failures: int = 0
    total_latency_ms: float = 0.0
    last_latency_ms: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        if self.successes == 0:
            return 0.0
        return self.total_latency_ms / self.successes

    @property
    def success_rate(self) -> float:
        if self.requests == 0:
            return 1.0
        return self.successes / self.requests


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time export of all request metrics."""

    overall: CounterSnapshot
    by_path: Mapping[str, CounterSnapshot] = field(default_factory=dict)
    by_backend: Mapping[str, CounterSnapshot] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze per-key mappings to keep snapshots read-only."""
        object.__setattr__(self, "by_path", MappingProxyType(dict(self.by_path)))
        object.__setattr__(
            self, "by_backend", MappingProxyType(dict(self.by_backend))
        )


class MetricsAggregator:
    """Accumulate application request outcomes for observability."""

    def __init__(self) -> None:
        self._overall = _Counters()
        self._by_path: dict[str, _Counters] = {}
        self._by_backend: dict[str, _Counters] = {}

    def record(
        self,
        backend_url: str,
        path: str,
        success: bool,
        latency_ms: float,
    ) -> None:
        latency_ms = max(latency_ms, 0.0)
        self._overall.record(success, latency_ms)
        self._by_path.setdefault(path, _Counters()).record(success, latency_ms)
        self._by_backend.setdefault(backend_url, _Counters()).record(
            success, latency_ms
        )

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            overall=self._overall.freeze(),
            by_path={
                path: counters.freeze() for path, counters in self._by_path.items()
            },
            by_backend={
                url: counters.freeze() for url, counters in self._by_backend.items()
            },
        )
