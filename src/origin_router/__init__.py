"""Adaptive client-side request routing across redundant backend origins.

Typical usage::

    async with Router(["https://a.example.com", "https://b.example.com"]) as router:
        response = await router.get("/items")

The router probes every backend in the background, scores them on latency,
success rate, configured weight and (optionally) regional proximity, and
sends each request to the current best one with retry and circuit breaking.
"""

from origin_router.circuit_breaker import BreakerSnapshot, CircuitState
from origin_router.clock import Clock, SystemClock
from origin_router.errors import (
    ConfigError,
    InterceptorError,
    NoAvailableBackendError,
    ProbeError,
    RouterError,
    TransportError,
    TransportTimeoutError,
)
from origin_router.location import (
    UNKNOWN_LOCATION,
    IpApiLocator,
    LocationLookupError,
    LocationProvider,
    UserLocation,
)
from origin_router.logging import configure_structlog
from origin_router.metrics import CounterSnapshot, MetricsSnapshot
from origin_router.registry import Backend, BackendStatsSnapshot, HealthStatus
from origin_router.router import Router
from origin_router.settings import RouterSettings, ScoringWeights
from origin_router.transport import HttpxTransport, RequestOptions, Transport

__all__ = [
    "UNKNOWN_LOCATION",
    "Backend",
    "BackendStatsSnapshot",
    "BreakerSnapshot",
    "CircuitState",
    "Clock",
    "ConfigError",
    "CounterSnapshot",
    "HealthStatus",
    "HttpxTransport",
    "InterceptorError",
    "IpApiLocator",
    "LocationLookupError",
    "LocationProvider",
    "MetricsSnapshot",
    "NoAvailableBackendError",
    "ProbeError",
    "RequestOptions",
    "Router",
    "RouterError",
    "RouterSettings",
    "ScoringWeights",
    "SystemClock",
    "Transport",
    "TransportError",
    "TransportTimeoutError",
    "UserLocation",
    "configure_structlog",
]
