"""Backend fitness scoring.

Scores are a weighted sum of four terms: inverse average latency, success
rate, configured weight and regional proximity. Higher is better. Backends
without data are scored as favorable so untested origins are not starved.
"""

from __future__ import annotations

from dataclasses import dataclass

from origin_router.location import UserLocation
from origin_router.registry import DEFAULT_REGION, Backend, BackendStats
from origin_router.settings import ScoringWeights

CONTINENT_COUNTRIES: dict[str, frozenset[str]] = {
    "europe": frozenset({"de", "fr", "it", "es", "uk"}),
    "asia": frozenset({"cn", "jp", "kr", "in", "sg"}),
    "northamerica": frozenset({"us", "ca", "mx"}),
    "southamerica": frozenset({"br", "ar", "cl"}),
}

REGION_EXACT = 1.0
REGION_PREFIX = 0.8
REGION_COUNTRY = 0.6
REGION_CONTINENT = 0.4
REGION_GLOBAL = 0.2
REGION_NONE = 0.0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Unweighted scoring terms and the weighted total for one backend."""

    latency: float
    success_rate: float
    weight: float
    region: float
    total: float


def latency_term(stats: BackendStats) -> float:
    avg_latency = stats.avg_latency_ms
    if stats.successes == 0 or avg_latency <= 0:
        return 1.0
    return 1.0 / avg_latency


def success_rate_term(stats: BackendStats) -> float:
    return stats.success_rate


def is_same_continent(backend_region: str, user_country: str) -> bool:
    """Return true when the region names a continent listing ``user_country``."""
    for continent, countries in CONTINENT_COUNTRIES.items():
        if continent in backend_region and user_country in countries:
            return True
    return False


def region_term(backend_region: str, location: UserLocation | None) -> float:
    """Score how close ``backend_region`` is to the user's location."""
    if location is None or not location.is_known:
        return REGION_NONE

    region = backend_region.lower()
    user_region = location.region.lower()
    user_country = location.country.lower()

    if region == user_region:
        return REGION_EXACT
    if user_region and region.startswith(user_region):
        return REGION_PREFIX
    if region == user_country:
        return REGION_COUNTRY
    if is_same_continent(region, user_country):
        return REGION_CONTINENT
    if region == DEFAULT_REGION:
        return REGION_GLOBAL
    return REGION_NONE


def score_breakdown(
    backend: Backend,
    stats: BackendStats,
    *,
    weights: ScoringWeights,
    location: UserLocation | None = None,
    regional_routing: bool = False,
) -> ScoreBreakdown:
    """Compute every scoring term for ``backend`` without side effects."""
    latency = latency_term(stats)
    success_rate = success_rate_term(stats)
    region = region_term(backend.region, location) if regional_routing else 0.0
    total = (
        latency * weights.latency
        + success_rate * weights.success_rate
        + backend.weight * weights.weight
        + region * weights.region
    )
    return ScoreBreakdown(
        latency=latency,
        success_rate=success_rate,
        weight=backend.weight,
        region=region,
        total=total,
    )


def score_backend(
    backend: Backend,
    stats: BackendStats,
    *,
    weights: ScoringWeights,
    location: UserLocation | None = None,
    regional_routing: bool = False,
) -> float:
    """Return the fitness score of ``backend``; higher is better."""
    return score_breakdown(
        backend,
        stats,
        weights=weights,
        location=location,
        regional_routing=regional_routing,
    ).total
