"""Per-backend circuit breaker.

Key behavior notes:
  - A breaker trips after ``failure_threshold`` consecutive failures and
    excludes its backend from probing and selection.
  - Once ``cooldown`` seconds have passed since the trip, the next probe pass
    closes the breaker and resets the failure count before probing again.
    There is no half-open trial state.
  - A success clears the failure streak but never closes a tripped breaker;
    only the cooldown does.
"""

from origin_router.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from origin_router.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
]
