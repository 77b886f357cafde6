"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    TRIPPED = "tripped"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of one backend's breaker, used in stats exports.

    Attributes:
        name: Breaker name, the backend url.
        state: Current breaker state.
        consecutive_failures: Failures recorded since the last success or reset.
        tripped_at: Timestamp when the breaker tripped, if tripped.
    """

    name: str
    state: CircuitState
    consecutive_failures: int
    tripped_at: datetime | None

    @property
    def tripped(self) -> bool:
        return self.state == CircuitState.TRIPPED
