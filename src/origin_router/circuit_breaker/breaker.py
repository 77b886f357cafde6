"""Per-backend consecutive-failure circuit breaker."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from origin_router.circuit_breaker.state import BreakerSnapshot, CircuitState


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures that trip the breaker.
        cooldown: Seconds a tripped breaker excludes its backend.
    """

    failure_threshold: int = 5
    cooldown: float = 30.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.cooldown < 0:
            raise ValueError("cooldown must be >= 0")


class CircuitBreaker:
    """Consecutive-failure breaker owned by one backend's statistics.

    Only ``release_if_cooled`` closes a tripped breaker. There is no
    half-open trial state: once the cooldown has elapsed the breaker closes
    and clears the failure count, and the next probe or request decides
    whether it trips again. Successes recorded while tripped clear the
    failure streak but leave the breaker tripped.
    """

    __slots__ = ("name", "config", "_state", "_consecutive_failures", "_tripped_at")

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
    ) -> None:
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._tripped_at: datetime | None = None

    @property
    def tripped(self) -> bool:
        return self._state == CircuitState.TRIPPED

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def tripped_at(self) -> datetime | None:
        return self._tripped_at

    def snapshot(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            name=self.name,
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            tripped_at=self._tripped_at,
        )

    def cooldown_elapsed(self, now: datetime) -> bool:
        if not self.tripped or self._tripped_at is None:
            return False
        return now - self._tripped_at >= timedelta(seconds=self.config.cooldown)

    def release_if_cooled(self, now: datetime) -> bool:
        """Close a tripped breaker whose cooldown has elapsed.

        Returns:
            ``True`` when the breaker was closed by this call.
        """
        if not self.cooldown_elapsed(now):
            return False
        self.reset()
        return True

    def record_success(self) -> None:
        self._consecutive_failures = 0

    def record_failure(self, now: datetime) -> bool:
        """Count one failure and trip once the threshold is reached.

        A failure recorded while already tripped restarts the cooldown.

        Returns:
            ``True`` when this failure tripped (or re-tripped) the breaker.
        """
        self._consecutive_failures += 1
        if self._consecutive_failures < self.config.failure_threshold:
            return False
        self._state = CircuitState.TRIPPED
        self._tripped_at = now
        return True

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._tripped_at = None
