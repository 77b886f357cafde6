from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.retry import retry_base


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Retry budget and exponential backoff boundaries.

    ``retries`` counts attempts after the first one, so a request is tried
    at most ``retries + 1`` times. The wait before retry ``k`` (0-based) is
    ``min(initial_seconds * 2**k, max_seconds)``.
    """

    retries: int
    initial_seconds: float
    max_seconds: float

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.initial_seconds < 0:
            raise ValueError("initial_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.initial_seconds:
            raise ValueError("max_seconds must be >= initial_seconds")

    @property
    def attempts(self) -> int:
        return self.retries + 1


def build_exponential_retrying(
    *,
    retry: retry_base,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with capped exponential backoff, no jitter."""
    kwargs: dict[str, object] = {
        "retry": retry,
        "wait": wait_exponential(
            multiplier=policy.initial_seconds,
            exp_base=2,
            min=0,
            max=policy.max_seconds,
        ),
        "stop": stop_after_attempt(policy.attempts),
        "reraise": reraise,
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    if before_sleep is not None:
        kwargs["before_sleep"] = before_sleep
    return AsyncRetrying(**kwargs)  # type: ignore[arg-type]
