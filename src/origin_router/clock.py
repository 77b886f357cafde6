"""Time source used by the router for timestamps, latency and waits."""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Clock protocol consumed by the prober, breaker and request pipeline."""

    def now(self) -> datetime:
        """Return the current wall-clock time as an aware UTC datetime."""

    def monotonic(self) -> float:
        """Return a monotonic reading in seconds for latency measurement."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for ``seconds``."""


class SystemClock:
    """Clock backed by ``datetime``, ``time.monotonic`` and ``asyncio.sleep``."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))
