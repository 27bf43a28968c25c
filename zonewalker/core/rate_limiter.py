"""Per-walker step rate limiter."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class StepRateLimiter:
    """Enforce a minimum interval between the starts of successive steps.

    The interval is measured from the start of the previous step, so time
    spent waiting on the resolver counts towards it and the outbound query
    rate stays bounded regardless of resolver latency.

    Args:
        rps: Target steps per second.  ``0`` or less disables limiting.
        clock: Monotonic clock in seconds, replaceable in tests.
        sleep: Delay primitive, replaceable in tests.
    """

    def __init__(
        self,
        rps: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rps = rps
        self._clock = clock
        self._sleep = sleep
        self._last_step: float = 0.0
        self._started = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def rps(self) -> float:
        """Configured steps-per-second rate."""
        return self._rps

    @property
    def min_interval(self) -> float:
        """Minimum number of seconds between step starts."""
        return 1.0 / self._rps if self._rps > 0 else 0.0

    # ------------------------------------------------------------------
    # Slot acquisition
    # ------------------------------------------------------------------

    async def acquire(self) -> None:
        """Wait until the next step may start, then mark it started."""
        if self._started and self._rps > 0:
            elapsed = self._clock() - self._last_step
            if elapsed < self.min_interval:
                await self._sleep(self.min_interval - elapsed)
        self._started = True
        self._last_step = self._clock()
