"""Unbounded retry with exponential backoff.

A zone walk is a long-lived batch job, so a transient resolver failure must
never abort the traversal: failed operations are retried forever, with the
delay growing by ``backoff_factor`` up to ``max_delay``.  The only way out of
a retry loop (besides success or a non-retryable error) is the shutdown event.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from zonewalker.core.errors import TransientProbeError, WalkCancelledError
from zonewalker.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]
RetryHook = Callable[[BaseException, float], None]


class RetryPolicy:
    """Retry an async operation until it succeeds.

    Example::

        policy = RetryPolicy(initial_delay=1.0, max_delay=30.0)
        next_name = await policy.call(lambda: probe(current, resolver))

    Args:
        initial_delay: Seconds to wait after the first failure.
        max_delay: Upper bound for any single wait.
        backoff_factor: Multiplier applied to the delay after every failure.
        retry_on: Exception types that are retried; anything else propagates.
        shutdown: Event that, once set, turns the next retry into
                  :class:`WalkCancelledError`.
        sleep: Delay primitive, replaceable in tests.
    """

    def __init__(
        self,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_factor: float = 1.5,
        retry_on: Tuple[Type[BaseException], ...] = (TransientProbeError,),
        shutdown: Optional[asyncio.Event] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if initial_delay < 0 or max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self._retry_on = retry_on
        self._shutdown = shutdown
        self._sleep = sleep

    def delay_for(self, failures: int) -> float:
        """Return the wait after *failures* earlier consecutive failures (0-based)."""
        # Past the cap the exponent only matters for overflow
        delay = self.initial_delay
        for _ in range(failures):
            delay *= self.backoff_factor
            if delay >= self.max_delay:
                return self.max_delay
        return min(delay, self.max_delay)

    def _check_shutdown(self, exc: BaseException) -> None:
        if self._shutdown is not None and self._shutdown.is_set():
            raise WalkCancelledError("shutdown requested, abandoning retries") from exc

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Optional[RetryHook] = None,
    ) -> T:
        """Run *operation* until it returns.

        Args:
            operation: Zero-argument callable returning a fresh awaitable.
            on_retry: Called with the error and the upcoming delay before each wait.

        Returns:
            Whatever *operation* eventually returns.

        Raises:
            WalkCancelledError: If shutdown is requested around a retry wait.
        """
        failures = 0
        while True:
            try:
                return await operation()
            except self._retry_on as exc:
                self._check_shutdown(exc)
                delay = self.delay_for(failures)
                logger.warning(
                    "%s: %s (retry %d in %.1fs)",
                    type(exc).__name__, exc, failures + 1, delay,
                )
                if on_retry is not None:
                    on_retry(exc, delay)
                await self._sleep(delay)
                self._check_shutdown(exc)
                failures += 1
