"""The zone-walking state machine.

A :class:`ZoneWalker` owns one contiguous slice of a zone.  Starting from its
cursor it repeatedly probes for the next owner name, emitting each one, until
the NSEC chain wraps, the slice boundary is reached, or the chain leaves the
zone.  Steps are strictly sequential; every probe depends on the last result.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Optional

from zonewalker.core.errors import (
    InvalidNameError,
    NameSpaceExhaustedError,
    UnsecuredResponseError,
    WalkCancelledError,
)
from zonewalker.core.names import DomainName, NameLike, is_subdomain, lower, normalize, predecessor
from zonewalker.core.probe import WRAPPED, ProbeResult, probe, probe_at
from zonewalker.core.rate_limiter import StepRateLimiter
from zonewalker.core.records import Resolver
from zonewalker.core.retry import RetryPolicy
from zonewalker.utils.logger import get_logger

logger = get_logger(__name__)


class WalkState(str, Enum):
    RUNNING = "running"
    ENDED = "ended"


class EndReason(str, Enum):
    """Why a walker stopped."""

    WRAPPED = "wrapped"
    BOUNDARY = "boundary"
    OUTSIDE_ZONE = "outside_zone"
    UNSECURED = "unsecured"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


@dataclass
class WalkCursor:
    """Mutable per-walker position.

    Attributes:
        current: Last confirmed name (or the start point).
        suffix: Apex of the zone being walked.
        upper_bound: Exclusive end of this walker's slice, if any.
        lower_bound: Inclusive start of this walker's slice, if any.  Names
                     below it are stepped over without being emitted.
        failure_delay: Wait scheduled after the latest failure, ``0`` after a success.
        steps: Number of successful probes.
    """

    current: DomainName
    suffix: DomainName
    upper_bound: Optional[DomainName] = None
    lower_bound: Optional[DomainName] = None
    failure_delay: float = 0.0
    steps: int = 0


@dataclass
class WalkOutcome:
    """Summary of a finished walk.

    Attributes:
        partition: Index of the partition the walker served.
        names_found: Number of names emitted.
        steps: Number of successful probes.
        reason: Why the walk ended.
        duration: Wall-clock seconds spent walking.
    """

    partition: int
    names_found: int
    steps: int
    reason: Optional[EndReason]
    duration: float = 0.0


class ZoneWalker:
    """Walk one slice of a zone along its NSEC chain.

    Example::

        async with SecureResolver() as resolver:
            walker = ZoneWalker(resolver, "example.com.")
            async for name in walker.walk():
                print(name.to_text(omit_final_dot=True))

    Args:
        resolver: Shared resolver handle.
        zone: Apex of the zone.
        start: Resume point; defaults to the apex (or *lower_bound* when set).
        upper_bound: Exclusive end of the slice.
        lower_bound: Inclusive start of the slice.  The first probe is aimed
                     just below it so that the bound itself can be found.
        rate_limiter: Step pacing; defaults to 10 steps per second.
        retry_policy: Failure handling; defaults to :class:`RetryPolicy`.
        index: Partition index, used in diagnostics.
    """

    def __init__(
        self,
        resolver: Resolver,
        zone: NameLike,
        start: Optional[NameLike] = None,
        upper_bound: Optional[NameLike] = None,
        lower_bound: Optional[NameLike] = None,
        rate_limiter: Optional[StepRateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        index: int = 0,
    ) -> None:
        suffix = lower(zone)
        low = lower(lower_bound) if lower_bound is not None else None
        if start is not None:
            current = lower(start)
        else:
            current = low if low is not None else suffix

        self.resolver = resolver
        self.index = index
        self.cursor = WalkCursor(
            current=current,
            suffix=suffix,
            upper_bound=lower(upper_bound) if upper_bound is not None else None,
            lower_bound=low,
        )
        self.rate_limiter = rate_limiter or StepRateLimiter()
        self.retry_policy = retry_policy or RetryPolicy()
        self.state = WalkState.RUNNING
        self.reason: Optional[EndReason] = None
        self.names_found = 0
        self._first_point: Optional[DomainName] = (
            predecessor(low) if low is not None and current == low else None
        )

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def _end(self, reason: EndReason, message: str, *args: object) -> None:
        self.state = WalkState.ENDED
        self.reason = reason
        log = logger.error if reason in (EndReason.UNSECURED, EndReason.EXHAUSTED) else logger.info
        log("partition %d: " + message, self.index, *args)

    def _on_retry(self, exc: BaseException, delay: float) -> None:
        self.cursor.failure_delay = delay

    async def _probe_once(self) -> ProbeResult:
        if self._first_point is not None:
            return await probe_at(self._first_point, self.resolver)
        return await probe(self.cursor.current, self.resolver, zone=self.cursor.suffix)

    async def step(self) -> Optional[DomainName]:
        """Advance the cursor by one probe.

        Returns:
            The name to emit, or ``None`` when nothing is emitted (the walk
            ended, or the name lies below this walker's lower bound).
        """
        if self.state is WalkState.ENDED:
            return None

        cursor = self.cursor
        await self.rate_limiter.acquire()
        try:
            result = await self.retry_policy.call(self._probe_once, on_retry=self._on_retry)
        except UnsecuredResponseError as exc:
            self._end(EndReason.UNSECURED, "%s", exc)
            return None
        except NameSpaceExhaustedError as exc:
            self._end(EndReason.EXHAUSTED, "%s", exc)
            return None
        except WalkCancelledError:
            self._end(EndReason.CANCELLED, "cancelled at %s", cursor.current.to_text())
            return None

        self._first_point = None
        cursor.failure_delay = 0.0
        cursor.steps += 1

        if result is WRAPPED:
            self._end(EndReason.WRAPPED, "NSEC chain wrapped, end of zone after %d names",
                      self.names_found)
            return None
        assert isinstance(result, DomainName)
        if cursor.upper_bound is not None and result >= cursor.upper_bound:
            self._end(EndReason.BOUNDARY, "reached boundary %s after %d names",
                      cursor.upper_bound.to_text(), self.names_found)
            return None
        if not is_subdomain(result, cursor.suffix):
            self._end(EndReason.OUTSIDE_ZONE, "%s is outside %s, stopping",
                      result.to_text(), cursor.suffix.to_text())
            return None

        cursor.current = result
        if cursor.lower_bound is not None and result < cursor.lower_bound:
            logger.debug("partition %d: skipping %s below %s", self.index,
                         result.to_text(), cursor.lower_bound.to_text())
            return None
        self.names_found += 1
        return result

    async def walk(self) -> AsyncIterator[DomainName]:
        """Yield every name of this slice in canonical order."""
        logger.debug("partition %d: walking from %s", self.index, self.cursor.current.to_text())
        while self.state is WalkState.RUNNING:
            name = await self.step()
            if name is not None:
                yield name

    async def run(self, on_name: Callable[[str], None]) -> WalkOutcome:
        """Walk to the end, passing each name (without its final dot) to *on_name*.

        Returns:
            :class:`WalkOutcome` describing the finished walk.
        """
        start = time.monotonic()
        try:
            async for name in self.walk():
                on_name(name.to_text(omit_final_dot=True))
        except asyncio.CancelledError:
            self.state = WalkState.ENDED
            self.reason = EndReason.CANCELLED
            raise
        return WalkOutcome(
            partition=self.index,
            names_found=self.names_found,
            steps=self.cursor.steps,
            reason=self.reason,
            duration=time.monotonic() - start,
        )


def start_point(zone: NameLike, start: Optional[NameLike]) -> DomainName:
    """Validate a resume point against *zone* and return it normalised."""
    zone_name = normalize(zone)
    if start is None:
        return lower(zone_name)
    name = normalize(start)
    if not is_subdomain(name, zone_name):
        raise InvalidNameError(f"{name.to_text()} is not inside {zone_name.to_text()}")
    return lower(name)
