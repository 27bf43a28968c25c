"""Partitioned parallel zone walking.

The first label under the apex is sharded over the alphabet ``0-9a-z``.
Partition 0 starts at the apex itself, so names sorting before ``0`` (such as
``-foo``) are still covered; partition ``i > 0`` starts at
``<symbol>.<zone>``.  Each partition ends where the next one starts, so the
slices are disjoint and together cover the whole zone.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional

from zonewalker.core.names import DomainName, NameLike, lower, normalize
from zonewalker.core.rate_limiter import StepRateLimiter
from zonewalker.core.records import Resolver
from zonewalker.core.retry import RetryPolicy
from zonewalker.core.walker import WalkOutcome, ZoneWalker, start_point
from zonewalker.utils.logger import get_logger

logger = get_logger(__name__)

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
MAX_PARALLELISM = len(ALPHABET)


@dataclass(frozen=True)
class Partition:
    """An immutable slice of the zone.

    Attributes:
        index: Position of the slice, ``0`` first.
        start: Name the walker starts from.
        upper_bound: Exclusive end; ``None`` for the last slice.
        lower_bound: Inclusive start for slices other than the first.
    """

    index: int
    start: DomainName
    upper_bound: Optional[DomainName] = None
    lower_bound: Optional[DomainName] = None


def plan_partitions(
    zone: NameLike,
    parallelism: int = 1,
    start: Optional[NameLike] = None,
) -> List[Partition]:
    """Split *zone* into *parallelism* order-preserving slices.

    Args:
        zone: Apex of the zone.
        parallelism: Number of slices, ``1`` to ``36``.
        start: Resume point; only valid with a single slice.

    Returns:
        Partitions in canonical order.

    Raises:
        ValueError: On an out-of-range *parallelism* or *start* with ``parallelism > 1``.
        InvalidNameError: If *start* lies outside *zone*.
    """
    if not 1 <= parallelism <= MAX_PARALLELISM:
        raise ValueError(f"parallelism must be between 1 and {MAX_PARALLELISM}")
    if start is not None and parallelism > 1:
        raise ValueError("a start point cannot be combined with parallel walking")

    apex = lower(normalize(zone))
    step = MAX_PARALLELISM // parallelism
    starts = [start_point(apex, start)]
    for i in range(1, parallelism):
        label = ALPHABET[i * step].encode("ascii")
        starts.append(DomainName((label,) + apex.labels))

    partitions: List[Partition] = []
    for i, first in enumerate(starts):
        partitions.append(
            Partition(
                index=i,
                start=first,
                upper_bound=starts[i + 1] if i + 1 < len(starts) else None,
                lower_bound=first if i > 0 else None,
            )
        )
    return partitions


class PartitionPlanner:
    """Launch one :class:`ZoneWalker` per partition against a shared resolver.

    Example::

        async with SecureResolver() as resolver:
            planner = PartitionPlanner(resolver, "arpa.", parallelism=4)
            outcomes = await planner.run(print)

    Args:
        resolver: Resolver shared by every walker; must be safe for concurrent use.
        zone: Apex of the zone.
        parallelism: Number of concurrent walkers.
        start: Resume point (single walker only).
        rps: Steps per second for each walker.
        retry_policy_factory: Builds a fresh :class:`RetryPolicy` per walker.
    """

    def __init__(
        self,
        resolver: Resolver,
        zone: NameLike,
        parallelism: int = 1,
        start: Optional[NameLike] = None,
        rps: float = 10.0,
        retry_policy_factory: Optional[Callable[[], RetryPolicy]] = None,
    ) -> None:
        self.resolver = resolver
        self.zone = lower(normalize(zone))
        self.partitions = plan_partitions(self.zone, parallelism, start)
        self._rps = rps
        self._retry_policy_factory = retry_policy_factory or RetryPolicy

    def build_walkers(self) -> List[ZoneWalker]:
        """Create one independent walker per partition."""
        return [
            ZoneWalker(
                self.resolver,
                self.zone,
                start=partition.start,
                upper_bound=partition.upper_bound,
                lower_bound=partition.lower_bound,
                rate_limiter=StepRateLimiter(self._rps),
                retry_policy=self._retry_policy_factory(),
                index=partition.index,
            )
            for partition in self.partitions
        ]

    async def run(self, on_name: Callable[[str], None]) -> List[WalkOutcome]:
        """Walk every partition concurrently.

        Args:
            on_name: Receives each discovered name without its final dot.
                     Names of one partition arrive in canonical order; names of
                     different partitions interleave freely.

        Returns:
            One :class:`WalkOutcome` per partition, in partition order.
        """
        walkers = self.build_walkers()
        logger.info(
            "walking %s with %d partition(s)", self.zone.to_text(), len(walkers)
        )
        tasks = [
            asyncio.create_task(walker.run(on_name), name=f"partition-{walker.index}")
            for walker in walkers
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
