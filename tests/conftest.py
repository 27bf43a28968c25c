"""Shared pytest fixtures for the zonewalker test suite."""

from __future__ import annotations

import bisect
from typing import Iterable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from zonewalker.core.config import Config
from zonewalker.core.names import DomainName, lower, normalize
from zonewalker.core.records import Reply, ResourceRecord
from zonewalker.core.retry import RetryPolicy


class FakeSignedZone:
    """In-memory stand-in for a resolver serving one NSEC-signed zone.

    Every query is answered like an authoritative NXDOMAIN: the NSEC record
    covering the query name, plus the apex NSEC that denies the wildcard.
    """

    def __init__(self, apex: str, names: Iterable[str], secure: bool = True) -> None:
        self.apex = normalize(apex)
        self.chain: List[DomainName] = sorted({self.apex, *(normalize(n) for n in names)})
        self.secure = secure
        self.queries: List[DomainName] = []

    def nsec(self, owner: DomainName) -> ResourceRecord:
        i = self.chain.index(owner)
        nxt = self.chain[(i + 1) % len(self.chain)]
        return ResourceRecord("NSEC", owner, {"next_domain_name": nxt})

    def covering(self, point: DomainName) -> DomainName:
        idx = bisect.bisect_right(self.chain, point) - 1
        return self.chain[idx] if idx >= 0 else self.chain[-1]

    async def query(self, name: DomainName, record_type: str = "A") -> List[Reply]:
        self.queries.append(name)
        owner = self.covering(name)
        authority = [self.nsec(owner)]
        if owner != self.apex:
            authority.append(self.nsec(self.apex))
        return [Reply(authority=authority, secure=self.secure, rcode="NXDOMAIN")]

    def expected(self) -> List[str]:
        """Every non-apex name, as the walker prints it."""
        return [lower(n).to_text(omit_final_dot=True) for n in self.chain if n != self.apex]


def make_reply(*pairs: tuple, secure: bool = True) -> Reply:
    """Build a reply from ``(owner, next)`` NSEC pairs; ``next`` may be ``None``."""
    authority = []
    for owner, nxt in pairs:
        rdata = {} if nxt is None else {"next_domain_name": normalize(nxt)}
        authority.append(ResourceRecord("NSEC", normalize(owner), rdata))
    return Reply(authority=authority, secure=secure)


def no_wait_policy(shutdown: Optional[object] = None) -> RetryPolicy:
    """Retry policy that never actually sleeps."""
    return RetryPolicy(initial_delay=0.0, max_delay=0.0, sleep=AsyncMock(), shutdown=shutdown)


@pytest.fixture
def sample_config() -> Config:
    """Return a default Config instance with no external dependencies."""
    return Config()


@pytest.fixture
def zone() -> FakeSignedZone:
    """A small signed zone with names around every partition boundary.

    ``-foo`` (0x2D) sorts before ``0`` and ``_dmarc`` (0x5F) between ``9`` and ``a``.
    """
    return FakeSignedZone(
        "example.",
        [
            "-foo.example.",
            "0.example.",
            "0a.example.",
            "9zz.example.",
            "_dmarc.example.",
            "a.example.",
            "Mail.example.",
            "i.example.",
            "www.example.",
            "z.example.",
            "zz.example.",
            "\\255.example.",
        ],
    )


@pytest.fixture
def nested_zone() -> FakeSignedZone:
    """A signed zone with nested names and empty non-terminals.

    ``1.example.``, ``i.example.`` and ``y.i.example.`` have no records of their
    own; they exist only as parents of deeper names.
    """
    return FakeSignedZone(
        "example.",
        [
            "-foo.example.",
            "0.example.",
            "a.1.example.",
            "b.a.1.example.",
            "9.example.",
            "sub.9.example.",
            "a.example.",
            "deep.er.a.example.",
            "x.y.i.example.",
            "mail.x.y.i.example.",
            "r.example.",
            "z.z.example.",
            "zz.example.",
        ],
    )


@pytest.fixture
def mock_dns_resolver() -> MagicMock:
    """Return a MagicMock simulating the secure resolver."""
    resolver = MagicMock()
    resolver.query = AsyncMock(return_value=[])
    return resolver
