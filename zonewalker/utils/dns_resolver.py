"""Async lookup resolver for zonewalker.

Provides :class:`AsyncDNSResolver` — a small aiodns-based resolver for plain
lookups (NS, A, AAAA) used while preparing a walk, e.g. to discover a zone's
authoritative servers.  It performs no DNSSEC processing; the walk itself goes
through :class:`~zonewalker.utils.secure_resolver.SecureResolver`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import aiodns

from zonewalker.utils.logger import get_logger

logger = get_logger(__name__)


class AsyncDNSResolver:
    """Async DNS resolver with retries and bulk support.

    Example::

        async with AsyncDNSResolver(nameservers=["8.8.8.8", "1.1.1.1"]) as dns:
            hosts = await dns.resolve("example.com", "NS")
    """

    def __init__(
        self,
        nameservers: Optional[List[str]] = None,
        timeout: float = 5,
        retries: int = 3,
        concurrency: int = 20,
    ) -> None:
        """Initialise the resolver.

        Args:
            nameservers: Custom DNS server IPs (defaults to system resolvers).
            timeout: Query timeout in seconds.
            retries: Number of attempts per query.
            concurrency: Max simultaneous DNS queries.
        """
        self._nameservers = nameservers or None
        self._timeout = timeout
        self._retries = retries
        self._concurrency = concurrency
        self._resolver: Optional[aiodns.DNSResolver] = None
        self._sem: Optional[asyncio.Semaphore] = None

    async def __aenter__(self) -> "AsyncDNSResolver":
        await self._init()
        return self

    async def __aexit__(self, *_: Any) -> None:
        self._resolver = None

    async def _init(self) -> None:
        """Initialise the underlying aiodns resolver and semaphore."""
        self._sem = asyncio.Semaphore(self._concurrency)
        self._resolver = aiodns.DNSResolver(
            nameservers=self._nameservers,
            timeout=self._timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, domain: str, record_type: str = "A") -> List[str]:
        """Resolve *domain* for the given DNS *record_type*.

        Args:
            domain: The domain name to query.
            record_type: DNS record type string (``"A"``, ``"AAAA"`` or ``"NS"``).

        Returns:
            List of string representations of the DNS records, empty when the
            lookup keeps failing.
        """
        if self._resolver is None:
            await self._init()
        assert self._resolver is not None

        record_type = record_type.upper()
        for attempt in range(self._retries):
            try:
                result = await self._resolver.query(domain, record_type)
                return self._format_records(result, record_type)
            except aiodns.error.DNSError as exc:
                if attempt == self._retries - 1:
                    logger.debug(
                        "DNS %s query for %s failed: %s", record_type, domain, exc
                    )
                    return []
                await asyncio.sleep(0.2 * (attempt + 1))
        return []

    async def bulk_resolve(
        self, domains: List[str], record_type: str = "A"
    ) -> Dict[str, List[str]]:
        """Resolve many *domains* concurrently for the same *record_type*.

        Args:
            domains: List of domain names.
            record_type: DNS record type.

        Returns:
            Dict mapping each domain to its records.
        """
        if self._sem is None:
            await self._init()
        assert self._sem is not None

        async def _one(domain: str) -> Tuple[str, List[str]]:
            async with self._sem:  # type: ignore[union-attr]
                records = await self.resolve(domain, record_type)
                return domain, records

        pairs = await asyncio.gather(*[_one(d) for d in domains])
        return dict(pairs)

    @staticmethod
    def _format_records(result: Any, record_type: str) -> List[str]:
        """Convert aiodns result objects to plain strings.

        Args:
            result: Raw aiodns result (list or single object).
            record_type: DNS record type string.

        Returns:
            List of string representations.
        """
        out: List[str] = []
        items = result if isinstance(result, list) else [result]
        for item in items:
            if record_type in ("A", "AAAA", "NS"):
                out.append(item.host)
            else:
                out.append(str(item))
        return out
