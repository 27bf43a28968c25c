"""DNSSEC-aware resolver handle for the walker.

Provides :class:`SecureResolver` — a dnspython-based resolver that sends
queries with the DO and AD bits set, converts the authority section into
:class:`~zonewalker.core.records.Reply` objects, and flags replies that carry
no usable DNSSEC evidence.  Queries go over UDP (TCP on truncation), TCP only,
or DNS-over-HTTPS through aiohttp.

One instance is shared by every walker; an :class:`asyncio.Semaphore` bounds
the number of queries in flight.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Iterator, List, Optional

import aiohttp
import dns.asyncquery
import dns.exception
import dns.flags
import dns.message
import dns.name
import dns.rcode
import dns.rdatatype
import dns.resolver

from zonewalker.core.errors import ResolverError
from zonewalker.core.names import DomainName
from zonewalker.core.records import Reply, ResourceRecord
from zonewalker.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RESOLVERS = ["1.1.1.1", "8.8.8.8", "9.9.9.9"]

_FAILURE_RCODES = {
    dns.rcode.SERVFAIL,
    dns.rcode.REFUSED,
    dns.rcode.FORMERR,
    dns.rcode.NOTIMP,
}


def to_dns_name(name: DomainName) -> dns.name.Name:
    """Convert a :class:`DomainName` to a dnspython name."""
    return dns.name.Name(name.labels)


def from_dns_name(name: dns.name.Name) -> DomainName:
    """Convert a dnspython name to a :class:`DomainName`."""
    labels = list(name.labels)
    if not labels or labels[-1] != b"":
        labels.append(b"")
    return DomainName(labels)


def system_nameservers() -> List[str]:
    """Return the recursive resolvers configured for this host."""
    try:
        return list(dns.resolver.Resolver().nameservers)
    except dns.resolver.NoResolverConfiguration:
        logger.warning("no system resolver configured, using %s", ", ".join(DEFAULT_RESOLVERS))
        return list(DEFAULT_RESOLVERS)


class SecureResolver:
    """Shared resolver handle used by all walkers.

    Example::

        async with SecureResolver(nameservers=["192.0.2.53"], mode="stub") as resolver:
            replies = await resolver.query(normalize("\\\\001.example."), "A")

    A reply is considered secure when the answering server set the AD flag.
    Unless *require_ad* is set, a reply from an authoritative server (AA flag)
    whose NSEC RRsets are all covered by RRSIGs also counts as secure; this is
    what authoritative servers return, since they never set AD themselves.
    """

    def __init__(
        self,
        nameservers: Optional[List[str]] = None,
        mode: str = "recursive",
        timeout: float = 1.0,
        transport: str = "udp",
        port: int = 53,
        concurrency: int = 64,
        require_ad: bool = False,
        doh_enabled: bool = False,
        doh_server: str = "https://cloudflare-dns.com/dns-query",
    ) -> None:
        """Initialise the resolver.

        Args:
            nameservers: Upstream server IPs.  Required in ``stub`` mode; in
                         ``recursive`` mode the system resolvers are used when omitted.
            mode: ``"recursive"`` or ``"stub"``.
            timeout: Per-query timeout in seconds.
            transport: ``"udp"`` (TCP fallback on truncation) or ``"tcp"``.
            port: Upstream port.
            concurrency: Max simultaneous queries.
            require_ad: Only accept replies with the AD flag as secure.
            doh_enabled: Send queries as RFC 8484 DNS-over-HTTPS POSTs.
            doh_server: DoH endpoint URL.
        """
        if mode not in ("recursive", "stub"):
            raise ValueError(f"unknown resolution mode {mode!r}")
        if mode == "stub" and not nameservers and not doh_enabled:
            raise ValueError("stub mode needs at least one upstream nameserver")
        self._nameservers = list(nameservers or [])
        self._mode = mode
        self._timeout = timeout
        self._transport = transport
        self._port = port
        self._concurrency = concurrency
        self._require_ad = require_ad
        self._doh_enabled = doh_enabled
        self._doh_server = doh_server
        self._sem: Optional[asyncio.Semaphore] = None
        self._servers: Optional[Iterator[str]] = None
        self._doh_session: Optional[aiohttp.ClientSession] = None

    @property
    def nameservers(self) -> List[str]:
        return list(self._nameservers)

    async def __aenter__(self) -> "SecureResolver":
        await self._init()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def _init(self) -> None:
        """Create the semaphore, server rotation and DoH session."""
        self._sem = asyncio.Semaphore(self._concurrency)
        if not self._nameservers and not self._doh_enabled:
            self._nameservers = system_nameservers()
        self._servers = itertools.cycle(self._nameservers) if self._nameservers else None
        if self._doh_enabled:
            self._doh_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )
            logger.debug("DNS-over-HTTPS enabled: %s", self._doh_server)
        logger.debug(
            "resolver ready (%s mode, upstreams: %s)",
            self._mode, ", ".join(self._nameservers) or self._doh_server,
        )

    async def close(self) -> None:
        """Release the DoH session, if any."""
        if self._doh_session is not None:
            await self._doh_session.close()
            self._doh_session = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_query(self, name: DomainName, record_type: str = "A") -> dns.message.Message:
        """Build a DNSSEC-enabled query for *name*."""
        query = dns.message.make_query(
            to_dns_name(name), dns.rdatatype.from_text(record_type), want_dnssec=True
        )
        query.flags |= dns.flags.AD
        return query

    async def query(self, name: DomainName, record_type: str = "A") -> List[Reply]:
        """Send one query and return its reply.

        Args:
            name: Query name.
            record_type: Query type mnemonic.

        Returns:
            A single-element list holding the converted :class:`Reply`.

        Raises:
            ResolverError: On timeout, transport failure, or a failure rcode.
        """
        if self._sem is None:
            await self._init()
        assert self._sem is not None

        query = self.build_query(name, record_type)
        async with self._sem:
            try:
                response = await self._send(query)
            except (dns.exception.DNSException, OSError, asyncio.TimeoutError, aiohttp.ClientError) as exc:
                raise ResolverError(
                    f"{record_type} query for {name.to_text()} failed: {exc or type(exc).__name__}"
                ) from exc

        rcode = response.rcode()
        if rcode in _FAILURE_RCODES:
            raise ResolverError(
                f"{record_type} query for {name.to_text()} returned {dns.rcode.to_text(rcode)}"
            )
        return [self.to_reply(response)]

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, query: dns.message.Message) -> dns.message.Message:
        if self._doh_enabled:
            return await self._doh_send(query)
        assert self._servers is not None
        where = next(self._servers)
        if self._transport == "tcp":
            return await dns.asyncquery.tcp(query, where, timeout=self._timeout, port=self._port)
        response, used_tcp = await dns.asyncquery.udp_with_fallback(
            query, where, timeout=self._timeout, port=self._port
        )
        if used_tcp:
            logger.debug("truncated reply from %s, retried over TCP", where)
        return response

    async def _doh_send(self, query: dns.message.Message) -> dns.message.Message:
        """POST *query* in wire format to the DoH server (RFC 8484)."""
        if self._doh_session is None:
            await self._init()
        assert self._doh_session is not None
        headers = {
            "Accept": "application/dns-message",
            "Content-Type": "application/dns-message",
        }
        async with self._doh_session.post(
            self._doh_server, data=query.to_wire(), headers=headers
        ) as resp:
            if resp.status != 200:
                raise ResolverError(f"DoH server answered HTTP {resp.status}")
            body = await resp.read()
        return dns.message.from_wire(body)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_reply(self, response: dns.message.Message) -> Reply:
        """Convert a dnspython response into a :class:`Reply`."""
        authority: List[ResourceRecord] = []
        signed = set()
        nsec_owners = set()
        for rrset in response.authority:
            if rrset.rdtype == dns.rdatatype.RRSIG:
                signed.add((rrset.name, rrset.covers))
                continue
            owner = from_dns_name(rrset.name)
            rtype = dns.rdatatype.to_text(rrset.rdtype)
            for rdata in rrset:
                fields = {}
                if rrset.rdtype == dns.rdatatype.NSEC:
                    nsec_owners.add(rrset.name)
                    fields["next_domain_name"] = from_dns_name(rdata.next)
                authority.append(ResourceRecord(rtype=rtype, name=owner, rdata=fields))

        secure = bool(response.flags & dns.flags.AD)
        if not secure and not self._require_ad and response.flags & dns.flags.AA:
            secure = bool(nsec_owners) and all(
                (owner, dns.rdatatype.NSEC) in signed for owner in nsec_owners
            )
        return Reply(
            authority=authority,
            secure=secure,
            rcode=dns.rcode.to_text(response.rcode()),
        )
