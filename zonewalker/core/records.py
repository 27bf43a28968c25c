"""Resolver-facing data types.

The walker does not speak DNS wire format itself; it consumes :class:`Reply`
objects produced by a resolver that satisfies the :class:`Resolver` protocol
(see :class:`~zonewalker.utils.secure_resolver.SecureResolver`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from zonewalker.core.names import DomainName


@dataclass(frozen=True)
class ResourceRecord:
    """A single record from a reply's authority section.

    Attributes:
        rtype: Record type mnemonic, e.g. ``"NSEC"``.
        name: Owner name.
        rdata: Type-specific fields.  For NSEC records the walker reads
               ``rdata["next_domain_name"]`` (a :class:`DomainName`).
    """

    rtype: str
    name: DomainName
    rdata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Reply:
    """One resolver reply.

    Attributes:
        authority: Records from the authority section.
        secure: ``True`` when the resolver vouches for the DNSSEC evidence.
        rcode: Response code mnemonic (``"NOERROR"``, ``"NXDOMAIN"``...).
    """

    authority: List[ResourceRecord] = field(default_factory=list)
    secure: bool = False
    rcode: str = "NOERROR"

    def nsec_records(self) -> List[ResourceRecord]:
        """Return the NSEC records of the authority section."""
        return [rr for rr in self.authority if rr.rtype == "NSEC"]


class Resolver(Protocol):
    """Anything that can answer walker queries; must be safe for concurrent use."""

    async def query(self, name: DomainName, record_type: str = "A") -> List[Reply]:
        ...
