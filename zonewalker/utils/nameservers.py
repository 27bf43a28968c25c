"""Authoritative nameserver discovery.

Finds the servers that publish a zone so the walk can query them directly.
Every failure here is non-fatal: an empty result means "fall back to the
configured (or system) resolvers".
"""

from __future__ import annotations

from typing import List

from zonewalker.core.names import NameLike, normalize
from zonewalker.utils.dns_resolver import AsyncDNSResolver
from zonewalker.utils.helpers import deduplicate
from zonewalker.utils.logger import get_logger

logger = get_logger(__name__)


async def discover_nameservers(
    zone: NameLike,
    lookup: AsyncDNSResolver,
    include_ipv6: bool = True,
) -> List[str]:
    """Return the IP addresses of *zone*'s authoritative servers.

    Args:
        zone: Zone apex.
        lookup: Plain lookup resolver.
        include_ipv6: Also resolve AAAA records for each server.

    Returns:
        Deduplicated addresses in discovery order; empty when nothing resolved.
    """
    zone_text = normalize(zone).to_text(omit_final_dot=True) or "."
    try:
        hosts = await lookup.resolve(zone_text, "NS")
    except Exception as exc:  # noqa: BLE001
        logger.warning("NS lookup for %s failed: %s", zone_text, exc)
        return []
    if not hosts:
        logger.warning("no NS records found for %s, using default resolvers", zone_text)
        return []

    hosts = deduplicate(host.rstrip(".").lower() for host in hosts)
    logger.debug("nameservers for %s: %s", zone_text, ", ".join(hosts))

    addresses: List[str] = []
    record_types = ["A", "AAAA"] if include_ipv6 else ["A"]
    for record_type in record_types:
        try:
            resolved = await lookup.bulk_resolve(hosts, record_type)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s lookups for %s nameservers failed: %s",
                           record_type, zone_text, exc)
            continue
        for host in hosts:
            addresses.extend(resolved.get(host, []))

    addresses = deduplicate(addresses)
    if not addresses:
        logger.warning("could not resolve any nameserver of %s", zone_text)
    return addresses
