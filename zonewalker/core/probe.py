"""Single-step NSEC probing.

A probe asks the resolver about a name that (almost certainly) does not
exist.  The authenticated denial in the authority section brackets the probe
point between two real owner names; the upper one is the next name of the
zone.
"""

from __future__ import annotations

import enum
from typing import Optional, Union

from zonewalker.core.errors import (
    EmptyResponseError,
    MalformedNsecError,
    UnsecuredResponseError,
)
from zonewalker.core.names import DomainName, NameLike, first_child, increment, lower, normalize
from zonewalker.core.records import Resolver
from zonewalker.utils.logger import get_logger

logger = get_logger(__name__)

# The record type is irrelevant: the proof lives in the authority section
PROBE_RECORD_TYPE = "A"


class _Wrapped(enum.Enum):
    WRAPPED = "wrapped"

    def __repr__(self) -> str:
        return "WRAPPED"


WRAPPED = _Wrapped.WRAPPED
"""Sentinel returned when no NSEC record points past the probe point."""

ProbeResult = Union[DomainName, _Wrapped]


def probe_point_for(name: NameLike, zone: Optional[NameLike] = None) -> DomainName:
    """Return the synthetic name queried when stepping past *name*.

    Off the zone apex the probe is ``\\001.<apex>``; elsewhere it is
    :func:`~zonewalker.core.names.increment` of *name*.
    """
    name = normalize(name)
    if zone is not None and name == normalize(zone):
        return first_child(name)
    return increment(name)


async def probe(
    name: NameLike,
    resolver: Resolver,
    zone: Optional[NameLike] = None,
) -> ProbeResult:
    """Return the next owner name after *name*, or :data:`WRAPPED`.

    Args:
        name: Last confirmed name.
        resolver: Shared resolver handle.
        zone: Zone apex, used to step off the apex into the zone.

    Returns:
        The next name in canonical order, lower-cased, or :data:`WRAPPED`
        when the chain has looped back past the probe point.
    """
    return await probe_at(probe_point_for(name, zone), resolver)


async def probe_at(point: DomainName, resolver: Resolver) -> ProbeResult:
    """Query *point* directly and select the tightest NSEC successor.

    Raises:
        EmptyResponseError: No reply at all.
        UnsecuredResponseError: The reply is not DNSSEC-secure.
        MalformedNsecError: The selected record has no usable next name.
    """
    replies = await resolver.query(point, PROBE_RECORD_TYPE)
    if not replies:
        raise EmptyResponseError(f"no reply for {point.to_text()}")
    if len(replies) > 1:
        logger.debug("%d replies for %s, using the first", len(replies), point.to_text())

    reply = replies[0]
    if not reply.secure:
        raise UnsecuredResponseError(
            f"insecure reply for {point.to_text()}; does this zone use DNSSEC with NSEC?"
        )

    nsecs = reply.nsec_records()
    if not nsecs:
        if any(rr.rtype == "NSEC3" for rr in reply.authority):
            raise UnsecuredResponseError(
                f"zone answers {point.to_text()} with NSEC3, which cannot be walked"
            )
        raise EmptyResponseError(f"no NSEC records in reply for {point.to_text()}")

    best = None
    malformed = 0
    for record in nsecs:
        next_name = record.rdata.get("next_domain_name")
        if not isinstance(next_name, DomainName):
            malformed += 1
            continue
        if next_name > point and (best is None or next_name < best):
            best = next_name

    if best is None and malformed:
        raise MalformedNsecError(
            f"{malformed} NSEC record(s) without a valid next_domain_name "
            f"for {point.to_text()}"
        )
    if best is None:
        logger.debug("no NSEC successor past %s, zone wrapped", point.to_text())
        return WRAPPED
    return lower(best)
