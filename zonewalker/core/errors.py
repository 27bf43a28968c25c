"""Exception hierarchy for zonewalker.

Transient failures derive from :class:`TransientProbeError` and are retried
indefinitely by :class:`~zonewalker.core.retry.RetryPolicy`.  Everything else
is structural and ends the affected walk (or aborts before walking starts).
"""

from __future__ import annotations


class ZoneWalkError(Exception):
    """Base class for all zonewalker errors."""


class InvalidNameError(ZoneWalkError, ValueError):
    """A domain name violates label or total length limits, or cannot be parsed."""


class NameSpaceExhaustedError(ZoneWalkError):
    """No greater label can be built without exceeding 63 octets."""


class UnsecuredResponseError(ZoneWalkError):
    """The resolver could not prove the answer secure; the zone is not walkable."""


class WalkCancelledError(ZoneWalkError):
    """Shutdown was requested while a step was waiting to be retried."""


class TransientProbeError(ZoneWalkError):
    """A single probe failed in a way that is worth retrying."""


class EmptyResponseError(TransientProbeError):
    """The resolver returned no reply at all."""


class MalformedNsecError(TransientProbeError):
    """An NSEC record lacks a usable ``next_domain_name``."""


class ResolverError(TransientProbeError):
    """Transport failure, timeout, or a SERVFAIL/REFUSED style rcode."""
