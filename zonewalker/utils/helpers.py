"""Utility functions for zonewalker."""

from __future__ import annotations

import ipaddress
from typing import Iterable, List, TypeVar

T = TypeVar("T")


def deduplicate(items: Iterable[T]) -> List[T]:
    """Return a list with duplicates removed while preserving insertion order.

    Args:
        items: Any iterable of hashable items.

    Returns:
        Ordered unique list.
    """
    seen: set = set()
    result: List[T] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def is_valid_ip(address: str) -> bool:
    """Return ``True`` if *address* is a valid IPv4 or IPv6 address.

    Args:
        address: String to validate.

    Returns:
        Boolean validation result.
    """
    try:
        ipaddress.ip_address(address)
        return True
    except ValueError:
        return False
