"""IPv4 helpers: integer conversion, CIDR membership and the resolvable-address gate."""
from __future__ import annotations

import ipaddress
import re
from typing import Optional

_MASK_32 = 0xFFFFFFFF
_PREFIX_RE = re.compile(r"[0-9]{1,2}")


def ip_to_int(ip) -> Optional[int]:
    """Return the unsigned 32-bit value of a dotted-quad address, or None."""
    try:
        return int(ipaddress.IPv4Address(ip))
    except (ipaddress.AddressValueError, ValueError, TypeError):
        return None


def ip_in_range(ip, cidr: str) -> bool:
    """
    True if `ip` lies inside `cidr` ("subnet/prefix").

    Never raises: empty or malformed input, a prefix outside 0-32, or an
    address that is not IPv4 all give False.
    """
    if not ip or not cidr or not isinstance(cidr, str):
        return False

    parts = cidr.split("/")
    if len(parts) != 2:
        return False
    subnet, prefix = parts
    if not _PREFIX_RE.fullmatch(prefix):
        return False
    prefix_len = int(prefix)
    if prefix_len > 32:
        return False

    ip_value = ip_to_int(ip)
    subnet_value = ip_to_int(subnet)
    if ip_value is None or subnet_value is None:
        return False

    mask = (_MASK_32 << (32 - prefix_len)) & _MASK_32
    return (ip_value & mask) == (subnet_value & mask)


def is_resolvable(ip) -> bool:
    """
    A valid IPv4 address outside private and reserved space.

    Such addresses never appear in a public geolocation table, so they are
    rejected before any block lookup.
    """
    try:
        addr = ipaddress.IPv4Address(ip)
    except (ipaddress.AddressValueError, ValueError, TypeError):
        return False
    return not (
        addr.is_private
        or addr.is_reserved
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_multicast
        or addr.is_unspecified
    )
