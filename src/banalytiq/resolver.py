"""
Resolve an IPv4 address against a GeoLite2-style reference store.

The reference store has two tables:
- blocks(network, latitude, longitude, geoname_id,
         registered_country_geoname_id, represented_country_geoname_id)
- locations(geoname_id, country_name, city_name)

`network` is a CIDR string, so an index on it cannot find the enclosing block
directly. Candidates are narrowed by textual prefix first ("a.b." then "a."),
and each candidate is range-tested in the order the store returns them.
"""
from __future__ import annotations

import ipaddress
import logging
import sqlite3
from typing import Optional

from banalytiq.models import ResolvedGeo
from banalytiq.network import ip_in_range, is_resolvable

logger = logging.getLogger(__name__)

_FIND_BLOCKS = """
    SELECT network, latitude, longitude, geoname_id,
           registered_country_geoname_id, represented_country_geoname_id
    FROM blocks WHERE network LIKE ?
"""

_FIND_LOCATION = "SELECT country_name, city_name FROM locations WHERE geoname_id = ? LIMIT 1"


def _as_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def geoname_id_for(block) -> Optional[object]:
    """First non-empty of the block's own, registered and represented geoname ids."""
    return (
        block["geoname_id"]
        or block["registered_country_geoname_id"]
        or block["represented_country_geoname_id"]
        or None
    )


class BlockResolver:
    def __init__(self, reference: sqlite3.Connection):
        self.reference = reference
        if self.reference.row_factory is None:
            self.reference.row_factory = sqlite3.Row

    def resolve(self, ip: str) -> Optional[ResolvedGeo]:
        """Return the geo record of the first block containing `ip`, or None."""
        if not is_resolvable(ip):
            return None

        ip = str(ipaddress.IPv4Address(ip))
        octets = ip.split(".")
        for pattern in (f"{octets[0]}.{octets[1]}.%", f"{octets[0]}.%"):
            block = self._first_match(ip, pattern)
            if block is not None:
                return self._to_geo(ip, block)

        logger.debug("No block found for %s", ip)
        return None

    def _first_match(self, ip: str, pattern: str):
        for block in self.reference.execute(_FIND_BLOCKS, (pattern,)):
            if ip_in_range(ip, block["network"]):
                return block
        return None

    def _to_geo(self, ip: str, block) -> ResolvedGeo:
        country = city = None
        geoname_id = geoname_id_for(block)
        if geoname_id is not None:
            row = self.reference.execute(_FIND_LOCATION, (geoname_id,)).fetchone()
            if row is not None:
                country, city = row["country_name"], row["city_name"]

        return ResolvedGeo(
            ip=ip,
            latitude=_as_float(block["latitude"]),
            longitude=_as_float(block["longitude"]),
            country=country,
            city=city,
        )
