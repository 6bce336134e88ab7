# banalytiq/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class VisitRecord:
    ip: str                 # anonymized "a.b.c.0"
    dt: int                 # unix timestamp, seconds
    url: str
    referer: str = ""
    ua: str = ""
    status: Optional[int] = None
    country: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def key(self) -> tuple[str, int, str]:
        """Natural key: one row per (ip, dt, url)."""
        return (self.ip, self.dt, self.url)


@dataclass(frozen=True)
class ResolvedGeo:
    ip: str
    latitude: Optional[float]
    longitude: Optional[float]
    country: Optional[str] = None
    city: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
