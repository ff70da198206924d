"""
Geospatial helpers.

Store discovery only needs great-circle distances over a few hundred points, so we
keep a tiny haversine layer here instead of pulling in a GIS dependency.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Protocol

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in kilometers between two points."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair above 1 for antipodal points.
    return 2 * EARTH_RADIUS_KM * asin(sqrt(min(1.0, h)))


class HasLatLon(Protocol):
    latitude: float
    longitude: float


def distance_km(a: HasLatLon, b: HasLatLon) -> float:
    """Distance between two objects with `latitude`/`longitude` attributes (e.g. `Coordinate`)."""
    return haversine_km(
        GeoPoint(lat=float(a.latitude), lon=float(a.longitude)),
        GeoPoint(lat=float(b.latitude), lon=float(b.longitude)),
    )
