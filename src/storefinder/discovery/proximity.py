"""
Proximity filtering for the store map.

Given the user's location, a search radius and a store collection, return the stores
inside the radius (nearest first) plus a map viewport that frames the search circle.

The store count is small (hundreds), so this is a linear scan over `haversine_km`.
Radius policy: a radius below 1 km is reinterpreted as the configured default maximum
radius, matching what the map's radius picker has always done.
"""

from __future__ import annotations

from typing import Iterable

from storefinder.config.settings import DiscoverySettings
from storefinder.core.geo import distance_km
from storefinder.domain.models import Coordinate, ProximityResult, Store, ViewRegion


def effective_radius_km(radius_km: float, settings: DiscoverySettings) -> float:
    return settings.default_max_radius_km if radius_km < 1 else float(radius_km)


def _fallback_region(stores: list[Store], settings: DiscoverySettings) -> ViewRegion:
    if stores:
        center = stores[0].location
        lat, lon = center.latitude, center.longitude
    else:
        lat = settings.fallback_center.latitude
        lon = settings.fallback_center.longitude
    return ViewRegion(
        latitude=lat,
        longitude=lon,
        latitude_delta=settings.fallback_delta.latitude_delta,
        longitude_delta=settings.fallback_delta.longitude_delta,
    )


def filter_by_proximity(
    origin: Coordinate | None,
    radius_km: float,
    stores: Iterable[Store],
    *,
    settings: DiscoverySettings | None = None,
) -> ProximityResult:
    """Return stores within the effective radius of `origin`, sorted by distance.

    Without an origin every store with coordinates is returned in input order and the
    region falls back to a fixed zoom. Stores without coordinates are always skipped.
    """
    settings = settings or DiscoverySettings()
    located = [s for s in stores if s.location is not None]

    if origin is None:
        return ProximityResult(visible=located, region=_fallback_region(located, settings))

    radius = effective_radius_km(radius_km, settings)
    scored: list[tuple[float, Store]] = []
    for store in located:
        d = distance_km(origin, store.location)
        if d <= radius:
            scored.append((d, store))
    # `sorted` is stable, so equidistant stores keep their input order.
    scored = sorted(scored, key=lambda pair: pair[0])

    delta = radius / settings.region_delta_divisor
    region = ViewRegion(
        latitude=origin.latitude,
        longitude=origin.longitude,
        latitude_delta=delta,
        longitude_delta=delta,
    )
    return ProximityResult(
        visible=[s for _, s in scored],
        region=region,
        distances_km={s.id: round(d, 4) for d, s in scored},
        effective_radius_km=radius,
    )
