"""
Geolocation provider boundary.

Device location is supplied by an external provider. Permission denials, provider
errors and timeouts all collapse into "no origin", which sends discovery down the
unfiltered branch instead of failing the request.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from storefinder.domain.models import Coordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationFix:
    coordinate: Coordinate
    accuracy_m: float | None = None


class LocationPermissionDenied(Exception):
    pass


class GeolocationProvider(Protocol):
    async def current_location(self) -> LocationFix: ...


class StaticLocationProvider:
    """Provider that always reports the same fix (CLI flags, API query params, tests)."""

    def __init__(self, coordinate: Coordinate, accuracy_m: float | None = None):
        self._fix = LocationFix(coordinate=coordinate, accuracy_m=accuracy_m)

    async def current_location(self) -> LocationFix:
        return self._fix


async def resolve_origin(
    provider: GeolocationProvider | None, *, timeout_seconds: float = 10.0
) -> Coordinate | None:
    """Ask `provider` for the current location; None when unavailable."""
    if provider is None:
        return None
    try:
        fix = await asyncio.wait_for(provider.current_location(), timeout=timeout_seconds)
    except LocationPermissionDenied:
        logger.info("Location permission denied; showing all stores")
        return None
    except asyncio.TimeoutError:
        logger.warning("Location request timed out after %.1fs", timeout_seconds)
        return None
    except Exception as exc:
        logger.warning("Location provider failed: %s", exc)
        return None
    return fix.coordinate
