"""
Cached store reads for discovery screens.

Store lists are read through the local cache with a caller-chosen TTL and validated
back into `Store` models. A cached payload that no longer validates is dropped and
refetched, so a schema change never surfaces as an error.
"""

from __future__ import annotations

import logging

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from storefinder.config.settings import DiscoverySettings
from storefinder.core.cache import LocalCache
from storefinder.core.errors import ValidationError
from storefinder.domain.cache_keys import owner_stores_key, status_list_key, store_key
from storefinder.domain.models import Coordinate, ProximityQuery, ProximityResult, Store, StoreStatus
from storefinder.discovery.location import GeolocationProvider, resolve_origin
from storefinder.discovery.proximity import filter_by_proximity
from storefinder.storage.base import StoreRepository

logger = logging.getLogger(__name__)

_STORES_ADAPTER = TypeAdapter(list[Store])


class StoreDiscovery:
    def __init__(
        self,
        *,
        repository: StoreRepository,
        cache: LocalCache,
        settings: DiscoverySettings | None = None,
        default_ttl_seconds: float = 300,
    ):
        self._repo = repository
        self._cache = cache
        self._settings = settings or DiscoverySettings()
        self._default_ttl_seconds = default_ttl_seconds

    async def _cached_list(self, key: str, fetch, ttl_seconds: float | None) -> list[Store]:
        ttl = self._default_ttl_seconds if ttl_seconds is None else ttl_seconds

        async def fetch_json() -> list[dict]:
            stores = await fetch()
            return [s.model_dump(mode="json") for s in stores]

        payload = await self._cache.get_or_fetch(key, fetch_json, ttl)
        try:
            return _STORES_ADAPTER.validate_python(payload)
        except PydanticValidationError:
            logger.warning("Cached store list under %s no longer validates; refetching", key)
            self._cache.invalidate(key)
            payload = await self._cache.get_or_fetch(key, fetch_json, ttl)
            return _STORES_ADAPTER.validate_python(payload)

    async def list_stores(
        self, status: StoreStatus | None = None, *, ttl_seconds: float | None = None
    ) -> list[Store]:
        return await self._cached_list(
            status_list_key(status),
            lambda: self._repo.fetch_stores_by_status(status),
            ttl_seconds,
        )

    async def list_owner_stores(self, owner_id: str, *, ttl_seconds: float | None = None) -> list[Store]:
        return await self._cached_list(
            owner_stores_key(owner_id),
            lambda: self._repo.fetch_stores_by_owner(owner_id),
            ttl_seconds,
        )

    async def get_store(self, store_id: str, *, ttl_seconds: float | None = None) -> Store:
        ttl = self._default_ttl_seconds if ttl_seconds is None else ttl_seconds
        key = store_key(store_id)
        cached = self._cache.get(key, ttl)
        if cached is not None:
            try:
                return Store.model_validate(cached)
            except PydanticValidationError:
                self._cache.invalidate(key)
        store = await self._repo.fetch_store_by_id(store_id)
        self._cache.set(key, store.model_dump(mode="json"))
        return store

    async def find_nearby(
        self,
        origin: Coordinate | None,
        radius_km: float,
        *,
        ttl_seconds: float | None = None,
    ) -> ProximityResult:
        """Approved stores around `origin` (all approved stores when origin is None).

        Raises `ValidationError` for a non-positive radius before touching the cache.
        """
        if origin is not None:
            try:
                query = ProximityQuery(origin=origin, radius_km=radius_km)
            except PydanticValidationError as exc:
                raise ValidationError(f"invalid proximity query: radius_km must be > 0 (got {radius_km})") from exc
            origin, radius_km = query.origin, query.radius_km
        stores = await self.list_stores(StoreStatus.APPROVED, ttl_seconds=ttl_seconds)
        return filter_by_proximity(origin, radius_km, stores, settings=self._settings)

    async def find_nearby_from(
        self,
        provider: GeolocationProvider | None,
        radius_km: float,
        *,
        ttl_seconds: float | None = None,
    ) -> ProximityResult:
        origin = await resolve_origin(provider, timeout_seconds=self._settings.location_timeout_seconds)
        return await self.find_nearby(origin, radius_km, ttl_seconds=ttl_seconds)
