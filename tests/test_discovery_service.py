import asyncio

import pytest

from storefinder.core.cache import LocalCache, MemoryCacheBackend
from storefinder.core.errors import ValidationError
from storefinder.discovery.location import LocationPermissionDenied, StaticLocationProvider, resolve_origin
from storefinder.discovery.service import StoreDiscovery
from storefinder.domain.models import Coordinate, Store, StoreStatus
from storefinder.storage.memory import InMemoryStoreRepository

ORIGIN = Coordinate(latitude=12.6750, longitude=123.8710)


def _store(store_id, status, lat, lon, owner="owner-1") -> Store:
    return Store(
        id=store_id,
        name=store_id,
        address="addr",
        owner_id=owner,
        status=status,
        location=Coordinate(latitude=lat, longitude=lon),
    )


class CountingRepository(InMemoryStoreRepository):
    def __init__(self, stores=()):
        super().__init__(stores)
        self.list_calls = 0

    async def fetch_stores_by_status(self, status=None):
        self.list_calls += 1
        return await super().fetch_stores_by_status(status)


def _discovery(stores):
    repo = CountingRepository(stores)
    cache = LocalCache(MemoryCacheBackend())
    return StoreDiscovery(repository=repo, cache=cache, default_ttl_seconds=300), repo, cache


def test_find_nearby_only_returns_approved_stores():
    discovery, _, _ = _discovery(
        [
            _store("approved-near", StoreStatus.APPROVED, 12.6760, 123.8710),
            _store("pending-near", StoreStatus.PENDING, 12.6755, 123.8710),
            _store("approved-far", StoreStatus.APPROVED, 13.3589, 123.7336),
        ]
    )

    result = asyncio.run(discovery.find_nearby(ORIGIN, 5))

    assert [s.id for s in result.visible] == ["approved-near"]


def test_store_lists_are_served_from_cache():
    discovery, repo, cache = _discovery([_store("a", StoreStatus.APPROVED, 12.676, 123.871)])

    asyncio.run(discovery.list_stores(StoreStatus.APPROVED))
    asyncio.run(discovery.list_stores(StoreStatus.APPROVED))

    assert repo.list_calls == 1
    assert "stores_by_status_approved" in cache.backend.list_keys()


def test_cached_payload_that_no_longer_validates_is_refetched():
    discovery, repo, cache = _discovery([_store("a", StoreStatus.APPROVED, 12.676, 123.871)])
    cache.set("stores_by_status_approved", [{"id": "a"}])

    stores = asyncio.run(discovery.list_stores(StoreStatus.APPROVED))

    assert [s.id for s in stores] == ["a"]
    assert repo.list_calls == 1


def test_owner_store_list_and_single_store_reads():
    discovery, _, cache = _discovery(
        [
            _store("a", StoreStatus.PENDING, 12.676, 123.871, owner="o1"),
            _store("b", StoreStatus.APPROVED, 12.676, 123.871, owner="o2"),
        ]
    )

    owned = asyncio.run(discovery.list_owner_stores("o1"))
    single = asyncio.run(discovery.get_store("b"))

    assert [s.id for s in owned] == ["a"]
    assert single.id == "b"
    assert set(cache.backend.list_keys()) == {"stores_by_owner_o1", "store_b"}


def test_location_failures_fall_back_to_unfiltered_results():
    class DeniedProvider:
        async def current_location(self):
            raise LocationPermissionDenied()

    discovery, _, _ = _discovery(
        [
            _store("near", StoreStatus.APPROVED, 12.676, 123.871),
            _store("far", StoreStatus.APPROVED, 14.0, 121.0),
        ]
    )

    result = asyncio.run(discovery.find_nearby_from(DeniedProvider(), 3))

    assert {s.id for s in result.visible} == {"near", "far"}
    assert result.effective_radius_km is None


def test_resolve_origin():
    assert asyncio.run(resolve_origin(None)) is None
    assert asyncio.run(resolve_origin(StaticLocationProvider(ORIGIN, accuracy_m=12))) == ORIGIN

    class HangingProvider:
        async def current_location(self):
            await asyncio.sleep(5)

    assert asyncio.run(resolve_origin(HangingProvider(), timeout_seconds=0.01)) is None


def test_non_positive_radius_is_rejected_before_io():
    discovery, repo, _ = _discovery([_store("a", StoreStatus.APPROVED, 12.676, 123.871)])

    with pytest.raises(ValidationError):
        asyncio.run(discovery.find_nearby(ORIGIN, 0))
    assert repo.list_calls == 0
