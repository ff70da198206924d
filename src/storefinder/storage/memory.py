"""
In-process data store.

Backs local runs (seeded from the JSON catalog) and tests. Records are copied on the
way in and out so callers can never mutate the stored state by accident.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import ValidationError

from storefinder.core.errors import PersistenceError, StoreNotFound
from storefinder.domain.models import OwnerContact, Store, StoreStatus


class InMemoryStoreRepository:
    def __init__(self, stores: Iterable[Store] = ()):
        self._stores: dict[str, Store] = {s.id: s.model_copy(deep=True) for s in stores}

    def _get(self, store_id: str) -> Store:
        try:
            return self._stores[store_id]
        except KeyError:
            raise StoreNotFound(store_id) from None

    async def fetch_stores_by_status(self, status: StoreStatus | None = None) -> list[Store]:
        stores = [s for s in self._stores.values() if status is None or s.status == status]
        return [s.model_copy(deep=True) for s in sorted(stores, key=lambda s: s.created_at, reverse=True)]

    async def fetch_stores_by_owner(self, owner_id: str) -> list[Store]:
        stores = [s for s in self._stores.values() if s.owner_id == owner_id]
        return [s.model_copy(deep=True) for s in sorted(stores, key=lambda s: s.created_at, reverse=True)]

    async def fetch_store_by_id(self, store_id: str) -> Store:
        return self._get(store_id).model_copy(deep=True)

    async def insert_store(self, store: Store) -> Store:
        self._stores[store.id] = store.model_copy(deep=True)
        return store.model_copy(deep=True)

    async def update_store_status(self, store_id: str, status: StoreStatus) -> Store:
        updated = self._get(store_id).model_copy(update={"status": status})
        self._stores[store_id] = updated
        return updated.model_copy(deep=True)

    async def update_store_fields(self, store_id: str, changes: dict[str, Any]) -> Store:
        current = self._get(store_id)
        # Re-validate so nested payloads (e.g. `location` dicts) become models again.
        try:
            updated = Store.model_validate({**current.model_dump(), **changes})
        except ValidationError as exc:
            reason = exc.errors()[0].get("msg")
            raise PersistenceError(f"write rejected for store {store_id}: {reason}") from exc
        self._stores[store_id] = updated
        return updated.model_copy(deep=True)

    async def delete_store(self, store_id: str) -> None:
        self._get(store_id)
        del self._stores[store_id]


class InMemoryOwnerDirectory:
    def __init__(self, contacts: dict[str, OwnerContact] | None = None):
        self._contacts = dict(contacts or {})

    def add(self, owner_id: str, email: str | None, full_name: str | None = None) -> None:
        self._contacts[owner_id] = OwnerContact(email=email, full_name=full_name)

    async def fetch_owner_contact(self, owner_id: str) -> OwnerContact | None:
        return self._contacts.get(owner_id)
