"""
Data store contracts.

The store of record and the owner directory are external systems; the engine only
relies on these async interfaces. Implementations raise `PersistenceError`
(`StoreNotFound` for unknown ids) and never leak transport exceptions.
"""

from __future__ import annotations

from typing import Any, Protocol

from storefinder.domain.models import OwnerContact, Store, StoreStatus


class StoreRepository(Protocol):
    async def fetch_stores_by_status(self, status: StoreStatus | None = None) -> list[Store]: ...

    async def fetch_stores_by_owner(self, owner_id: str) -> list[Store]: ...

    async def fetch_store_by_id(self, store_id: str) -> Store: ...

    async def insert_store(self, store: Store) -> Store: ...

    async def update_store_status(self, store_id: str, status: StoreStatus) -> Store: ...

    async def update_store_fields(self, store_id: str, changes: dict[str, Any]) -> Store: ...

    async def delete_store(self, store_id: str) -> None: ...


class OwnerDirectory(Protocol):
    async def fetch_owner_contact(self, owner_id: str) -> OwnerContact | None: ...
