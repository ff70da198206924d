"""
Supabase (PostgREST) adapter for the store of record and the owner directory.

Tables:
- `stores`: one row per store, flat `latitude`/`longitude` columns.
- `profiles`: account profiles; only `email` and `full_name` are read here.

Every call opens a short-lived `httpx.AsyncClient`; transport failures and non-2xx
responses are raised as `PersistenceError` so callers never see httpx types.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from storefinder.config.settings import StorageSettings
from storefinder.core.errors import PersistenceError, StoreNotFound
from storefinder.core.http import build_async_client, error_message
from storefinder.domain.models import OwnerContact, Store, StoreStatus

logger = logging.getLogger(__name__)

_STORES_ADAPTER = TypeAdapter(list[Store])

_COLUMN_NAMES = {"image_ref": "image_url", "permit_image_refs": "permit_images"}


def _to_columns(values: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in values.items():
        if key == "location":
            out["latitude"] = value["latitude"] if value else None
            out["longitude"] = value["longitude"] if value else None
            continue
        out[_COLUMN_NAMES.get(key, key)] = value
    return out


def _from_columns(row: dict[str, Any]) -> dict[str, Any]:
    reverse = {v: k for k, v in _COLUMN_NAMES.items()}
    return {reverse.get(k, k): v for k, v in row.items()}


class SupabaseStoreRepository:
    """`StoreRepository` + `OwnerDirectory` over the Supabase REST API."""

    def __init__(
        self,
        settings: StorageSettings,
        *,
        timeout_seconds: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("storage.supabase_url and storage.supabase_key are required")
        self._settings = settings
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        key = str(self._settings.supabase_key)
        return build_async_client(
            base_url=f"{str(self._settings.supabase_url).rstrip('/')}/rest/v1",
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Prefer": "return=representation",
            },
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            async with self._client() as client:
                resp = await client.request(method, f"/{table}", params=params, json=json)
        except httpx.HTTPError as exc:
            logger.error("Supabase %s /%s failed: %s", method, table, exc)
            raise PersistenceError(f"data store unreachable: {exc}") from exc
        if resp.is_error:
            message = error_message(resp)
            logger.error("Supabase %s /%s rejected: %s", method, table, message)
            raise PersistenceError(message)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise PersistenceError("data store returned invalid JSON") from exc

    def _parse_stores(self, payload: Any) -> list[Store]:
        if not isinstance(payload, list):
            raise PersistenceError("data store returned an unexpected payload")
        try:
            return _STORES_ADAPTER.validate_python([_from_columns(row) for row in payload])
        except ValidationError as exc:
            raise PersistenceError(f"data store returned invalid store rows: {exc}") from exc

    def _single(self, payload: Any, store_id: str) -> Store:
        stores = self._parse_stores(payload)
        if not stores:
            raise StoreNotFound(store_id)
        return stores[0]

    @property
    def _stores_table(self) -> str:
        return self._settings.tables.stores

    async def fetch_stores_by_status(self, status: StoreStatus | None = None) -> list[Store]:
        params = {"select": "*", "order": "created_at.desc"}
        if status is not None:
            params["status"] = f"eq.{status.value}"
        return self._parse_stores(await self._request("GET", self._stores_table, params=params))

    async def fetch_stores_by_owner(self, owner_id: str) -> list[Store]:
        params = {"select": "*", "owner_id": f"eq.{owner_id}", "order": "created_at.desc"}
        return self._parse_stores(await self._request("GET", self._stores_table, params=params))

    async def fetch_store_by_id(self, store_id: str) -> Store:
        payload = await self._request(
            "GET", self._stores_table, params={"select": "*", "id": f"eq.{store_id}"}
        )
        return self._single(payload, store_id)

    async def insert_store(self, store: Store) -> Store:
        row = _to_columns(store.model_dump(mode="json"))
        payload = await self._request("POST", self._stores_table, json=row)
        return self._single(payload, store.id)

    async def update_store_status(self, store_id: str, status: StoreStatus) -> Store:
        payload = await self._request(
            "PATCH",
            self._stores_table,
            params={"id": f"eq.{store_id}"},
            json={"status": status.value},
        )
        return self._single(payload, store_id)

    async def update_store_fields(self, store_id: str, changes: dict[str, Any]) -> Store:
        payload = await self._request(
            "PATCH",
            self._stores_table,
            params={"id": f"eq.{store_id}"},
            json=_to_columns(changes),
        )
        return self._single(payload, store_id)

    async def delete_store(self, store_id: str) -> None:
        payload = await self._request(
            "DELETE", self._stores_table, params={"id": f"eq.{store_id}"}
        )
        if isinstance(payload, list) and not payload:
            raise StoreNotFound(store_id)

    async def fetch_owner_contact(self, owner_id: str) -> OwnerContact | None:
        payload = await self._request(
            "GET",
            self._settings.tables.profiles,
            params={"select": "email,full_name", "id": f"eq.{owner_id}"},
        )
        if not isinstance(payload, list) or not payload:
            return None
        return OwnerContact.model_validate(payload[0])
