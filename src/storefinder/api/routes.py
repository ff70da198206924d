"""
API routes.

Endpoints:
- GET    `/api/stores/nearby`: approved stores around a point + map region.
- GET    `/api/stores`: store list, optionally filtered by status.
- GET    `/api/owners/{owner_id}/stores`: an owner's stores.
- POST   `/api/stores`: register a store (starts pending).
- PATCH  `/api/stores/{store_id}`: owner edit.
- DELETE `/api/stores/{store_id}`: delete a store.
- POST   `/api/admin/stores/{store_id}/status`: approve/reject.
- POST   `/api/admin/outbox/drain`: retry owed notifications.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from storefinder.config.settings import get_settings
from storefinder.core.cache import record_cache_stats
from storefinder.core.errors import PersistenceError, StoreFinderError, StoreNotFound, ValidationError
from storefinder.domain.models import (
    Coordinate,
    StatusChangeRequest,
    Store,
    StoreDraft,
    StoreStatus,
    StoreUpdate,
)
from storefinder.lifecycle.manager import LifecycleResult
from storefinder.runtime import Runtime, build_runtime

router = APIRouter()


class CreateStoreRequest(BaseModel):
    owner_id: str
    owner_email: str | None = None
    store: StoreDraft


@lru_cache
def _runtime() -> Runtime:
    return build_runtime(get_settings())


def _error(exc: StoreFinderError) -> HTTPException:
    if isinstance(exc, StoreNotFound):
        return HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": str(exc)})
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail={"code": "VALIDATION_ERROR", "message": str(exc)})
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=502, detail={"code": "PERSISTENCE_ERROR", "message": str(exc)})
    return HTTPException(status_code=500, detail={"code": "INTERNAL_ERROR", "message": str(exc)})


def _result_payload(result: LifecycleResult) -> dict[str, Any]:
    if not result.ok:
        raise _error(result.error)
    return {
        "outcome": result.outcome,
        "store": result.store.model_dump(mode="json") if result.store else None,
        "notification": result.notification.as_dict() if result.notification else None,
        "warnings": list(result.warnings),
    }


@router.get("/api/stores/nearby")
async def get_nearby_stores(
    lat: float | None = Query(default=None, ge=-90, le=90),
    lon: float | None = Query(default=None, ge=-180, le=180),
    radius_km: float = Query(default=1.0, gt=0),
) -> dict:
    """Approved stores within `radius_km` of (lat, lon); all approved stores without a location."""
    if (lat is None) != (lon is None):
        raise HTTPException(
            status_code=422,
            detail={"code": "VALIDATION_ERROR", "message": "lat and lon must be given together"},
        )
    origin = Coordinate(latitude=lat, longitude=lon) if lat is not None else None
    runtime = _runtime()
    try:
        with record_cache_stats() as stats:
            result = await runtime.discovery.find_nearby(origin, radius_km)
    except StoreFinderError as e:
        raise _error(e) from e
    return {
        "stores": [
            {**s.model_dump(mode="json"), "distance_km": result.distances_km.get(s.id)}
            for s in result.visible
        ],
        "region": result.region.model_dump(mode="json"),
        "effective_radius_km": result.effective_radius_km,
        "meta": {"cache": stats.as_dict()},
    }


@router.get("/api/stores")
async def get_stores(status: StoreStatus | None = None) -> dict:
    try:
        stores = await _runtime().discovery.list_stores(status)
    except StoreFinderError as e:
        raise _error(e) from e
    return {"stores": [s.model_dump(mode="json") for s in stores]}


@router.get("/api/owners/{owner_id}/stores")
async def get_owner_stores(owner_id: str) -> dict:
    try:
        stores = await _runtime().discovery.list_owner_stores(owner_id)
    except StoreFinderError as e:
        raise _error(e) from e
    return {"stores": [s.model_dump(mode="json") for s in stores]}


@router.get("/api/stores/{store_id}", response_model=Store)
async def get_store(store_id: str) -> Store:
    try:
        return await _runtime().discovery.get_store(store_id)
    except StoreFinderError as e:
        raise _error(e) from e


@router.post("/api/stores", status_code=201)
async def post_store(payload: CreateStoreRequest) -> dict:
    result = await _runtime().lifecycle.create_store(
        payload.owner_id, payload.store, owner_email=payload.owner_email
    )
    return _result_payload(result)


@router.patch("/api/stores/{store_id}")
async def patch_store(store_id: str, changes: StoreUpdate) -> dict:
    return _result_payload(await _runtime().lifecycle.update_store_fields(store_id, changes))


@router.delete("/api/stores/{store_id}")
async def delete_store(store_id: str) -> dict:
    return _result_payload(await _runtime().lifecycle.delete_store(store_id))


@router.post("/api/admin/stores/{store_id}/status")
async def post_store_status(store_id: str, payload: StatusChangeRequest) -> dict:
    result = await _runtime().lifecycle.set_status_by_id(store_id, payload.status, payload.actor)
    if result.outcome == "noop":
        raise HTTPException(
            status_code=409,
            detail={"code": "NO_OP_TRANSITION", "message": f"store is already {payload.status.value}"},
        )
    return _result_payload(result)


@router.post("/api/admin/outbox/drain")
async def post_outbox_drain() -> dict:
    runtime = _runtime()
    drained = await runtime.outbox.drain(
        runtime.dispatcher, timeout_seconds=runtime.settings.notifications.timeout_seconds
    )
    return drained.as_dict()
