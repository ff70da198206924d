"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- store records as persisted by the data store (`Store`, `StoreStatus`)
- owner inputs (`StoreDraft`, `StoreUpdate`)
- discovery inputs/outputs (`ProximityQuery`, `ProximityResult`, `ViewRegion`)
- outbound notifications (`NotificationMessage`)

Keeping these models in one place helps:
- validation (reject bad inputs before any I/O),
- consistent JSON output across CLI/API,
- round-tripping through the cache as plain JSON.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefinder.core.time import ensure_tz, parse_datetime, utc_now


class Coordinate(BaseModel):
    """A geographic point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class StoreStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Store(BaseModel):
    """A retail store registered by an owner."""

    id: str
    name: str
    address: str
    owner_id: str
    status: StoreStatus = StoreStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    location: Coordinate | None = None

    description: str | None = None
    email: str | None = None
    phone: str | None = None
    image_ref: str | None = None
    permit_image_refs: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_coordinates(cls, data: Any) -> Any:
        # Data store rows carry flat `latitude`/`longitude` columns that may be null.
        if not isinstance(data, dict) or "location" in data:
            return data
        if "latitude" not in data and "longitude" not in data:
            return data
        data = dict(data)
        lat = data.pop("latitude", None)
        lon = data.pop("longitude", None)
        if _is_number(lat) and _is_number(lon) and -90 <= lat <= 90 and -180 <= lon <= 180:
            data["location"] = {"latitude": lat, "longitude": lon}
        return data

    @field_validator("created_at", mode="before")
    @classmethod
    def _aware_created_at(cls, value: Any) -> Any:
        # Naive timestamps are read as UTC so newest-first ordering never mixes kinds.
        if isinstance(value, str):
            return parse_datetime(value)
        if isinstance(value, datetime):
            return ensure_tz(value)
        return value

    @field_validator("permit_image_refs", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class StoreDraft(BaseModel):
    """Owner input for registering a new store."""

    name: str
    address: str
    location: Coordinate
    description: str | None = None
    email: str | None = None
    phone: str | None = None
    image_ref: str | None = None
    permit_image_refs: list[str] = Field(default_factory=list)

    @field_validator("name", "address")
    @classmethod
    def _required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("store name and address are required")
        return value

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class StoreUpdate(BaseModel):
    """Partial edit of owner-editable fields.

    Status, identity, owner and creation time are not editable here.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    address: str | None = None
    location: Coordinate | None = None
    description: str | None = None
    email: str | None = None
    phone: str | None = None
    image_ref: str | None = None
    permit_image_refs: list[str] | None = None

    @field_validator("name", "address")
    @classmethod
    def _non_blank(cls, value: str | None) -> str:
        # Runs only for fields the caller set, so an explicit null is a bad edit.
        if value is None:
            raise ValueError("store name and address cannot be cleared")
        value = value.strip()
        if not value:
            raise ValueError("store name and address cannot be blank")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class OwnerContact(BaseModel):
    email: str | None = None
    full_name: str | None = None


class ProximityQuery(BaseModel):
    """A radius search around `origin`.

    A radius below 1 km means "use the default maximum radius".
    """

    origin: Coordinate
    radius_km: float = Field(..., gt=0)


class ViewRegion(BaseModel):
    """A map viewport: center plus latitude/longitude half-span in degrees."""

    latitude: float
    longitude: float
    latitude_delta: float
    longitude_delta: float


class ProximityResult(BaseModel):
    visible: list[Store]
    region: ViewRegion
    distances_km: dict[str, float] = Field(default_factory=dict)
    effective_radius_km: float | None = None


class NotificationMessage(BaseModel):
    to: str
    subject: str
    body: str


class StatusChangeRequest(BaseModel):
    status: StoreStatus
    actor: str = "admin"
