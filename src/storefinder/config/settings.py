# src/storefinder/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/storefinder/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `SUPABASE_URL`, `RESEND_API_KEY`)
- an external YAML file via `STOREFINDER_CONFIG_PATH`

Design rule:
- Tuning knobs live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from storefinder.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `storefinder.config`."""
    text = resources.files("storefinder.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "StoreFinder"
    timezone: str = "Asia/Manila"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class CacheTtlSettings(BaseModel):
    short: int = 60
    medium: int = 5 * 60
    long: int = 15 * 60
    very_long: int = 60 * 60


class CacheSettings(BaseModel):
    enabled: bool = True
    backend: Literal["file", "memory"] = "file"
    dir: str = ".cache/storefinder"
    ttl_seconds: CacheTtlSettings = Field(default_factory=CacheTtlSettings)


class CatalogSettings(BaseModel):
    path: str | None = "data/catalogs/stores.json"


class CoordinateSettings(BaseModel):
    latitude: float = Field(12.6750, ge=-90, le=90)
    longitude: float = Field(123.8710, ge=-180, le=180)


class RegionDeltaSettings(BaseModel):
    latitude_delta: float = Field(0.0922, gt=0)
    longitude_delta: float = Field(0.0421, gt=0)


class DiscoverySettings(BaseModel):
    default_max_radius_km: float = Field(10.0, gt=0)
    region_delta_divisor: float = Field(60.0, gt=0)
    fallback_center: CoordinateSettings = Field(default_factory=CoordinateSettings)
    fallback_delta: RegionDeltaSettings = Field(default_factory=RegionDeltaSettings)
    location_timeout_seconds: float = Field(10.0, gt=0)
    stores_ttl: Literal["short", "medium", "long", "very_long"] = "medium"


class NotificationSettings(BaseModel):
    enabled: bool = True
    provider: Literal["resend", "recording"] = "resend"
    provider_url: str = "https://api.resend.com/emails"
    api_key: str | None = None
    sender_email: str = "onboarding@resend.dev"
    admin_email: str | None = None
    timeout_seconds: float = Field(10.0, gt=0)
    max_retries: int = Field(1, ge=0, le=1)
    outbox_dir: str = ".cache/storefinder-outbox"


class SupabaseTables(BaseModel):
    stores: str = "stores"
    profiles: str = "profiles"


class StorageSettings(BaseModel):
    backend: Literal["memory", "supabase"] = "memory"
    supabase_url: str | None = None
    supabase_key: str | None = None
    tables: SupabaseTables = Field(default_factory=SupabaseTables)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    def ttl(self, preset: str) -> int:
        """Resolve a named TTL preset (`short`, `medium`, ...) to seconds."""
        return int(getattr(self.cache.ttl_seconds, preset))


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)
    cache_dir = os.getenv("STOREFINDER_CACHE_DIR")
    if cache_dir:
        data.setdefault("cache", {})["dir"] = cache_dir

    log_level = os.getenv("STOREFINDER_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_KEY")
    if supabase_url:
        data.setdefault("storage", {})["supabase_url"] = supabase_url
    if supabase_key:
        data.setdefault("storage", {})["supabase_key"] = supabase_key

    resend_key = os.getenv("RESEND_API_KEY")
    sender = os.getenv("STOREFINDER_SENDER_EMAIL")
    admin = os.getenv("STOREFINDER_ADMIN_EMAIL")
    if resend_key:
        data.setdefault("notifications", {})["api_key"] = resend_key
    if sender:
        data.setdefault("notifications", {})["sender_email"] = sender
    if admin:
        data.setdefault("notifications", {})["admin_email"] = admin

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("STOREFINDER_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
