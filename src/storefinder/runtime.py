"""
Component wiring shared by the API and the CLI.

Everything is built from `Settings`, so tests can construct a runtime around a
tmp-path cache and in-memory collaborators without touching module globals.
"""

from __future__ import annotations

from dataclasses import dataclass

from storefinder.catalog.loader import load_stores_if_present
from storefinder.config.settings import Settings
from storefinder.core.cache import FileCacheBackend, LocalCache, MemoryCacheBackend
from storefinder.core.env import resolve_project_path
from storefinder.discovery.service import StoreDiscovery
from storefinder.lifecycle.manager import StoreLifecycleManager
from storefinder.notifications.dispatcher import NotificationDispatcher, RecordingDispatcher, ResendDispatcher
from storefinder.notifications.outbox import NotificationOutbox
from storefinder.storage.base import OwnerDirectory, StoreRepository
from storefinder.storage.memory import InMemoryOwnerDirectory, InMemoryStoreRepository
from storefinder.storage.supabase import SupabaseStoreRepository


def build_cache(settings: Settings) -> LocalCache:
    if settings.cache.backend == "memory":
        backend = MemoryCacheBackend()
    else:
        backend = FileCacheBackend(resolve_project_path(settings.cache.dir))
    return LocalCache(backend, enabled=settings.cache.enabled)


def build_storage(settings: Settings) -> tuple[StoreRepository, OwnerDirectory]:
    if settings.storage.backend == "supabase":
        repo = SupabaseStoreRepository(
            settings.storage, timeout_seconds=settings.app.http_timeout_seconds
        )
        return repo, repo
    stores = load_stores_if_present(settings.catalog.path)
    return InMemoryStoreRepository(stores), InMemoryOwnerDirectory()


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    if settings.notifications.provider == "recording":
        return RecordingDispatcher()
    return ResendDispatcher(settings.notifications)


def build_outbox(settings: Settings) -> NotificationOutbox:
    return NotificationOutbox(resolve_project_path(settings.notifications.outbox_dir))


@dataclass
class Runtime:
    settings: Settings
    cache: LocalCache
    repository: StoreRepository
    owners: OwnerDirectory
    dispatcher: NotificationDispatcher
    outbox: NotificationOutbox
    lifecycle: StoreLifecycleManager
    discovery: StoreDiscovery


def build_runtime(
    settings: Settings,
    *,
    cache: LocalCache | None = None,
    repository: StoreRepository | None = None,
    owners: OwnerDirectory | None = None,
    dispatcher: NotificationDispatcher | None = None,
    outbox: NotificationOutbox | None = None,
) -> Runtime:
    cache = cache or build_cache(settings)
    if repository is None:
        repository, default_owners = build_storage(settings)
        owners = owners or default_owners
    if owners is None:
        owners = InMemoryOwnerDirectory()
    dispatcher = dispatcher or build_dispatcher(settings)
    outbox = outbox or build_outbox(settings)

    lifecycle = StoreLifecycleManager(
        repository=repository,
        owners=owners,
        dispatcher=dispatcher,
        cache=cache,
        settings=settings.notifications,
        outbox=outbox,
    )
    discovery = StoreDiscovery(
        repository=repository,
        cache=cache,
        settings=settings.discovery,
        default_ttl_seconds=settings.ttl(settings.discovery.stores_ttl),
    )
    return Runtime(
        settings=settings,
        cache=cache,
        repository=repository,
        owners=owners,
        dispatcher=dispatcher,
        outbox=outbox,
        lifecycle=lifecycle,
        discovery=discovery,
    )
