import asyncio

import pytest

from storefinder.config.settings import NotificationSettings
from storefinder.core.cache import LocalCache, MemoryCacheBackend
from storefinder.core.errors import NotificationError, PersistenceError, ValidationError
from storefinder.domain.models import Store, StoreStatus
from storefinder.lifecycle.manager import StoreLifecycleManager, can_transition
from storefinder.notifications.dispatcher import RecordingDispatcher
from storefinder.notifications.outbox import NotificationOutbox
from storefinder.storage.memory import InMemoryOwnerDirectory, InMemoryStoreRepository


def _store(status=StoreStatus.PENDING, **extra) -> Store:
    return Store(
        id="s1",
        name="Bulan Mini Mart",
        address="Gate St, Bulan",
        owner_id="owner-1",
        status=status,
        location={"latitude": 12.6712, "longitude": 123.8755},
        **extra,
    )


class CountingRepository(InMemoryStoreRepository):
    def __init__(self, stores=()):
        super().__init__(stores)
        self.status_updates = 0

    async def update_store_status(self, store_id, status):
        self.status_updates += 1
        return await super().update_store_status(store_id, status)


class BrokenRepository(InMemoryStoreRepository):
    async def update_store_status(self, store_id, status):
        raise PersistenceError("write rejected")


class FailingDispatcher:
    def __init__(self, failures: int, exc: Exception | None = None):
        self.failures = failures
        self.calls = 0
        self.sent = []
        self._exc = exc or NotificationError("HTTP 500: provider down")

    async def send(self, message):
        self.calls += 1
        if self.calls <= self.failures:
            raise self._exc
        self.sent.append(message)


class SlowDispatcher:
    async def send(self, message):
        await asyncio.sleep(5)


def _manager(repo=None, dispatcher=None, cache=None, outbox=None, no_owner=False, **settings):
    repo = repo if repo is not None else CountingRepository([_store()])
    owners = InMemoryOwnerDirectory()
    if not no_owner:
        owners.add("owner-1", "owner@example.com")
    cache = cache or LocalCache(MemoryCacheBackend())
    manager = StoreLifecycleManager(
        repository=repo,
        owners=owners,
        dispatcher=dispatcher or RecordingDispatcher(),
        cache=cache,
        settings=NotificationSettings(**settings),
        outbox=outbox,
    )
    return manager, repo, cache


def _seed_cache(cache: LocalCache) -> None:
    cache.set("stores_by_owner_owner-1", [{"id": "s1"}])
    cache.set("store_s1", {"id": "s1"})
    cache.set("profile_owner-1", {"email": "owner@example.com"})
    cache.set("stores_by_status_approved", [])
    cache.set("stores_by_owner_owner-2", [{"id": "s9"}])


def test_transition_table():
    assert can_transition(StoreStatus.PENDING, StoreStatus.APPROVED)
    assert can_transition(StoreStatus.PENDING, StoreStatus.REJECTED)
    assert can_transition(StoreStatus.APPROVED, StoreStatus.REJECTED)
    assert can_transition(StoreStatus.REJECTED, StoreStatus.APPROVED)
    assert not can_transition(StoreStatus.APPROVED, StoreStatus.PENDING)
    assert not can_transition(StoreStatus.REJECTED, StoreStatus.PENDING)


def test_approve_pending_store_notifies_owner_and_invalidates_cache():
    dispatcher = RecordingDispatcher()
    manager, repo, cache = _manager(dispatcher=dispatcher)
    _seed_cache(cache)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.APPROVED, "admin"))

    assert result.outcome == "updated"
    assert result.store.status == StoreStatus.APPROVED
    assert result.warnings == []
    assert result.notification.delivered
    assert [m.to for m in dispatcher.sent] == ["owner@example.com"]
    assert dispatcher.sent[0].subject == "Store Registration Approved!"
    assert cache.get("stores_by_owner_owner-1", ttl_seconds=300) is None
    assert cache.get("store_s1", ttl_seconds=300) is None
    assert cache.get("profile_owner-1", ttl_seconds=300) is None
    assert cache.get("stores_by_status_approved", ttl_seconds=300) is None
    assert cache.get("stores_by_owner_owner-2", ttl_seconds=300) == [{"id": "s9"}]
    assert asyncio.run(repo.fetch_store_by_id("s1")).status == StoreStatus.APPROVED


def test_same_status_is_a_noop_without_persistence():
    manager, repo, cache = _manager()
    _seed_cache(cache)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.PENDING, "admin"))

    assert result.outcome == "noop"
    assert result.ok
    assert repo.status_updates == 0
    assert cache.get("store_s1", ttl_seconds=300) == {"id": "s1"}


def test_notification_failure_does_not_undo_transition():
    dispatcher = FailingDispatcher(failures=10, exc=RuntimeError("boom"))
    manager, repo, cache = _manager(dispatcher=dispatcher)
    _seed_cache(cache)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.REJECTED, "admin"))

    assert result.outcome == "updated"
    assert result.store.status == StoreStatus.REJECTED
    assert not result.notification.delivered
    assert dispatcher.calls == 2
    assert result.warnings and "failed" in result.warnings[0]
    assert cache.get("stores_by_owner_owner-1", ttl_seconds=300) is None


def test_notification_is_retried_once():
    dispatcher = FailingDispatcher(failures=1)
    manager, _, _ = _manager(dispatcher=dispatcher)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.APPROVED, "admin"))

    assert result.notification.delivered
    assert result.notification.attempts == 2
    assert result.warnings == []


def test_notification_timeout_counts_as_failure():
    manager, _, _ = _manager(dispatcher=SlowDispatcher(), timeout_seconds=0.01)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.APPROVED, "admin"))

    assert result.outcome == "updated"
    assert not result.notification.delivered
    assert "timed out" in result.notification.error


def test_failed_notification_is_queued_in_outbox(tmp_path):
    outbox = NotificationOutbox(tmp_path / "outbox")
    manager, _, _ = _manager(dispatcher=FailingDispatcher(failures=10), outbox=outbox)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.APPROVED, "admin"))

    assert result.notification.queued
    owed = outbox.pending()
    assert len(owed) == 1
    assert owed[0].message.to == "owner@example.com"
    assert owed[0].context == {"store_id": "s1", "status": "approved"}


def test_persistence_failure_aborts_everything():
    dispatcher = RecordingDispatcher()
    manager, _, cache = _manager(repo=BrokenRepository([_store()]), dispatcher=dispatcher)
    _seed_cache(cache)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.APPROVED, "admin"))

    assert result.outcome == "failed"
    assert isinstance(result.error, PersistenceError)
    assert result.store.status == StoreStatus.PENDING
    assert dispatcher.sent == []
    assert cache.get("stores_by_owner_owner-1", ttl_seconds=300) == [{"id": "s1"}]


def test_disallowed_transition_is_rejected_before_io():
    repo = CountingRepository([_store(StoreStatus.APPROVED)])
    manager, _, _ = _manager(repo=repo)

    result = asyncio.run(manager.set_status(_store(StoreStatus.APPROVED), StoreStatus.PENDING, "admin"))

    assert result.outcome == "failed"
    assert isinstance(result.error, ValidationError)
    assert repo.status_updates == 0


def test_rejected_store_can_be_approved_again():
    repo = CountingRepository([_store(StoreStatus.REJECTED)])
    manager, _, _ = _manager(repo=repo)

    result = asyncio.run(manager.approve("s1", "admin"))

    assert result.outcome == "updated"
    assert result.store.status == StoreStatus.APPROVED


def test_recipient_falls_back_to_store_email():
    repo = CountingRepository([_store(email="shop@example.com")])
    dispatcher = RecordingDispatcher()
    manager, _, _ = _manager(repo=repo, dispatcher=dispatcher, no_owner=True)

    result = asyncio.run(manager.set_status(_store(email="shop@example.com"), StoreStatus.APPROVED, "admin"))

    assert result.notification.recipient == "shop@example.com"
    assert [m.to for m in dispatcher.sent] == ["shop@example.com"]


def test_owner_lookup_error_falls_back_to_store_email():
    class BrokenDirectory:
        async def fetch_owner_contact(self, owner_id):
            raise PersistenceError("profiles unavailable")

    store = _store(email="shop@example.com")
    dispatcher = RecordingDispatcher()
    manager = StoreLifecycleManager(
        repository=InMemoryStoreRepository([store]),
        owners=BrokenDirectory(),
        dispatcher=dispatcher,
        cache=LocalCache(MemoryCacheBackend()),
    )

    result = asyncio.run(manager.set_status(store, StoreStatus.REJECTED, "admin"))

    assert result.outcome == "updated"
    assert [m.to for m in dispatcher.sent] == ["shop@example.com"]


def test_missing_recipient_is_a_warning():
    dispatcher = RecordingDispatcher()
    manager, _, _ = _manager(dispatcher=dispatcher, no_owner=True)

    result = asyncio.run(manager.set_status(_store(), StoreStatus.APPROVED, "admin"))

    assert result.outcome == "updated"
    assert dispatcher.sent == []
    assert not result.notification.attempted
    assert "No email address" in result.warnings[0]


def test_unknown_store_review_fails_with_persistence_error():
    manager, _, _ = _manager()
    result = asyncio.run(manager.reject("missing", "admin"))
    assert result.outcome == "failed"
    assert isinstance(result.error, PersistenceError)


def test_create_store_starts_pending_and_notifies_admin():
    dispatcher = RecordingDispatcher()
    manager, repo, cache = _manager(
        repo=CountingRepository(), dispatcher=dispatcher, admin_email="admin@example.com"
    )
    cache.set("stores_by_owner_owner-7", [])
    cache.set("stores_by_status_pending", [])

    result = asyncio.run(
        manager.create_store(
            "owner-7",
            {
                "name": "  New Shop ",
                "address": "Main St",
                "location": {"latitude": 12.67, "longitude": 123.87},
                "status": "approved",
            },
            owner_email="o7@example.com",
        )
    )

    assert result.outcome == "created"
    assert result.store.status == StoreStatus.PENDING
    assert result.store.name == "New Shop"
    assert [m.to for m in dispatcher.sent] == ["admin@example.com"]
    assert "o7@example.com" in dispatcher.sent[0].body
    assert cache.get("stores_by_owner_owner-7", ttl_seconds=300) is None
    assert cache.get("stores_by_status_pending", ttl_seconds=300) is None
    stored = asyncio.run(repo.fetch_stores_by_owner("owner-7"))
    assert [s.id for s in stored] == [result.store.id]


def test_create_store_rejects_blank_name():
    manager, _, _ = _manager()
    result = asyncio.run(
        manager.create_store(
            "owner-1", {"name": " ", "address": "x", "location": {"latitude": 1, "longitude": 1}}
        )
    )
    assert result.outcome == "failed"
    assert isinstance(result.error, ValidationError)


def test_update_fields_cannot_touch_status():
    manager, _, _ = _manager()
    result = asyncio.run(manager.update_store_fields("s1", {"status": "approved"}))
    assert result.outcome == "failed"
    assert isinstance(result.error, ValidationError)


def test_update_fields_rejects_clearing_required_text():
    manager, repo, _ = _manager()

    for field in ("name", "address"):
        result = asyncio.run(manager.update_store_fields("s1", {field: None}))
        assert result.outcome == "failed"
        assert isinstance(result.error, ValidationError)

    assert asyncio.run(repo.fetch_store_by_id("s1")).name == "Bulan Mini Mart"


def test_in_memory_repository_rejects_invalid_field_write():
    repo = InMemoryStoreRepository([_store()])

    with pytest.raises(PersistenceError):
        asyncio.run(repo.update_store_fields("s1", {"name": None}))


def test_update_fields_invalidates_owner_cache():
    manager, repo, cache = _manager()
    _seed_cache(cache)

    result = asyncio.run(manager.update_store_fields("s1", {"description": "Open 24/7"}))

    assert result.outcome == "updated"
    assert result.store.description == "Open 24/7"
    assert result.store.status == StoreStatus.PENDING
    assert cache.get("stores_by_owner_owner-1", ttl_seconds=300) is None


def test_delete_store_invalidates_store_and_owner_entries():
    manager, repo, cache = _manager()
    _seed_cache(cache)

    result = asyncio.run(manager.delete_store("s1"))

    assert result.outcome == "deleted"
    assert cache.get("store_s1", ttl_seconds=300) is None
    assert cache.get("stores_by_owner_owner-1", ttl_seconds=300) is None
    assert asyncio.run(repo.fetch_stores_by_status()) == []


def test_concurrent_changes_for_one_store_are_serialised():
    order = []

    class SlowRepository(InMemoryStoreRepository):
        async def update_store_status(self, store_id, status):
            order.append(("start", status))
            await asyncio.sleep(0.01)
            order.append(("end", status))
            return await super().update_store_status(store_id, status)

    store = _store()
    manager, _, _ = _manager(repo=SlowRepository([store]))

    async def run():
        return await asyncio.gather(
            manager.set_status(store, StoreStatus.APPROVED, "admin-a"),
            manager.set_status(store, StoreStatus.REJECTED, "admin-b"),
        )

    asyncio.run(run())

    assert order == [
        ("start", StoreStatus.APPROVED),
        ("end", StoreStatus.APPROVED),
        ("start", StoreStatus.REJECTED),
        ("end", StoreStatus.REJECTED),
    ]


def test_concurrent_identical_decisions_persist_and_notify_once():
    class SlowRepository(CountingRepository):
        async def update_store_status(self, store_id, status):
            await asyncio.sleep(0.01)
            return await super().update_store_status(store_id, status)

    store = _store()
    dispatcher = RecordingDispatcher()
    manager, repo, _ = _manager(repo=SlowRepository([store]), dispatcher=dispatcher)

    async def run():
        return await asyncio.gather(
            manager.set_status(store, StoreStatus.APPROVED, "admin-a"),
            manager.set_status(store, StoreStatus.APPROVED, "admin-b"),
        )

    results = asyncio.run(run())

    assert sorted(r.outcome for r in results) == ["noop", "updated"]
    assert repo.status_updates == 1
    assert [m.to for m in dispatcher.sent] == ["owner@example.com"]
    assert manager._locks == {}


def test_set_status_decides_on_the_stored_status_not_the_snapshot():
    repo = CountingRepository([_store(StoreStatus.APPROVED)])
    manager, _, _ = _manager(repo=repo)

    result = asyncio.run(manager.set_status(_store(StoreStatus.PENDING), StoreStatus.APPROVED, "admin"))

    assert result.outcome == "noop"
    assert repo.status_updates == 0
