"""
Store lifecycle: creation, admin review and owner edits.

State machine (statuses are `pending`, `approved`, `rejected`):
- new stores always start `pending`
- `pending -> approved | rejected`
- `approved -> rejected` and `rejected -> approved` (manual re-review)
- re-applying the current status is a no-op, not an error

Every status change runs three sequenced steps:
1. persist the new status (failure aborts everything and nothing else happens)
2. notify the store owner (best-effort: one retry, bounded by a timeout, then queued in
   the outbox; failures become warnings on the result)
3. invalidate every cache entry derived from the store or its owner

Operations return a `LifecycleResult` instead of raising for I/O failures, so API and
CLI callers can report partial success ("status updated, email failed").
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal

import pydantic

from storefinder.config.settings import NotificationSettings
from storefinder.core.cache import LocalCache
from storefinder.core.errors import PersistenceError, StoreFinderError, ValidationError
from storefinder.core.time import utc_now
from storefinder.domain.cache_keys import STATUS_LIST_PREFIX, keys_for_store
from storefinder.domain.models import NotificationMessage, Store, StoreDraft, StoreStatus, StoreUpdate
from storefinder.notifications.dispatcher import DeliveryReport, NotificationDispatcher, send_with_retry
from storefinder.notifications.outbox import NotificationOutbox
from storefinder.notifications.templates import new_store_message, status_change_message
from storefinder.storage.base import OwnerDirectory, StoreRepository

logger = logging.getLogger(__name__)

Outcome = Literal["created", "updated", "deleted", "noop", "failed"]

ALLOWED_TRANSITIONS: dict[StoreStatus, frozenset[StoreStatus]] = {
    StoreStatus.PENDING: frozenset({StoreStatus.APPROVED, StoreStatus.REJECTED}),
    StoreStatus.APPROVED: frozenset({StoreStatus.REJECTED}),
    StoreStatus.REJECTED: frozenset({StoreStatus.APPROVED}),
}


def can_transition(current: StoreStatus, new: StoreStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


@dataclass
class LifecycleResult:
    """Outcome of one lifecycle operation.

    `store` is the state after the operation (the unchanged input on `noop`/`failed`,
    the last known state on `deleted`). `error` is set only when `outcome == "failed"`.
    """

    outcome: Outcome
    store: Store | None = None
    notification: DeliveryReport | None = None
    warnings: list[str] = field(default_factory=list)
    error: StoreFinderError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != "failed"


@dataclass
class _LockSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class StoreLifecycleManager:
    def __init__(
        self,
        *,
        repository: StoreRepository,
        owners: OwnerDirectory,
        dispatcher: NotificationDispatcher,
        cache: LocalCache,
        settings: NotificationSettings | None = None,
        outbox: NotificationOutbox | None = None,
    ):
        self._repo = repository
        self._owners = owners
        self._dispatcher = dispatcher
        self._cache = cache
        self._settings = settings or NotificationSettings()
        self._outbox = outbox
        self._locks: dict[str, _LockSlot] = {}

    @asynccontextmanager
    async def _store_lock(self, store_id: str) -> AsyncIterator[None]:
        # Serialises status changes for one store within this process only. The slot is
        # dropped once nobody holds or waits for it.
        slot = self._locks.get(store_id)
        if slot is None:
            slot = self._locks[store_id] = _LockSlot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._locks[store_id]

    # ---- status transitions -------------------------------------------------

    @staticmethod
    def _check_transition(store: Store, new_status: StoreStatus, actor: str) -> LifecycleResult | None:
        if new_status == store.status:
            logger.info("Store %s is already %s; nothing to do (actor=%s)", store.id, new_status.value, actor)
            return LifecycleResult(outcome="noop", store=store)
        if not can_transition(store.status, new_status):
            err = ValidationError(f"cannot move store from {store.status.value} to {new_status.value}")
            return LifecycleResult(outcome="failed", store=store, error=err)
        return None

    async def set_status(self, store: Store, new_status: StoreStatus, actor: str) -> LifecycleResult:
        """Move `store` to `new_status` on behalf of `actor`.

        The caller's snapshot short-circuits obvious no-ops without I/O; the decision that
        counts is made against a fresh read taken under the store's lock.
        """
        new_status = StoreStatus(new_status)
        early = self._check_transition(store, new_status, actor)
        if early is not None:
            return early
        return await self.set_status_by_id(store.id, new_status, actor)

    async def set_status_by_id(self, store_id: str, new_status: StoreStatus, actor: str) -> LifecycleResult:
        new_status = StoreStatus(new_status)
        async with self._store_lock(store_id):
            try:
                current = await self._repo.fetch_store_by_id(store_id)
            except PersistenceError as exc:
                return LifecycleResult(outcome="failed", error=exc)

            early = self._check_transition(current, new_status, actor)
            if early is not None:
                return early

            try:
                updated = await self._repo.update_store_status(store_id, new_status)
            except Exception as exc:
                err = exc if isinstance(exc, PersistenceError) else PersistenceError(str(exc))
                logger.error("Failed to persist status %s for store %s: %s", new_status.value, store_id, err)
                return LifecycleResult(outcome="failed", store=current, error=err)

            logger.info(
                "Store %s moved %s -> %s by %s", store_id, current.status.value, updated.status.value, actor
            )
            result = LifecycleResult(outcome="updated", store=updated)
            await self._notify_status_change(updated, result)
            self._invalidate(updated, result)
            return result

    async def approve(self, store_id: str, actor: str) -> LifecycleResult:
        return await self.set_status_by_id(store_id, StoreStatus.APPROVED, actor)

    async def reject(self, store_id: str, actor: str) -> LifecycleResult:
        return await self.set_status_by_id(store_id, StoreStatus.REJECTED, actor)

    # ---- owner operations ---------------------------------------------------

    async def create_store(
        self,
        owner_id: str,
        draft: StoreDraft | dict[str, Any],
        *,
        owner_email: str | None = None,
    ) -> LifecycleResult:
        """Register a new store; it always starts `pending` and the admin is told."""
        if not owner_id or not str(owner_id).strip():
            return LifecycleResult(outcome="failed", error=ValidationError("owner_id is required"))
        try:
            draft = draft if isinstance(draft, StoreDraft) else StoreDraft.model_validate(draft)
        except pydantic.ValidationError as exc:
            return LifecycleResult(outcome="failed", error=ValidationError(str(exc)))

        store = Store(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            status=StoreStatus.PENDING,
            created_at=utc_now(),
            **draft.model_dump(),
        )
        try:
            created = await self._repo.insert_store(store)
        except PersistenceError as exc:
            logger.error("Failed to create store for owner %s: %s", owner_id, exc)
            return LifecycleResult(outcome="failed", error=exc)

        logger.info("Store %s created by owner %s (pending review)", created.id, owner_id)
        result = LifecycleResult(outcome="created", store=created)
        self._invalidate(created, result)
        admin_email = self._settings.admin_email
        if self._settings.enabled and admin_email:
            message = new_store_message(recipient=admin_email, store=created, owner_email=owner_email)
            result.notification = await self._deliver(message, result, context={"store_id": created.id})
        return result

    async def update_store_fields(
        self, store_id: str, changes: StoreUpdate | dict[str, Any]
    ) -> LifecycleResult:
        """Apply an owner edit. Status cannot be changed here."""
        try:
            update = changes if isinstance(changes, StoreUpdate) else StoreUpdate.model_validate(changes)
        except pydantic.ValidationError as exc:
            return LifecycleResult(outcome="failed", error=ValidationError(str(exc)))

        values = update.changes()
        if not values:
            try:
                store = await self._repo.fetch_store_by_id(store_id)
            except PersistenceError as exc:
                return LifecycleResult(outcome="failed", error=exc)
            return LifecycleResult(outcome="noop", store=store)

        try:
            updated = await self._repo.update_store_fields(store_id, values)
        except PersistenceError as exc:
            logger.error("Failed to update store %s: %s", store_id, exc)
            return LifecycleResult(outcome="failed", error=exc)

        result = LifecycleResult(outcome="updated", store=updated)
        self._invalidate(updated, result)
        return result

    async def delete_store(self, store_id: str) -> LifecycleResult:
        """Delete a store and drop every cache entry keyed by it or its owner."""
        try:
            store = await self._repo.fetch_store_by_id(store_id)
            await self._repo.delete_store(store_id)
        except PersistenceError as exc:
            logger.error("Failed to delete store %s: %s", store_id, exc)
            return LifecycleResult(outcome="failed", error=exc)

        logger.info("Store %s deleted", store_id)
        result = LifecycleResult(outcome="deleted", store=store)
        self._invalidate(store, result)
        return result

    # ---- side effects -------------------------------------------------------

    async def resolve_recipient(self, store: Store) -> str | None:
        """Owner profile email first, then the store's own email."""
        email: str | None = None
        try:
            contact = await self._owners.fetch_owner_contact(store.owner_id)
            email = contact.email if contact else None
        except Exception as exc:
            logger.warning("Owner lookup failed for %s: %s", store.owner_id, exc)
        if email and email.strip():
            return email.strip()
        if store.email and store.email.strip():
            return store.email.strip()
        return None

    async def _notify_status_change(self, store: Store, result: LifecycleResult) -> None:
        if not self._settings.enabled:
            return
        recipient = await self.resolve_recipient(store)
        if recipient is None:
            result.notification = DeliveryReport()
            result.warnings.append("No email address found for store owner notification.")
            return
        message = status_change_message(
            recipient=recipient,
            store_name=store.name,
            status=store.status,
            admin_email=self._settings.admin_email,
        )
        result.notification = await self._deliver(
            message, result, context={"store_id": store.id, "status": store.status.value}
        )

    async def _deliver(
        self, message: NotificationMessage, result: LifecycleResult, *, context: dict[str, Any]
    ) -> DeliveryReport:
        report = await send_with_retry(
            self._dispatcher,
            message,
            timeout_seconds=self._settings.timeout_seconds,
            max_retries=self._settings.max_retries,
        )
        if report.delivered:
            return report

        result.warnings.append(f"Notification to {message.to} failed: {report.error}")
        if self._outbox is not None:
            try:
                self._outbox.enqueue(
                    message, attempts=report.attempts, last_error=report.error, context=context
                )
                report.queued = True
            except OSError as exc:
                logger.error("Could not queue notification for %s: %s", message.to, exc)
        return report

    def _invalidate(self, store: Store, result: LifecycleResult) -> None:
        try:
            for key in keys_for_store(store.id, store.owner_id):
                self._cache.invalidate(key)
            self._cache.invalidate_by_prefix(STATUS_LIST_PREFIX)
        except OSError as exc:
            logger.error("Cache invalidation failed for store %s: %s", store.id, exc)
            result.warnings.append("Cached store lists may be stale until they expire.")
