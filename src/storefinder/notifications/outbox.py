from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from storefinder.domain.models import NotificationMessage
from storefinder.notifications.dispatcher import NotificationDispatcher, send_with_retry

"""
Durable record of notifications that are still owed.

When a lifecycle notification fails its inline attempt and its one retry, the message is
written here as a JSON file. `drain()` re-sends owed messages later (CLI
`outbox-drain` or the admin endpoint) and deletes the ones that got through, so a
process restart between a transition and its email does not lose the email.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboxItem:
    id: str
    message: NotificationMessage
    created_at_unix: float
    attempts: int
    last_error: str | None
    context: dict[str, Any]


@dataclass(frozen=True)
class DrainResult:
    delivered: int
    remaining: int

    def as_dict(self) -> dict[str, int]:
        return {"delivered": self.delivered, "remaining": self.remaining}


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return None


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


class NotificationOutbox:
    def __init__(self, base_dir: Path):
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path(self, item_id: str) -> Path:
        return self._base_dir / f"{item_id}.json"

    def enqueue(
        self,
        message: NotificationMessage,
        *,
        attempts: int = 0,
        last_error: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> OutboxItem:
        item = OutboxItem(
            id=uuid.uuid4().hex,
            message=message,
            created_at_unix=time.time(),
            attempts=attempts,
            last_error=last_error,
            context=dict(context or {}),
        )
        self._save(item)
        return item

    def _save(self, item: OutboxItem) -> None:
        _write_json(
            self._path(item.id),
            {
                "id": item.id,
                "message": item.message.model_dump(mode="json"),
                "created_at_unix": item.created_at_unix,
                "attempts": item.attempts,
                "last_error": item.last_error,
                "context": item.context,
            },
        )

    def pending(self) -> list[OutboxItem]:
        """Owed messages, oldest first. Unreadable files are skipped."""
        if not self._base_dir.is_dir():
            return []
        items: list[OutboxItem] = []
        for path in self._base_dir.glob("*.json"):
            raw = _load_json(path)
            if not isinstance(raw, dict):
                logger.warning("Skipping unreadable outbox file %s", path.name)
                continue
            try:
                items.append(
                    OutboxItem(
                        id=str(raw["id"]),
                        message=NotificationMessage.model_validate(raw["message"]),
                        created_at_unix=float(raw["created_at_unix"]),
                        attempts=int(raw.get("attempts", 0)),
                        last_error=raw.get("last_error"),
                        context=dict(raw.get("context") or {}),
                    )
                )
            except Exception as exc:
                logger.warning("Skipping malformed outbox file %s: %s", path.name, exc)
        return sorted(items, key=lambda it: it.created_at_unix)

    def remove(self, item_id: str) -> None:
        self._path(item_id).unlink(missing_ok=True)

    async def drain(
        self,
        dispatcher: NotificationDispatcher,
        *,
        timeout_seconds: float,
    ) -> DrainResult:
        """Attempt each owed message once; keep the failures for the next drain."""
        delivered = 0
        remaining = 0
        for item in self.pending():
            report = await send_with_retry(
                dispatcher, item.message, timeout_seconds=timeout_seconds, max_retries=0
            )
            if report.delivered:
                self.remove(item.id)
                delivered += 1
                logger.info("Delivered owed notification %s to %s", item.id, item.message.to)
                continue
            remaining += 1
            self._save(
                OutboxItem(
                    id=item.id,
                    message=item.message,
                    created_at_unix=item.created_at_unix,
                    attempts=item.attempts + report.attempts,
                    last_error=report.error,
                    context=item.context,
                )
            )
        return DrainResult(delivered=delivered, remaining=remaining)
