from __future__ import annotations

import contextvars
import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import quote, unquote

from storefinder.core.errors import CacheCorruption

"""
Time-to-live key/value cache.

The cache sits on top of a process-wide, string-keyed backend:
- `FileCacheBackend` persists one file per key under `.cache/storefinder/` by default.
- `MemoryCacheBackend` keeps everything in a dict (tests, short-lived processes).

Entries are JSON envelopes `{"data": ..., "timestamp": <unix seconds>}`.
TTL is supplied by the caller on every read, so two call sites can tolerate different
staleness for the same key. Expired and unparseable entries are deleted on read and
reported as a miss.

There is no locking: concurrent `set` calls on one key are last-writer-wins.
"""

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def list_keys(self) -> list[str]: ...


class MemoryCacheBackend:
    """Dict-backed backend."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def list_keys(self) -> list[str]:
        return list(self._items)


class FileCacheBackend:
    """A filesystem-backed backend storing one file per key."""

    _SUFFIX = ".json"

    def __init__(self, base_dir: Path):
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _key_path(self, key: str) -> Path:
        # Percent-encoding keeps keys reversible for `list_keys` and safe as file names.
        return self._base_dir / f"{quote(key, safe='')}{self._SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self._key_path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise CacheCorruption(key, "not valid UTF-8") from exc

    def set(self, key: str, value: str) -> None:
        """Write via a temporary file + atomic replace to avoid partial files."""
        path = self._key_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def remove(self, key: str) -> None:
        self._key_path(key).unlink(missing_ok=True)

    def list_keys(self) -> list[str]:
        if not self._base_dir.is_dir():
            return []
        return sorted(
            unquote(p.name[: -len(self._SUFFIX)])
            for p in self._base_dir.iterdir()
            if p.is_file() and p.name.endswith(self._SUFFIX)
        )


@dataclass(frozen=True)
class CacheEntry:
    """Serialized cache envelope."""

    data: Any
    timestamp: float


@dataclass
class CacheStats:
    """Per-request cache usage stats (best-effort)."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    corrupt: int = 0
    sets: int = 0
    invalidations: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": int(self.hits),
            "misses": int(self.misses),
            "expired": int(self.expired),
            "corrupt": int(self.corrupt),
            "sets": int(self.sets),
            "invalidations": int(self.invalidations),
        }


_cache_stats_var: contextvars.ContextVar[CacheStats | None] = contextvars.ContextVar(
    "storefinder_cache_stats", default=None
)


def _stats() -> CacheStats | None:
    return _cache_stats_var.get()


@contextmanager
def record_cache_stats() -> CacheStats:
    """Capture cache stats within the current context (thread/task-safe)."""

    stats = CacheStats()
    token = _cache_stats_var.set(stats)
    try:
        yield stats
    finally:
        _cache_stats_var.reset(token)


def _decode(key: str, raw: str) -> CacheEntry:
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise CacheCorruption(key, f"invalid JSON ({exc})") from exc
    if not isinstance(payload, dict) or "data" not in payload or "timestamp" not in payload:
        raise CacheCorruption(key, "missing envelope fields")
    try:
        timestamp = float(payload["timestamp"])
    except (TypeError, ValueError) as exc:
        raise CacheCorruption(key, "timestamp is not a number") from exc
    return CacheEntry(data=payload["data"], timestamp=timestamp)


class LocalCache:
    """TTL cache over a `CacheBackend`."""

    def __init__(self, backend: CacheBackend, enabled: bool = True):
        self._backend = backend
        self._enabled = enabled

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get(self, key: str, ttl_seconds: float) -> Any | None:
        """Return cached data if present and not older than `ttl_seconds`; otherwise None."""
        if not self._enabled:
            return None

        st = _stats()
        try:
            raw = self._backend.get(key)
            if raw is None:
                if st:
                    st.misses += 1
                return None
            entry = _decode(key, raw)
        except CacheCorruption as exc:
            logger.warning("%s; dropping it", exc)
            self._backend.remove(key)
            if st:
                st.misses += 1
                st.corrupt += 1
            return None

        if time.time() - entry.timestamp > float(ttl_seconds):
            self._backend.remove(key)
            if st:
                st.misses += 1
                st.expired += 1
            return None

        if st:
            st.hits += 1
        return entry.data

    def set(self, key: str, data: Any) -> None:
        """Persist `data` (JSON-serializable) stamped with the current time."""
        if not self._enabled:
            return None

        payload = {"data": data, "timestamp": time.time()}
        self._backend.set(key, json.dumps(payload, ensure_ascii=False))
        st = _stats()
        if st:
            st.sets += 1

    def invalidate(self, key: str) -> None:
        self._backend.remove(key)
        st = _stats()
        if st:
            st.invalidations += 1

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with `prefix`; returns how many were removed."""
        keys = [k for k in self._backend.list_keys() if k.startswith(prefix)]
        for key in keys:
            self._backend.remove(key)
        st = _stats()
        if st:
            st.invalidations += len(keys)
        return len(keys)

    def clear(self) -> int:
        return self.invalidate_by_prefix("")

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl_seconds: float,
    ) -> Any:
        """Return cached data, or await `fetch()` and store its result.

        Errors raised by `fetch` propagate unchanged and nothing is cached.
        """
        cached = self.get(key, ttl_seconds)
        if cached is not None:
            return cached
        value = await fetch()
        self.set(key, value)
        return value
