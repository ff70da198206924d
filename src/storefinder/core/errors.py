"""
Error taxonomy.

- `ValidationError`: malformed input, rejected before any I/O.
- `PersistenceError`: the store of record is unreachable or rejected a write.
- `NotificationError`: the delivery provider failed; callers downgrade it to a warning.
- `CacheCorruption`: a cached payload could not be parsed; the cache self-heals.
"""

from __future__ import annotations


class StoreFinderError(Exception):
    """Base class for all errors raised by storefinder."""


class ValidationError(StoreFinderError, ValueError):
    pass


class PersistenceError(StoreFinderError):
    pass


class StoreNotFound(PersistenceError):
    def __init__(self, store_id: str):
        super().__init__(f"Store '{store_id}' not found")
        self.store_id = store_id


class NotificationError(StoreFinderError):
    pass


class CacheCorruption(StoreFinderError):
    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupt cache entry for key '{key}': {reason}")
        self.key = key
