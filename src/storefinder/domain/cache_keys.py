"""
Cache key conventions.

The cache backend is shared process-wide with no namespacing beyond these prefixes;
lifecycle writes rely on them to invalidate every entry derived from a store or owner.
"""

from __future__ import annotations

from storefinder.domain.models import StoreStatus

STORE_PREFIX = "store_"
OWNER_STORES_PREFIX = "stores_by_owner_"
STATUS_LIST_PREFIX = "stores_by_status_"
PROFILE_PREFIX = "profile_"


def store_key(store_id: str) -> str:
    return f"{STORE_PREFIX}{store_id}"


def owner_stores_key(owner_id: str) -> str:
    return f"{OWNER_STORES_PREFIX}{owner_id}"


def status_list_key(status: StoreStatus | None) -> str:
    return f"{STATUS_LIST_PREFIX}{status.value if status else 'all'}"


def profile_key(owner_id: str) -> str:
    return f"{PROFILE_PREFIX}{owner_id}"


def keys_for_store(store_id: str, owner_id: str) -> list[str]:
    """Exact keys derived from one store and its owner."""
    return [store_key(store_id), owner_stores_key(owner_id), profile_key(owner_id)]
