"""
Store catalog loader.

The catalog is a local JSON file (default: `data/catalogs/stores.json`) listing store
rows in the same flat shape the data store uses (`latitude`/`longitude` columns). It
seeds the in-memory repository for local runs and the CLI. Rows that fail validation
are skipped with a warning instead of aborting the load.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from storefinder.core.env import resolve_project_path
from storefinder.domain.models import Store

logger = logging.getLogger(__name__)


def load_stores(path: str | Path) -> list[Store]:
    """Load and validate a store catalog JSON file (a list of rows)."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"Invalid catalog {resolved}; expected a JSON list of stores.")

    stores: list[Store] = []
    for i, row in enumerate(payload):
        try:
            stores.append(Store.model_validate(row))
        except ValidationError as exc:
            logger.warning("Skipping catalog row %d: %s", i, exc.errors()[0].get("msg"))
    return stores


def load_stores_if_present(path: str | Path | None) -> list[Store]:
    if not path:
        return []
    resolved = resolve_project_path(path)
    if not resolved.is_file():
        return []
    return load_stores(resolved)
