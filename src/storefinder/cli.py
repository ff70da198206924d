"""
StoreFinder CLI entrypoint.

Quick local operations without the API: nearby search against the configured data
store (or a catalog file), admin status changes, cache maintenance and outbox draining.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from storefinder.catalog.loader import load_stores
from storefinder.config.settings import get_settings
from storefinder.core.logging import configure_logging
from storefinder.discovery.proximity import filter_by_proximity
from storefinder.domain.models import Coordinate, StoreStatus
from storefinder.runtime import build_runtime


def _origin(args: argparse.Namespace) -> Coordinate | None:
    if args.lat is None and args.lon is None:
        return None
    if args.lat is None or args.lon is None:
        raise ValueError("--lat and --lon must be given together")
    return Coordinate(latitude=args.lat, longitude=args.lon)


def _cmd_nearby(args: argparse.Namespace) -> int:
    """Handle the `nearby` subcommand."""
    settings = get_settings()
    origin = _origin(args)
    if args.catalog:
        stores = [s for s in load_stores(args.catalog) if s.status == StoreStatus.APPROVED]
        result = filter_by_proximity(origin, args.radius_km, stores, settings=settings.discovery)
    else:
        runtime = build_runtime(settings)
        result = asyncio.run(runtime.discovery.find_nearby(origin, args.radius_km))

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return 0

    if not result.visible:
        print("No stores found.")
    for i, store in enumerate(result.visible, start=1):
        dist = result.distances_km.get(store.id)
        suffix = f" - {dist:.2f} km" if dist is not None else ""
        print(f"{i}. {store.name} ({store.address}){suffix}")
    r = result.region
    print(f"region: center=({r.latitude:.4f}, {r.longitude:.4f}) delta=({r.latitude_delta:.4f}, {r.longitude_delta:.4f})")
    return 0


def _cmd_set_status(args: argparse.Namespace) -> int:
    """Handle the `set-status` subcommand."""
    runtime = build_runtime(get_settings())

    change = runtime.lifecycle.set_status_by_id(args.store_id, StoreStatus(args.status), args.actor)
    result = asyncio.run(change)
    if result.outcome == "noop":
        print(f"Store {args.store_id} is already {args.status}.")
        return 0
    if not result.ok:
        print(f"Failed to {args.status} store {args.store_id}: {result.error}")
        return 1
    print(f"Store {result.store.id} is now {result.store.status.value}.")
    for warning in result.warnings:
        print(f"warning: {warning}")
    return 0


def _cmd_cache_clear(args: argparse.Namespace) -> int:
    runtime = build_runtime(get_settings())
    removed = runtime.cache.invalidate_by_prefix(args.prefix or "")
    print(f"Removed {removed} cache entr{'y' if removed == 1 else 'ies'}.")
    return 0


def _cmd_outbox_drain(args: argparse.Namespace) -> int:
    settings = get_settings()
    runtime = build_runtime(settings)
    drained = asyncio.run(
        runtime.outbox.drain(runtime.dispatcher, timeout_seconds=settings.notifications.timeout_seconds)
    )
    print(f"delivered={drained.delivered} remaining={drained.remaining}")
    return 0 if drained.remaining == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the StoreFinder CLI."""
    parser = argparse.ArgumentParser(prog="storefinder")
    parser.add_argument("--log-level", default=None, help="Override STOREFINDER_LOG_LEVEL.")
    sub = parser.add_subparsers(dest="command", required=True)

    near = sub.add_parser("nearby", help="List approved stores around a location.")
    near.add_argument("--lat", type=float, default=None)
    near.add_argument("--lon", type=float, default=None)
    near.add_argument(
        "--radius-km", type=float, default=1.0, help="Below 1 km means the default maximum radius."
    )
    near.add_argument("--catalog", type=str, default=None, help="Read stores from a JSON catalog file instead.")
    near.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    near.set_defaults(func=_cmd_nearby)

    st = sub.add_parser("set-status", help="Approve or reject a store.")
    st.add_argument("store_id")
    st.add_argument("status", choices=[s.value for s in StoreStatus if s != StoreStatus.PENDING])
    st.add_argument("--actor", default="cli-admin")
    st.set_defaults(func=_cmd_set_status)

    cc = sub.add_parser("cache-clear", help="Remove cached entries (optionally by key prefix).")
    cc.add_argument("--prefix", default=None)
    cc.set_defaults(func=_cmd_cache_clear)

    ob = sub.add_parser("outbox-drain", help="Retry notifications that could not be delivered.")
    ob.set_defaults(func=_cmd_outbox_drain)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m storefinder.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
