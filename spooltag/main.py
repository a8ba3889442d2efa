"""spooltag command-line entry point.

Reads spool tags (from a reader integration or a saved dump), manages the
tray inventory, and keeps the filament catalog up to date.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from enum import Enum
from typing import Any, Optional

from .catalog import CatalogError, FilamentCatalog
from .catalog_client import CatalogClient, sync_catalog
from .config import ReaderConfig, load_config
from .dumps import DumpTag, load_dump
from .inventory import InventoryReconciler
from .inventory_store import InventoryStore
from .logging_config import setup_logging
from .matcher import FilamentMatcher
from .models import ReadStatus
from .tag_processor import TagProcessor

logger = logging.getLogger(__name__)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


def _print_json(data: Any) -> None:
    print(json.dumps(_to_jsonable(data), indent=2, ensure_ascii=False))


def _open_store(config: ReaderConfig) -> InventoryStore:
    store = InventoryStore(config.inventory_file_path)
    store.load()
    return store


def cmd_read(config: ReaderConfig, args: argparse.Namespace) -> int:
    store = _open_store(config)
    catalog = FilamentCatalog.from_file(config.catalog_file_path, config.catalog_language)
    processor = TagProcessor(
        config,
        FilamentMatcher(catalog),
        InventoryReconciler(store, config.default_remaining_percent),
    )
    uid = bytes.fromhex(args.uid) if args.uid else None
    try:
        blocks = load_dump(args.dump)
    except OSError as e:
        logger.error("Cannot read dump %s: %s", args.dump, e)
        return 1
    tag = DumpTag(blocks, uid=uid)
    result = processor.read_tag(tag, read_all_sectors=args.all or config.read_all_sectors)
    _print_json(asdict(result))
    return 0 if result.status != ReadStatus.FAILURE else 2


async def _sync(config: ReaderConfig) -> bool:
    store = _open_store(config)
    catalog = FilamentCatalog.from_file(config.catalog_file_path, config.catalog_language)
    client = CatalogClient(config)
    try:
        return await sync_catalog(client, catalog, store, config)
    finally:
        await client.close()


def cmd_sync_catalog(config: ReaderConfig, args: argparse.Namespace) -> int:
    try:
        updated = asyncio.run(_sync(config))
    except CatalogError as e:
        logger.error("Catalog update rejected: %s", e)
        return 1
    _print_json({"updated": updated})
    return 0


def cmd_inventory(config: ReaderConfig, args: argparse.Namespace) -> int:
    store = _open_store(config)
    _print_json([asdict(r) for r in store.search_trays(args.keyword or "")])
    return 0


def cmd_set_remaining(config: ReaderConfig, args: argparse.Namespace) -> int:
    store = _open_store(config)
    reconciler = InventoryReconciler(store, config.default_remaining_percent)
    try:
        percent, grams = reconciler.update_quantity(args.tray_uid, grams=args.grams, percent=args.percent)
    except ValueError as e:
        logger.error("%s", e)
        return 1
    _print_json({"tray_uid": args.tray_uid, "remaining_percent": percent, "remaining_grams": grams})
    return 0


def cmd_remove(config: ReaderConfig, args: argparse.Namespace) -> int:
    store = _open_store(config)
    removed = InventoryReconciler(store).remove(args.tray_uid)
    _print_json({"tray_uid": args.tray_uid, "removed": removed})
    return 0 if removed else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spooltag", description="Filament spool tag reader")
    sub = parser.add_subparsers(dest="command", required=True)

    read = sub.add_parser("read", help="read a tag from a hex dump file")
    read.add_argument("dump", help="dump file (one 32-hex-digit block per line)")
    read.add_argument("--all", action="store_true", help="read all 16 sectors")
    read.add_argument("--uid", help="tag UID in hex (defaults to the first 4 bytes of block 0)")
    read.set_defaults(func=cmd_read)

    sync = sub.add_parser("sync-catalog", help="download the latest filament catalog")
    sync.set_defaults(func=cmd_sync_catalog)

    inventory = sub.add_parser("inventory", help="list or search trays")
    inventory.add_argument("keyword", nargs="?", default="")
    inventory.set_defaults(func=cmd_inventory)

    remaining = sub.add_parser("set-remaining", help="set the remaining filament of a tray")
    remaining.add_argument("tray_uid")
    group = remaining.add_mutually_exclusive_group(required=True)
    group.add_argument("--grams", type=int)
    group.add_argument("--percent", type=float)
    remaining.set_defaults(func=cmd_set_remaining)

    remove = sub.add_parser("remove", help="remove a tray from the inventory")
    remove.add_argument("tray_uid")
    remove.set_defaults(func=cmd_remove)
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    config = load_config()
    setup_logging(config.log_level)
    args = build_parser().parse_args(argv)
    try:
        sys.exit(args.func(config, args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
