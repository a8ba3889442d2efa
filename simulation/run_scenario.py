"""Walk the reader through a realistic session with simulated tags.

1. Loads the seed catalog (from the mock catalog module, no server needed)
2. Reads a clean tag, then the same tag again (cached keys, persisted stock)
3. Reads a multi-color tag on a flaky transport
4. Records filament usage and re-reads to show persisted stock
5. Presents a tag with a foreign UID (authentication fails)

Usage:
    python -m simulation.run_scenario

Environment:
    SCENARIO_INVENTORY   inventory file (default: a temp file)
    SCENARIO_FLAKINESS   read failure rate for step 3 (default: 0.2)
"""

from __future__ import annotations

import json
import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from simulation.mock_catalog import CatalogState
from simulation.mock_tag import MockSpool, MockTag
from spooltag.catalog import FilamentCatalog, parse_catalog_json
from spooltag.config import ReaderConfig
from spooltag.inventory import InventoryReconciler
from spooltag.inventory_store import InventoryStore
from spooltag.key_derivation import KeyCache
from spooltag.logging_config import setup_logging
from spooltag.matcher import FilamentMatcher
from spooltag.models import TagReadResult
from spooltag.tag_processor import TagProcessor

FLAKINESS = float(os.environ.get("SCENARIO_FLAKINESS", "0.2"))


def header(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def step(text: str) -> None:
    print(f"  >> {text}")


def show(result: TagReadResult) -> None:
    d = result.display
    step(f"status={result.status.value} uid={result.uid_hex} tray={result.tray_uid_hex or '-'}")
    step(f"  {d.type or '?'} / {d.color_name or '?'} ({d.color_code or '-'}, {d.color_type or '-'})")
    step(f"  colors={','.join(d.color_values)}")
    step(f"  remaining {result.remaining_percent:.1f}% = {result.remaining_grams} g of {result.total_weight_grams} g")
    if result.error:
        step(f"  errors: {result.error}")


def run_scenario() -> None:
    setup_logging(os.environ.get("SCENARIO_LOG_LEVEL", "WARNING"))
    inventory_path = os.environ.get("SCENARIO_INVENTORY") or os.path.join(
        tempfile.mkdtemp(prefix="spooltag-"), "inventory.json"
    )

    header("Step 1: Load catalog")
    catalog = FilamentCatalog(parse_catalog_json(CatalogState().to_json()))
    step(f"{len(catalog)} catalog rows")

    config = ReaderConfig(inventory_file_path=inventory_path, auth_retry_count=2, read_block_retry_count=2)
    store = InventoryStore(inventory_path)
    store.load()
    cache = KeyCache()
    processor = TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store), cache)

    header("Step 2: Read a black PLA spool twice")
    black = MockSpool(uid=bytes.fromhex("5AC3E901"), color_rgba=bytes.fromhex("000000FF"))
    show(processor.read_tag(MockTag(black)))
    show(processor.read_tag(MockTag(black)))
    step(f"key cache holds {len(cache)} UID(s)")

    header(f"Step 3: Multi-color spool on a flaky reader ({FLAKINESS:.0%} read failures)")
    dual = MockSpool(
        uid=bytes.fromhex("7AD43F1C"),
        color_rgba=bytes.fromhex("FF0000FF"),
        extra_colors=[bytes.fromhex("0000FFFF")],
    )
    show(processor.read_tag(MockTag(dual, read_failure_rate=FLAKINESS, seed=7)))

    header("Step 4: Print 250 g from the black spool, then re-read it")
    reconciler = InventoryReconciler(store)
    result = processor.read_tag(MockTag(black))
    reconciler.update_quantity(result.tray_uid_hex, grams=result.remaining_grams - 250)
    show(processor.read_tag(MockTag(black)))

    header("Step 5: Cloned tag image reporting a foreign UID")
    show(processor.read_tag(MockTag(black, reported_uid=bytes.fromhex("01020304"))))

    header("Inventory")
    for record in store.all_trays():
        print(json.dumps({
            "tray_uid": record.tray_uid,
            "type": record.material_type,
            "color": record.color_name,
            "remaining_percent": record.remaining_percent,
            "remaining_grams": record.remaining_grams,
        }, ensure_ascii=False))
    print()


if __name__ == "__main__":
    run_scenario()
