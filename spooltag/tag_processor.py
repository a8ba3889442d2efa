"""End-to-end handling of one tag presentation.

read_tag() runs in two stages:
1. Acquisition: authenticate sectors and collect raw blocks.
2. Processing: decode fields, match the catalog, reconcile inventory.

Both stages run synchronously on the caller's thread. The result is an
immutable TagReadResult; publishing it to a UI is the caller's business.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from .acquisition import TagAcquisition, classify_status
from .block_decoder import decode_blocks, tray_uid_hex
from .config import ReaderConfig
from .dumps import export_dump, export_keys
from .inventory import InventoryReconciler
from .key_derivation import KeyCache
from .matcher import FilamentMatcher
from .models import (
    AcquisitionFailure,
    RawTagData,
    ReadStatus,
    TagReadResult,
)
from .transport import TagHandle

logger = logging.getLogger(__name__)

DISPLAY_BLOCK_COUNT = 8


class TagProcessor:
    """Wires acquisition, decoding, catalog matching and inventory together."""

    def __init__(
        self,
        config: ReaderConfig,
        matcher: FilamentMatcher,
        reconciler: Optional[InventoryReconciler],
        key_cache: Optional[KeyCache] = None,
    ) -> None:
        self._config = config
        self._acquisition = TagAcquisition(config, key_cache)
        self._matcher = matcher
        self._reconciler = reconciler

    def read_tag(self, tag: TagHandle, read_all_sectors: Optional[bool] = None) -> TagReadResult:
        if read_all_sectors is None:
            read_all_sectors = self._config.read_all_sectors
        outcome = self._acquisition.acquire(tag, read_all_sectors)
        if isinstance(outcome, AcquisitionFailure):
            return failure_result(outcome)

        raw = outcome.data
        if self._config.dump_dir:
            if read_all_sectors:
                self._save_dump(raw)
            if self._config.save_keys:
                self._save_keys(raw)
        return self.process(raw)

    def process(self, raw: RawTagData) -> TagReadResult:
        blocks = raw.raw_blocks
        desc = decode_blocks(blocks)
        total_weight = desc.spool_weight_grams or 0

        tray_uid = tray_uid_hex(blocks)
        percent = self._config.default_remaining_percent
        grams = 0
        if not tray_uid:
            logger.warning("No tray UID in block 9")
        elif self._reconciler is not None:
            percent, grams = self._reconciler.reconcile(tray_uid, total_weight)
            logger.info("Tray %s: %.1f%% remaining", tray_uid, percent)

        display, _entry = self._matcher.resolve_display(desc)
        if tray_uid and self._reconciler is not None:
            self._reconciler.record_display(tray_uid, desc, display)

        block_hexes = tuple(
            blocks[i].hex().upper() if i < len(blocks) and blocks[i] is not None else ""
            for i in range(DISPLAY_BLOCK_COUNT)
        )
        status = classify_status(raw.errors, blocks)
        if raw.errors:
            logger.warning("Read errors: %s", "; ".join(raw.errors))

        return TagReadResult(
            status=status,
            uid_hex=raw.uid_hex,
            key_a0_hex=raw.key_hex(0, "a"),
            key_b0_hex=raw.key_hex(0, "b"),
            key_a1_hex=raw.key_hex(1, "a"),
            key_b1_hex=raw.key_hex(1, "b"),
            block_hexes=block_hexes,
            fields=tuple(desc.fields),
            display=display,
            tray_uid_hex=tray_uid,
            remaining_percent=percent,
            remaining_grams=grams,
            total_weight_grams=total_weight,
            error="; ".join(raw.errors),
        )

    def _save_dump(self, raw: RawTagData) -> None:
        path = os.path.join(self._config.dump_dir, f"{raw.uid_hex}.txt")
        try:
            export_dump(path, raw.raw_blocks, raw.sector_keys)
        except OSError as e:
            logger.error("Failed to save dump for %s: %s", raw.uid_hex, e)

    def _save_keys(self, raw: RawTagData) -> None:
        path = os.path.join(self._config.dump_dir, "keys", f"{raw.uid_hex}.txt")
        try:
            export_keys(path, raw.sector_keys)
        except OSError as e:
            logger.error("Failed to save keys for %s: %s", raw.uid_hex, e)


def failure_result(failure: AcquisitionFailure) -> TagReadResult:
    return TagReadResult(
        status=ReadStatus.FAILURE,
        uid_hex=failure.uid_hex,
        key_a0_hex=failure.key_a0_hex,
        key_b0_hex=failure.key_b0_hex,
        key_a1_hex=failure.key_a1_hex,
        key_b1_hex=failure.key_b1_hex,
        error=failure.message,
        failure_reason=failure.reason,
    )
