"""Remaining-filament bookkeeping per tray."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .inventory_store import InventoryStore
from .models import DisplayData, MaterialDescriptor, TrayInventoryRecord

logger = logging.getLogger(__name__)

DEFAULT_REMAINING_PERCENT = 100.0


def percent_from_grams(grams: int, total: int) -> float:
    """Percent with one decimal: round(grams * 1000 / total) / 10."""
    return round(grams * 1000 / total) / 10


def grams_from_percent(percent: float, total: int) -> int:
    return round(percent * total / 100)


class InventoryReconciler:
    """Keeps remaining percent/grams in the store consistent with what the tag says."""

    def __init__(self, store: InventoryStore, default_percent: float = DEFAULT_REMAINING_PERCENT) -> None:
        self._store = store
        self._default_percent = default_percent

    def reconcile(self, tray_uid: str, total_weight: Optional[int]) -> tuple[float, int]:
        """Return (percent, grams) for a tray that was just read, and write them back.

        Persisted values win. A tray seen for the first time starts at the
        default percent with the full spool weight.
        """
        total = total_weight or 0
        existing = self._store.get_tray(tray_uid)
        if existing is None:
            percent = self._default_percent
            grams = total
            record = TrayInventoryRecord(tray_uid=tray_uid, remaining_percent=percent)
            logger.info("New tray %s (%d g)", tray_uid, total)
        else:
            percent = existing.remaining_percent
            grams = existing.remaining_grams or 0
            if grams == 0 and total > 0:
                grams = total
            record = replace(existing)

        record.remaining_percent = percent
        record.remaining_grams = grams
        if total > 0 or record.total_weight_grams is None:
            record.total_weight_grams = total
        self._store.upsert_tray(record)
        return round(percent, 1), grams

    def record_display(
        self,
        tray_uid: str,
        desc: MaterialDescriptor,
        display: DisplayData,
    ) -> None:
        """Attach the resolved display fields to a reconciled tray record."""
        record = self._store.get_tray(tray_uid)
        if record is None:
            logger.warning("Tray %s has no inventory record to update", tray_uid)
            return
        record = replace(
            record,
            material_id=desc.material_id,
            material_type=desc.filament_type,
            material_detailed_type=desc.detailed_filament_type,
            color_name=display.color_name,
            color_code=display.color_code,
            color_type=display.color_type,
            color_values=list(display.color_values),
        )
        self._store.upsert_tray(record)

    def update_quantity(
        self,
        tray_uid: str,
        total_weight: Optional[int] = None,
        grams: Optional[int] = None,
        percent: Optional[float] = None,
    ) -> tuple[float, Optional[int]]:
        """Apply a caller-initiated quantity change (slider, typed grams...).

        Exactly one of grams/percent is expected; the other is recomputed
        against the total weight. The total defaults to the stored one.
        """
        if grams is None and percent is None:
            raise ValueError("either grams or percent is required")

        record = self._store.get_tray(tray_uid)
        if record is None:
            record = TrayInventoryRecord(tray_uid=tray_uid, remaining_percent=self._default_percent)
        else:
            record = replace(record)
        total = total_weight if total_weight is not None else (record.total_weight_grams or 0)

        if total > 0:
            if grams is not None:
                new_grams = min(max(int(grams), 0), total)
                new_percent = percent_from_grams(new_grams, total)
            else:
                new_percent = min(max(float(percent), 0.0), 100.0)
                new_grams = grams_from_percent(new_percent, total)
            record.total_weight_grams = total
        else:
            # Unknown total: only a percent can be stored meaningfully
            if percent is None:
                raise ValueError(f"tray {tray_uid} has no known total weight; set a percent instead")
            new_percent = min(max(float(percent), 0.0), 100.0)
            new_grams = record.remaining_grams

        record.remaining_percent = new_percent
        record.remaining_grams = new_grams
        self._store.upsert_tray(record)
        logger.info("Updated tray %s -> %.1f%% (%s g)", tray_uid, new_percent, new_grams)
        return new_percent, new_grams

    def remove(self, tray_uid: str) -> bool:
        """Outbound: drop a tray from the inventory."""
        removed = self._store.delete_tray(tray_uid)
        if removed:
            logger.info("Removed tray %s from inventory", tray_uid)
        return removed
