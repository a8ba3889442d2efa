"""Persistent tray inventory and metadata.

Stores state as a JSON file with atomic writes to prevent corruption. Every
mutation is written through immediately, so a crash never loses a read.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from .models import TrayInventoryRecord

logger = logging.getLogger(__name__)


class InventoryStore:
    """JSON-file store for tray records (keyed by tray UID hex) and meta values."""

    def __init__(self, file_path: str, autosave: bool = True) -> None:
        self._file_path = file_path
        self._autosave = autosave
        self._trays: dict[str, TrayInventoryRecord] = {}
        self._meta: dict[str, str] = {}
        self._lock = threading.RLock()

    def load(self) -> None:
        """Load state from disk. Does nothing if the file doesn't exist."""
        if not os.path.exists(self._file_path):
            logger.info("No inventory file found at %s, starting fresh", self._file_path)
            return
        try:
            with open(self._file_path, encoding="utf-8") as f:
                data = json.load(f)
            with self._lock:
                self._trays, self._meta = _deserialize_state(data)
            logger.info("Loaded %d trays from %s", len(self._trays), self._file_path)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error("Failed to parse inventory file %s: %s - starting fresh", self._file_path, e)
            with self._lock:
                self._trays, self._meta = {}, {}

    def save(self) -> None:
        """Save state to disk atomically."""
        with self._lock:
            data = _serialize_state(self._trays, self._meta)

        parent = os.path.dirname(self._file_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        # Atomic write: write to temp file, then rename
        fd, tmp_path = tempfile.mkstemp(dir=parent or ".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._file_path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _changed(self) -> None:
        if self._autosave:
            self.save()

    # ── Trays ────────────────────────────────────────────────────────

    def get_tray(self, tray_uid: str) -> TrayInventoryRecord | None:
        """A copy of the stored record; changes reach the store only via upsert_tray."""
        with self._lock:
            record = self._trays.get(tray_uid)
            return _copy_record(record) if record is not None else None

    def upsert_tray(self, record: TrayInventoryRecord) -> None:
        stored = _copy_record(
            record,
            remaining_percent=round(record.remaining_percent, 1),
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            self._trays[stored.tray_uid] = stored
        self._changed()

    def delete_tray(self, tray_uid: str) -> bool:
        with self._lock:
            removed = self._trays.pop(tray_uid, None) is not None
        if removed:
            self._changed()
        return removed

    def all_trays(self) -> list[TrayInventoryRecord]:
        with self._lock:
            return [_copy_record(self._trays[k]) for k in sorted(self._trays)]

    def search_trays(self, keyword: str) -> list[TrayInventoryRecord]:
        """Case-insensitive substring search over ids, types, colors and percent."""
        needle = keyword.strip().lower()
        if not needle:
            return self.all_trays()
        results = []
        for record in self.all_trays():
            haystack = [
                record.tray_uid,
                record.material_type,
                record.material_detailed_type,
                record.color_name,
                record.color_code,
                record.color_type,
                ",".join(record.color_values),
                str(record.remaining_percent),
            ]
            if any(needle in value.lower() for value in haystack):
                results.append(record)
        return results

    # ── Metadata ─────────────────────────────────────────────────────

    def get_meta(self, key: str) -> str | None:
        with self._lock:
            return self._meta.get(key)

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._meta[key] = value
        self._changed()


def _serialize_state(trays: dict[str, TrayInventoryRecord], meta: dict[str, str]) -> dict[str, Any]:
    return {
        "meta": dict(meta),
        "trays": {
            uid: {
                "tray_uid": r.tray_uid,
                "remaining_percent": r.remaining_percent,
                "remaining_grams": r.remaining_grams,
                "total_weight_grams": r.total_weight_grams,
                "material_id": r.material_id,
                "material_type": r.material_type,
                "material_detailed_type": r.material_detailed_type,
                "color_name": r.color_name,
                "color_code": r.color_code,
                "color_type": r.color_type,
                "color_values": list(r.color_values),
                "updated_at": r.updated_at,
            }
            for uid, r in trays.items()
        },
    }


def _deserialize_state(data: dict[str, Any]) -> tuple[dict[str, TrayInventoryRecord], dict[str, str]]:
    trays = {}
    for uid, r in data.get("trays", {}).items():
        trays[uid] = TrayInventoryRecord(
            tray_uid=r["tray_uid"],
            remaining_percent=float(r["remaining_percent"]),
            remaining_grams=r.get("remaining_grams"),
            total_weight_grams=r.get("total_weight_grams"),
            material_id=r.get("material_id", ""),
            material_type=r.get("material_type", ""),
            material_detailed_type=r.get("material_detailed_type", ""),
            color_name=r.get("color_name", ""),
            color_code=r.get("color_code", ""),
            color_type=r.get("color_type", ""),
            color_values=list(r.get("color_values", [])),
            updated_at=r.get("updated_at"),
        )
    meta = {str(k): str(v) for k, v in data.get("meta", {}).items()}
    return trays, meta


def _copy_record(record: TrayInventoryRecord, **changes: Any) -> TrayInventoryRecord:
    # color_values is a list, so it gets its own copy too
    changes.setdefault("color_values", list(record.color_values))
    return replace(record, **changes)
