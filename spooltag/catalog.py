"""Reference filament catalog loaded from the vendor color-code JSON.

The JSON has the shape::

    {"data": [
        {"fila_id": "GFA00", "fila_color_code": "10100",
         "fila_type": "PLA Basic", "fila_color_type": "single",
         "fila_color_name": {"en": "Jade White", "zh": "..."},
         "fila_color": ["#FFFFFFFF"]},
        ...
    ]}

Queries return rows ordered by color code so that "first row" fallbacks are
stable between runs.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Protocol

from .colors import normalize_colors
from .models import CatalogEntry

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    """Catalog JSON could not be parsed."""


class CatalogAccessor(Protocol):
    def query_by_material(self, material_id: str) -> list[CatalogEntry]: ...

    def query_by_material_and_color_count(self, material_id: str, color_count: int) -> list[CatalogEntry]: ...


def resolve_color_name(names: Any, language: str) -> str:
    """Pick a color name: requested language, then "en", then "zh", then whatever is first."""
    if not isinstance(names, dict) or not names:
        return ""
    for key in (language.lower(), "en", "zh"):
        value = names.get(key)
        if value:
            return str(value)
    first = next(iter(names.values()))
    return str(first) if first else ""


def parse_catalog_json(json_text: str, language: str = "en") -> list[CatalogEntry]:
    """Parse the catalog JSON. Rows without a material id are skipped."""
    try:
        root = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise CatalogError(f"invalid catalog JSON: {e}") from e
    if not isinstance(root, dict):
        raise CatalogError("catalog root must be an object")

    entries = []
    for item in root.get("data") or []:
        if not isinstance(item, dict):
            continue
        material_id = str(item.get("fila_id") or "").strip()
        if not material_id:
            continue
        entries.append(
            CatalogEntry(
                material_id=material_id,
                color_code=str(item.get("fila_color_code") or ""),
                filament_type=str(item.get("fila_type") or ""),
                detailed_filament_type=str(item.get("fila_detailed_type") or ""),
                color_name=resolve_color_name(item.get("fila_color_name"), language),
                color_type=str(item.get("fila_color_type") or ""),
                color_values=tuple(normalize_colors(item.get("fila_color") or [])),
            )
        )
    return entries


class FilamentCatalog:
    """In-memory catalog indexed by material id."""

    def __init__(self, entries: list[CatalogEntry] | None = None) -> None:
        self._by_material: dict[str, list[CatalogEntry]] = {}
        self.replace(entries or [])

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._by_material.values())

    def replace(self, entries: list[CatalogEntry]) -> None:
        """Swap in a new set of rows. Later duplicates of (material, color code) win."""
        unique: dict[tuple[str, str], CatalogEntry] = {}
        for entry in entries:
            unique[(entry.material_id, entry.color_code)] = entry
        by_material: dict[str, list[CatalogEntry]] = {}
        for entry in unique.values():
            by_material.setdefault(entry.material_id, []).append(entry)
        for rows in by_material.values():
            rows.sort(key=lambda e: e.color_code)
        self._by_material = by_material

    def query_by_material(self, material_id: str) -> list[CatalogEntry]:
        return list(self._by_material.get(material_id, []))

    def query_by_material_and_color_count(self, material_id: str, color_count: int) -> list[CatalogEntry]:
        return [e for e in self._by_material.get(material_id, []) if e.color_count == color_count]

    def find(self, material_id: str, color_code: str) -> CatalogEntry | None:
        for entry in self._by_material.get(material_id, []):
            if entry.color_code == color_code:
                return entry
        return None

    @classmethod
    def from_file(cls, file_path: str, language: str = "en") -> FilamentCatalog:
        """Load the catalog from disk. A missing file gives an empty catalog."""
        if not os.path.exists(file_path):
            logger.info("No catalog file at %s, starting with an empty catalog", file_path)
            return cls()
        with open(file_path, encoding="utf-8") as f:
            entries = parse_catalog_json(f.read(), language)
        logger.info("Loaded %d catalog entries from %s", len(entries), file_path)
        return cls(entries)
