"""Resolve decoded tag data against the reference catalog."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from . import block_decoder as bd
from .catalog import CatalogAccessor
from .colors import colors_match, normalize_colors
from .models import CatalogEntry, DecodedField, DisplayData, MaterialDescriptor

logger = logging.getLogger(__name__)

# Decoded field label -> display label for the secondary info list
SECONDARY_LABELS: dict[str, str] = {
    bd.LABEL_SPOOL_WEIGHT: "Filament Weight",
    bd.LABEL_DIAMETER: "Filament Diameter",
    bd.LABEL_DRYING_TEMP: "Drying Temperature",
    bd.LABEL_DRYING_TIME: "Drying Time",
    bd.LABEL_MAX_HOTEND_TEMP: "Max Hotend Temperature",
    bd.LABEL_MIN_HOTEND_TEMP: "Min Hotend Temperature",
    bd.LABEL_PRODUCTION_DATE: "Production Date",
}


def is_likely_hex(value: str) -> bool:
    """True for strings that look like raw hex dumps rather than names."""
    cleaned = value.replace(" ", "")
    if len(cleaned) < 8:
        return False
    return all(c in "0123456789abcdefABCDEF" for c in cleaned)


class FilamentMatcher:
    """Finds the catalog row for a material id + color set."""

    def __init__(self, catalog: Optional[CatalogAccessor]) -> None:
        self._catalog = catalog

    def candidates(self, material_id: str, colors: Sequence[str]) -> list[CatalogEntry]:
        """Rows with the same color count if any, else every row of the material."""
        if self._catalog is None:
            return []
        normalized = normalize_colors(colors)
        if normalized:
            rows = self._catalog.query_by_material_and_color_count(material_id, len(normalized))
            if rows:
                return rows
            logger.debug("No %s rows with %d colors, falling back to material only", material_id, len(normalized))
        return self._catalog.query_by_material(material_id)

    def match(self, material_id: str, colors: Sequence[str]) -> Optional[CatalogEntry]:
        if not material_id.strip() or self._catalog is None:
            return None
        normalized = normalize_colors(colors)
        rows = self.candidates(material_id, normalized)
        if normalized:
            for entry in rows:
                if colors_match(entry.color_values, normalized):
                    return entry
            logger.info("No catalog color match for %s %s", material_id, ",".join(normalized))
            return None
        # Nothing to compare against: catalog order decides
        return rows[0] if rows else None

    def resolve_display(self, desc: MaterialDescriptor) -> tuple[DisplayData, Optional[CatalogEntry]]:
        """Display fields from the matched catalog row, or from the tag itself."""
        entry = self.match(desc.material_id, desc.color_values)
        filament_type = color_name = color_code = color_type = ""
        colors = tuple(desc.color_values)
        if entry is not None:
            filament_type = entry.filament_type
            color_name = entry.color_name
            color_code = entry.color_code
            color_type = entry.color_type
            if entry.color_values:
                colors = tuple(entry.color_values)

        if not filament_type:
            for label in (bd.LABEL_DETAILED_TYPE, bd.LABEL_FILAMENT_TYPE):
                fallback = desc.field_value(label)
                if fallback and not is_likely_hex(fallback):
                    filament_type = fallback
                    break

        secondary = build_secondary_fields(desc.fields)
        if color_type:
            secondary.insert(0, DecodedField("Color Type", color_type))

        display = DisplayData(
            type=filament_type,
            color_name=color_name,
            color_code=color_code,
            color_type=color_type,
            color_values=colors,
            secondary_fields=tuple(secondary),
        )
        return display, entry


def build_secondary_fields(fields: Sequence[DecodedField]) -> list[DecodedField]:
    result = []
    for label, display_label in SECONDARY_LABELS.items():
        value = next((f.value for f in fields if f.label == label), "")
        if value.strip() and not is_likely_hex(value):
            result.append(DecodedField(display_label, value))
    return result
