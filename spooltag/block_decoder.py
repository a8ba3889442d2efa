"""Decode the fixed-layout manufacturing blocks of a spool tag.

Layout (MIFARE Classic 1K, all integers little-endian):
  Block 1:  bytes 0-7 material variant id, bytes 8-15 material id
  Block 2:  filament type, e.g. "PLA"
  Block 4:  detailed filament type, e.g. "PLA Basic"
  Block 5:  bytes 0-3 color RGBA, 4-5 spool weight (g), 8-15 diameter (mm)
  Block 6:  uint16 drying temp, drying time, bed temp type, bed temp,
            max hotend temp, min hotend temp
  Block 9:  tray UID (raw, used as inventory key)
  Block 12: production date as ASCII "YYYY_MM_DD_HH_MM"
  Block 16: multi-color extension (marker, count, RGBA entries)

Text fields are padded with 0x00 or 0xFF. A missing or short block simply
leaves its fields out of the result.
"""

from __future__ import annotations

import logging
import struct
from typing import Optional, Sequence

from .colors import normalize_color
from .models import DecodedField, MaterialDescriptor
from .transport import BLOCK_SIZE

logger = logging.getLogger(__name__)

LABEL_VARIANT_ID = "Block 1 Material Variant ID"
LABEL_MATERIAL_ID = "Block 1 Material ID"
LABEL_FILAMENT_TYPE = "Block 2 Filament Type"
LABEL_DETAILED_TYPE = "Block 4 Detailed Filament Type"
LABEL_COLOR_RGBA = "Block 5 Color RGBA"
LABEL_SPOOL_WEIGHT = "Block 5 Spool Weight"
LABEL_DIAMETER = "Block 5 Filament Diameter"
LABEL_DRYING_TEMP = "Block 6 Drying Temperature"
LABEL_DRYING_TIME = "Block 6 Drying Time"
LABEL_BED_TEMP_TYPE = "Block 6 Bed Temperature Type"
LABEL_BED_TEMP = "Block 6 Bed Temperature"
LABEL_MAX_HOTEND_TEMP = "Block 6 Max Hotend Temperature"
LABEL_MIN_HOTEND_TEMP = "Block 6 Min Hotend Temperature"
LABEL_PRODUCTION_DATE = "Block 12 Production Date"

MULTI_COLOR_MARKER = 0x0002


def _trim_padding(data: bytes) -> bytes:
    """Strip trailing 0x00 / 0xFF padding."""
    end = len(data)
    while end > 0 and data[end - 1] in (0x00, 0xFF):
        end -= 1
    return data[:end]


def _is_printable(data: bytes) -> bool:
    return all(0x20 <= b <= 0x7E for b in data)


def ascii_or_hex(data: bytes) -> str:
    """Printable ASCII as text, anything else as uppercase hex."""
    trimmed = _trim_padding(data)
    if not trimmed:
        return ""
    if _is_printable(trimmed):
        return trimmed.decode("ascii")
    return trimmed.hex().upper()


def ascii_only(data: bytes) -> str:
    """Printable ASCII as text, otherwise an empty string."""
    trimmed = _trim_padding(data)
    if not trimmed or not _is_printable(trimmed):
        return ""
    return trimmed.decode("ascii")


def _uint16_le(data: bytes, offset: int) -> Optional[int]:
    if offset + 2 > len(data):
        return None
    return struct.unpack_from("<H", data, offset)[0]


def _uint16_be(data: bytes, offset: int) -> Optional[int]:
    if offset + 2 > len(data):
        return None
    return struct.unpack_from(">H", data, offset)[0]


def parse_diameter(block5: bytes) -> Optional[float]:
    """Diameter at offset 8: float32 if bytes 12-15 are zero, else float64."""
    if len(block5) < BLOCK_SIZE:
        return None
    if block5[12:16] == b"\x00\x00\x00\x00":
        return struct.unpack_from("<f", block5, 8)[0]
    return struct.unpack_from("<d", block5, 8)[0]


def format_production_date(value: str) -> str:
    """ "2024_03_15_08_30" -> "2024-03-15 08:30"; anything else passes through."""
    raw = value.strip()
    parts = raw.split("_")
    if len(parts) < 5:
        return raw
    year, month, day, hour, minute = parts[:5]
    if not all(p.isdigit() for p in (year, month, day, hour, minute)):
        return raw
    return f"{year}-{month}-{day} {hour}:{minute}"


def parse_additional_colors(block16: Optional[bytes]) -> list[str]:
    """Decode the multi-color extension block.

    Offsets 0-1 hold a marker (0x0002), 2-3 a color count, then one RGBA entry
    per 4 bytes, stored byte-reversed. Tags in the field disagree on both the
    byte order of the header and on whether the count includes the primary
    color, so every (count, count - 1) x (LE, BE) reading is tried and the one
    yielding the most non-empty colors wins.
    """
    if block16 is None or len(block16) < 8:
        return []

    marker_le = _uint16_le(block16, 0)
    marker_be = _uint16_be(block16, 0)
    if marker_le != MULTI_COLOR_MARKER and marker_be != MULTI_COLOR_MARKER:
        return []

    count_le = _uint16_le(block16, 2) or 0
    count_be = _uint16_be(block16, 2) or 0
    slots = (len(block16) - 4) // 4

    candidates = [c for c in dict.fromkeys((count_le, count_le - 1, count_be, count_be - 1)) if c > 0]

    def parse_by_limit(limit: int) -> list[str]:
        colors = []
        for i in range(min(limit, slots)):
            entry = block16[4 + i * 4:8 + i * 4]
            if entry == b"\x00\x00\x00\x00":
                continue
            color = normalize_color("#" + entry[::-1].hex())
            if color:
                colors.append(color)
        return colors

    best: list[str] = []
    for candidate in candidates:
        colors = parse_by_limit(candidate)
        if len(colors) > len(best):
            best = colors

    if best:
        logger.debug(
            "Block 16 colors: marker LE=0x%04X BE=0x%04X count LE=%d BE=%d -> %s",
            marker_le, marker_be, count_le, count_be, ",".join(best),
        )
    return best


def _block(blocks: Sequence[Optional[bytes]], index: int) -> Optional[bytes]:
    if index >= len(blocks):
        return None
    data = blocks[index]
    if data is None or len(data) < BLOCK_SIZE:
        return None
    return data


def decode_blocks(blocks: Sequence[Optional[bytes]]) -> MaterialDescriptor:
    """Decode a raw block buffer (indexed by absolute block number)."""
    desc = MaterialDescriptor()
    fields = desc.fields

    block1 = _block(blocks, 1)
    if block1 is not None:
        desc.variant_id = ascii_or_hex(block1[0:8])
        material_bytes = block1[8:16]
        desc.material_id = ascii_only(material_bytes)
        material_display = desc.material_id or material_bytes.hex().upper()
        if desc.variant_id:
            fields.append(DecodedField(LABEL_VARIANT_ID, desc.variant_id))
        if material_display:
            fields.append(DecodedField(LABEL_MATERIAL_ID, material_display))

    block2 = _block(blocks, 2)
    if block2 is not None:
        desc.filament_type = ascii_or_hex(block2)
        if desc.filament_type:
            fields.append(DecodedField(LABEL_FILAMENT_TYPE, desc.filament_type))

    block4 = _block(blocks, 4)
    if block4 is not None:
        desc.detailed_filament_type = ascii_or_hex(block4)
        if desc.detailed_filament_type:
            fields.append(DecodedField(LABEL_DETAILED_TYPE, desc.detailed_filament_type))

    block5 = _block(blocks, 5)
    if block5 is not None:
        rgba = "#" + block5[0:4].hex().upper()
        fields.append(DecodedField(LABEL_COLOR_RGBA, rgba))
        desc.color_values.append(normalize_color(rgba))

        desc.spool_weight_grams = _uint16_le(block5, 4)
        fields.append(DecodedField(LABEL_SPOOL_WEIGHT, f"{desc.spool_weight_grams} g"))

        desc.diameter_mm = parse_diameter(block5)
        if desc.diameter_mm is not None:
            fields.append(DecodedField(LABEL_DIAMETER, f"{desc.diameter_mm:.3f} mm"))

    block6 = _block(blocks, 6)
    if block6 is not None:
        (
            desc.drying_temperature,
            desc.drying_time_hours,
            desc.bed_temperature_type,
            desc.bed_temperature,
            desc.max_hotend_temperature,
            desc.min_hotend_temperature,
        ) = struct.unpack_from("<6H", block6, 0)
        fields.append(DecodedField(LABEL_DRYING_TEMP, f"{desc.drying_temperature} °C"))
        fields.append(DecodedField(LABEL_DRYING_TIME, f"{desc.drying_time_hours} h"))
        fields.append(DecodedField(LABEL_BED_TEMP_TYPE, str(desc.bed_temperature_type)))
        fields.append(DecodedField(LABEL_BED_TEMP, f"{desc.bed_temperature} °C"))
        fields.append(DecodedField(LABEL_MAX_HOTEND_TEMP, f"{desc.max_hotend_temperature} °C"))
        fields.append(DecodedField(LABEL_MIN_HOTEND_TEMP, f"{desc.min_hotend_temperature} °C"))

    block12 = _block(blocks, 12)
    if block12 is not None:
        desc.production_date = format_production_date(ascii_or_hex(block12))
        if desc.production_date:
            fields.append(DecodedField(LABEL_PRODUCTION_DATE, desc.production_date))

    block16 = blocks[16] if len(blocks) > 16 else None
    desc.color_values.extend(parse_additional_colors(block16))

    logger.debug("Decoded colors: %s", ", ".join(desc.color_values))
    return desc


def tray_uid_hex(blocks: Sequence[Optional[bytes]]) -> str:
    """Block 9 verbatim as uppercase hex, or "" if it was not read."""
    if len(blocks) <= 9 or blocks[9] is None:
        return ""
    return blocks[9].hex().upper()
