"""Shared data models for the tag reader."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

# (key_a, key_b) for one sector; either may be missing
SectorKeyPair = tuple[Optional[bytes], Optional[bytes]]


class FailureReason(Enum):
    UID_MISSING = "uid_missing"
    TRANSPORT_UNSUPPORTED = "transport_unsupported"
    EXCEPTION = "exception"


class ReadStatus(Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass(frozen=True)
class DecodedField:
    label: str
    value: str


@dataclass
class SectorReadResult:
    """Blocks read from one sector, plus an error string if the sector was cut short."""

    blocks: list[bytes] = field(default_factory=list)
    error: str = ""


@dataclass
class RawTagData:
    """Output of the acquisition layer. No field decoding happens here."""

    uid_hex: str
    sector_keys: list[SectorKeyPair]
    raw_blocks: list[Optional[bytes]]
    errors: list[str] = field(default_factory=list)

    def key_hex(self, sector: int, which: str) -> str:
        """Hex of KeyA ("a") or KeyB ("b") for a sector, empty if unknown."""
        if sector >= len(self.sector_keys):
            return ""
        key = self.sector_keys[sector][0 if which == "a" else 1]
        return key.hex().upper() if key else ""

    @property
    def blocks_read(self) -> int:
        return sum(1 for b in self.raw_blocks if b is not None)


@dataclass
class AcquisitionSuccess:
    data: RawTagData


@dataclass
class AcquisitionFailure:
    reason: FailureReason
    message: str
    uid_hex: str = ""
    key_a0_hex: str = ""
    key_b0_hex: str = ""
    key_a1_hex: str = ""
    key_b1_hex: str = ""


@dataclass
class MaterialDescriptor:
    """Typed view of the decoded manufacturing blocks."""

    fields: list[DecodedField] = field(default_factory=list)
    variant_id: str = ""
    material_id: str = ""
    filament_type: str = ""  # block 2, e.g. "PLA"
    detailed_filament_type: str = ""  # block 4, e.g. "PLA Basic"
    color_values: list[str] = field(default_factory=list)  # normalized "#RRGGBBAA"
    spool_weight_grams: Optional[int] = None
    diameter_mm: Optional[float] = None
    drying_temperature: Optional[int] = None
    drying_time_hours: Optional[int] = None
    bed_temperature_type: Optional[int] = None
    bed_temperature: Optional[int] = None
    max_hotend_temperature: Optional[int] = None
    min_hotend_temperature: Optional[int] = None
    production_date: str = ""

    def field_value(self, *labels: str) -> str:
        """First non-blank value among the given labels, in priority order."""
        for label in labels:
            for f in self.fields:
                if f.label == label and f.value.strip():
                    return f.value
        return ""


@dataclass(frozen=True)
class CatalogEntry:
    """One row of the reference catalog, keyed by (material_id, color_code)."""

    material_id: str
    color_code: str
    filament_type: str
    color_name: str
    color_type: str  # "single", "gradient", "multi-color"
    color_values: tuple[str, ...] = ()
    detailed_filament_type: str = ""

    @property
    def color_count(self) -> int:
        return len(self.color_values)


@dataclass(frozen=True)
class DisplayData:
    type: str = ""
    color_name: str = ""
    color_code: str = ""
    color_type: str = ""
    color_values: tuple[str, ...] = ()
    secondary_fields: tuple[DecodedField, ...] = ()


@dataclass
class TrayInventoryRecord:
    """Persisted inventory state for one physical tray (keyed by tray UID hex)."""

    tray_uid: str
    remaining_percent: float
    remaining_grams: Optional[int] = None
    total_weight_grams: Optional[int] = None
    material_id: str = ""
    material_type: str = ""
    material_detailed_type: str = ""
    color_name: str = ""
    color_code: str = ""
    color_type: str = ""
    color_values: list[str] = field(default_factory=list)
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class TagReadResult:
    """Everything a display or voice layer needs about one tag presentation."""

    status: ReadStatus
    uid_hex: str = ""
    key_a0_hex: str = ""
    key_b0_hex: str = ""
    key_a1_hex: str = ""
    key_b1_hex: str = ""
    block_hexes: tuple[str, ...] = ()
    fields: tuple[DecodedField, ...] = ()
    display: DisplayData = field(default_factory=DisplayData)
    tray_uid_hex: str = ""
    remaining_percent: float = 100.0
    remaining_grams: int = 0
    total_weight_grams: int = 0
    error: str = ""
    failure_reason: Optional[FailureReason] = None
