"""Simulated spool tags for exercising the reader without hardware.

Builds a 1K tag image the way the factory encodes it (keys derived from the
UID, manufacturing data in blocks 1-16) and exposes it through a transport
that can be told to drop reads or authentications.
"""

from __future__ import annotations

import os
import random
import struct
import sys
from dataclasses import dataclass, field

# Add project root to path so we can import the reader package
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from spooltag.key_derivation import derive_sector_keys
from spooltag.transport import BLOCKS_PER_SECTOR, TransportError


def _text_block(text: str) -> bytes:
    return text.encode("ascii")[:16].ljust(16, b"\x00")


@dataclass
class MockSpool:
    uid: bytes
    variant_id: str = "A00-K0"
    material_id: str = "GFA00"
    filament_type: str = "PLA"
    detailed_type: str = "PLA Basic"
    color_rgba: bytes = b"\x00\x00\x00\xFF"
    spool_weight: int = 1000
    diameter: float = 1.75
    drying: tuple[int, int, int, int, int, int] = (55, 8, 1, 35, 230, 190)
    tray_uid: bytes = field(default_factory=lambda: bytes(random.getrandbits(8) for _ in range(16)))
    production_date: str = "2024_05_20_14_30"
    extra_colors: list[bytes] = field(default_factory=list)  # RGBA, as written on the tag

    def build_blocks(self) -> list[bytes]:
        blocks = [b"\x00" * 16 for _ in range(64)]
        blocks[0] = self.uid[:4].ljust(16, b"\x00")
        blocks[1] = _text_block(self.variant_id)[:8] + _text_block(self.material_id)[:8]
        blocks[2] = _text_block(self.filament_type)
        blocks[4] = _text_block(self.detailed_type)
        blocks[5] = (
            self.color_rgba
            + struct.pack("<H", self.spool_weight)
            + b"\x00\x00"
            + struct.pack("<f", self.diameter)
            + b"\x00\x00\x00\x00"
        )
        blocks[6] = struct.pack("<6H", *self.drying) + b"\x00\x00\x00\x00"
        blocks[9] = self.tray_uid
        blocks[12] = _text_block(self.production_date)
        if self.extra_colors:
            body = b"".join(c[::-1] for c in self.extra_colors[:3])
            blocks[16] = (struct.pack("<HH", 0x0002, len(self.extra_colors) + 1) + body).ljust(16, b"\x00")

        keys = derive_sector_keys(self.uid)
        for sector, (key_a, key_b) in enumerate(keys):
            blocks[sector * BLOCKS_PER_SECTOR + 3] = key_a + bytes.fromhex("87878769") + key_b
        return blocks


class FlakyTransport:
    """Transport over a tag image that fails a configurable share of calls."""

    def __init__(self, blocks: list[bytes], read_failure_rate: float = 0.0,
                 auth_failure_rate: float = 0.0, seed: int | None = None) -> None:
        # Keys come from the sector trailers, as on a real card
        self._keys = [
            (blocks[s * BLOCKS_PER_SECTOR + 3][:6], blocks[s * BLOCKS_PER_SECTOR + 3][10:16])
            for s in range(len(blocks) // BLOCKS_PER_SECTOR)
        ]
        self._blocks = blocks
        self._read_failure_rate = read_failure_rate
        self._auth_failure_rate = auth_failure_rate
        self._random = random.Random(seed)
        self._authed: int | None = None
        self.calls = 0

    @property
    def block_count(self) -> int:
        return len(self._blocks)

    def connect(self) -> None:
        self._authed = None

    def close(self) -> None:
        self._authed = None

    def _auth(self, sector: int, key: bytes, slot: int) -> bool:
        self.calls += 1
        if self._random.random() < self._auth_failure_rate:
            self._authed = None
            raise TransportError("tag lost during authentication")
        if self._keys[sector][slot] == key:
            self._authed = sector
            return True
        return False

    def authenticate_sector_with_key_a(self, sector: int, key: bytes) -> bool:
        return self._auth(sector, key, 0)

    def authenticate_sector_with_key_b(self, sector: int, key: bytes) -> bool:
        return self._auth(sector, key, 1)

    def read_block(self, block_index: int) -> bytes:
        self.calls += 1
        if self._authed != block_index // BLOCKS_PER_SECTOR:
            raise TransportError("sector not authenticated")
        if self._random.random() < self._read_failure_rate:
            self._authed = None
            raise TransportError("read timeout")
        return self._blocks[block_index]

    def sector_to_block(self, sector: int) -> int:
        return sector * BLOCKS_PER_SECTOR


class MockTag:
    """A spool tag in the field. ``reported_uid`` simulates a cloned image."""

    def __init__(self, spool: MockSpool, reported_uid: bytes | None = None, **transport_kwargs) -> None:
        self._spool = spool
        self._reported_uid = reported_uid
        self._blocks = spool.build_blocks()
        self._transport_kwargs = transport_kwargs

    @property
    def uid(self) -> bytes:
        return self._reported_uid if self._reported_uid is not None else self._spool.uid

    def mifare(self) -> FlakyTransport:
        return FlakyTransport(self._blocks, **self._transport_kwargs)
