"""Plain-text tag dumps and a transport that replays them.

Dump format: one line of 32 hex digits per block, 64 lines for a 1K tag.
Sector trailers carry KeyA + access bits + KeyB so that a dump can be
written back to a blank tag. Key files list KeyA and KeyB per sector, one key
per line.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Optional

from .key_derivation import SECTOR_COUNT, derive_sector_keys
from .models import SectorKeyPair
from .transport import BLOCK_SIZE, BLOCKS_PER_SECTOR, TransportError

logger = logging.getLogger(__name__)

DUMP_BLOCK_COUNT = SECTOR_COUNT * BLOCKS_PER_SECTOR
TRAILER_ACCESS_BITS = "87878769"

_HEX_BLOCK = re.compile(r"^[0-9A-F]{32}$")


def _write_lines(path: str, lines: list[str]) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="ascii") as f:
        for line in lines:
            f.write(line + "\n")


def export_dump(path: str, blocks: list[Optional[bytes]], sector_keys: list[SectorKeyPair]) -> None:
    """Write all 64 blocks; trailers are rebuilt from the keys when both are known."""
    lines = []
    for sector in range(SECTOR_COUNT):
        for offset in range(BLOCKS_PER_SECTOR):
            index = sector * BLOCKS_PER_SECTOR + offset
            line = ""
            if offset == BLOCKS_PER_SECTOR - 1 and sector < len(sector_keys):
                key_a, key_b = sector_keys[sector]
                if key_a and key_b:
                    line = key_a.hex().upper() + TRAILER_ACCESS_BITS + key_b.hex().upper()
            if not line and index < len(blocks) and blocks[index] is not None:
                line = blocks[index].hex().upper()
            lines.append(line)
    _write_lines(path, lines)
    logger.info("Saved tag dump to %s", path)


def export_keys(path: str, sector_keys: list[SectorKeyPair]) -> None:
    lines = []
    for sector in range(SECTOR_COUNT):
        key_a, key_b = sector_keys[sector] if sector < len(sector_keys) else (None, None)
        lines.append(key_a.hex().upper() if key_a else "")
        lines.append(key_b.hex().upper() if key_b else "")
    _write_lines(path, lines)
    logger.info("Saved sector keys to %s", path)


def parse_dump(text: str) -> list[Optional[bytes]]:
    """Parse dump text. Line N is block N; blank or malformed lines become None."""
    blocks: list[Optional[bytes]] = [None] * DUMP_BLOCK_COUNT
    for index, line in enumerate(text.splitlines()[:DUMP_BLOCK_COUNT]):
        hex_text = line.replace(" ", "").upper()
        if _HEX_BLOCK.match(hex_text):
            blocks[index] = bytes.fromhex(hex_text)
    return blocks


def load_dump(path: str) -> list[Optional[bytes]]:
    with open(path, encoding="ascii", errors="replace") as f:
        return parse_dump(f.read())


def keys_from_trailers(blocks: list[Optional[bytes]]) -> list[SectorKeyPair]:
    """Recover (KeyA, KeyB) from the trailer blocks of a dump."""
    keys: list[SectorKeyPair] = []
    for sector in range(SECTOR_COUNT):
        trailer = blocks[sector * BLOCKS_PER_SECTOR + BLOCKS_PER_SECTOR - 1]
        if trailer is None:
            keys.append((None, None))
        else:
            keys.append((trailer[0:6], trailer[10:16]))
    return keys


class DumpTransport:
    """A MIFARE session backed by a dump instead of a live tag.

    Authentication checks the key against the sector's trailer (or the keys
    derived from the UID when the trailer is missing), so a dump read with the
    wrong UID fails exactly like a real tag would.
    """

    def __init__(self, blocks: list[Optional[bytes]], sector_keys: list[SectorKeyPair]) -> None:
        self._blocks = blocks
        self._keys = sector_keys
        self._connected = False
        self._authed_sector: Optional[int] = None

    @property
    def block_count(self) -> int:
        return len(self._blocks)

    def connect(self) -> None:
        self._connected = True

    def close(self) -> None:
        self._connected = False
        self._authed_sector = None

    def _authenticate(self, sector: int, key: bytes, slot: int) -> bool:
        if not self._connected:
            raise TransportError("not connected")
        expected = self._keys[sector][slot] if sector < len(self._keys) else None
        if expected is not None and expected == key:
            self._authed_sector = sector
            return True
        return False

    def authenticate_sector_with_key_a(self, sector: int, key: bytes) -> bool:
        return self._authenticate(sector, key, 0)

    def authenticate_sector_with_key_b(self, sector: int, key: bytes) -> bool:
        return self._authenticate(sector, key, 1)

    def read_block(self, block_index: int) -> bytes:
        if self._authed_sector != block_index // BLOCKS_PER_SECTOR:
            raise TransportError(f"block {block_index} not authenticated")
        data = self._blocks[block_index]
        if data is None:
            raise TransportError(f"block {block_index} missing from dump")
        return data[:BLOCK_SIZE]

    def sector_to_block(self, sector: int) -> int:
        return sector * BLOCKS_PER_SECTOR


class DumpTag:
    """Tag handle for a dump. The UID comes from block 0 unless given."""

    def __init__(self, blocks: list[Optional[bytes]], uid: Optional[bytes] = None) -> None:
        self._blocks = blocks
        if uid is None and blocks and blocks[0] is not None:
            uid = blocks[0][0:4]
        self._uid = uid

    @property
    def uid(self) -> Optional[bytes]:
        return self._uid

    def mifare(self) -> DumpTransport:
        keys = keys_from_trailers(self._blocks)
        if self._uid:
            derived = derive_sector_keys(self._uid)
            keys = [
                (a if a is not None else derived[i][0], b if b is not None else derived[i][1])
                for i, (a, b) in enumerate(keys)
            ]
        return DumpTransport(self._blocks, keys)
