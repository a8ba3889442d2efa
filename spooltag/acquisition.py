"""Raw tag acquisition: derive keys, visit sectors, assemble the block buffer.

This layer only authenticates and reads. Field decoding, catalog matching and
inventory updates happen downstream in the tag processor.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from .config import ReaderConfig
from .key_derivation import SECTOR_COUNT, KeyCache
from .models import (
    AcquisitionFailure,
    AcquisitionSuccess,
    FailureReason,
    RawTagData,
    ReadStatus,
    SectorKeyPair,
)
from .sector_reader import BlockReader
from .transport import BLOCKS_PER_SECTOR, TagHandle

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_COUNT = 64

# Sectors 0-4 hold all manufacturing data (blocks 0-19)
FAST_SECTORS = range(0, 5)

# Only these sectors carry data the rest of the pipeline depends on
CRITICAL_SECTORS = frozenset({0, 1})

AcquisitionResult = Union[AcquisitionSuccess, AcquisitionFailure]


def classify_status(errors: list[str], blocks: Iterable[Optional[bytes]]) -> ReadStatus:
    """Overall outcome of a read: any block read decides between success and partial."""
    any_block = any(b is not None for b in blocks)
    if not any_block:
        return ReadStatus.FAILURE
    if errors:
        return ReadStatus.PARTIAL
    return ReadStatus.SUCCESS


class TagAcquisition:
    """Drives authentication and block reads for one tag presentation."""

    def __init__(self, config: ReaderConfig, key_cache: Optional[KeyCache] = None) -> None:
        self._config = config
        self._key_cache = key_cache if key_cache is not None else KeyCache()

    @property
    def key_cache(self) -> KeyCache:
        return self._key_cache

    def acquire(self, tag: TagHandle, read_all_sectors: Optional[bool] = None) -> AcquisitionResult:
        if read_all_sectors is None:
            read_all_sectors = self._config.read_all_sectors

        uid_hex = ""
        key_hexes: dict[str, str] = {}
        mifare = None
        try:
            uid = tag.uid
            if not uid:
                logger.warning("Tag presented no UID")
                return AcquisitionFailure(FailureReason.UID_MISSING, "UID missing")
            uid_hex = uid.hex().upper()
            logger.info("Reading tag UID %s", uid_hex)

            sector_keys = self._key_cache.get_or_derive(uid)
            key_hexes = _diagnostic_key_hexes(sector_keys)

            mifare = tag.mifare()
            if mifare is None:
                logger.warning("Tag %s is not a MIFARE Classic tag", uid_hex)
                return AcquisitionFailure(
                    FailureReason.TRANSPORT_UNSUPPORTED,
                    "MIFARE Classic not supported",
                    uid_hex=uid_hex,
                    **key_hexes,
                )

            mifare.connect()
            block_count = getattr(mifare, "block_count", DEFAULT_BLOCK_COUNT) or DEFAULT_BLOCK_COUNT
            raw_blocks: list[Optional[bytes]] = [None] * block_count
            errors: list[str] = []
            reader = BlockReader.from_config(mifare, self._config)

            sectors = range(SECTOR_COUNT) if read_all_sectors else FAST_SECTORS
            for sector in sectors:
                key_a, key_b = sector_keys[sector] if sector < len(sector_keys) else (None, None)
                result = reader.read_sector(sector, key_a, key_b, self._config.read_trailer)

                start = sector * BLOCKS_PER_SECTOR
                for offset, data in enumerate(result.blocks):
                    if start + offset < len(raw_blocks):
                        raw_blocks[start + offset] = data

                if result.error:
                    logger.warning("Sector %d read failed: %s", sector, result.error)
                    if sector in CRITICAL_SECTORS:
                        errors.append(result.error)

            if not read_all_sectors:
                logger.debug("Skipped sectors %d-%d (fast read)", FAST_SECTORS.stop, SECTOR_COUNT - 1)

            return AcquisitionSuccess(
                RawTagData(
                    uid_hex=uid_hex,
                    sector_keys=sector_keys,
                    raw_blocks=raw_blocks,
                    errors=errors,
                )
            )
        except Exception as e:
            logger.error("Tag read raised %s: %s", type(e).__name__, e)
            return AcquisitionFailure(
                FailureReason.EXCEPTION,
                str(e),
                uid_hex=uid_hex,
                **key_hexes,
            )
        finally:
            if mifare is not None:
                try:
                    mifare.close()
                except Exception as e:
                    logger.debug("Ignoring close failure: %s", e)


def _diagnostic_key_hexes(sector_keys: list[SectorKeyPair]) -> dict[str, str]:
    def hex_of(sector: int, index: int) -> str:
        if sector >= len(sector_keys):
            return ""
        key = sector_keys[sector][index]
        return key.hex().upper() if key else ""

    return {
        "key_a0_hex": hex_of(0, 0),
        "key_b0_hex": hex_of(0, 1),
        "key_a1_hex": hex_of(1, 0),
        "key_b1_hex": hex_of(1, 1),
    }
