"""Sector authentication and block reads with retry.

A dropped RF field invalidates the authenticated session, so a failed block
read re-runs the full authentication cycle before the physical read is
retried.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from .config import ReaderConfig
from .models import SectorReadResult
from .transport import BLOCK_SIZE, BLOCKS_PER_SECTOR, MifareTransport, TransportError

logger = logging.getLogger(__name__)


class SectorAuthenticator:
    """Authenticates one sector, trying KeyA then KeyB for several rounds."""

    def __init__(self, transport: MifareTransport, retry_count: int = 2) -> None:
        self._transport = transport
        self._retry_count = retry_count

    def authenticate(self, sector: int, key_a: Optional[bytes], key_b: Optional[bytes]) -> bool:
        for attempt in range(self._retry_count + 1):
            try:
                if key_a is not None and self._transport.authenticate_sector_with_key_a(sector, key_a):
                    return True
                if key_b is not None and self._transport.authenticate_sector_with_key_b(sector, key_b):
                    return True
            except Exception as e:
                logger.debug("Auth attempt %d on sector %d raised: %s", attempt + 1, sector, e)
        logger.debug("Sector %d authentication failed after %d rounds", sector, self._retry_count + 1)
        return False


class BlockReader:
    """Reads the blocks of an authenticated sector."""

    def __init__(
        self,
        transport: MifareTransport,
        authenticator: SectorAuthenticator,
        retry_count: int = 1,
        inter_block_delay_ms: int = 0,
    ) -> None:
        self._transport = transport
        self._auth = authenticator
        self._retry_count = retry_count
        self._delay = inter_block_delay_ms / 1000.0

    @classmethod
    def from_config(cls, transport: MifareTransport, config: ReaderConfig) -> BlockReader:
        auth = SectorAuthenticator(transport, config.auth_retry_count)
        return cls(transport, auth, config.read_block_retry_count, config.inter_block_delay_ms)

    def read_sector(
        self,
        sector: int,
        key_a: Optional[bytes],
        key_b: Optional[bytes],
        include_trailer: bool = True,
    ) -> SectorReadResult:
        """Authenticate and read 3 data blocks (plus the trailer if requested).

        Blocks read before a failure are still returned alongside the error.
        """
        if not self._auth.authenticate(sector, key_a, key_b):
            return SectorReadResult([], f"sector {sector} authentication failed")

        start = self._transport.sector_to_block(sector)
        count = BLOCKS_PER_SECTOR if include_trailer else BLOCKS_PER_SECTOR - 1

        blocks: list[bytes] = []
        for offset in range(count):
            block_index = start + offset
            data, last_error = self._read_block(sector, block_index, key_a, key_b)
            if data is None:
                reason = f"{type(last_error).__name__}: {last_error}" if last_error else "unknown error"
                return SectorReadResult(blocks, f"read block {block_index} failed: {reason}")
            blocks.append(data)
            if self._delay > 0:
                time.sleep(self._delay)

        return SectorReadResult(blocks, "")

    def _read_block(
        self,
        sector: int,
        block_index: int,
        key_a: Optional[bytes],
        key_b: Optional[bytes],
    ) -> tuple[Optional[bytes], Optional[Exception]]:
        last_error: Optional[Exception] = None
        for attempt in range(self._retry_count + 1):
            try:
                raw = self._transport.read_block(block_index)
                if len(raw) < BLOCK_SIZE:
                    raise TransportError(f"short block ({len(raw)} bytes)")
                return bytes(raw[:BLOCK_SIZE]), None
            except Exception as e:
                last_error = e
                logger.debug("Read of block %d failed (attempt %d): %s", block_index, attempt + 1, e)
                if not self._auth.authenticate(sector, key_a, key_b):
                    break
        return None, last_error
