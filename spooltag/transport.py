"""Interface to the hardware that exchanges raw bytes with a tag.

The reader core never talks to a device directly. Anything that implements
these protocols (a PC/SC reader, a PN532 bridge, a replayed dump) can be
plugged in.
"""

from __future__ import annotations

from typing import Optional, Protocol

BLOCK_SIZE = 16
BLOCKS_PER_SECTOR = 4


class TransportError(IOError):
    """A single transport call failed (tag moved away, CRC error, timeout...)."""


class MifareTransport(Protocol):
    """A MIFARE Classic session. Every call may raise."""

    @property
    def block_count(self) -> int: ...

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def authenticate_sector_with_key_a(self, sector: int, key: bytes) -> bool: ...

    def authenticate_sector_with_key_b(self, sector: int, key: bytes) -> bool: ...

    def read_block(self, block_index: int) -> bytes: ...

    def sector_to_block(self, sector: int) -> int: ...


class TagHandle(Protocol):
    """A tag that has entered the reader's field."""

    @property
    def uid(self) -> Optional[bytes]: ...

    def mifare(self) -> Optional[MifareTransport]:
        """The MIFARE Classic session for this tag, or None if the tag is another technology."""
        ...
