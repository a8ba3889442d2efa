"""Per-tag sector key derivation.

Every sector of a spool tag is protected by a 6-byte KeyA and KeyB derived
from the tag UID with HKDF-SHA256:

  extract: PRK = HMAC-SHA256(salt=HKDF_SALT, ikm=UID)
  expand:  OKM = HKDF-Expand(PRK, info, 6 * 16)

The A and B families use different info strings. OKM is sliced into sixteen
consecutive 6-byte keys in sector order.
"""

from __future__ import annotations

import logging
import threading

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .models import SectorKeyPair

logger = logging.getLogger(__name__)

KEY_LENGTH_BYTES = 6
SECTOR_COUNT = 16

HKDF_SALT = bytes([
    0x9A, 0x75, 0x9C, 0xF2, 0xC4, 0xF7, 0xCA, 0xFF,
    0x22, 0x2C, 0xB9, 0x76, 0x9B, 0x41, 0xBC, 0x96,
])

INFO_A = b"RFID-A\x00"
INFO_B = b"RFID-B\x00"


def derive_keys(uid: bytes, info: bytes) -> list[bytes]:
    """Derive the sixteen 6-byte keys of one key family."""
    okm = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH_BYTES * SECTOR_COUNT,
        salt=HKDF_SALT,
        info=info,
    ).derive(uid)
    return [
        okm[i * KEY_LENGTH_BYTES:(i + 1) * KEY_LENGTH_BYTES]
        for i in range(SECTOR_COUNT)
    ]


def derive_sector_keys(uid: bytes) -> list[SectorKeyPair]:
    """Derive (KeyA, KeyB) for all sixteen sectors of a tag."""
    keys_a = derive_keys(uid, INFO_A)
    keys_b = derive_keys(uid, INFO_B)
    return list(zip(keys_a, keys_b))


class KeyCache:
    """UID -> derived sector keys, shared between reads of the same tag.

    Entries are never evicted; the cache is bounded by the number of distinct
    tags seen. Two threads racing on the same UID both derive, which is
    harmless since derivation is deterministic.
    """

    def __init__(self) -> None:
        self._keys: dict[str, list[SectorKeyPair]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __contains__(self, uid: bytes) -> bool:
        with self._lock:
            return uid.hex().upper() in self._keys

    def put(self, uid: bytes, keys: list[SectorKeyPair]) -> None:
        with self._lock:
            self._keys[uid.hex().upper()] = list(keys)

    def get_or_derive(self, uid: bytes) -> list[SectorKeyPair]:
        uid_hex = uid.hex().upper()
        with self._lock:
            cached = self._keys.get(uid_hex)
        if cached is not None:
            return cached
        keys = derive_sector_keys(uid)
        logger.debug("Derived sector keys for UID %s", uid_hex)
        with self._lock:
            return self._keys.setdefault(uid_hex, keys)
