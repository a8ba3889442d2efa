"""Shared test fixtures."""

from __future__ import annotations

from typing import Optional

import pytest

from spooltag.catalog import FilamentCatalog
from spooltag.config import ReaderConfig
from spooltag.inventory_store import InventoryStore
from spooltag.models import CatalogEntry, SectorKeyPair
from spooltag.transport import BLOCKS_PER_SECTOR


class FakeTransport:
    """Scriptable MIFARE session.

    Without sector keys every authentication succeeds, except for sectors in
    ``locked_sectors``. ``auth_script`` and ``read_script`` queue outcomes
    (a value, or an exception to raise) ahead of the default behavior.
    """

    def __init__(
        self,
        blocks: Optional[dict[int, bytes]] = None,
        sector_keys: Optional[list[SectorKeyPair]] = None,
        block_count: int = 64,
        locked_sectors: frozenset[int] = frozenset(),
        auth_script: Optional[list] = None,
        read_script: Optional[dict[int, list]] = None,
        connect_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
    ) -> None:
        self.blocks = blocks or {}
        self.sector_keys = sector_keys
        self._block_count = block_count
        self.locked_sectors = locked_sectors
        self.auth_script = list(auth_script or [])
        self.read_script = {k: list(v) for k, v in (read_script or {}).items()}
        self.connect_error = connect_error
        self.close_error = close_error
        self.auth_calls: list[tuple[int, str]] = []
        self.read_calls: list[int] = []
        self.connected = False
        self.closed = False

    @property
    def block_count(self) -> int:
        return self._block_count

    def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    def _auth(self, sector: int, key: bytes, slot: str) -> bool:
        self.auth_calls.append((sector, slot))
        if self.auth_script:
            outcome = self.auth_script.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        if sector in self.locked_sectors:
            return False
        if self.sector_keys is None:
            return True
        return self.sector_keys[sector][0 if slot == "a" else 1] == key

    def authenticate_sector_with_key_a(self, sector: int, key: bytes) -> bool:
        return self._auth(sector, key, "a")

    def authenticate_sector_with_key_b(self, sector: int, key: bytes) -> bool:
        return self._auth(sector, key, "b")

    def read_block(self, block_index: int) -> bytes:
        self.read_calls.append(block_index)
        queue = self.read_script.get(block_index)
        if queue:
            outcome = queue.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return self.blocks.get(block_index, bytes([block_index]) * 16)

    def sector_to_block(self, sector: int) -> int:
        return sector * BLOCKS_PER_SECTOR


class FakeTag:
    def __init__(self, uid: Optional[bytes], transport: Optional[FakeTransport]) -> None:
        self._uid = uid
        self._transport = transport

    @property
    def uid(self) -> Optional[bytes]:
        return self._uid

    def mifare(self) -> Optional[FakeTransport]:
        return self._transport


@pytest.fixture
def config(tmp_path) -> ReaderConfig:
    return ReaderConfig(
        auth_retry_count=2,
        read_block_retry_count=1,
        inventory_file_path=str(tmp_path / "inventory.json"),
        catalog_file_path=str(tmp_path / "filaments_color_codes.json"),
    )


@pytest.fixture
def store(config) -> InventoryStore:
    store = InventoryStore(config.inventory_file_path)
    store.load()
    return store


@pytest.fixture
def catalog_entries() -> list[CatalogEntry]:
    return [
        CatalogEntry("GFA00", "10101", "PLA Basic", "Black", "single", ("#000000FF",)),
        CatalogEntry("GFA00", "10100", "PLA Basic", "Jade White", "single", ("#FFFFFFFF",)),
        CatalogEntry("GFA00", "10900", "PLA Basic", "Red Blue", "multi-color", ("#FF0000FF", "#0000FFFF")),
        CatalogEntry("GFG00", "33102", "PETG HF", "Orange", "single", ("#FF6A13FF",)),
    ]


@pytest.fixture
def catalog(catalog_entries) -> FilamentCatalog:
    return FilamentCatalog(catalog_entries)


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def fake_tag():
    return FakeTag
