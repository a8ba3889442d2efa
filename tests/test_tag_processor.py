"""End-to-end tests: tag in, display data and inventory out."""

from __future__ import annotations

import os
from dataclasses import FrozenInstanceError

import pytest

from simulation.mock_tag import MockSpool, MockTag
from spooltag.inventory import InventoryReconciler
from spooltag.matcher import FilamentMatcher
from spooltag.models import FailureReason, ReadStatus
from spooltag.tag_processor import DISPLAY_BLOCK_COUNT, TagProcessor
from spooltag.transport import TransportError

UID = bytes.fromhex("5AC3E901")
TRAY = bytes(range(16))
TRAY_HEX = TRAY.hex().upper()


@pytest.fixture
def black_spool() -> MockSpool:
    return MockSpool(uid=UID, color_rgba=bytes.fromhex("000000FF"), tray_uid=TRAY)


@pytest.fixture
def processor(config, catalog, store) -> TagProcessor:
    return TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store))


class TestReadTag:
    def test_clean_read(self, processor, black_spool, store):
        result = processor.read_tag(MockTag(black_spool))

        assert result.status == ReadStatus.SUCCESS
        assert result.error == ""
        assert result.failure_reason is None
        assert result.uid_hex == "5AC3E901"
        assert result.key_a0_hex and result.key_b1_hex
        assert result.tray_uid_hex == TRAY_HEX
        assert len(result.block_hexes) == DISPLAY_BLOCK_COUNT
        assert result.block_hexes[0].startswith("5AC3E901")

        assert result.display.type == "PLA Basic"
        assert result.display.color_name == "Black"
        assert result.display.color_code == "10101"
        assert result.display.color_values == ("#000000FF",)

        with pytest.raises(FrozenInstanceError):
            result.display.type = "PETG"
        assert isinstance(result.display.secondary_fields, tuple)

        assert result.remaining_percent == 100.0
        assert result.remaining_grams == 1000
        assert result.total_weight_grams == 1000

        record = store.get_tray(TRAY_HEX)
        assert record.color_name == "Black"
        assert record.material_id == "GFA00"

    def test_multi_color_spool(self, processor):
        spool = MockSpool(
            uid=bytes.fromhex("7AD43F1C"),
            color_rgba=bytes.fromhex("0000FFFF"),
            extra_colors=[bytes.fromhex("FF0000FF")],
            tray_uid=b"\x42" * 16,
        )
        result = processor.read_tag(MockTag(spool))
        assert result.display.color_name == "Red Blue"
        assert result.display.color_type == "multi-color"
        assert result.display.secondary_fields[0].label == "Color Type"

    def test_persisted_quantity_survives_reread(self, processor, black_spool, store):
        processor.read_tag(MockTag(black_spool))
        InventoryReconciler(store).update_quantity(TRAY_HEX, grams=250)

        result = processor.read_tag(MockTag(black_spool))
        assert result.remaining_percent == 25.0
        assert result.remaining_grams == 250

    def test_unknown_color_keeps_tag_data(self, processor):
        spool = MockSpool(uid=UID, color_rgba=bytes.fromhex("123456FF"), tray_uid=TRAY)
        result = processor.read_tag(MockTag(spool))
        assert result.status == ReadStatus.SUCCESS
        assert result.display.color_name == ""
        assert result.display.type == "PLA Basic"
        assert result.display.color_values == ("#123456FF",)

    def test_cloned_uid(self, processor, black_spool, store):
        result = processor.read_tag(MockTag(black_spool, reported_uid=bytes.fromhex("01020304")))
        assert result.status == ReadStatus.FAILURE
        assert result.error == "sector 0 authentication failed; sector 1 authentication failed"
        assert result.tray_uid_hex == ""
        assert store.all_trays() == []

    def test_partial_read(self, processor, black_spool, fake_tag, fake_transport):
        blocks = dict(enumerate(black_spool.build_blocks()))
        transport = fake_transport(blocks=blocks, locked_sectors=frozenset({1}))
        result = processor.read_tag(fake_tag(UID, transport))

        assert result.status == ReadStatus.PARTIAL
        assert result.error == "sector 1 authentication failed"
        assert result.tray_uid_hex == TRAY_HEX
        assert result.block_hexes[4] == ""
        # Block 5 (spool weight) lives in sector 1
        assert result.total_weight_grams == 0
        assert result.remaining_percent == 100.0
        # No colors were read, so the first catalog row for the material is shown
        assert result.display.color_code == "10100"

    def test_flaky_transport_recovers(self, config, catalog, store, black_spool):
        config.read_block_retry_count = 5
        config.auth_retry_count = 5
        processor = TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store))
        result = processor.read_tag(MockTag(black_spool, read_failure_rate=0.2, seed=3))
        assert result.status == ReadStatus.SUCCESS
        assert result.display.color_name == "Black"

    def test_uid_missing(self, processor, fake_tag, fake_transport):
        result = processor.read_tag(fake_tag(None, fake_transport()))
        assert result.status == ReadStatus.FAILURE
        assert result.failure_reason == FailureReason.UID_MISSING
        assert result.error == "UID missing"

    def test_exception(self, processor, fake_tag, fake_transport):
        transport = fake_transport(connect_error=TransportError("tag lost"))
        result = processor.read_tag(fake_tag(UID, transport))
        assert result.failure_reason == FailureReason.EXCEPTION
        assert result.error == "tag lost"
        assert result.uid_hex == "5AC3E901"

    def test_without_reconciler(self, config, catalog, black_spool):
        processor = TagProcessor(config, FilamentMatcher(catalog), None)
        result = processor.read_tag(MockTag(black_spool))
        assert result.remaining_percent == config.default_remaining_percent
        assert result.remaining_grams == 0
        assert result.display.color_name == "Black"


class TestDumps:
    def test_full_read_saves_dump_only(self, config, catalog, store, black_spool, tmp_path):
        config.dump_dir = str(tmp_path / "dumps")
        processor = TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store))
        processor.read_tag(MockTag(black_spool), read_all_sectors=True)

        assert os.path.exists(tmp_path / "dumps" / "5AC3E901.txt")
        assert not os.path.exists(tmp_path / "dumps" / "keys")

    def test_full_read_with_keys(self, config, catalog, store, black_spool, tmp_path):
        config.dump_dir = str(tmp_path / "dumps")
        config.save_keys = True
        processor = TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store))
        processor.read_tag(MockTag(black_spool), read_all_sectors=True)

        assert os.path.exists(tmp_path / "dumps" / "5AC3E901.txt")
        assert os.path.exists(tmp_path / "dumps" / "keys" / "5AC3E901.txt")

    def test_fast_read_saves_keys_without_dump(self, config, catalog, store, black_spool, tmp_path):
        config.dump_dir = str(tmp_path / "dumps")
        config.save_keys = True
        processor = TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store))
        processor.read_tag(MockTag(black_spool))

        assert os.listdir(tmp_path / "dumps") == ["keys"]
        key_file = tmp_path / "dumps" / "keys" / "5AC3E901.txt"
        assert len(key_file.read_text(encoding="utf-8").splitlines()) == 32

    def test_fast_read_saves_nothing(self, config, catalog, store, black_spool, tmp_path):
        config.dump_dir = str(tmp_path / "dumps")
        processor = TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store))
        processor.read_tag(MockTag(black_spool))
        assert not os.path.exists(tmp_path / "dumps")

    def test_failed_acquisition_saves_nothing(self, config, catalog, store, fake_tag, tmp_path):
        config.dump_dir = str(tmp_path / "dumps")
        config.save_keys = True
        processor = TagProcessor(config, FilamentMatcher(catalog), InventoryReconciler(store))
        result = processor.read_tag(fake_tag(UID, None), read_all_sectors=True)
        assert result.failure_reason == FailureReason.TRANSPORT_UNSUPPORTED
        assert not os.path.exists(tmp_path / "dumps")
