"""Tests for sector authentication and block reads with retry."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from spooltag.config import ReaderConfig
from spooltag.sector_reader import BlockReader, SectorAuthenticator
from spooltag.transport import TransportError

KEY_A = b"\xA0" * 6
KEY_B = b"\xB0" * 6
WRONG = b"\x00" * 6


def _keys(key_a: bytes = KEY_A, key_b: bytes = KEY_B) -> list:
    return [(key_a, key_b)] * 16


class TestSectorAuthenticator:
    def test_key_a_first(self, fake_transport):
        transport = fake_transport(sector_keys=_keys())
        assert SectorAuthenticator(transport).authenticate(1, KEY_A, KEY_B)
        assert transport.auth_calls == [(1, "a")]

    def test_falls_back_to_key_b(self, fake_transport):
        transport = fake_transport(sector_keys=_keys(key_a=WRONG))
        assert SectorAuthenticator(transport).authenticate(1, KEY_A, KEY_B)
        assert transport.auth_calls == [(1, "a"), (1, "b")]

    def test_gives_up_after_all_rounds(self, fake_transport):
        transport = fake_transport(sector_keys=_keys(WRONG, WRONG))
        assert not SectorAuthenticator(transport, retry_count=2).authenticate(0, KEY_A, KEY_B)
        assert transport.auth_calls == [(0, "a"), (0, "b")] * 3

    def test_zero_retries_is_one_round(self, fake_transport):
        transport = fake_transport(sector_keys=_keys(WRONG, WRONG))
        assert not SectorAuthenticator(transport, retry_count=0).authenticate(0, KEY_A, KEY_B)
        assert len(transport.auth_calls) == 2

    def test_exceptions_count_as_failed_round(self, fake_transport):
        transport = fake_transport(auth_script=[TransportError("field lost"), True])
        assert SectorAuthenticator(transport).authenticate(2, KEY_A, KEY_B)
        # The raise aborts the round before KeyB is tried
        assert transport.auth_calls == [(2, "a"), (2, "a")]

    def test_missing_key_a_only_tries_b(self, fake_transport):
        transport = fake_transport(sector_keys=_keys())
        assert SectorAuthenticator(transport).authenticate(3, None, KEY_B)
        assert transport.auth_calls == [(3, "b")]

    def test_no_keys_fails_without_calls(self, fake_transport):
        transport = fake_transport()
        assert not SectorAuthenticator(transport).authenticate(3, None, None)
        assert transport.auth_calls == []


class TestBlockReader:
    def _reader(self, transport, auth_retries: int = 2, read_retries: int = 1, delay_ms: int = 0) -> BlockReader:
        return BlockReader(transport, SectorAuthenticator(transport, auth_retries), read_retries, delay_ms)

    def test_reads_data_blocks_and_trailer(self, fake_transport):
        transport = fake_transport()
        result = self._reader(transport).read_sector(1, KEY_A, KEY_B)
        assert result.error == ""
        assert len(result.blocks) == 4
        assert transport.read_calls == [4, 5, 6, 7]
        assert result.blocks[0] == bytes([4]) * 16

    def test_skips_trailer_when_asked(self, fake_transport):
        transport = fake_transport()
        result = self._reader(transport).read_sector(1, KEY_A, KEY_B, include_trailer=False)
        assert len(result.blocks) == 3
        assert transport.read_calls == [4, 5, 6]

    def test_auth_failure(self, fake_transport):
        transport = fake_transport(locked_sectors=frozenset({2}))
        result = self._reader(transport).read_sector(2, KEY_A, KEY_B)
        assert result.blocks == []
        assert result.error == "sector 2 authentication failed"
        assert transport.read_calls == []

    def test_long_block_truncated(self, fake_transport):
        transport = fake_transport(read_script={0: [bytes(range(18))]})
        result = self._reader(transport).read_sector(0, KEY_A, KEY_B)
        assert result.blocks[0] == bytes(range(16))

    def test_short_block_retried_then_aborts_sector(self, fake_transport):
        short = b"\x01" * 8
        transport = fake_transport(read_script={5: [short, short]})
        result = self._reader(transport).read_sector(1, KEY_A, KEY_B)
        assert result.blocks == [bytes([4]) * 16]
        assert result.error == "read block 5 failed: TransportError: short block (8 bytes)"
        assert transport.read_calls == [4, 5, 5]

    def test_reauthenticates_before_retry(self, fake_transport):
        transport = fake_transport(read_script={4: [TransportError("lost"), b"\x42" * 16]})
        result = self._reader(transport).read_sector(1, KEY_A, KEY_B)
        assert result.error == ""
        assert result.blocks[0] == b"\x42" * 16
        # Initial auth, then one re-auth after the failed read
        assert transport.auth_calls == [(1, "a"), (1, "a")]
        assert transport.read_calls == [4, 4, 5, 6, 7]

    def test_failed_reauth_stops_retrying(self, fake_transport):
        transport = fake_transport(
            auth_script=[True] + [False] * 6,
            read_script={4: [TransportError("lost")]},
        )
        result = self._reader(transport).read_sector(1, KEY_A, KEY_B)
        assert result.blocks == []
        assert result.error == "read block 4 failed: TransportError: lost"
        assert transport.read_calls == [4]

    def test_read_retry_count(self, fake_transport):
        err = OSError("timeout")
        transport = fake_transport(read_script={8: [err, err, err, b"\x07" * 16]})
        result = self._reader(transport, read_retries=3).read_sector(2, KEY_A, KEY_B)
        assert result.error == ""
        assert transport.read_calls[:4] == [8, 8, 8, 8]

    def test_inter_block_delay(self, fake_transport):
        transport = fake_transport()
        with patch("spooltag.sector_reader.time.sleep") as sleep:
            self._reader(transport, delay_ms=10).read_sector(0, KEY_A, KEY_B)
        assert sleep.call_count == 4
        sleep.assert_called_with(pytest.approx(0.01))

    def test_from_config(self, fake_transport):
        err = TransportError("lost")
        transport = fake_transport(read_script={0: [err, err, err]})
        config = ReaderConfig(auth_retry_count=0, read_block_retry_count=2)
        result = BlockReader.from_config(transport, config).read_sector(0, KEY_A, KEY_B)
        assert result.error.startswith("read block 0 failed")
        assert transport.read_calls == [0, 0, 0]
