"""Tests for the little-endian reader/writer."""

import pytest

from polytopia_save.binary import BinaryReader, BinaryWriter, check_range, encode_var_string, pack_int, pack_uint
from polytopia_save.errors import CorruptSaveError, TruncatedInputError, ValueOutOfRangeError


# =============================================================================
# Reader
# =============================================================================

class TestBinaryReader:
    def test_scalars_are_little_endian(self):
        reader = BinaryReader(bytes([0x01, 0x34, 0x12, 0x78, 0x56, 0x34, 0x12, 0xfe, 0xff, 0xff, 0xff, 0xff, 0xff]))
        assert reader.read_u8() == 1
        assert reader.read_u16() == 0x1234
        assert reader.read_u32() == 0x12345678
        assert reader.read_i16() == -2
        assert reader.read_i32() == -1
        assert reader.remaining == 0

    def test_tell_and_seek(self):
        reader = BinaryReader(b"abcdef")
        reader.read_bytes(2)
        assert reader.tell() == 2
        reader.seek(4)
        assert reader.read_bytes(2) == b"ef"

    def test_read_past_end_raises(self):
        reader = BinaryReader(b"\x01\x02")
        reader.read_u8()
        with pytest.raises(TruncatedInputError) as exc:
            reader.read_u32()
        assert exc.value.offset == 1
        assert exc.value.needed == 4
        assert exc.value.remaining == 1

    def test_failed_read_does_not_advance(self):
        reader = BinaryReader(b"\x01")
        with pytest.raises(TruncatedInputError):
            reader.read_u16()
        assert reader.tell() == 0

    def test_flag_accepts_zero_and_one(self):
        reader = BinaryReader(b"\x00\x01")
        assert reader.read_flag() is False
        assert reader.read_flag() is True

    def test_flag_rejects_other_values(self):
        with pytest.raises(CorruptSaveError, match="road flag"):
            BinaryReader(b"\x02").read_flag("road flag")

    def test_var_string(self):
        reader = BinaryReader(b"\x04Test\x00")
        assert reader.read_var_string() == "Test"
        assert reader.read_var_string() == ""

    def test_var_string_longer_than_buffer(self):
        with pytest.raises(TruncatedInputError):
            BinaryReader(b"\x05abc").read_var_string()

    def test_var_string_keeps_invalid_utf8(self):
        raw = b"\x02\xff\xfe"
        text = BinaryReader(raw).read_var_string()
        assert encode_var_string(text) == raw


# =============================================================================
# Writer
# =============================================================================

class TestBinaryWriter:
    def test_scalars(self):
        writer = BinaryWriter()
        writer.write_u8(1)
        writer.write_u16(0x1234)
        writer.write_u32(0x12345678)
        writer.write_i16(-2)
        writer.write_i32(-1)
        assert writer.get_bytes() == bytes([0x01, 0x34, 0x12, 0x78, 0x56, 0x34, 0x12,
                                            0xfe, 0xff, 0xff, 0xff, 0xff, 0xff])

    def test_flag_and_string(self):
        writer = BinaryWriter()
        writer.write_flag(True)
        writer.write_var_string("abc")
        assert writer.get_bytes() == b"\x01\x03abc"

    @pytest.mark.parametrize("method,value", [
        ("write_u8", 256),
        ("write_u8", -1),
        ("write_u16", 65536),
        ("write_u32", 1 << 32),
        ("write_i16", 32768),
        ("write_i32", -(1 << 31) - 1),
    ])
    def test_out_of_range_raises(self, method, value):
        with pytest.raises(ValueOutOfRangeError):
            getattr(BinaryWriter(), method)(value)

    def test_error_names_field(self):
        with pytest.raises(ValueOutOfRangeError, match="uint8 for tile owner"):
            BinaryWriter().write_u8(300, "tile owner")

    def test_string_too_long(self):
        with pytest.raises(ValueOutOfRangeError):
            BinaryWriter().write_var_string("x" * 256)


class TestPackHelpers:
    def test_pack_uint(self):
        assert pack_uint(5, 2) == b"\x05\x00"

    def test_pack_int(self):
        assert pack_int(-1, 2) == b"\xff\xff"

    def test_check_range_rejects_non_int(self):
        with pytest.raises(ValueOutOfRangeError):
            check_range("3", 1)
