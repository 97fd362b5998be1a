"""
Little-endian binary reader/writer used by the save decoder and encoder.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

import struct

from .errors import CorruptSaveError, TruncatedInputError, ValueOutOfRangeError

TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "surrogateescape"

_UNSIGNED_FORMATS = {1: "<B", 2: "<H", 4: "<I", 8: "<Q"}
_SIGNED_FORMATS = {1: "<b", 2: "<h", 4: "<i", 8: "<q"}


def check_range(value: int, width: int, signed: bool = False, name: str = "") -> int:
    """Raise ValueOutOfRangeError unless value fits a field of width bytes."""
    bits = width * 8
    if signed:
        low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        low, high = 0, (1 << bits) - 1
    if not isinstance(value, int) or not low <= value <= high:
        raise ValueOutOfRangeError(value, width, signed, name)
    return value


def pack_uint(value: int, width: int, name: str = "") -> bytes:
    check_range(value, width, False, name)
    return struct.pack(_UNSIGNED_FORMATS[width], value)


def pack_int(value: int, width: int, name: str = "") -> bytes:
    check_range(value, width, True, name)
    return struct.pack(_SIGNED_FORMATS[width], value)


def encode_var_string(text: str) -> bytes:
    """Encode a string with its 1-byte length prefix."""
    raw = text.encode(TEXT_ENCODING, TEXT_ERRORS)
    return pack_uint(len(raw), 1, "string length") + raw


# ============================================================================
# Reader
# ============================================================================

class BinaryReader:
    """Forward cursor over a byte buffer; every read is bounds-checked."""

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def tell(self) -> int:
        return self.pos

    def seek(self, offset: int) -> None:
        if not 0 <= offset <= len(self.data):
            raise TruncatedInputError(offset, 0, len(self.data) - offset)
        self.pos = offset

    def read_bytes(self, n: int) -> bytes:
        if n < 0 or self.pos + n > len(self.data):
            raise TruncatedInputError(self.pos, n, self.remaining)
        result = bytes(self.data[self.pos:self.pos + n])
        self.pos += n
        return result

    def read_u8(self) -> int:
        return struct.unpack("<B", self.read_bytes(1))[0]

    def read_u16(self) -> int:
        return struct.unpack("<H", self.read_bytes(2))[0]

    def read_u32(self) -> int:
        return struct.unpack("<I", self.read_bytes(4))[0]

    def read_i16(self) -> int:
        return struct.unpack("<h", self.read_bytes(2))[0]

    def read_i32(self) -> int:
        return struct.unpack("<i", self.read_bytes(4))[0]

    def read_flag(self, name: str = "flag") -> bool:
        """Read a 0/1 byte; anything else means the cursor has drifted."""
        offset = self.pos
        value = self.read_u8()
        if value > 1:
            raise CorruptSaveError(f"Expected 0 or 1 for {name} at offset 0x{offset:x}, got {value}")
        return value == 1

    def read_var_string(self) -> str:
        length = self.read_u8()
        if length > self.remaining:
            raise TruncatedInputError(self.pos, length, self.remaining)
        return self.read_bytes(length).decode(TEXT_ENCODING, TEXT_ERRORS)


# ============================================================================
# Writer
# ============================================================================

class BinaryWriter:
    """Accumulates little-endian fields; out-of-range values raise instead of wrapping."""

    def __init__(self):
        self.data = bytearray()

    def write_bytes(self, data: bytes):
        self.data.extend(data)

    def write_u8(self, value: int, name: str = ""):
        self.data.extend(pack_uint(value, 1, name))

    def write_u16(self, value: int, name: str = ""):
        self.data.extend(pack_uint(value, 2, name))

    def write_u32(self, value: int, name: str = ""):
        self.data.extend(pack_uint(value, 4, name))

    def write_i16(self, value: int, name: str = ""):
        self.data.extend(pack_int(value, 2, name))

    def write_i32(self, value: int, name: str = ""):
        self.data.extend(pack_int(value, 4, name))

    def write_flag(self, value: bool):
        self.write_u8(1 if value else 0)

    def write_var_string(self, text: str):
        self.data.extend(encode_var_string(text))

    def get_bytes(self) -> bytes:
        return bytes(self.data)
