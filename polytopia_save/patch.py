"""
Patch writer: applies fixed-width overwrites and length-changing block
replacements to a save held in memory, then commits it in one atomic write.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

import os
import shutil
from pathlib import Path
from typing import Union

from .binary import pack_int, pack_uint
from .errors import TruncatedInputError
from .offsets import OffsetIndex


def make_backup(path: Union[str, Path], backup_ext: str = ".bak") -> Path:
    """Copy ``path`` next to itself with ``backup_ext`` appended."""
    p = Path(path)
    backup = p.with_name(p.name + backup_ext)
    shutil.copy2(p, backup)
    return backup


class PatchWriter:
    """Buffer a save file, patch it, and write it back.

    ``replace_*`` shift everything after the replaced range by the length
    difference and mark the moved keys of ``index`` stale. ``write_*_at``
    overwrite in place and never shift.

        with PatchWriter(path, index) as patch:
            patch.write_scalar_at(patch.offset_of(key) + 8, 2, 4)

    The context manager commits only if the block finishes without raising.
    """

    def __init__(self, path: Union[str, Path], index: OffsetIndex):
        self.path = Path(path)
        self.index = index
        self.data = bytearray(self.path.read_bytes())
        self.dirty = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.commit()
        return False

    def __len__(self) -> int:
        return len(self.data)

    def offset_of(self, key: str) -> int:
        return self.index[key]

    def _check_span(self, offset: int, n: int):
        if offset < 0 or n < 0 or offset + n > len(self.data):
            raise TruncatedInputError(offset, n, max(len(self.data) - offset, 0))

    def read_at(self, offset: int, n: int) -> bytes:
        self._check_span(offset, n)
        return bytes(self.data[offset:offset + n])

    def write_bytes_at(self, offset: int, data: bytes):
        """Overwrite ``len(data)`` bytes in place."""
        self._check_span(offset, len(data))
        self.data[offset:offset + len(data)] = data
        self.dirty = True

    def write_scalar_at(self, offset: int, width: int, value: int, signed: bool = False):
        packed = pack_int(value, width) if signed else pack_uint(value, width)
        self.write_bytes_at(offset, packed)

    def replace_offsets(self, start: int, end: int, new_bytes: bytes):
        """Replace ``[start, end)`` with ``new_bytes`` and shift the tail."""
        if not 0 <= start <= end <= len(self.data):
            raise TruncatedInputError(start, end - start, max(len(self.data) - start, 0))
        delta = len(new_bytes) - (end - start)
        self.data[start:end] = new_bytes
        self.index.invalidate(start, end, delta)
        self.dirty = True

    def replace_range(self, start_key: str, end_key: str, new_bytes: bytes):
        start = self.offset_of(start_key)
        end = self.offset_of(end_key)
        self.replace_offsets(start, end, new_bytes)

    def get_bytes(self) -> bytes:
        return bytes(self.data)

    def commit(self):
        """Write the patched buffer to a temp file and rename it over the save."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_bytes(self.data)
            os.replace(tmp, self.path)
        finally:
            if tmp.exists():
                tmp.unlink()
        self.dirty = False
