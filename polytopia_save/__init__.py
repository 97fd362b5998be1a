"""
Polytopia Save Editor: decode, edit and re-encode decompressed save files.

    from polytopia_save import read_save, write_save

    model, index = read_save("game.state")
    assert write_save(model) == Path("game.state").read_bytes()

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

from .decoder import parse_save, read_save
from .encoder import write_save
from .errors import (
    CorruptSaveError,
    PolytopiaSaveError,
    SaveFormatError,
    StaleOffsetKeyError,
    TruncatedInputError,
    UnknownOffsetKeyError,
    UnsupportedTaskTypeError,
    UnsupportedVariantError,
    ValueOutOfRangeError,
)
from .model import SaveModel, Snapshot, Terrain
from .offsets import OffsetIndex
from .patch import PatchWriter
from .yaml_io import export_to_yaml, import_from_yaml

__version__ = "0.1.0"
