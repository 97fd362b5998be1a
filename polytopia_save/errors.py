"""
Exception types raised by the save decoder, encoder and patch writer.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""


class PolytopiaSaveError(Exception):
    """Base class for every error raised by this package."""


class SaveFormatError(PolytopiaSaveError, ValueError):
    """The byte stream does not match the expected layout."""


class TruncatedInputError(SaveFormatError):
    """A field needs more bytes than the buffer has left."""

    def __init__(self, offset: int, needed: int, remaining: int):
        self.offset = offset
        self.needed = needed
        self.remaining = remaining
        super().__init__(
            f"Not enough data at offset 0x{offset:x}: need {needed}, have {remaining}"
        )


class CorruptSaveError(SaveFormatError):
    """A structural assertion failed while decoding."""


class UnsupportedTaskTypeError(SaveFormatError):
    """A player task type outside the known payload table."""

    def __init__(self, task_type: int, offset: int):
        self.task_type = task_type
        self.offset = offset
        super().__init__(f"Invalid task type {task_type} at offset 0x{offset:x}")


class UnsupportedVariantError(SaveFormatError):
    """A record shape that the derived variant rules cannot produce."""


class UnknownOffsetKeyError(PolytopiaSaveError, LookupError):
    """A patch target that the last decode never recorded."""

    def __init__(self, key: str, message: str = ""):
        self.key = key
        super().__init__(message or f"No offset recorded for key {key!r}")

    def __str__(self) -> str:
        return self.args[0]


class StaleOffsetKeyError(UnknownOffsetKeyError):
    """The key was recorded, but a length-changing patch moved it."""

    def __init__(self, key: str, generation: int):
        self.generation = generation
        super().__init__(
            key,
            f"Offset for key {key!r} is stale after patch generation {generation}; "
            "decode the file again",
        )


class ValueOutOfRangeError(PolytopiaSaveError, ValueError):
    """A value does not fit the width of the field it is written to."""

    def __init__(self, value: int, width: int = 0, signed: bool = False,
                 name: str = "", message: str = ""):
        self.value = value
        self.width = width
        self.signed = signed
        if not message:
            kind = "int" if signed else "uint"
            label = f" for {name}" if name else ""
            message = f"Value {value} is out of range for {kind}{width * 8}{label}"
        super().__init__(message)
