"""
Offset index: semantic keys mapped to the byte offsets seen during one decode.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

from typing import Iterator, Optional

from .errors import StaleOffsetKeyError, UnknownOffsetKeyError

# ============================================================================
# Key builders
# ============================================================================

MAP_START_KEY = "MapStart"
MAP_END_KEY = "MapEnd"
ALL_PLAYERS_START_KEY = "AllPlayersStart"
ALL_PLAYERS_END_KEY = "AllPlayersEnd"
SQUARE_SIZE_KEY = "SquareSize"
MAP_WIDTH_KEY = "MapWidth"
MAP_HEIGHT_KEY = "MapHeight"


def tile_start_key(x: int, y: int) -> str:
    return f"TileStart:{x},{y}"


def tile_end_key(x: int, y: int) -> str:
    return f"TileEnd:{x},{y}"


def tile_improvement_start_key(x: int, y: int) -> str:
    return f"TileImprovementStart:{x},{y}"


def tile_improvement_end_key(x: int, y: int) -> str:
    return f"TileImprovementEnd:{x},{y}"


def unit_location_key(x: int, y: int) -> str:
    return f"UnitLocation:{x},{y}"


def previous_unit_location_key(x: int, y: int) -> str:
    return f"PreviousUnitLocation:{x},{y}"


def tile_visibility_key(x: int, y: int) -> str:
    return f"TileVisibility:{x},{y}"


def tile_road_key(x: int, y: int) -> str:
    return f"TileRoad:{x},{y}"


def player_start_key(index: int) -> str:
    return f"PlayerStart:{index}"


def player_known_players_key(player_id: int) -> str:
    return f"PlayerArr1:{player_id}"


def player_currency_key(player_id: int) -> str:
    return f"PlayerCurrency:{player_id}"


# ============================================================================
# Index
# ============================================================================

class OffsetIndex:
    """Key -> absolute offset table, valid only for the bytes it was built from.

    A patch that changes the length of ``[start, end)`` makes every key at or
    after ``end`` point at the wrong bytes. Instead of repairing offsets, the
    index marks those keys stale and bumps ``generation``; looking one up then
    raises StaleOffsetKeyError. Keys before the patch stay usable, so edits
    derived from one decode can be applied back-to-front.
    """

    def __init__(self):
        self._offsets: dict[str, int] = {}
        self._stale: set[str] = set()
        self.generation = 0

    def record(self, key: str, offset: int) -> None:
        self._offsets[key] = offset
        self._stale.discard(key)

    def __getitem__(self, key: str) -> int:
        if key in self._stale:
            raise StaleOffsetKeyError(key, self.generation)
        try:
            return self._offsets[key]
        except KeyError:
            raise UnknownOffsetKeyError(key) from None

    def get(self, key: str) -> Optional[int]:
        if key not in self._offsets or key in self._stale:
            return None
        return self._offsets[key]

    def __contains__(self, key: str) -> bool:
        return key in self._offsets and key not in self._stale

    def __len__(self) -> int:
        return len(self._offsets) - len(self._stale)

    def __iter__(self) -> Iterator[str]:
        return (key for key in self._offsets if key not in self._stale)

    def keys(self) -> set:
        return set(self._offsets) - self._stale

    def items(self):
        return [(key, offset) for key, offset in self._offsets.items() if key not in self._stale]

    def is_stale(self, key: str) -> bool:
        return key in self._stale

    def invalidate(self, start: int, end: int, delta: int) -> None:
        """Mark keys moved or destroyed by replacing ``[start, end)``."""
        for key, offset in self._offsets.items():
            inside = start < offset < end
            shifted = delta != 0 and offset >= end
            if inside or shifted:
                self._stale.add(key)
        self.generation += 1
