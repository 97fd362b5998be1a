"""
Canonical byte blocks for records the editor inserts: empty tiles, fresh
cities, new players and the per-player known-players array.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

from .binary import BinaryWriter, check_range
from .encoder import encode_player, encode_tile, write_city
from .errors import ValueOutOfRangeError
from .model import (
    CITY_IMPROVEMENT_TYPE,
    KNOWN_PLAYER_ENTRY_SIZE,
    NATURE_PLAYER_ID,
    SWAP_SENTINEL_ID,
    City,
    Player,
    Terrain,
    Tile,
)

NEW_PLAYER_ACCOUNT_ID = "00000000-0000-0000-0000-000000000000"
NEW_PLAYER_TRIBE = 2
NEW_PLAYER_CURRENCY = 5
NEW_PLAYER_TAIL = bytes([255] * 8 + [0, 0] + [255] * 4)

ALTITUDE_BY_TERRAIN = {
    Terrain.WATER: -1,
    Terrain.OCEAN: -2,
    Terrain.FIELD: 1,
    Terrain.MOUNTAIN: 2,
    Terrain.FOREST: 1,
}


def altitude_for_terrain(terrain: int) -> int:
    """Altitude the game pairs with a terrain type; 0 for unknown terrain."""
    return ALTITUDE_BY_TERRAIN.get(terrain, 0)


def bgr_color(r: int, g: int, b: int) -> bytes:
    """Pack an RGB colour the way players store their override colour."""
    for value, name in ((r, "red"), (g, "green"), (b, "blue")):
        check_range(value, 1, name=name)
    return bytes([b, g, r, 0])


def build_empty_tile(x: int, y: int) -> bytes:
    """Flat, unowned, unexplored tile with no resource, improvement or unit."""
    return encode_tile(Tile(x=x, y=y))


def build_city(name: str) -> bytes:
    """Improvement section for a freshly founded level-1 city."""
    writer = BinaryWriter()
    writer.write_u8(1)
    writer.write_u16(CITY_IMPROVEMENT_TYPE)
    write_city(writer, City(name=name))
    return writer.get_bytes()


def build_tile_header_tribe_city(x: int, y: int, tribe: int) -> bytes:
    """Owner, capital and capital coordinates: tile header bytes 14..23."""
    writer = BinaryWriter()
    writer.write_u8(tribe, "tribe")
    writer.write_u8(0)
    writer.write_u32(x, "city x")
    writer.write_u32(y, "city y")
    return writer.get_bytes()


def build_known_players(old: list, new_player_id: int) -> bytes:
    """Return the known-players array with an entry for ``new_player_id``.

    Entries are ``[id, 0, 0, 0, 0]`` quintuples and nature (255) is always
    the last one, so the new entry goes right before it. Arrays that already
    cover the id come back unchanged.
    """
    if len(old) % KNOWN_PLAYER_ENTRY_SIZE != 0:
        raise ValueOutOfRangeError(
            len(old),
            message=f"Invalid known players array length {len(old)}, expected a multiple of {KNOWN_PLAYER_ENTRY_SIZE}",
        )

    entries = list(old)
    player_count = len(entries) // KNOWN_PLAYER_ENTRY_SIZE
    if player_count - 1 < new_player_id:
        split = len(entries) - KNOWN_PLAYER_ENTRY_SIZE
        entries = entries[:split] + [new_player_id, 0, 0, 0, 0] + entries[split:]

    for i, value in enumerate(entries):
        if not 0 <= value <= 255:
            raise ValueOutOfRangeError(
                value, 1, name=f"known players index {i}",
                message=f"Known players index: {i}, value: {value} is over 255",
            )
    return bytes(entries)


def build_empty_player(player_id: int, name: str, override_color: bytes) -> bytes:
    """Bot player with default tribe, starting currency and a known-players array."""
    if player_id >= SWAP_SENTINEL_ID:
        raise ValueOutOfRangeError(
            player_id, message=f"Player id {player_id} is over the limit of {SWAP_SENTINEL_ID - 1} players"
        )

    known_players = []
    for known_id in range(1, player_id + 1):
        known_players.extend([known_id, 0, 0, 0, 0])
    known_players.extend([NATURE_PLAYER_ID, 0, 0, 0, 0])

    player = Player(
        id=player_id,
        name=name,
        account_id=NEW_PLAYER_ACCOUNT_ID,
        autoplay=True,
        tribe=NEW_PLAYER_TRIBE,
        unknown_byte1=1,
        unknown_int1=2,
        known_players=known_players,
        currency=NEW_PLAYER_CURRENCY,
        num_cities=1,
        override_color=bytes(override_color),
        unknown_tail=NEW_PLAYER_TAIL,
    )
    return encode_player(player)
