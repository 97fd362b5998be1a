"""
Edit operations on a decompressed save file.

Every operation decodes the file first, so offsets always come from the bytes
being patched. Single-step edits are atomic: validation runs before the first
write and the file is replaced in one commit. Multi-step edits (add_player,
expand_tiles) commit after each step and print one progress line per step; a
failure partway leaves the steps already committed in place.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

from pathlib import Path
from typing import Optional, Union

from .binary import check_range, pack_uint
from .builders import (
    altitude_for_terrain,
    bgr_color,
    build_city,
    build_empty_player,
    build_empty_tile,
    build_known_players,
    build_tile_header_tribe_city,
)
from .decoder import read_save
from .encoder import encode_players, encode_tile, encode_tiles
from .errors import CorruptSaveError, UnknownOffsetKeyError, UnsupportedVariantError, ValueOutOfRangeError
from .model import (
    KNOWN_PLAYER_ENTRY_SIZE,
    NATURE_PLAYER_ID,
    SWAP_SENTINEL_ID,
    TILE_CAPITAL_OFFSET,
    TILE_OWNER_OFFSET,
    UNIT_OWNER_OFFSET,
    UNIT_TYPE_OFFSET,
    SaveModel,
    Snapshot,
    Tile,
    is_city_tile,
)
from .offsets import (
    ALL_PLAYERS_END_KEY,
    ALL_PLAYERS_START_KEY,
    MAP_END_KEY,
    MAP_HEIGHT_KEY,
    MAP_START_KEY,
    MAP_WIDTH_KEY,
    SQUARE_SIZE_KEY,
    OffsetIndex,
    player_currency_key,
    player_known_players_key,
    player_start_key,
    previous_unit_location_key,
    tile_end_key,
    tile_improvement_end_key,
    tile_improvement_start_key,
    tile_road_key,
    tile_start_key,
    tile_visibility_key,
    unit_location_key,
)
from .patch import PatchWriter

PathLike = Union[str, Path]

MAX_MAP_DIMENSION = 255


def _find_tile(model: SaveModel, index: OffsetIndex, snapshot: Snapshot, x: int, y: int) -> Tile:
    key = tile_start_key(x, y)
    if key not in index:
        raise UnknownOffsetKeyError(key, f"No tile start key on x: {x}, y: {y}. Command not run.")
    return model.snapshot(snapshot).tile(x, y)


# ============================================================================
# Tiles
# ============================================================================

def write_tile(path: PathLike, tile: Tile, snapshot: Snapshot = Snapshot.CURRENT):
    """Replace the stored tile at ``(tile.x, tile.y)`` with ``tile``."""
    model, index = read_save(path, snapshot)
    _find_tile(model, index, snapshot, tile.x, tile.y)
    new_bytes = encode_tile(tile)
    with PatchWriter(path, index) as patch:
        patch.replace_range(tile_start_key(tile.x, tile.y), tile_end_key(tile.x, tile.y), new_bytes)


def modify_tile_terrain(path: PathLike, x: int, y: int, terrain: int, snapshot: Snapshot = Snapshot.CURRENT):
    """Set a tile's terrain and the altitude that goes with it."""
    model, index = read_save(path, snapshot)
    tile = _find_tile(model, index, snapshot, x, y)
    tile.terrain = terrain
    tile.altitude = altitude_for_terrain(terrain)
    new_bytes = encode_tile(tile)
    with PatchWriter(path, index) as patch:
        patch.replace_range(tile_start_key(x, y), tile_end_key(x, y), new_bytes)


def modify_tile_owner(path: PathLike, x: int, y: int, owner: int, snapshot: Snapshot = Snapshot.CURRENT):
    """Overwrite the owner byte in place.

    Refused when the new owner would change how the improvement section
    decodes (an owned city record read back as a plain improvement or the
    other way round); use add_city_to_tile or reset_tile for that.
    """
    model, index = read_save(path, snapshot)
    tile = _find_tile(model, index, snapshot, x, y)
    check_range(owner, 1, name="tile owner")
    if is_city_tile(owner, tile.resource, tile.improvement_type) != tile.is_city:
        raise UnsupportedVariantError(
            f"Changing the owner of tile ({x}, {y}) from {tile.owner} to {owner} "
            f"would change how its improvement record decodes. Command not run."
        )
    with PatchWriter(path, index) as patch:
        patch.write_scalar_at(patch.offset_of(tile_start_key(x, y)) + TILE_OWNER_OFFSET, 1, owner)


def modify_tile_capital(path: PathLike, x: int, y: int, capital: int, snapshot: Snapshot = Snapshot.CURRENT):
    model, index = read_save(path, snapshot)
    _find_tile(model, index, snapshot, x, y)
    if not 0 <= capital < 255:
        raise ValueOutOfRangeError(capital, message=f"Capital value {capital} must be less than 255")
    with PatchWriter(path, index) as patch:
        patch.write_scalar_at(patch.offset_of(tile_start_key(x, y)) + TILE_CAPITAL_OFFSET, 1, capital)


def modify_tile_road(path: PathLike, x: int, y: int, has_road: bool, snapshot: Snapshot = Snapshot.CURRENT):
    model, index = read_save(path, snapshot)
    _find_tile(model, index, snapshot, x, y)
    with PatchWriter(path, index) as patch:
        patch.write_scalar_at(patch.offset_of(tile_road_key(x, y)), 1, 1 if has_road else 0)


def add_city_to_tile(path: PathLike, x: int, y: int, name: str, tribe: int,
                     snapshot: Snapshot = Snapshot.CURRENT):
    """Found a level-1 city for ``tribe`` on tile ``(x, y)``.

    The owner, capital and capital coordinates are overwritten in place, then
    the improvement section is replaced by a fresh city record.
    """
    model, index = read_save(path, snapshot)
    tile = _find_tile(model, index, snapshot, x, y)
    if not 1 <= tribe <= 255:
        raise ValueOutOfRangeError(tribe, 1, name="city tribe",
                                   message=f"City tribe must be between 1 and 255, got {tribe}")
    if tile.resource is not None:
        raise UnsupportedVariantError(
            f"Tile ({x}, {y}) has resource {tile.resource.type}; a city record there "
            f"would not decode as a city. Command not run."
        )

    header_bytes = build_tile_header_tribe_city(x, y, tribe)
    city_bytes = build_city(name)
    with PatchWriter(path, index) as patch:
        patch.write_bytes_at(patch.offset_of(tile_start_key(x, y)) + TILE_OWNER_OFFSET, header_bytes)
        patch.replace_range(tile_improvement_start_key(x, y), tile_improvement_end_key(x, y), city_bytes)


def reset_tile(path: PathLike, x: int, y: int, snapshot: Snapshot = Snapshot.CURRENT):
    """Replace a tile with a flat, unowned, unexplored one."""
    model, index = read_save(path, snapshot)
    _find_tile(model, index, snapshot, x, y)
    with PatchWriter(path, index) as patch:
        patch.replace_range(tile_start_key(x, y), tile_end_key(x, y), build_empty_tile(x, y))


def _visibility_bytes(visibility: list) -> bytes:
    return pack_uint(len(visibility), 1, "visibility count") + bytes(visibility)


def reveal_tile_for_tribe(path: PathLike, x: int, y: int, tribe: int,
                          snapshot: Snapshot = Snapshot.CURRENT) -> bool:
    """Add ``tribe`` to a tile's visibility list; False when it was already there."""
    model, index = read_save(path, snapshot)
    tile = _find_tile(model, index, snapshot, x, y)
    check_range(tribe, 1, name="tribe")
    if tribe in tile.visibility:
        return False
    new_bytes = _visibility_bytes(tile.visibility + [tribe])
    with PatchWriter(path, index) as patch:
        patch.replace_range(tile_visibility_key(x, y), tile_road_key(x, y), new_bytes)
    return True


def reveal_all_tiles(path: PathLike, tribe: int, snapshot: Snapshot = Snapshot.CURRENT) -> int:
    """Reveal every tile to ``tribe``. Returns the number of tiles changed."""
    model, index = read_save(path, snapshot)
    check_range(tribe, 1, name="tribe")
    revealed = 0
    # last tile first: every patch only shifts bytes after the tiles still to do
    with PatchWriter(path, index) as patch:
        for tile in reversed(list(model.snapshot(snapshot).iter_tiles())):
            if tribe in tile.visibility:
                continue
            new_bytes = _visibility_bytes(tile.visibility + [tribe])
            patch.replace_range(tile_visibility_key(tile.x, tile.y), tile_road_key(tile.x, tile.y), new_bytes)
            revealed += 1
    print(f"Revealed {revealed} tiles for tribe {tribe}")
    return revealed


# ============================================================================
# Map dimensions
# ============================================================================

def _write_map_dimensions(patch: PatchWriter, width: int, height: int):
    patch.write_scalar_at(patch.offset_of(SQUARE_SIZE_KEY), 4, min(width, height))
    patch.write_scalar_at(patch.offset_of(MAP_WIDTH_KEY), 2, width)
    patch.write_scalar_at(patch.offset_of(MAP_HEIGHT_KEY), 2, height)


def modify_map_dimensions(path: PathLike, width: int, height: int):
    """Overwrite the square size, width and height fields of the current map.

    Only the header changes; the tile grid must already have this shape.
    """
    _, index = read_save(path)
    with PatchWriter(path, index) as patch:
        _write_map_dimensions(patch, width, height)


def _check_new_dimension(value: int, current: int, what: str):
    if value > MAX_MAP_DIMENSION:
        raise ValueOutOfRangeError(value, message=f"Updated {what} value {value} is over {MAX_MAP_DIMENSION}")
    if value <= current:
        raise ValueOutOfRangeError(
            value,
            message=f"New {what} dimensions are less than existing dimensions, new value: {value}, existing: {current}",
        )


def expand_rows(path: PathLike, new_height: int):
    """Append empty rows until the current map is ``new_height`` tall."""
    model, index = read_save(path)
    width, height = model.width, model.height
    print(f"Old dimensions width: {width}, height: {height}")
    _check_new_dimension(new_height, height, "row")

    new_tiles = b"".join(build_empty_tile(x, y) for y in range(height, new_height) for x in range(width))
    with PatchWriter(path, index) as patch:
        patch.replace_range(MAP_END_KEY, MAP_END_KEY, new_tiles)
        _write_map_dimensions(patch, width, new_height)

    model, _ = read_save(path)
    print(f"New dimensions width: {model.width}, height: {model.height}")


def expand_columns(path: PathLike, new_width: int):
    """Append empty tiles to every row until the current map is ``new_width`` wide."""
    model, index = read_save(path)
    width, height = model.width, model.height
    print(f"Old dimensions width: {width}, height: {height}")
    _check_new_dimension(new_width, width, "column")

    # bottom row first so the row ends still to be patched keep their offsets
    with PatchWriter(path, index) as patch:
        for y in range(height - 1, -1, -1):
            end_key = tile_end_key(width - 1, y)
            new_tiles = b"".join(build_empty_tile(x, y) for x in range(width, new_width))
            patch.replace_range(end_key, end_key, new_tiles)
        _write_map_dimensions(patch, new_width, height)

    model, _ = read_save(path)
    print(f"New dimensions width: {model.width}, height: {model.height}")


def expand_tiles(path: PathLike, new_size: int):
    """Grow the current map to ``new_size`` x ``new_size``: columns, then rows."""
    model, _ = read_save(path)
    if new_size > MAX_MAP_DIMENSION:
        raise ValueOutOfRangeError(new_size, message=f"Updated value {new_size} is over {MAX_MAP_DIMENSION}")
    if new_size <= model.width or new_size <= model.height:
        raise ValueOutOfRangeError(
            new_size,
            message=f"New dimensions are less than existing dimensions, new value: {new_size}, "
                    f"existing width: {model.width}, height: {model.height}",
        )
    expand_columns(path, new_size)
    expand_rows(path, new_size)


# ============================================================================
# Units
# ============================================================================

def _unit_offset(index: OffsetIndex, x: int, y: int) -> int:
    key = unit_location_key(x, y)
    if key not in index:
        raise UnknownOffsetKeyError(key, f"No unit on x: {x}, y: {y}. Command not run.")
    return index[key]


def _set_unit_owner(patch: PatchWriter, index: OffsetIndex, x: int, y: int, tribe: int):
    patch.write_scalar_at(_unit_offset(index, x, y) + UNIT_OWNER_OFFSET, 1, tribe)
    previous = index.get(previous_unit_location_key(x, y))
    if previous is not None:
        patch.write_scalar_at(previous + UNIT_OWNER_OFFSET, 1, tribe)


def modify_unit_tribe(path: PathLike, x: int, y: int, tribe: int, snapshot: Snapshot = Snapshot.CURRENT):
    """Hand the unit on ``(x, y)``, and its embark shadow if any, to ``tribe``."""
    _, index = read_save(path, snapshot)
    with PatchWriter(path, index) as patch:
        _set_unit_owner(patch, index, x, y, tribe)


def modify_unit_type(path: PathLike, x: int, y: int, unit_type: int, snapshot: Snapshot = Snapshot.CURRENT):
    _, index = read_save(path, snapshot)
    with PatchWriter(path, index) as patch:
        patch.write_scalar_at(_unit_offset(index, x, y) + UNIT_TYPE_OFFSET, 2, unit_type)


def convert_tribe_units(path: PathLike, old_tribe: int, new_tribe: int) -> int:
    """Move every unit of ``old_tribe`` to ``new_tribe``. Returns the unit count."""
    model, index = read_save(path)
    units = model.tribe_to_units.get(old_tribe)
    if units is None:
        raise UnknownOffsetKeyError(f"Tribe:{old_tribe}", f"Tribe {old_tribe} doesn't exist")
    with PatchWriter(path, index) as patch:
        for unit in units:
            _set_unit_owner(patch, index, unit.x, unit.y, new_tribe)
    return len(units)


def convert_all_units(path: PathLike, new_tribe: int) -> int:
    """Move every unit not already owned by ``new_tribe`` to it."""
    model, index = read_save(path)
    total = 0
    with PatchWriter(path, index) as patch:
        for tribe, units in sorted(model.tribe_to_units.items()):
            if tribe == new_tribe:
                continue
            print(f"Converting all units from tribe {tribe} to tribe {new_tribe}. Total of {len(units)} units converted.")
            for unit in units:
                _set_unit_owner(patch, index, unit.x, unit.y, new_tribe)
            total += len(units)
    return total


# ============================================================================
# Players
# ============================================================================

def _rewrite_players(path: PathLike, model: SaveModel, index: OffsetIndex):
    new_bytes = encode_players(model.players)
    with PatchWriter(path, index) as patch:
        patch.replace_range(ALL_PLAYERS_START_KEY, ALL_PLAYERS_END_KEY, new_bytes)


def modify_player_name(path: PathLike, player_id: int, name: str):
    model, index = read_save(path)
    model.find_player(player_id).name = name
    _rewrite_players(path, model, index)


def modify_player_tribe(path: PathLike, player_id: int, tribe: int):
    model, index = read_save(path)
    model.find_player(player_id).tribe = tribe
    _rewrite_players(path, model, index)


def modify_player_color(path: PathLike, player_id: int, r: int, g: int, b: int):
    model, index = read_save(path)
    model.find_player(player_id).override_color = bgr_color(r, g, b)
    _rewrite_players(path, model, index)


def _sync_known_players(path: PathLike, new_player_id: int):
    """Give every player's known-players array an entry for ``new_player_id``.

    Each array changes length, so every player gets its own decode and commit.
    """
    model, _ = read_save(path)
    player_count = len(model.players)
    print(f"New player count: {player_count}")
    for i in range(player_count):
        model, index = read_save(path)
        player = model.players[i]
        new_array = build_known_players(player.known_players, new_player_id)
        if new_array == bytes(player.known_players):
            print(f"Player index: {i}, id: {player.id} already knows player {new_player_id}")
            continue
        print(f"Player index: {i}, id: {player.id} updated to know player {new_player_id}")
        new_bytes = pack_uint(len(new_array) // KNOWN_PLAYER_ENTRY_SIZE, 2, "known player count") + new_array
        with PatchWriter(path, index) as patch:
            patch.replace_range(player_known_players_key(player.id), player_currency_key(player.id), new_bytes)


def add_player(path: PathLike, name: Optional[str] = None, override_color: Optional[bytes] = None) -> int:
    """Insert a bot player before nature and teach every player about it.

    The new id is the old player count (ids run 1..n-1 plus 255). Returns it.
    """
    model, index = read_save(path)
    old_count = len(model.players)
    print(f"Old num players: {old_count}")
    if old_count == 0:
        raise UnknownOffsetKeyError(player_start_key(0), "Save has no players to insert before")

    new_id = old_count
    if model.players[-1].id != NATURE_PLAYER_ID:
        raise CorruptSaveError(
            f"Last player has id {model.players[-1].id}, expected nature ({NATURE_PLAYER_ID}). Command not run."
        )
    if any(player.id == new_id for player in model.players):
        raise ValueOutOfRangeError(
            new_id, message=f"Player id {new_id} is already taken; player ids are not contiguous. Command not run."
        )
    player_bytes = build_empty_player(new_id, name or f"Player{new_id}", override_color or bytes(4))
    last_key = player_start_key(old_count - 1)
    with PatchWriter(path, index) as patch:
        patch.write_scalar_at(patch.offset_of(ALL_PLAYERS_START_KEY), 2, old_count + 1)
        patch.replace_range(last_key, last_key, player_bytes)

    _sync_known_players(path, new_id)
    return new_id


def _relabel_owners(tiles: list, old: int, new: int):
    for row in tiles:
        for tile in row:
            if tile.owner == old:
                tile.owner = new
            if tile.unit is not None and tile.unit.owner == old:
                tile.unit.owner = new
            if tile.passenger is not None and tile.passenger.previous.owner == old:
                tile.passenger.previous.owner = new


def _owner_in_use(tiles: list, owner: int) -> bool:
    for row in tiles:
        for tile in row:
            if tile.owner == owner:
                return True
            if tile.unit is not None and tile.unit.owner == owner:
                return True
            if tile.passenger is not None and tile.passenger.previous.owner == owner:
                return True
    return False


def swap_players(path: PathLike, player_a: int, player_b: int):
    """Exchange tile, unit and embark-shadow ownership between two players."""
    model, index = read_save(path)
    for player_id in (player_a, player_b):
        check_range(player_id, 1, name="player id")
        if player_id == SWAP_SENTINEL_ID:
            raise ValueOutOfRangeError(player_id, message=f"Player id {SWAP_SENTINEL_ID} is reserved for swapping")

    tiles = model.current.tiles
    if _owner_in_use(tiles, SWAP_SENTINEL_ID):
        raise ValueOutOfRangeError(
            SWAP_SENTINEL_ID, message=f"Owner id {SWAP_SENTINEL_ID} is already used on the map; cannot swap"
        )
    # through the sentinel so a's territory is never merged with b's mid-pass
    _relabel_owners(tiles, player_a, SWAP_SENTINEL_ID)
    _relabel_owners(tiles, player_b, player_a)
    _relabel_owners(tiles, SWAP_SENTINEL_ID, player_b)

    new_bytes = encode_tiles(tiles)
    with PatchWriter(path, index) as patch:
        patch.replace_range(MAP_START_KEY, MAP_END_KEY, new_bytes)


# ============================================================================
# Whole game
# ============================================================================

def reset_game(path: PathLike):
    """Replace the current map and players with the initial ones.

    Every player's tech list is reset to ``[0]``. Player list, tile block and
    dimension fields are patched from the back of the file towards the front,
    so one decode serves all three.
    """
    model, index = read_save(path)
    initial = model.initial
    for player in initial.players:
        player.techs = [0]

    player_bytes = encode_players(initial.players)
    tile_bytes = encode_tiles(initial.tiles)
    with PatchWriter(path, index) as patch:
        patch.replace_range(ALL_PLAYERS_START_KEY, ALL_PLAYERS_END_KEY, player_bytes)
        patch.replace_range(MAP_START_KEY, MAP_END_KEY, tile_bytes)
        _write_map_dimensions(patch, initial.width, initial.height)


def rewrite_save(path: PathLike) -> bool:
    """Re-encode the current players and map in place.

    Returns True if the file changed, which means the encoder does not
    reproduce this save exactly.
    """
    model, index = read_save(path)
    player_bytes = encode_players(model.players)
    tile_bytes = encode_tiles(model.current.tiles)
    with PatchWriter(path, index) as patch:
        before = patch.get_bytes()
        patch.replace_range(ALL_PLAYERS_START_KEY, ALL_PLAYERS_END_KEY, player_bytes)
        patch.replace_range(MAP_START_KEY, MAP_END_KEY, tile_bytes)
        changed = patch.get_bytes() != before
    return changed
