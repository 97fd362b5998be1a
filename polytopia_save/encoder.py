"""
Save encoder: the exact inverse of the decoder.

Length prefixes are taken from the live collections and the city/improvement
variant is derived again from the tile's sibling fields, so a model edited in
memory still encodes to a layout the decoder can read back.

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
from typing import Union

from .binary import BinaryWriter
from .errors import UnsupportedVariantError, ValueOutOfRangeError
from .model import (
    KNOWN_PLAYER_ENTRY_SIZE,
    PLAYER_TAIL_SIZE,
    SNAPSHOT_PADDING_SIZE,
    TASK_PAYLOAD_SIZES,
    TILE_TAIL_SIZE,
    City,
    Improvement,
    MapHeader,
    MapSnapshot,
    PassengerUnit,
    Player,
    SaveModel,
    Tile,
    Unit,
)


def _check_width(data: bytes, width: int, name: str):
    if len(data) != width:
        raise ValueOutOfRangeError(
            len(data), message=f"{name} must be {width} bytes, got {len(data)}"
        )


# ============================================================================
# Map header
# ============================================================================

def write_map_header(writer: BinaryWriter, header: MapHeader):
    writer.write_u32(header.version1, "version1")
    writer.write_u32(header.version2, "version2")
    writer.write_u16(header.total_actions, "total actions")
    writer.write_u32(header.current_turn, "current turn")
    writer.write_u8(header.current_player_index, "current player index")
    writer.write_u32(header.max_unit_id, "max unit id")
    writer.write_u8(header.unknown_byte1)
    writer.write_u32(header.seed, "seed")
    writer.write_u32(header.turn_limit, "turn limit")
    _check_width(header.unknown1, 11, "map header unknown1")
    writer.write_bytes(header.unknown1)
    writer.write_u8(header.game_mode1, "game mode")
    writer.write_u8(header.game_mode2, "game mode")
    writer.write_var_string(header.map_name)
    writer.write_u32(header.square_size, "square size")

    writer.write_u16(len(header.disabled_tribes), "disabled tribe count")
    for tribe in header.disabled_tribes:
        writer.write_u16(tribe, "disabled tribe")
    writer.write_u16(len(header.unlocked_tribes), "unlocked tribe count")
    for tribe in header.unlocked_tribes:
        writer.write_u16(tribe, "unlocked tribe")
    writer.write_u16(header.difficulty, "difficulty")
    writer.write_u32(header.num_opponents, "opponent count")
    _check_width(header.unknown_arr, 5 + len(header.unlocked_tribes), "map header unknown_arr")
    writer.write_bytes(header.unknown_arr)

    writer.write_u32(len(header.tribe_skins), "skin count")
    for tribe, skin in header.tribe_skins:
        writer.write_u16(tribe, "skin tribe")
        writer.write_u16(skin, "skin")

    if header.zero_dimensions_prefix:
        writer.write_u16(0)
        writer.write_u16(0)
    writer.write_u16(header.width, "map width")
    writer.write_u16(header.height, "map height")


# ============================================================================
# Tile contents
# ============================================================================

def write_unit(writer: BinaryWriter, unit: Unit):
    writer.write_u32(unit.id, "unit id")
    writer.write_u8(unit.owner, "unit owner")
    writer.write_u16(unit.type, "unit type")
    _check_width(unit.unknown, 8, "unit unknown")
    writer.write_bytes(unit.unknown)
    writer.write_i32(unit.x, "unit x")
    writer.write_i32(unit.y, "unit y")
    writer.write_i32(unit.home_x, "unit home x")
    writer.write_i32(unit.home_y, "unit home y")
    writer.write_u16(unit.health, "unit health")
    writer.write_u16(unit.promotion_level, "unit promotion level")
    writer.write_u16(unit.experience, "unit experience")
    writer.write_flag(unit.moved)
    writer.write_flag(unit.attacked)
    writer.write_flag(unit.flipped)
    writer.write_u16(unit.created_turn, "unit created turn")


def write_passenger(writer: BinaryWriter, passenger: PassengerUnit):
    write_unit(writer, passenger.previous)
    writer.write_u8(passenger.pad)
    _check_width(passenger.buffer_a, 7, "passenger buffer A")
    writer.write_bytes(passenger.buffer_a)
    _check_width(passenger.buffer_b, 11 if passenger.buffer_a[0] == 1 else 7, "passenger buffer B")
    writer.write_bytes(passenger.buffer_b)


def _write_improvement_prefix(writer: BinaryWriter, record: Union[City, Improvement]):
    writer.write_u16(record.level, "level")
    writer.write_u16(record.founded, "founded")
    writer.write_i16(record.population, "population")
    writer.write_u16(record.total_population, "total population")
    writer.write_i16(record.unknown_short1)
    writer.write_i16(record.score, "score")
    writer.write_i16(record.unknown_short2)
    writer.write_i16(record.unknown_short3)
    writer.write_u8(record.capital_link, "capital link")


def write_city(writer: BinaryWriter, city: City):
    _write_improvement_prefix(writer, city)
    writer.write_u8(1)
    writer.write_var_string(city.name)
    writer.write_u8(0)
    writer.write_u16(len(city.rewards), "reward count")
    for reward in city.rewards:
        writer.write_u16(reward, "reward")
    if city.rebellion_flag == 0 and city.rebellion_extra is not None:
        raise UnsupportedVariantError(
            f"City {city.name!r} has a rebellion buffer but rebellion flag 0; the buffer would be dropped"
        )
    writer.write_u16(city.rebellion_flag, "rebellion flag")
    if city.rebellion_flag != 0:
        _check_width(city.rebellion_extra or b"", 2, "city rebellion buffer")
        writer.write_bytes(city.rebellion_extra)


def write_improvement(writer: BinaryWriter, improvement: Improvement):
    _write_improvement_prefix(writer, improvement)
    _check_width(improvement.unknown, 4, "improvement unknown")
    writer.write_bytes(improvement.unknown)
    writer.write_u16(improvement.rebellion_flag, "rebellion flag")


def write_improvement_section(writer: BinaryWriter, tile: Tile):
    """Write ``[has improvement][type][city or improvement record]``."""
    if tile.improvement_type is None:
        if tile.improvement is not None:
            raise UnsupportedVariantError(
                f"Tile ({tile.x}, {tile.y}) has an improvement record but no improvement type"
            )
        writer.write_u8(0)
        return

    writer.write_u8(1)
    writer.write_u16(tile.improvement_type, "improvement type")
    expected = City if tile.is_city else Improvement
    if not isinstance(tile.improvement, expected):
        found = type(tile.improvement).__name__
        raise UnsupportedVariantError(
            f"Tile ({tile.x}, {tile.y}) with owner {tile.owner}, improvement type "
            f"{tile.improvement_type} decodes as {expected.__name__}, got {found}"
        )
    if tile.is_city:
        write_city(writer, tile.improvement)
    else:
        write_improvement(writer, tile.improvement)


def write_tile(writer: BinaryWriter, tile: Tile):
    writer.write_u32(tile.x, "tile x")
    writer.write_u32(tile.y, "tile y")
    writer.write_u16(tile.terrain, "terrain")
    writer.write_u16(tile.climate, "climate")
    writer.write_i16(tile.altitude, "altitude")
    writer.write_u8(tile.owner, "tile owner")
    writer.write_u8(tile.capital, "capital")
    writer.write_i32(tile.capital_x, "capital x")
    writer.write_i32(tile.capital_y, "capital y")

    if tile.resource is not None:
        writer.write_u8(1)
        writer.write_u16(tile.resource.type, "resource type")
    else:
        writer.write_u8(0)

    write_improvement_section(writer, tile)

    if tile.unit is not None:
        writer.write_u8(1)
        write_unit(writer, tile.unit)
        if tile.passenger is not None:
            writer.write_u8(1)
            write_passenger(writer, tile.passenger)
        else:
            writer.write_u8(0)
            writer.write_u8(tile.unit_buffer_flag, "unit buffer flag")
            _check_width(tile.unit_buffer, 8 if tile.unit_buffer_flag == 1 else 6, "unit buffer")
            writer.write_bytes(tile.unit_buffer)
    else:
        if tile.passenger is not None:
            raise UnsupportedVariantError(f"Tile ({tile.x}, {tile.y}) has a passenger but no unit")
        writer.write_u8(0)

    writer.write_u8(len(tile.visibility), "visibility count")
    for tribe in tile.visibility:
        writer.write_u8(tribe, "visibility tribe")

    writer.write_flag(tile.has_road)
    writer.write_flag(tile.has_water_route)
    _check_width(tile.unknown, TILE_TAIL_SIZE, "tile unknown")
    writer.write_bytes(tile.unknown)


def write_tiles(writer: BinaryWriter, tiles: list):
    for row in tiles:
        for tile in row:
            write_tile(writer, tile)


def encode_tile(tile: Tile) -> bytes:
    writer = BinaryWriter()
    write_tile(writer, tile)
    return writer.get_bytes()


def encode_tiles(tiles: list) -> bytes:
    writer = BinaryWriter()
    write_tiles(writer, tiles)
    return writer.get_bytes()


# ============================================================================
# Players
# ============================================================================

def write_known_players(writer: BinaryWriter, known_players: list):
    if len(known_players) % KNOWN_PLAYER_ENTRY_SIZE != 0:
        raise ValueOutOfRangeError(
            len(known_players),
            message=f"Known players array length {len(known_players)} is not a multiple of {KNOWN_PLAYER_ENTRY_SIZE}",
        )
    writer.write_u16(len(known_players) // KNOWN_PLAYER_ENTRY_SIZE, "known player count")
    for value in known_players:
        writer.write_u8(value, "known player entry")


def write_player(writer: BinaryWriter, player: Player):
    writer.write_u8(player.id, "player id")
    writer.write_var_string(player.name)
    writer.write_var_string(player.account_id)
    writer.write_flag(player.autoplay)
    writer.write_i32(player.start_x, "start x")
    writer.write_i32(player.start_y, "start y")
    writer.write_u16(player.tribe, "tribe")
    writer.write_u8(player.unknown_byte1)
    writer.write_u32(player.unknown_int1)
    write_known_players(writer, player.known_players)
    writer.write_u32(player.currency, "currency")
    writer.write_u32(player.score, "score")
    writer.write_u32(player.unknown_int2)
    writer.write_u16(player.num_cities, "city count")

    writer.write_u16(len(player.techs), "tech count")
    for tech in player.techs:
        writer.write_u16(tech, "tech")
    writer.write_u16(len(player.encountered_players), "encountered player count")
    for other in player.encountered_players:
        writer.write_u8(other, "encountered player")

    writer.write_i16(len(player.tasks), "task count")
    for task in player.tasks:
        if task.type not in TASK_PAYLOAD_SIZES:
            raise ValueOutOfRangeError(task.type, message=f"Invalid task type {task.type}")
        writer.write_i16(task.type, "task type")
        _check_width(task.payload, TASK_PAYLOAD_SIZES[task.type], f"task {task.type} payload")
        writer.write_bytes(task.payload)

    writer.write_i32(player.kills, "kills")
    writer.write_i32(player.losses, "losses")
    writer.write_i32(player.tribes_destroyed, "tribes destroyed")
    _check_width(player.override_color, 4, "override colour")
    writer.write_bytes(player.override_color)
    writer.write_u8(player.unknown_byte2)

    writer.write_u16(len(player.unique_improvements), "unique improvement count")
    for improvement in player.unique_improvements:
        writer.write_u16(improvement, "unique improvement")

    writer.write_u16(len(player.diplomacy), "diplomacy count")
    for relation in player.diplomacy:
        writer.write_u8(relation.player_id, "diplomacy player id")
        writer.write_u8(relation.relation_state, "relation state")
        writer.write_i32(relation.last_attack_turn)
        writer.write_u8(relation.embassy_level, "embassy level")
        writer.write_i32(relation.last_peace_broken_turn)
        writer.write_i32(relation.first_meet)
        writer.write_i32(relation.embassy_build_turn)
        writer.write_i32(relation.previous_attack_turn)

    writer.write_u16(len(player.diplomacy_messages), "diplomacy message count")
    for message in player.diplomacy_messages:
        writer.write_u8(message.type, "message type")
        writer.write_u8(message.sender, "message sender")

    writer.write_u8(player.destroyed_by, "destroyed by")
    writer.write_u32(player.destroyed_turn, "destroyed turn")
    _check_width(player.unknown_tail, PLAYER_TAIL_SIZE, "player tail")
    writer.write_bytes(player.unknown_tail)


def write_players(writer: BinaryWriter, players: list):
    writer.write_u16(len(players), "player count")
    for player in players:
        write_player(writer, player)


def encode_player(player: Player) -> bytes:
    writer = BinaryWriter()
    write_player(writer, player)
    return writer.get_bytes()


def encode_players(players: list) -> bytes:
    writer = BinaryWriter()
    write_players(writer, players)
    return writer.get_bytes()


# ============================================================================
# Snapshots and the whole save
# ============================================================================

def write_snapshot(writer: BinaryWriter, snapshot: MapSnapshot):
    header = snapshot.header
    if len(snapshot.tiles) != header.height or any(len(row) != header.width for row in snapshot.tiles):
        raise UnsupportedVariantError(
            f"Tile grid does not match the {header.width}x{header.height} map header"
        )
    write_map_header(writer, header)
    write_tiles(writer, snapshot.tiles)
    write_players(writer, snapshot.players)


def write_save(model: SaveModel) -> bytes:
    """Encode a SaveModel back into the decompressed save layout."""
    writer = BinaryWriter()
    write_snapshot(writer, model.initial)
    _check_width(model.padding, SNAPSHOT_PADDING_SIZE, "snapshot padding")
    writer.write_bytes(model.padding)
    write_snapshot(writer, model.current)
    writer.write_bytes(model.trailer)
    return writer.get_bytes()


def save_to_file(model: SaveModel, path: Union[str, Path]):
    Path(path).write_bytes(write_save(model))
