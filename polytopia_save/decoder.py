"""
Save decoder: walks the decompressed save top-to-bottom into a SaveModel.

The layout has no explicit record tags. Which shape comes next is decided by
flags and sibling values already read, so every step records where it
started in the OffsetIndex and any mismatch aborts the decode.

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

from .binary import BinaryReader
from .errors import CorruptSaveError, UnsupportedTaskTypeError
from .model import (
    CITY_IMPROVEMENT_TYPE,
    KNOWN_PLAYER_ENTRY_SIZE,
    PLAYER_TAIL_SIZE,
    SNAPSHOT_PADDING_SIZE,
    TASK_PAYLOAD_SIZES,
    TILE_TAIL_SIZE,
    City,
    CityLocation,
    DiplomacyMessage,
    DiplomacyRelation,
    Improvement,
    MapHeader,
    MapSnapshot,
    PassengerUnit,
    Player,
    PlayerTask,
    Resource,
    SaveModel,
    Snapshot,
    Tile,
    Unit,
    UnitLocation,
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


# ============================================================================
# Map header
# ============================================================================

def parse_map_header(reader: BinaryReader, index: OffsetIndex) -> MapHeader:
    """Parse the map header that opens each snapshot."""
    header = MapHeader(
        version1=reader.read_u32(),
        version2=reader.read_u32(),
        total_actions=reader.read_u16(),
        current_turn=reader.read_u32(),
        current_player_index=reader.read_u8(),
        max_unit_id=reader.read_u32(),
        unknown_byte1=reader.read_u8(),
        seed=reader.read_u32(),
        turn_limit=reader.read_u32(),
        unknown1=reader.read_bytes(11),
        game_mode1=reader.read_u8(),
        game_mode2=reader.read_u8(),
    )
    header.map_name = reader.read_var_string()

    index.record(SQUARE_SIZE_KEY, reader.tell())
    header.square_size = reader.read_u32()

    header.disabled_tribes = [reader.read_u16() for _ in range(reader.read_u16())]
    header.unlocked_tribes = [reader.read_u16() for _ in range(reader.read_u16())]
    header.difficulty = reader.read_u16()
    header.num_opponents = reader.read_u32()
    header.unknown_arr = reader.read_bytes(5 + len(header.unlocked_tribes))

    skin_count = reader.read_u32()
    header.tribe_skins = [(reader.read_u16(), reader.read_u16()) for _ in range(skin_count)]

    index.record(MAP_WIDTH_KEY, reader.tell())
    header.width = reader.read_u16()
    index.record(MAP_HEIGHT_KEY, reader.tell())
    header.height = reader.read_u16()
    if header.width == 0 and header.height == 0:
        header.zero_dimensions_prefix = True
        index.record(MAP_WIDTH_KEY, reader.tell())
        header.width = reader.read_u16()
        index.record(MAP_HEIGHT_KEY, reader.tell())
        header.height = reader.read_u16()
    return header


# ============================================================================
# Tile contents
# ============================================================================

def parse_city(reader: BinaryReader) -> City:
    """Parse the variable-length record of an owned city."""
    city = City(
        level=reader.read_u16(),
        founded=reader.read_u16(),
        population=reader.read_i16(),
        total_population=reader.read_u16(),
        unknown_short1=reader.read_i16(),
        score=reader.read_i16(),
        unknown_short2=reader.read_i16(),
        unknown_short3=reader.read_i16(),
        capital_link=reader.read_u8(),
    )

    offset = reader.tell()
    has_name = reader.read_u8()
    if has_name != 1:
        raise CorruptSaveError(f"City name flag at offset 0x{offset:x} is {has_name}, expected 1")
    city.name = reader.read_var_string()

    offset = reader.tell()
    founded_tribe = reader.read_u8()
    if founded_tribe != 0:
        raise CorruptSaveError(f"City founded-tribe byte at offset 0x{offset:x} is {founded_tribe}, expected 0")

    city.rewards = [reader.read_u16() for _ in range(reader.read_u16())]
    city.rebellion_flag = reader.read_u16()
    if city.rebellion_flag != 0:
        city.rebellion_extra = reader.read_bytes(2)
    return city


def parse_improvement(reader: BinaryReader) -> Improvement:
    """Parse the fixed-width record of a non-city improvement."""
    return Improvement(
        level=reader.read_u16(),
        founded=reader.read_u16(),
        population=reader.read_i16(),
        total_population=reader.read_u16(),
        unknown_short1=reader.read_i16(),
        score=reader.read_i16(),
        unknown_short2=reader.read_i16(),
        unknown_short3=reader.read_i16(),
        capital_link=reader.read_u8(),
        unknown=reader.read_bytes(4),
        rebellion_flag=reader.read_u16(),
    )


def parse_unit(reader: BinaryReader) -> Unit:
    """Parse the 42-byte unit record."""
    return Unit(
        id=reader.read_u32(),
        owner=reader.read_u8(),
        type=reader.read_u16(),
        unknown=reader.read_bytes(8),
        x=reader.read_i32(),
        y=reader.read_i32(),
        home_x=reader.read_i32(),
        home_y=reader.read_i32(),
        health=reader.read_u16(),
        promotion_level=reader.read_u16(),
        experience=reader.read_u16(),
        moved=reader.read_flag("unit moved"),
        attacked=reader.read_flag("unit attacked"),
        flipped=reader.read_flag("unit flipped"),
        created_turn=reader.read_u16(),
    )


def parse_passenger(reader: BinaryReader) -> PassengerUnit:
    """Parse the shadow unit and opaque buffers left by an embark/disembark."""
    previous = parse_unit(reader)
    pad = reader.read_u8()
    buffer_a = reader.read_bytes(7)
    buffer_b = reader.read_bytes(7)
    if buffer_a[0] == 1:
        buffer_b += reader.read_bytes(4)
    return PassengerUnit(previous=previous, pad=pad, buffer_a=buffer_a, buffer_b=buffer_b)


def parse_tile(reader: BinaryReader, x: int, y: int, index: OffsetIndex) -> Tile:
    """Parse one tile and record its section offsets."""
    index.record(tile_start_key(x, y), reader.tell())
    start = reader.tell()
    tile = Tile(
        x=reader.read_u32(),
        y=reader.read_u32(),
        terrain=reader.read_u16(),
        climate=reader.read_u16(),
        altitude=reader.read_i16(),
        owner=reader.read_u8(),
        capital=reader.read_u8(),
        capital_x=reader.read_i32(),
        capital_y=reader.read_i32(),
    )
    if tile.x != x or tile.y != y:
        raise CorruptSaveError(
            f"File reached unexpected location at offset 0x{start:x}: "
            f"iteration ({x}, {y}) isn't equal to world coordinates ({tile.x}, {tile.y})"
        )

    if reader.read_flag("resource flag"):
        tile.resource = Resource(type=reader.read_u16())

    index.record(tile_improvement_start_key(x, y), reader.tell())
    if reader.read_flag("improvement flag"):
        tile.improvement_type = reader.read_u16()
    if is_city_tile(tile.owner, tile.resource, tile.improvement_type):
        tile.improvement = parse_city(reader)
    elif tile.improvement_type is not None:
        tile.improvement = parse_improvement(reader)
    index.record(tile_improvement_end_key(x, y), reader.tell())

    if reader.read_flag("unit flag"):
        index.record(unit_location_key(x, y), reader.tell())
        tile.unit = parse_unit(reader)
        if reader.read_flag("passenger flag"):
            index.record(previous_unit_location_key(x, y), reader.tell())
            tile.passenger = parse_passenger(reader)
        else:
            tile.unit_buffer_flag = reader.read_u8()
            tile.unit_buffer = reader.read_bytes(8 if tile.unit_buffer_flag == 1 else 6)

    index.record(tile_visibility_key(x, y), reader.tell())
    tile.visibility = list(reader.read_bytes(reader.read_u8()))

    index.record(tile_road_key(x, y), reader.tell())
    tile.has_road = reader.read_flag("road flag")
    tile.has_water_route = reader.read_flag("water route flag")
    tile.unknown = reader.read_bytes(TILE_TAIL_SIZE)

    index.record(tile_end_key(x, y), reader.tell())
    return tile


def parse_tiles(reader: BinaryReader, width: int, height: int, index: OffsetIndex) -> list:
    """Parse the tile grid, rows outer and columns inner."""
    index.record(MAP_START_KEY, reader.tell())
    tiles = [[parse_tile(reader, x, y, index) for x in range(width)] for y in range(height)]
    index.record(MAP_END_KEY, reader.tell())
    return tiles


# ============================================================================
# Players
# ============================================================================

def parse_task(reader: BinaryReader) -> PlayerTask:
    offset = reader.tell()
    task_type = reader.read_i16()
    size = TASK_PAYLOAD_SIZES.get(task_type)
    if size is None:
        raise UnsupportedTaskTypeError(task_type, offset)
    return PlayerTask(type=task_type, payload=reader.read_bytes(size))


def parse_diplomacy_relation(reader: BinaryReader) -> DiplomacyRelation:
    return DiplomacyRelation(
        player_id=reader.read_u8(),
        relation_state=reader.read_u8(),
        last_attack_turn=reader.read_i32(),
        embassy_level=reader.read_u8(),
        last_peace_broken_turn=reader.read_i32(),
        first_meet=reader.read_i32(),
        embassy_build_turn=reader.read_i32(),
        previous_attack_turn=reader.read_i32(),
    )


def parse_player(reader: BinaryReader, index: OffsetIndex) -> Player:
    """Parse one player record."""
    player = Player(
        id=reader.read_u8(),
        name=reader.read_var_string(),
        account_id=reader.read_var_string(),
        autoplay=reader.read_flag("autoplay flag"),
        start_x=reader.read_i32(),
        start_y=reader.read_i32(),
        tribe=reader.read_u16(),
        unknown_byte1=reader.read_u8(),
        unknown_int1=reader.read_u32(),
    )

    index.record(player_known_players_key(player.id), reader.tell())
    for _ in range(reader.read_u16()):
        player.known_players.extend(reader.read_bytes(KNOWN_PLAYER_ENTRY_SIZE))

    index.record(player_currency_key(player.id), reader.tell())
    player.currency = reader.read_u32()
    player.score = reader.read_u32()
    player.unknown_int2 = reader.read_u32()
    player.num_cities = reader.read_u16()
    player.techs = [reader.read_u16() for _ in range(reader.read_u16())]
    player.encountered_players = [reader.read_u8() for _ in range(reader.read_u16())]

    offset = reader.tell()
    num_tasks = reader.read_i16()
    if num_tasks < 0:
        raise CorruptSaveError(f"Negative task count {num_tasks} at offset 0x{offset:x}")
    player.tasks = [parse_task(reader) for _ in range(num_tasks)]

    player.kills = reader.read_i32()
    player.losses = reader.read_i32()
    player.tribes_destroyed = reader.read_i32()
    player.override_color = reader.read_bytes(4)
    player.unknown_byte2 = reader.read_u8()
    player.unique_improvements = [reader.read_u16() for _ in range(reader.read_u16())]
    player.diplomacy = [parse_diplomacy_relation(reader) for _ in range(reader.read_u16())]
    player.diplomacy_messages = [
        DiplomacyMessage(type=reader.read_u8(), sender=reader.read_u8())
        for _ in range(reader.read_u16())
    ]
    player.destroyed_by = reader.read_u8()
    player.destroyed_turn = reader.read_u32()
    player.unknown_tail = reader.read_bytes(PLAYER_TAIL_SIZE)
    return player


def parse_players(reader: BinaryReader, index: OffsetIndex) -> list:
    """Parse the counted player list."""
    index.record(ALL_PLAYERS_START_KEY, reader.tell())
    players = []
    for i in range(reader.read_u16()):
        index.record(player_start_key(i), reader.tell())
        players.append(parse_player(reader, index))
    index.record(ALL_PLAYERS_END_KEY, reader.tell())
    return players


# ============================================================================
# Snapshots and derived indices
# ============================================================================

def parse_snapshot(reader: BinaryReader, index: OffsetIndex) -> MapSnapshot:
    header = parse_map_header(reader, index)
    tiles = parse_tiles(reader, header.width, header.height, index)
    players = parse_players(reader, index)
    return MapSnapshot(header=header, tiles=tiles, players=players)


def build_owner_to_tribe(players: list) -> dict:
    owner_to_tribe = {}
    for player in players:
        if player.id in owner_to_tribe:
            raise CorruptSaveError(
                f"Owner to tribe map has duplicate player id {player.id} "
                f"already mapped to {owner_to_tribe[player.id]}"
            )
        owner_to_tribe[player.id] = player.tribe
    return owner_to_tribe


def build_tribe_to_cities(snapshot: MapSnapshot) -> dict:
    tribe_to_cities = {}
    for tile in snapshot.iter_tiles():
        if tile.improvement_type == CITY_IMPROVEMENT_TYPE:
            location = CityLocation(x=tile.x, y=tile.y, name=tile.city_name)
            tribe_to_cities.setdefault(tile.owner, []).append(location)
    return tribe_to_cities


def build_tribe_to_units(snapshot: MapSnapshot) -> dict:
    tribe_to_units = {}
    for tile in snapshot.iter_tiles():
        if tile.unit is not None:
            location = UnitLocation(x=tile.x, y=tile.y, unit_type=tile.unit.type)
            tribe_to_units.setdefault(tile.unit.owner, []).append(location)
    return tribe_to_units


# ============================================================================
# Whole save
# ============================================================================

def parse_save(data: bytes, indexed_snapshot: Snapshot = Snapshot.CURRENT) -> tuple[SaveModel, OffsetIndex]:
    """Decode a decompressed save.

    Only ``indexed_snapshot`` records offsets; the other snapshot is decoded
    against a throwaway index so no key can point into the wrong map.
    """
    reader = BinaryReader(data)
    index = OffsetIndex()
    scratch = OffsetIndex()

    initial = parse_snapshot(reader, index if indexed_snapshot is Snapshot.INITIAL else scratch)
    padding = reader.read_bytes(SNAPSHOT_PADDING_SIZE)
    current = parse_snapshot(reader, index if indexed_snapshot is Snapshot.CURRENT else scratch)
    trailer = reader.read_bytes(reader.remaining)

    model = SaveModel(
        initial=initial,
        current=current,
        padding=padding,
        trailer=trailer,
        owner_to_tribe=build_owner_to_tribe(current.players),
        tribe_to_cities=build_tribe_to_cities(current),
        tribe_to_units=build_tribe_to_units(current),
    )
    return model, index


def read_save(path: Union[str, Path], indexed_snapshot: Optional[Snapshot] = None) -> tuple[SaveModel, OffsetIndex]:
    """Read and decode a decompressed save file."""
    data = Path(path).read_bytes()
    return parse_save(data, indexed_snapshot or Snapshot.CURRENT)
