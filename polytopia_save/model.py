"""
Typed model of a decompressed save: map headers, tiles, units, cities and players.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, Union

from .errors import UnknownOffsetKeyError

# ============================================================================
# Constants
# ============================================================================

NATURE_PLAYER_ID = 255
SWAP_SENTINEL_ID = 254
CITY_IMPROVEMENT_TYPE = 1
SNAPSHOT_PADDING_SIZE = 3

MAP_HEADER_PREFIX_SIZE = 41
TILE_HEADER_SIZE = 24
UNIT_RECORD_SIZE = 42
IMPROVEMENT_RECORD_SIZE = 23
DIPLOMACY_RECORD_SIZE = 23
KNOWN_PLAYER_ENTRY_SIZE = 5
PLAYER_TAIL_SIZE = 14
TILE_TAIL_SIZE = 4

# Field positions inside fixed records, relative to the record start.
TILE_TERRAIN_OFFSET = 8
TILE_ALTITUDE_OFFSET = 12
TILE_OWNER_OFFSET = 14
TILE_CAPITAL_OFFSET = 15
UNIT_OWNER_OFFSET = 4
UNIT_TYPE_OFFSET = 5

# Task type -> payload width
TASK_PAYLOAD_SIZES = {1: 6, 5: 6, 2: 2, 3: 2, 4: 2, 6: 2, 7: 2, 8: 2}


class Terrain(IntEnum):
    WATER = 1
    OCEAN = 2
    FIELD = 3
    MOUNTAIN = 4
    FOREST = 5


class Snapshot(Enum):
    """Which of the two back-to-back game states an edit targets."""
    INITIAL = "initial"
    CURRENT = "current"


# ============================================================================
# Map header
# ============================================================================

@dataclass
class MapHeader:
    version1: int = 0
    version2: int = 0
    total_actions: int = 0
    current_turn: int = 0
    current_player_index: int = 0
    max_unit_id: int = 0
    unknown_byte1: int = 0
    seed: int = 0
    turn_limit: int = 0
    unknown1: bytes = bytes(11)
    game_mode1: int = 0
    game_mode2: int = 0
    map_name: str = ""
    square_size: int = 0
    disabled_tribes: list = field(default_factory=list)
    unlocked_tribes: list = field(default_factory=list)
    difficulty: int = 0
    num_opponents: int = 0
    # 5 + len(unlocked_tribes) opaque bytes
    unknown_arr: bytes = bytes(5)
    tribe_skins: list = field(default_factory=list)  # [(tribe, skin), ...] in file order
    width: int = 0
    height: int = 0
    # Some saves store width=0,height=0 followed by the real dimensions.
    zero_dimensions_prefix: bool = False


# ============================================================================
# Tile contents
# ============================================================================

@dataclass
class Resource:
    type: int = 0


@dataclass
class Improvement:
    """Fixed-width improvement record (anything that is not an owned city)."""
    level: int = 0
    founded: int = 0
    population: int = 0
    total_population: int = 0
    unknown_short1: int = 0
    score: int = 0
    unknown_short2: int = 0
    unknown_short3: int = 0
    capital_link: int = 0
    unknown: bytes = bytes(4)
    rebellion_flag: int = 0


@dataclass
class City:
    level: int = 1
    founded: int = 0
    population: int = 0
    total_population: int = 0
    unknown_short1: int = 1
    score: int = 0
    unknown_short2: int = 1
    unknown_short3: int = 0
    capital_link: int = 0
    name: str = ""
    rewards: list = field(default_factory=list)
    rebellion_flag: int = 0
    # present only when rebellion_flag != 0
    rebellion_extra: Optional[bytes] = None


@dataclass
class Unit:
    id: int = 0
    owner: int = 0
    type: int = 0
    unknown: bytes = bytes(8)
    x: int = 0
    y: int = 0
    home_x: int = 0
    home_y: int = 0
    health: int = 0  # game value x 10
    promotion_level: int = 0
    experience: int = 0
    moved: bool = False
    attacked: bool = False
    flipped: bool = False
    created_turn: int = 0


@dataclass
class PassengerUnit:
    """Shadow of the previous unit kept after an embark/disembark."""
    previous: Unit = field(default_factory=Unit)
    pad: int = 0
    buffer_a: bytes = bytes(7)
    # 7 bytes, or 11 when buffer_a[0] == 1
    buffer_b: bytes = bytes(7)


@dataclass
class Tile:
    x: int = 0
    y: int = 0
    terrain: int = int(Terrain.FIELD)
    climate: int = 1
    altitude: int = 1
    owner: int = 0
    capital: int = 0
    capital_x: int = -1
    capital_y: int = -1
    resource: Optional[Resource] = None
    improvement_type: Optional[int] = None
    improvement: Optional[Union[Improvement, City]] = None
    unit: Optional[Unit] = None
    passenger: Optional[PassengerUnit] = None
    # Opaque tail after a unit without passenger: sub-flag + 6 or 8 bytes
    unit_buffer_flag: int = 0
    unit_buffer: bytes = b""
    visibility: list = field(default_factory=list)
    has_road: bool = False
    has_water_route: bool = False
    unknown: bytes = bytes(4)

    @property
    def is_city(self) -> bool:
        """Derived variant: an owned, resource-free tile with improvement type 1."""
        return is_city_tile(self.owner, self.resource, self.improvement_type)

    @property
    def city_name(self) -> str:
        return self.improvement.name if isinstance(self.improvement, City) else ""


def is_city_tile(owner: int, resource: Optional[Resource], improvement_type: Optional[int]) -> bool:
    return owner > 0 and resource is None and improvement_type == CITY_IMPROVEMENT_TYPE


# ============================================================================
# Players
# ============================================================================

@dataclass
class PlayerTask:
    type: int = 0
    payload: bytes = b""


@dataclass
class DiplomacyRelation:
    player_id: int = 0
    relation_state: int = 0
    last_attack_turn: int = 0
    embassy_level: int = 0
    last_peace_broken_turn: int = 0
    first_meet: int = 0
    embassy_build_turn: int = 0
    previous_attack_turn: int = 0


@dataclass
class DiplomacyMessage:
    type: int = 0
    sender: int = 0


@dataclass
class Player:
    id: int = 0
    name: str = ""
    account_id: str = ""
    autoplay: bool = False
    start_x: int = 0
    start_y: int = 0
    tribe: int = 0
    unknown_byte1: int = 0
    unknown_int1: int = 0
    # Flat list of 5-int entries (player id + 4 opaque bytes), id 255 last
    known_players: list = field(default_factory=list)
    currency: int = 0
    score: int = 0
    unknown_int2: int = 0
    num_cities: int = 0
    techs: list = field(default_factory=list)
    encountered_players: list = field(default_factory=list)
    tasks: list = field(default_factory=list)
    kills: int = 0
    losses: int = 0
    tribes_destroyed: int = 0
    override_color: bytes = bytes(4)  # B, G, R, 0
    unknown_byte2: int = 0
    unique_improvements: list = field(default_factory=list)
    diplomacy: list = field(default_factory=list)
    diplomacy_messages: list = field(default_factory=list)
    destroyed_by: int = 0
    destroyed_turn: int = 0
    unknown_tail: bytes = bytes(PLAYER_TAIL_SIZE)

    def known_player_ids(self) -> list:
        return self.known_players[0::KNOWN_PLAYER_ENTRY_SIZE]


# ============================================================================
# Snapshots and the whole save
# ============================================================================

@dataclass
class CityLocation:
    x: int
    y: int
    name: str


@dataclass
class UnitLocation:
    x: int
    y: int
    unit_type: int


@dataclass
class MapSnapshot:
    header: MapHeader = field(default_factory=MapHeader)
    tiles: list = field(default_factory=list)  # tiles[y][x]
    players: list = field(default_factory=list)

    @property
    def width(self) -> int:
        return self.header.width

    @property
    def height(self) -> int:
        return self.header.height

    def tile(self, x: int, y: int) -> Tile:
        if not (0 <= y < len(self.tiles) and 0 <= x < len(self.tiles[y])):
            raise IndexError(f"Tile ({x}, {y}) is outside a {self.width}x{self.height} map")
        return self.tiles[y][x]

    def iter_tiles(self):
        for row in self.tiles:
            yield from row


@dataclass
class SaveModel:
    initial: MapSnapshot = field(default_factory=MapSnapshot)
    current: MapSnapshot = field(default_factory=MapSnapshot)
    padding: bytes = bytes(SNAPSHOT_PADDING_SIZE)
    trailer: bytes = b""
    tribe_to_cities: dict = field(default_factory=dict)
    tribe_to_units: dict = field(default_factory=dict)
    owner_to_tribe: dict = field(default_factory=dict)

    @property
    def players(self) -> list:
        return self.current.players

    @property
    def width(self) -> int:
        return self.current.width

    @property
    def height(self) -> int:
        return self.current.height

    @property
    def max_turn(self) -> int:
        return self.current.header.current_turn

    def snapshot(self, which: Snapshot) -> MapSnapshot:
        return self.initial if which is Snapshot.INITIAL else self.current

    def find_player(self, player_id: int) -> Player:
        for player in self.players:
            if player.id == player_id:
                return player
        raise UnknownOffsetKeyError(f"Player:{player_id}", f"No player with id {player_id}")
