"""Shared fixtures: a small synthetic save covering every record variant."""

import pytest

from polytopia_save.encoder import write_save
from polytopia_save.model import (
    City,
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
    Terrain,
    Tile,
    Unit,
)

TRAILER = b"\x00\x01\x02\x03\x04\x05"


def make_header(width, height, turn):
    return MapHeader(
        version1=104,
        version2=2,
        total_actions=12,
        current_turn=turn,
        current_player_index=1,
        max_unit_id=3,
        seed=123456,
        turn_limit=30,
        unknown1=bytes(range(11)),
        game_mode1=1,
        game_mode2=0,
        map_name="Test Map",
        square_size=min(width, height),
        disabled_tribes=[7],
        unlocked_tribes=[2, 3],
        difficulty=2,
        num_opponents=2,
        unknown_arr=bytes([1, 2, 3, 4, 5, 6, 7]),
        tribe_skins=[(2, 0), (3, 1)],
        width=width,
        height=height,
    )


def make_players(techs):
    known = [1, 0, 0, 0, 0, 2, 9, 8, 0, 0, 255, 0, 0, 0, 0]
    alice = Player(
        id=1,
        name="Alice",
        account_id="acc-1",
        autoplay=False,
        start_x=0,
        start_y=0,
        tribe=2,
        unknown_byte1=1,
        unknown_int1=2,
        known_players=list(known),
        currency=12,
        score=340,
        num_cities=1,
        techs=list(techs),
        encountered_players=[2],
        tasks=[PlayerTask(type=1, payload=bytes([1, 2, 3, 4, 5, 6])), PlayerTask(type=3, payload=b"\x07\x00")],
        kills=2,
        losses=1,
        override_color=bytes([10, 20, 30, 0]),
        unique_improvements=[4],
        diplomacy=[DiplomacyRelation(player_id=2, relation_state=1, last_attack_turn=-1,
                                     embassy_level=0, last_peace_broken_turn=-1, first_meet=2,
                                     embassy_build_turn=-1, previous_attack_turn=-1)],
        diplomacy_messages=[DiplomacyMessage(type=1, sender=2)],
        unknown_tail=bytes(range(14)),
    )
    bob = Player(
        id=2,
        name="Bob",
        account_id="acc-2",
        autoplay=True,
        start_x=1,
        start_y=1,
        tribe=3,
        known_players=list(known),
        currency=5,
        techs=list(techs),
        unknown_tail=bytes(14),
    )
    nature = Player(
        id=255,
        name="Nature",
        account_id="",
        autoplay=True,
        start_x=-1,
        start_y=-1,
        tribe=0,
        known_players=list(known),
        unknown_tail=bytes(14),
    )
    return [alice, bob, nature]


def make_current_tiles():
    tiles = [[Tile(x=x, y=y) for x in range(3)] for y in range(2)]

    # (0, 0): player 1's capital city
    capital = tiles[0][0]
    capital.owner = 1
    capital.capital = 1
    capital.capital_x = 0
    capital.capital_y = 0
    capital.improvement_type = 1
    capital.improvement = City(level=2, founded=0, population=1, total_population=3, score=50,
                               capital_link=1, name="Capital", rewards=[3])
    capital.visibility = [1]
    capital.has_road = True

    # (1, 0): resource with a plain improvement on it
    farm = tiles[0][1]
    farm.resource = Resource(type=2)
    farm.improvement_type = 5
    farm.improvement = Improvement(level=1, founded=3, unknown=b"\x01\x02\x03\x04")
    farm.visibility = [1, 2]

    # (2, 0): embarked unit with its previous unit kept alongside
    boat = tiles[0][2]
    boat.terrain = int(Terrain.WATER)
    boat.altitude = -1
    boat.unit = Unit(id=1, owner=1, type=2, x=2, y=0, home_x=0, home_y=0, health=100,
                     moved=True, created_turn=1)
    boat.passenger = PassengerUnit(
        previous=Unit(id=2, owner=1, type=3, x=2, y=0, home_x=0, home_y=0, health=150),
        buffer_a=bytes([1, 0, 0, 0, 0, 0, 0]),
        buffer_b=bytes(range(11)),
    )

    # (0, 1) and (1, 1): plain units with both tail widths
    tiles[1][0].unit = Unit(id=3, owner=2, type=1, x=0, y=1, home_x=1, home_y=1, health=100)
    tiles[1][0].unit_buffer_flag = 1
    tiles[1][0].unit_buffer = bytes(range(8))
    tiles[1][1].unit = Unit(id=4, owner=2, type=5, x=1, y=1, home_x=1, home_y=1, health=100)
    tiles[1][1].unit_buffer = bytes(6)

    # (2, 1): unowned village, stored as a plain improvement
    village = tiles[1][2]
    village.improvement_type = 1
    village.improvement = Improvement(level=1)
    village.terrain = int(Terrain.FOREST)
    return tiles


def make_initial_tiles():
    tiles = [[Tile(x=x, y=y) for x in range(2)] for y in range(2)]
    capital = tiles[0][0]
    capital.owner = 1
    capital.improvement_type = 1
    capital.improvement = City(name="Capital")
    capital.visibility = [1]
    return tiles


def make_save_model():
    return SaveModel(
        initial=MapSnapshot(header=make_header(2, 2, 0), tiles=make_initial_tiles(), players=make_players([0, 1])),
        current=MapSnapshot(header=make_header(3, 2, 5), tiles=make_current_tiles(), players=make_players([0, 1, 6])),
        padding=b"\x00\x00\x01",
        trailer=TRAILER,
    )


@pytest.fixture
def save_model():
    return make_save_model()


@pytest.fixture
def save_bytes():
    return write_save(make_save_model())


@pytest.fixture
def save_path(tmp_path, save_bytes):
    path = tmp_path / "game.state"
    path.write_bytes(save_bytes)
    return path
