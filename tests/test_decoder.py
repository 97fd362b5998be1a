"""Tests for decoding saves: variants, derived indices, offsets and errors."""

import struct

import pytest

from polytopia_save.binary import BinaryReader
from polytopia_save.decoder import parse_player, parse_save, parse_tile, read_save
from polytopia_save.encoder import encode_player, encode_tile, write_save
from polytopia_save.errors import (
    CorruptSaveError,
    TruncatedInputError,
    UnsupportedTaskTypeError,
)
from polytopia_save.model import (
    City,
    CityLocation,
    Improvement,
    Player,
    PlayerTask,
    Snapshot,
    Tile,
    UnitLocation,
)
from polytopia_save.offsets import (
    ALL_PLAYERS_END_KEY,
    ALL_PLAYERS_START_KEY,
    MAP_END_KEY,
    MAP_START_KEY,
    MAP_WIDTH_KEY,
    SQUARE_SIZE_KEY,
    OffsetIndex,
    player_currency_key,
    player_known_players_key,
    player_start_key,
    previous_unit_location_key,
    tile_improvement_start_key,
    tile_start_key,
    unit_location_key,
)


# =============================================================================
# Model contents
# =============================================================================

class TestDecodedModel:
    def test_dimensions(self, save_bytes):
        model, _ = parse_save(save_bytes)
        assert (model.width, model.height) == (3, 2)
        assert (model.initial.width, model.initial.height) == (2, 2)
        assert model.max_turn == 5

    def test_matches_source_model(self, save_bytes, save_model):
        model, _ = parse_save(save_bytes)
        assert model.current == save_model.current
        assert model.initial == save_model.initial
        assert model.padding == save_model.padding
        assert model.trailer == save_model.trailer

    def test_city_variant(self, save_bytes):
        model, _ = parse_save(save_bytes)
        tile = model.current.tile(0, 0)
        assert tile.is_city
        assert isinstance(tile.improvement, City)
        assert tile.city_name == "Capital"
        assert tile.improvement.rewards == [3]

    def test_improvement_under_resource(self, save_bytes):
        model, _ = parse_save(save_bytes)
        tile = model.current.tile(1, 0)
        assert not tile.is_city
        assert isinstance(tile.improvement, Improvement)
        assert tile.improvement.unknown == b"\x01\x02\x03\x04"

    def test_unowned_village_is_plain_improvement(self, save_bytes):
        model, _ = parse_save(save_bytes)
        tile = model.current.tile(2, 1)
        assert tile.improvement_type == 1
        assert not tile.is_city
        assert isinstance(tile.improvement, Improvement)

    def test_passenger_unit(self, save_bytes):
        model, _ = parse_save(save_bytes)
        tile = model.current.tile(2, 0)
        assert tile.unit.id == 1
        assert tile.passenger.previous.id == 2
        assert len(tile.passenger.buffer_b) == 11
        assert tile.unit_buffer == b""

    def test_plain_unit_tails(self, save_bytes):
        model, _ = parse_save(save_bytes)
        assert model.current.tile(0, 1).unit_buffer == bytes(range(8))
        assert model.current.tile(1, 1).unit_buffer == bytes(6)
        assert model.current.tile(0, 1).passenger is None

    def test_player_fields(self, save_bytes):
        model, _ = parse_save(save_bytes)
        alice = model.find_player(1)
        assert alice.name == "Alice"
        assert [task.type for task in alice.tasks] == [1, 3]
        assert [len(task.payload) for task in alice.tasks] == [6, 2]
        assert alice.diplomacy[0].last_attack_turn == -1
        assert alice.known_player_ids() == [1, 2, 255]
        assert model.players[-1].id == 255

    def test_tile_out_of_grid(self, save_bytes):
        model, _ = parse_save(save_bytes)
        with pytest.raises(IndexError):
            model.current.tile(3, 0)


class TestDerivedIndices:
    def test_owner_to_tribe(self, save_bytes):
        model, _ = parse_save(save_bytes)
        assert model.owner_to_tribe == {1: 2, 2: 3, 255: 0}

    def test_tribe_to_cities(self, save_bytes):
        model, _ = parse_save(save_bytes)
        assert model.tribe_to_cities == {
            1: [CityLocation(x=0, y=0, name="Capital")],
            0: [CityLocation(x=2, y=1, name="")],
        }

    def test_tribe_to_units(self, save_bytes):
        model, _ = parse_save(save_bytes)
        assert model.tribe_to_units == {
            1: [UnitLocation(x=2, y=0, unit_type=2)],
            2: [UnitLocation(x=0, y=1, unit_type=1), UnitLocation(x=1, y=1, unit_type=5)],
        }

    def test_duplicate_player_id(self, save_model):
        save_model.current.players[1].id = 1
        with pytest.raises(CorruptSaveError, match="duplicate player id 1"):
            parse_save(write_save(save_model))


# =============================================================================
# Offsets
# =============================================================================

class TestOffsets:
    def test_tile_start_points_at_coordinates(self, save_bytes):
        model, index = parse_save(save_bytes)
        for tile in model.current.iter_tiles():
            offset = index[tile_start_key(tile.x, tile.y)]
            assert struct.unpack_from("<II", save_bytes, offset) == (tile.x, tile.y)

    def test_unit_keys(self, save_bytes):
        _, index = parse_save(save_bytes)
        assert unit_location_key(2, 0) in index
        assert unit_location_key(0, 1) in index
        assert unit_location_key(0, 0) not in index
        assert previous_unit_location_key(2, 0) in index
        assert previous_unit_location_key(0, 1) not in index

    def test_unit_offset_points_at_unit_id(self, save_bytes):
        _, index = parse_save(save_bytes)
        assert struct.unpack_from("<I", save_bytes, index[unit_location_key(1, 1)])[0] == 4
        assert struct.unpack_from("<I", save_bytes, index[previous_unit_location_key(2, 0)])[0] == 2

    def test_map_and_player_markers(self, save_bytes):
        _, index = parse_save(save_bytes)
        assert index[MAP_START_KEY] == index[tile_start_key(0, 0)]
        assert index[MAP_END_KEY] == index[ALL_PLAYERS_START_KEY]
        assert struct.unpack_from("<H", save_bytes, index[ALL_PLAYERS_START_KEY])[0] == 3
        assert index[player_start_key(0)] == index[ALL_PLAYERS_START_KEY] + 2
        assert index[ALL_PLAYERS_END_KEY] == len(save_bytes) - 6

    def test_player_section_keys(self, save_bytes):
        _, index = parse_save(save_bytes)
        assert struct.unpack_from("<H", save_bytes, index[player_known_players_key(1)])[0] == 3
        assert struct.unpack_from("<I", save_bytes, index[player_currency_key(1)])[0] == 12
        assert index[player_currency_key(255)] - index[player_known_players_key(255)] == 2 + 15

    def test_dimension_keys(self, save_bytes):
        _, index = parse_save(save_bytes)
        assert struct.unpack_from("<I", save_bytes, index[SQUARE_SIZE_KEY])[0] == 2
        assert struct.unpack_from("<HH", save_bytes, index[MAP_WIDTH_KEY]) == (3, 2)

    def test_initial_snapshot_indexing(self, save_bytes):
        _, current = parse_save(save_bytes)
        _, initial = parse_save(save_bytes, Snapshot.INITIAL)
        assert initial[tile_start_key(0, 0)] < current[tile_start_key(0, 0)]
        assert tile_start_key(2, 0) not in initial
        assert struct.unpack_from("<HH", save_bytes, initial[MAP_WIDTH_KEY]) == (2, 2)

    def test_decoding_is_deterministic(self, save_bytes):
        first_model, first_index = parse_save(save_bytes)
        second_model, second_index = parse_save(save_bytes)
        assert first_model == second_model
        assert first_index.keys() == second_index.keys()
        assert dict(first_index.items()) == dict(second_index.items())

    def test_read_save(self, save_path, save_bytes):
        model, index = read_save(save_path)
        assert model == parse_save(save_bytes)[0]
        assert len(index) > 0

    def test_zero_dimension_prefix(self, save_model):
        save_model.current.header.zero_dimensions_prefix = True
        data = write_save(save_model)
        model, index = parse_save(data)
        assert model.current.header.zero_dimensions_prefix
        assert (model.width, model.height) == (3, 2)
        offset = index[MAP_WIDTH_KEY]
        assert data[offset - 4:offset] == bytes(4)
        assert write_save(model) == data


# =============================================================================
# Errors
# =============================================================================

class TestDecodeErrors:
    def test_coordinate_drift(self, save_bytes):
        _, index = parse_save(save_bytes)
        data = bytearray(save_bytes)
        struct.pack_into("<I", data, index[tile_start_key(1, 0)], 7)
        with pytest.raises(CorruptSaveError, match=r"iteration \(1, 0\)"):
            parse_save(bytes(data))

    def test_flag_out_of_range(self, save_bytes):
        _, index = parse_save(save_bytes)
        data = bytearray(save_bytes)
        data[index[tile_start_key(0, 0)] + 24] = 2
        with pytest.raises(CorruptSaveError, match="resource flag"):
            parse_save(bytes(data))

    def test_city_name_flag_must_be_one(self, save_bytes):
        _, index = parse_save(save_bytes)
        data = bytearray(save_bytes)
        # flag + type + 17-byte fixed prefix
        data[index[tile_improvement_start_key(0, 0)] + 20] = 0
        with pytest.raises(CorruptSaveError, match="City name flag"):
            parse_save(bytes(data))

    def test_city_founded_tribe_must_be_zero(self, save_bytes):
        _, index = parse_save(save_bytes)
        data = bytearray(save_bytes)
        # name flag, length byte, "Capital"
        data[index[tile_improvement_start_key(0, 0)] + 20 + 2 + 7] = 1
        with pytest.raises(CorruptSaveError, match="founded-tribe"):
            parse_save(bytes(data))

    def test_truncated_save(self, save_bytes):
        with pytest.raises(TruncatedInputError):
            parse_save(save_bytes[:-11])

    def test_empty_input(self):
        with pytest.raises(TruncatedInputError):
            parse_save(b"")

    def test_unsupported_task_type(self):
        data = bytearray(encode_player(Player(id=1, tasks=[PlayerTask(type=2, payload=b"\xab\xcd")])))
        data[data.index(b"\x02\x00\xab\xcd")] = 9
        with pytest.raises(UnsupportedTaskTypeError) as exc:
            parse_player(BinaryReader(bytes(data)), OffsetIndex())
        assert exc.value.task_type == 9

    def test_city_with_rebellion_buffer(self):
        tile = Tile(x=0, y=0, owner=2, improvement_type=1,
                    improvement=City(name="Rebel", rebellion_flag=1, rebellion_extra=b"\x05\x06"))
        data = encode_tile(tile)
        decoded = parse_tile(BinaryReader(data), 0, 0, OffsetIndex())
        assert decoded == tile
