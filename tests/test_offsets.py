"""Tests for OffsetIndex lookups and staleness tracking."""

import pytest

from polytopia_save.errors import StaleOffsetKeyError, UnknownOffsetKeyError
from polytopia_save.offsets import (
    OffsetIndex,
    player_known_players_key,
    tile_end_key,
    tile_start_key,
    unit_location_key,
)


@pytest.fixture
def index():
    index = OffsetIndex()
    index.record("a", 10)
    index.record("b", 20)
    index.record("c", 30)
    return index


class TestKeys:
    def test_tile_keys(self):
        assert tile_start_key(3, 4) == "TileStart:3,4"
        assert tile_end_key(3, 4) == "TileEnd:3,4"
        assert unit_location_key(0, 1) == "UnitLocation:0,1"

    def test_player_keys(self):
        assert player_known_players_key(255) == "PlayerArr1:255"


class TestLookup:
    def test_recorded_key(self, index):
        assert index["b"] == 20
        assert "b" in index
        assert len(index) == 3

    def test_unknown_key_names_key(self, index):
        with pytest.raises(UnknownOffsetKeyError, match="UnitLocation:9,9") as exc:
            index[unit_location_key(9, 9)]
        assert exc.value.key == "UnitLocation:9,9"

    def test_get_missing(self, index):
        assert index.get("missing") is None


class TestInvalidate:
    def test_growth_marks_keys_at_or_after_end(self, index):
        index.invalidate(15, 20, 5)
        assert index["a"] == 10
        assert index.is_stale("b")
        assert index.is_stale("c")
        assert index.generation == 1

    def test_stale_lookup_raises(self, index):
        index.invalidate(15, 20, 5)
        with pytest.raises(StaleOffsetKeyError):
            index["c"]
        assert "c" not in index
        assert index.get("c") is None

    def test_stale_is_unknown_key_error(self, index):
        index.invalidate(0, 0, 1)
        with pytest.raises(UnknownOffsetKeyError):
            index["a"]

    def test_same_length_only_marks_inside(self, index):
        index.invalidate(15, 25, 0)
        assert index["a"] == 10
        assert index.is_stale("b")
        assert index["c"] == 30

    def test_start_key_stays_valid(self, index):
        index.invalidate(20, 30, -4)
        assert index["b"] == 20
        assert index.is_stale("c")

    def test_pure_insertion(self, index):
        index.invalidate(20, 20, 34)
        assert index["a"] == 10
        assert index.is_stale("b")
        assert index.is_stale("c")

    def test_record_refreshes_key(self, index):
        index.invalidate(0, 0, 1)
        index.record("a", 11)
        assert index["a"] == 11

    def test_views_skip_stale_keys(self, index):
        index.invalidate(15, 20, 5)
        assert len(index) == 1
        assert list(index) == ["a"]
        assert index.keys() == {"a"}
        assert dict(index.items()) == {"a": 10}
