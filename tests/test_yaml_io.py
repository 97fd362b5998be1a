"""Tests for the YAML export/import path."""

import pytest
import yaml

from polytopia_save.decoder import parse_save
from polytopia_save.encoder import write_save
from polytopia_save.errors import SaveFormatError, UnsupportedVariantError
from polytopia_save.model import City, Improvement, Terrain
from polytopia_save.yaml_io import enum_name, enum_value, export_to_yaml, import_from_yaml


# =============================================================================
# Round trip
# =============================================================================

class TestYamlRoundTrip:
    def test_bytes_survive(self, save_bytes):
        model, _ = parse_save(save_bytes)
        assert write_save(import_from_yaml(export_to_yaml(model))) == save_bytes

    def test_model_survives(self, save_bytes):
        model, _ = parse_save(save_bytes)
        imported = import_from_yaml(export_to_yaml(model))
        assert imported.current == model.current
        assert imported.initial == model.initial
        assert imported.tribe_to_cities == model.tribe_to_cities
        assert imported.tribe_to_units == model.tribe_to_units
        assert imported.owner_to_tribe == model.owner_to_tribe

    def test_document_layout(self, save_model):
        data = yaml.safe_load(export_to_yaml(save_model))
        assert list(data) == ["_format", "_version", "initial", "padding", "current", "trailer"]
        assert data["_format"] == "Polytopia Save"
        tile = data["current"]["tiles"][1][2]
        assert tile["terrain"] == "FOREST"
        assert data["current"]["players"][0]["name"] == "Alice"


# =============================================================================
# Editing the YAML
# =============================================================================

class TestYamlEdits:
    def test_edit_player_and_terrain(self, save_model):
        data = yaml.safe_load(export_to_yaml(save_model))
        data["current"]["players"][1]["name"] = "Robert"
        data["current"]["tiles"][1][1]["terrain"] = "MOUNTAIN"
        model, _ = parse_save(write_save(import_from_yaml(yaml.dump(data))))
        assert model.find_player(2).name == "Robert"
        assert model.current.tile(1, 1).terrain == Terrain.MOUNTAIN

    def test_variant_follows_owner(self, save_model):
        data = yaml.safe_load(export_to_yaml(save_model))
        village = data["current"]["tiles"][1][2]
        village["owner"] = 1
        model = import_from_yaml(yaml.dump(data))
        assert isinstance(model.current.tile(2, 1).improvement, City)
        assert isinstance(save_model.current.tile(2, 1).improvement, Improvement)

    def test_mismatched_record_rejected_on_encode(self, save_model):
        data = yaml.safe_load(export_to_yaml(save_model))
        data["current"]["tiles"][0][0]["resource"] = {"type": 3}
        model = import_from_yaml(yaml.dump(data))
        # the city's name and rewards are dropped when read as an improvement
        assert isinstance(model.current.tile(0, 0).improvement, Improvement)
        model.current.tile(0, 0).improvement = City(name="Capital")
        with pytest.raises(UnsupportedVariantError):
            write_save(model)

    def test_not_an_export(self):
        with pytest.raises(SaveFormatError):
            import_from_yaml("- just\n- a list\n")
        with pytest.raises(SaveFormatError):
            import_from_yaml("_format: Something Else\n")


# =============================================================================
# Enum names
# =============================================================================

class TestEnumNames:
    def test_known(self):
        assert enum_name(Terrain, 1) == "WATER"
        assert enum_value(Terrain, "OCEAN") == 2

    def test_unknown_round_trip(self):
        assert enum_name(Terrain, 42) == "UNKNOWN_42"
        assert enum_value(Terrain, "UNKNOWN_42") == 42

    def test_plain_int(self):
        assert enum_value(Terrain, 5) == 5
