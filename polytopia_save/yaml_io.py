"""
Lossless YAML export/import of a decoded save.

Opaque byte fields are stored as base64 strings. The city/improvement variant
is not written out: on import it is derived again from the tile's owner,
resource and improvement type, exactly as the decoder does.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

import base64
from dataclasses import fields, is_dataclass
from enum import IntEnum
from typing import Any, Optional, Type

import yaml

from .decoder import build_owner_to_tribe, build_tribe_to_cities, build_tribe_to_units
from .errors import SaveFormatError
from .model import (
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
    is_city_tile,
)

YAML_FORMAT = "Polytopia Save"
YAML_VERSION = 1

_BYTES_TYPES = (bytes, Optional[bytes])


def enum_name(enum_class: Type[IntEnum], value: int, default: str = "UNKNOWN") -> str:
    """Get enum name from value, returning default if not found."""
    try:
        return enum_class(value).name
    except ValueError:
        return f"{default}_{value}"


def enum_value(enum_class: Type[IntEnum], name: Any, default: int = 0) -> int:
    """Get enum value from name; accepts plain ints and ``UNKNOWN_N`` names."""
    if isinstance(name, int):
        return name
    try:
        return enum_class[name].value
    except KeyError:
        prefix, _, number = name.rpartition("_")
        if prefix and number.isdigit():
            return int(number)
        return default


# ============================================================================
# Export
# ============================================================================

def _to_plain(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode('ascii')
    if is_dataclass(value):
        return {f.name: _to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_to_plain(item) for item in value]
    return value


def tile_to_dict(tile: Tile) -> dict:
    result = _to_plain(tile)
    result["terrain"] = enum_name(Terrain, tile.terrain)
    return result


def snapshot_to_dict(snapshot: MapSnapshot) -> dict:
    return {
        "header": _to_plain(snapshot.header),
        "tiles": [[tile_to_dict(tile) for tile in row] for row in snapshot.tiles],
        "players": [_to_plain(player) for player in snapshot.players],
    }


def export_to_yaml(model: SaveModel) -> str:
    """Export a decoded save to YAML (lossless)."""
    output = {
        "_format": YAML_FORMAT,
        "_version": YAML_VERSION,
        "initial": snapshot_to_dict(model.initial),
        "padding": _to_plain(model.padding),
        "current": snapshot_to_dict(model.current),
        "trailer": _to_plain(model.trailer),
    }
    return yaml.dump(output, allow_unicode=True, sort_keys=False, default_flow_style=False, width=120)


# ============================================================================
# Import
# ============================================================================

def _from_plain(cls, data: Optional[dict]):
    """Build a flat dataclass from a dict, decoding its base64 byte fields."""
    if data is None:
        return None
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.type in _BYTES_TYPES and value is not None:
            value = base64.b64decode(value)
        kwargs[f.name] = value
    return cls(**kwargs)


def header_from_dict(data: dict) -> MapHeader:
    header = _from_plain(MapHeader, data)
    header.tribe_skins = [(tribe, skin) for tribe, skin in header.tribe_skins]
    return header


def tile_from_dict(data: dict) -> Tile:
    flat = {k: v for k, v in data.items() if k not in ("resource", "improvement", "unit", "passenger")}
    tile = _from_plain(Tile, flat)
    tile.terrain = enum_value(Terrain, tile.terrain)
    tile.resource = _from_plain(Resource, data.get("resource"))
    tile.unit = _from_plain(Unit, data.get("unit"))

    passenger = data.get("passenger")
    if passenger is not None:
        tile.passenger = _from_plain(PassengerUnit, {k: v for k, v in passenger.items() if k != "previous"})
        tile.passenger.previous = _from_plain(Unit, passenger["previous"])

    improvement = data.get("improvement")
    if improvement is not None:
        record_class = City if is_city_tile(tile.owner, tile.resource, tile.improvement_type) else Improvement
        tile.improvement = _from_plain(record_class, improvement)
    return tile


def player_from_dict(data: dict) -> Player:
    nested = ("tasks", "diplomacy", "diplomacy_messages")
    player = _from_plain(Player, {k: v for k, v in data.items() if k not in nested})
    player.tasks = [_from_plain(PlayerTask, task) for task in data.get("tasks", [])]
    player.diplomacy = [_from_plain(DiplomacyRelation, entry) for entry in data.get("diplomacy", [])]
    player.diplomacy_messages = [_from_plain(DiplomacyMessage, entry) for entry in data.get("diplomacy_messages", [])]
    return player


def snapshot_from_dict(data: dict) -> MapSnapshot:
    return MapSnapshot(
        header=header_from_dict(data.get("header", {})),
        tiles=[[tile_from_dict(tile) for tile in row] for row in data.get("tiles", [])],
        players=[player_from_dict(player) for player in data.get("players", [])],
    )


def import_from_yaml(yaml_str: str) -> SaveModel:
    """Import YAML produced by export_to_yaml and rebuild the SaveModel."""
    data = yaml.safe_load(yaml_str)
    if not isinstance(data, dict) or data.get("_format") != YAML_FORMAT:
        raise SaveFormatError(f"Not a {YAML_FORMAT} YAML export")

    current = snapshot_from_dict(data["current"])
    return SaveModel(
        initial=snapshot_from_dict(data["initial"]),
        current=current,
        padding=base64.b64decode(data.get("padding", "")),
        trailer=base64.b64decode(data.get("trailer", "")),
        owner_to_tribe=build_owner_to_tribe(current.players),
        tribe_to_cities=build_tribe_to_cities(current),
        tribe_to_units=build_tribe_to_units(current),
    )
