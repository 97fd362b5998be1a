"""
Polytopia Save Editor command line.

Usage:
    polytopia-save info <save>
    polytopia-save export <save> <out.yaml>
    polytopia-save import <in.yaml> <save>
    polytopia-save tile-terrain <save> <x> <y> <terrain>
    ...

Every edit reads the decompressed save, patches it and writes it back in
place. Pass --backup to keep a copy of the file as it was.

This library is free software; you can redistribute it and/or
modify it under the terms of the GNU Lesser General Public
License as published by the Free Software Foundation; either
version 2.1 of the License, or (at your option) any later version.

This library is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
Lesser General Public License for more details.
"""

import argparse
import sys
from pathlib import Path

import yaml

from . import operations
from .builders import bgr_color
from .decoder import read_save
from .encoder import write_save
from .errors import PolytopiaSaveError
from .model import SaveModel, Snapshot, Terrain
from .patch import make_backup
from .yaml_io import enum_name, export_to_yaml, import_from_yaml


# ============================================================================
# Text Export (info command)
# ============================================================================

def export_to_text(model: SaveModel) -> str:
    """Summarize a decoded save for the info command."""
    header = model.current.header
    lines = []
    lines.append("=" * 60)
    lines.append("Polytopia Save File")
    lines.append("=" * 60)
    lines.append("")

    lines.append("[Game State]")
    lines.append(f"  Map Name: {header.map_name or '(none)'}")
    lines.append(f"  Version: {header.version1}.{header.version2}")
    lines.append(f"  Turn: {header.current_turn} / {header.turn_limit}")
    lines.append(f"  Dimensions: {model.width} x {model.height}")
    lines.append(f"  Difficulty: {header.difficulty}")
    lines.append(f"  Seed: {header.seed}")
    lines.append("")

    lines.append("[Players]")
    for player in model.players:
        lines.append(f"  [{player.id}] {player.name or '(unnamed)'} (Tribe: {player.tribe}, "
                     f"Stars: {player.currency}, Score: {player.score})")
    lines.append("")

    lines.append("[Cities]")
    if model.tribe_to_cities:
        for tribe, cities in sorted(model.tribe_to_cities.items()):
            lines.append(f"  Owner {tribe}: {len(cities)} cities")
    else:
        lines.append("  (None)")
    lines.append("")

    lines.append("[Units]")
    if model.tribe_to_units:
        for tribe, units in sorted(model.tribe_to_units.items()):
            lines.append(f"  Owner {tribe}: {len(units)} units")
    else:
        lines.append("  (None)")

    return "\n".join(lines)


# ============================================================================
# Helpers
# ============================================================================

def _snapshot(args) -> Snapshot:
    return Snapshot(getattr(args, "snapshot", Snapshot.CURRENT.value))


def _terrain(value: str) -> int:
    if value.isdigit():
        return int(value)
    try:
        return Terrain[value.upper()].value
    except KeyError:
        names = ", ".join(t.name.lower() for t in Terrain)
        raise argparse.ArgumentTypeError(f"invalid terrain {value!r} (use a number or one of: {names})") from None


def _run(args, action) -> int:
    """Run ``action(save_path)`` with the CLI's file checks and error reporting."""
    save_path = Path(args.input)
    if not save_path.exists():
        print(f"Error: File not found: {save_path}", file=sys.stderr)
        return 1

    try:
        if getattr(args, "backup", False):
            backup = make_backup(save_path)
            print(f"Backup: {backup}")
        message = action(save_path)
        if message:
            print(message)
        return 0
    except (PolytopiaSaveError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ============================================================================
# Read-only commands
# ============================================================================

def cmd_info(args):
    """Show save file information."""
    return _run(args, lambda path: export_to_text(read_save(path)[0]))


def cmd_list_cities(args):
    def action(path):
        model, _ = read_save(path)
        for tribe, cities in sorted(model.tribe_to_cities.items()):
            print(f"Tribe {tribe} has {len(cities)} cities:")
            for i, city in enumerate(cities):
                print(f"  City {i}: ({city.x}, {city.y}) {city.name}")
    return _run(args, action)


def cmd_list_units(args):
    def action(path):
        model, _ = read_save(path)
        for tribe, units in sorted(model.tribe_to_units.items()):
            print(f"Tribe {tribe} has {len(units)} units:")
            for i, unit in enumerate(units):
                print(f"  Unit {i}: ({unit.x}, {unit.y}) type {unit.unit_type}")
    return _run(args, action)


def cmd_list_players(args):
    def action(path):
        model, _ = read_save(path)
        for player in model.players:
            b, g, r = player.override_color[:3]
            print(f"Player id: {player.id}, name: {player.name}, tribe: {player.tribe}, "
                  f"override color: RGB({r}, {g}, {b})")
    return _run(args, action)


def cmd_export(args):
    """Export save file to YAML."""
    output_path = Path(args.output)

    def action(path):
        model, _ = read_save(path)
        output_path.write_text(export_to_yaml(model), encoding="utf-8")
        return f"Exported to: {output_path}"
    return _run(args, action)


def cmd_import(args):
    """Import YAML and write a decompressed save."""
    yaml_path = Path(args.input)
    output_path = Path(args.output)

    if not yaml_path.exists():
        print(f"Error: File not found: {yaml_path}", file=sys.stderr)
        return 1

    try:
        model = import_from_yaml(yaml_path.read_text(encoding="utf-8"))
        data = write_save(model)
        if args.backup and output_path.exists():
            print(f"Backup: {make_backup(output_path)}")
        output_path.write_bytes(data)
        print(f"Imported to: {output_path}")
        return 0
    except (PolytopiaSaveError, OSError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ============================================================================
# Tile commands
# ============================================================================

def cmd_tile_terrain(args):
    def action(path):
        operations.modify_tile_terrain(path, args.x, args.y, args.terrain, _snapshot(args))
        return f"Modified tile ({args.x}, {args.y}) to have terrain {enum_name(Terrain, args.terrain).lower()}"
    return _run(args, action)


def cmd_tile_owner(args):
    def action(path):
        operations.modify_tile_owner(path, args.x, args.y, args.owner, _snapshot(args))
        return f"Modified tile ({args.x}, {args.y}) to have owner {args.owner}"
    return _run(args, action)


def cmd_tile_capital(args):
    def action(path):
        operations.modify_tile_capital(path, args.x, args.y, args.capital, _snapshot(args))
        return f"Modified tile ({args.x}, {args.y}) to have capital {args.capital}"
    return _run(args, action)


def cmd_tile_road(args):
    def action(path):
        operations.modify_tile_road(path, args.x, args.y, args.road == 1, _snapshot(args))
        return f"Modified tile ({args.x}, {args.y}) to have road {args.road}"
    return _run(args, action)


def cmd_add_city(args):
    def action(path):
        operations.add_city_to_tile(path, args.x, args.y, args.name, args.tribe, _snapshot(args))
        return f"Created city {args.name} at ({args.x}, {args.y}) for player {args.tribe}"
    return _run(args, action)


def cmd_reset_tile(args):
    def action(path):
        operations.reset_tile(path, args.x, args.y, _snapshot(args))
        return f"Reset tile ({args.x}, {args.y})"
    return _run(args, action)


def cmd_reveal_tile(args):
    def action(path):
        if operations.reveal_tile_for_tribe(path, args.x, args.y, args.tribe, _snapshot(args)):
            return f"Revealed ({args.x}, {args.y}) for tribe {args.tribe}"
        return f"Tile ({args.x}, {args.y}) is already visible to tribe {args.tribe}. No change made."
    return _run(args, action)


def cmd_reveal_all(args):
    def action(path):
        operations.reveal_all_tiles(path, args.tribe, _snapshot(args))
    return _run(args, action)


# ============================================================================
# Map size commands
# ============================================================================

def cmd_expand_rows(args):
    return _run(args, lambda path: operations.expand_rows(path, args.height))


def cmd_expand_cols(args):
    return _run(args, lambda path: operations.expand_columns(path, args.width))


def cmd_expand_map(args):
    return _run(args, lambda path: operations.expand_tiles(path, args.size))


# ============================================================================
# Unit commands
# ============================================================================

def cmd_unit_tribe(args):
    def action(path):
        operations.modify_unit_tribe(path, args.x, args.y, args.tribe, _snapshot(args))
        return f"Unit at ({args.x}, {args.y}) now belongs to tribe {args.tribe}"
    return _run(args, action)


def cmd_unit_type(args):
    def action(path):
        operations.modify_unit_type(path, args.x, args.y, args.unit_type, _snapshot(args))
        return f"Unit at ({args.x}, {args.y}) changed to type {args.unit_type}"
    return _run(args, action)


def cmd_convert_tribe(args):
    def action(path):
        count = operations.convert_tribe_units(path, args.old_tribe, args.new_tribe)
        return (f"Changed all units under tribe {args.old_tribe} to tribe {args.new_tribe}. "
                f"Total of {count} units converted.")
    return _run(args, action)


def cmd_convert_all_units(args):
    def action(path):
        count = operations.convert_all_units(path, args.tribe)
        return f"Changed all units to be under tribe {args.tribe}. Converted total of {count} units."
    return _run(args, action)


# ============================================================================
# Player commands
# ============================================================================

def cmd_add_player(args):
    def action(path):
        color = bgr_color(*args.rgb) if args.rgb else None
        new_id = operations.add_player(path, args.name, color)
        return f"Added new player {new_id} to game"
    return _run(args, action)


def cmd_swap_players(args):
    def action(path):
        operations.swap_players(path, args.player_a, args.player_b)
        return f"Swapped players {args.player_a} and {args.player_b}"
    return _run(args, action)


def cmd_player_name(args):
    def action(path):
        operations.modify_player_name(path, args.player_id, args.name)
        return f"Set player {args.player_id} name to {args.name}"
    return _run(args, action)


def cmd_player_tribe(args):
    def action(path):
        operations.modify_player_tribe(path, args.player_id, args.tribe)
        return f"Set player {args.player_id} tribe to {args.tribe}"
    return _run(args, action)


def cmd_player_color(args):
    def action(path):
        r, g, b = args.rgb
        operations.modify_player_color(path, args.player_id, r, g, b)
        return f"Set player {args.player_id} color to RGB({r}, {g}, {b})"
    return _run(args, action)


# ============================================================================
# Whole-save commands
# ============================================================================

def cmd_reset_game(args):
    def action(path):
        operations.reset_game(path)
        return "Reset current map and players to the initial state"
    return _run(args, action)


def cmd_copy_data(args):
    def action(path):
        if operations.rewrite_save(path):
            return "Rewrote map and player data; the file changed"
        return "Rewrote map and player data; the file is unchanged"
    return _run(args, action)


# ============================================================================
# Parser
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polytopia-save",
        description="Polytopia Save Editor (decompressed saves)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s info game.state                        Show save file information
  %(prog)s export game.state game.yaml            Export to YAML format (lossless)
  %(prog)s import game.yaml game.state            Import YAML back to a save
  %(prog)s tile-terrain game.state 3 4 mountain   Turn tile (3, 4) into a mountain
  %(prog)s add-city game.state 5 5 1 --name Test  Found a city for player 1
  %(prog)s expand-map --backup game.state 20      Grow the map to 20x20

Saves must be decompressed first; edits are written back in place.
"""
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_command(name, func, help_text, edit=True, tile=False):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("input", help="Decompressed save file")
        if edit:
            sub.add_argument("--backup", action="store_true", help="Copy the save to <input>.bak first")
        if tile:
            sub.add_argument("--snapshot", choices=[s.value for s in Snapshot], default=Snapshot.CURRENT.value,
                             help="Which map to edit (default: current)")
            sub.add_argument("x", type=int, help="Tile x")
            sub.add_argument("y", type=int, help="Tile y")
        sub.set_defaults(func=func)
        return sub

    # read-only
    add_command("info", cmd_info, "Show save file information", edit=False)
    add_command("list-cities", cmd_list_cities, "List cities by owner", edit=False)
    add_command("list-units", cmd_list_units, "List units by owner", edit=False)
    add_command("list-players", cmd_list_players, "List players", edit=False)

    export_parser = add_command("export", cmd_export, "Export save to YAML format (lossless)", edit=False)
    export_parser.add_argument("output", help="Output YAML file")

    import_parser = subparsers.add_parser("import", help="Import YAML and write a decompressed save")
    import_parser.add_argument("input", help="Input YAML file")
    import_parser.add_argument("output", help="Output save file")
    import_parser.add_argument("--backup", action="store_true", help="Copy an existing output to <output>.bak first")
    import_parser.set_defaults(func=cmd_import)

    # tiles
    sub = add_command("tile-terrain", cmd_tile_terrain, "Set tile terrain (and matching altitude)", tile=True)
    sub.add_argument("terrain", type=_terrain, help="Terrain id or name (water, ocean, field, mountain, forest)")
    sub = add_command("tile-owner", cmd_tile_owner, "Set tile owner", tile=True)
    sub.add_argument("owner", type=int, help="New owner id")
    sub = add_command("tile-capital", cmd_tile_capital, "Set tile capital value", tile=True)
    sub.add_argument("capital", type=int, help="New capital value (< 255)")
    sub = add_command("tile-road", cmd_tile_road, "Add or remove a road", tile=True)
    sub.add_argument("road", type=int, choices=[0, 1], help="1 for road, 0 for none")
    sub = add_command("add-city", cmd_add_city, "Found a new city on a tile", tile=True)
    sub.add_argument("tribe", type=int, help="Owner of the new city")
    sub.add_argument("--name", required=True, help="City name")
    add_command("reset-tile", cmd_reset_tile, "Reset a tile to flat, unowned and unexplored", tile=True)
    sub = add_command("reveal-tile", cmd_reveal_tile, "Make a tile visible to a tribe", tile=True)
    sub.add_argument("tribe", type=int, help="Tribe id")
    sub = add_command("reveal-all", cmd_reveal_all, "Make every tile visible to a tribe")
    sub.add_argument("--snapshot", choices=[s.value for s in Snapshot], default=Snapshot.CURRENT.value,
                     help="Which map to edit (default: current)")
    sub.add_argument("tribe", type=int, help="Tribe id")

    # map size
    sub = add_command("expand-rows", cmd_expand_rows, "Add empty rows to the map")
    sub.add_argument("height", type=int, help="New map height")
    sub = add_command("expand-cols", cmd_expand_cols, "Add empty columns to the map")
    sub.add_argument("width", type=int, help="New map width")
    sub = add_command("expand-map", cmd_expand_map, "Grow the map to a square size")
    sub.add_argument("size", type=int, help="New width and height")

    # units
    sub = add_command("unit-tribe", cmd_unit_tribe, "Change the owner of a unit", tile=True)
    sub.add_argument("tribe", type=int, help="New owner id")
    sub = add_command("unit-type", cmd_unit_type, "Change the type of a unit", tile=True)
    sub.add_argument("unit_type", type=int, help="New unit type")
    sub = add_command("convert-tribe", cmd_convert_tribe, "Move all units of one tribe to another")
    sub.add_argument("old_tribe", type=int, help="Current owner id")
    sub.add_argument("new_tribe", type=int, help="New owner id")
    sub = add_command("convert-all-units", cmd_convert_all_units, "Move every unit to one tribe")
    sub.add_argument("tribe", type=int, help="New owner id")

    # players
    sub = add_command("add-player", cmd_add_player, "Add a bot player")
    sub.add_argument("--name", help="Player name (default: Player<id>)")
    sub.add_argument("--rgb", type=int, nargs=3, metavar=("R", "G", "B"), help="Override colour")
    sub = add_command("swap-players", cmd_swap_players, "Swap map ownership of two players")
    sub.add_argument("player_a", type=int, help="First player id")
    sub.add_argument("player_b", type=int, help="Second player id")
    sub = add_command("player-name", cmd_player_name, "Rename a player")
    sub.add_argument("player_id", type=int, help="Player id")
    sub.add_argument("name", help="New name")
    sub = add_command("player-tribe", cmd_player_tribe, "Change a player's tribe")
    sub.add_argument("player_id", type=int, help="Player id")
    sub.add_argument("tribe", type=int, help="New tribe")
    sub = add_command("player-color", cmd_player_color, "Change a player's override colour")
    sub.add_argument("player_id", type=int, help="Player id")
    sub.add_argument("--rgb", type=int, nargs=3, metavar=("R", "G", "B"), required=True, help="New colour")

    # whole save
    add_command("reset-game", cmd_reset_game, "Restore the current map and players from the initial ones")
    add_command("copy-data", cmd_copy_data, "Re-encode map and player data in place")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
