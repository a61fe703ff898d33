"""Save/load of tilemaps and the HTML preview written next to them."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

from config import CFG
from models import Cell, GridConstraints
from solver.seed import SeedState
from tile import Tile
from tilemap import Tilemap, footprint
from tiles import CATALOG, TileCatalog

SAVE_VERSION = 1


class SaveDataError(ValueError):
    """A save document that cannot be turned back into a tilemap."""


def _resolve_output_path(base_dir: str, configured_name: str, fallback: str) -> str:
    """Return the absolute path where an output artifact should be written."""

    name = (configured_name or "").strip() or fallback
    if os.path.isabs(name):
        return name
    return os.path.join(base_dir, name)


# ---------- encoding ----------

def encode_tilemap(tilemap: Tilemap, seed: Optional[SeedState] = None,
                   catalog: TileCatalog = CATALOG) -> Dict[str, Any]:
    """Plain-dict save document.

    Only settled tiles are stored; open cells and tiles being removed are
    written as 0.  Lots are listed by anchor so loading can rebuild parents.
    """

    tiles = [t.tile_id if t.is_settled else 0 for t in tilemap.tiles]
    lots = [
        {"id": large_id, "x": anchor.x, "y": anchor.y}
        for large_id, anchor in tilemap.lots(catalog)
        if tilemap.tile_at(anchor).is_settled
    ]
    doc: Dict[str, Any] = {
        "version": SAVE_VERSION,
        "width": tilemap.constraints.width,
        "height": tilemap.constraints.height,
        "tiles": tiles,
        "lots": lots,
    }
    if seed is not None:
        doc["seed"] = {"initial": seed.initial, "steps": seed.steps}
    return doc


def _int_field(doc: Mapping[str, Any], key: str) -> int:
    value = doc.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise SaveDataError(f"'{key}' must be an integer")
    return value


def decode_tilemap(doc: Mapping[str, Any],
                   catalog: TileCatalog = CATALOG) -> Tuple[Tilemap, Optional[SeedState]]:
    """Inverse of :func:`encode_tilemap`; loaded tiles start out built."""

    if not isinstance(doc, Mapping):
        raise SaveDataError("save document must be an object")
    version = doc.get("version")
    if version != SAVE_VERSION:
        raise SaveDataError(f"unsupported save version {version!r}")
    width = _int_field(doc, "width")
    height = _int_field(doc, "height")
    if width <= 0 or height <= 0:
        raise SaveDataError("grid dimensions must be positive")
    constraints = GridConstraints(width, height)

    raw_tiles = doc.get("tiles")
    if not isinstance(raw_tiles, list) or len(raw_tiles) != constraints.size:
        raise SaveDataError(f"expected {constraints.size} tiles")

    # lot footprints first; every cell they cover must agree with the array
    parents: Dict[int, Tuple[int, int]] = {}
    for entry in doc.get("lots") or []:
        if not isinstance(entry, Mapping):
            raise SaveDataError("lot entries must be objects")
        lot_id = _int_field(entry, "id")
        large = catalog.larges.get(lot_id)
        if large is None:
            raise SaveDataError(f"unknown lot {lot_id}")
        anchor = Cell.from_coordinates(constraints, _int_field(entry, "x"), _int_field(entry, "y"))
        if anchor is None:
            raise SaveDataError(f"lot {lot_id} anchor outside the grid")
        cells = footprint(constraints, anchor, large)
        if cells is None:
            raise SaveDataError(f"lot {lot_id} at {anchor.coordinates()} leaves the grid")
        for index, cell in cells:
            flat = cell.to_index(constraints)
            if raw_tiles[flat] != large.subtile_id(index) or flat in parents:
                raise SaveDataError(
                    f"lot {lot_id} footprint disagrees with tile data at {cell.coordinates()}"
                )
            parents[flat] = (lot_id, index)

    tiles: List[Tile] = []
    for flat, raw in enumerate(raw_tiles):
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise SaveDataError(f"tile {flat} is not an integer")
        if raw == 0:
            tiles.append(Tile.empty())
            continue
        if not catalog.is_known(raw):
            raise SaveDataError(f"unknown tile id {raw}")
        parent = parents.get(flat)
        if parent is None and catalog.large_for_subtile(raw) is not None:
            raise SaveDataError(f"lot subtile {raw} at index {flat} has no lot entry")
        tiles.append(Tile.fixed(raw, parent, built=True))

    seed: Optional[SeedState] = None
    raw_seed = doc.get("seed")
    if raw_seed is not None:
        if not isinstance(raw_seed, Mapping):
            raise SaveDataError("'seed' must be an object")
        seed = SeedState.replay(_int_field(raw_seed, "initial"), _int_field(raw_seed, "steps"))

    return Tilemap(constraints, tuple(tiles)), seed


# ---------- files ----------

def write_save(tilemap: Tilemap, seed: Optional[SeedState], base_dir: str) -> str:
    """Write the save document to the configured JSON file."""

    path = _resolve_output_path(base_dir, CFG.SAVE_OUT, "world.json")
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(encode_tilemap(tilemap, seed), f, separators=(",", ":"))
    return path


def read_save(base_dir: str, name: Optional[str] = None) -> Tuple[Tilemap, Optional[SeedState]]:
    path = _resolve_output_path(base_dir, name or CFG.SAVE_OUT, "world.json")
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except json.JSONDecodeError as exc:
        raise SaveDataError(f"{path}: {exc}") from exc
    return decode_tilemap(doc)


def write_preview_html(svg: str, legend_html: str, ascii_map: str, base_dir: str) -> str:
    """Write the rendered SVG/legend preview to the configured HTML file."""

    path = _resolve_output_path(base_dir, CFG.PREVIEW_OUT, "world_view.html")
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as vf:
        vf.write(
            f"""<!doctype html>
<html><head><meta charset='utf-8'><title>World View</title></head>
<body class='container'>
<h1>World View</h1>
<section class='card'><div class='gridwrap'>{svg}</div></section>
<section class='card'><h3>Legend</h3><ul>{legend_html}</ul></section>
<section class='card'><pre>{ascii_map}</pre></section>
</body></html>"""
        )
    return path


__all__ = [
    "SAVE_VERSION",
    "SaveDataError",
    "decode_tilemap",
    "encode_tilemap",
    "read_save",
    "write_preview_html",
    "write_save",
]
