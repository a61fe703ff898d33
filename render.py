import random
from typing import Dict, List, Tuple

from models import Cell, GridConstraints
from tile import Tile
from tilemap import Tilemap, place_large_tile
from tiles import CATALOG, GRASS_TILE, TileBiome, TileCatalog, road_tile_id

LEGEND = {
    ".": "empty",
    "o": "buffer",
    "?": "superposition",
    "#": "road",
    "=": "road with lot entrance",
    "g": "grass",
    "L": "lot",
}

def _color(name: str) -> str:
    rng = random.Random(name)
    r = rng.randint(40, 200)
    g = rng.randint(40, 200)
    b = rng.randint(40, 200)
    return f"rgb({r},{g},{b})"

def _glyph(tile: Tile, catalog: TileCatalog) -> str:
    if tile.is_buffer:
        return "o"
    if tile.is_superposition:
        return "?"
    if not tile.is_settled:
        return "."
    if catalog.is_lot_entry(tile.tile_id):
        return "="
    biome = catalog.biome(tile.tile_id)
    if biome is TileBiome.ROAD:
        return "#"
    if biome is TileBiome.LOT:
        return "L"
    return "g"

def render_ascii(tilemap: Tilemap, catalog: TileCatalog = CATALOG) -> str:
    w = tilemap.constraints.width
    rows = []
    for y in range(tilemap.constraints.height):
        row = tilemap.tiles[y * w:(y + 1) * w]
        rows.append("".join(_glyph(t, catalog) for t in row))
    return "\n".join(rows)

def parse_ascii(text: str, catalog: TileCatalog = CATALOG) -> Tilemap:
    """Build a tilemap from a picture using the same legend.

    Roads are autotiled from neighbouring ``#`` cells, ``o`` becomes a
    buffer and ``g`` grass.  Lots are placed with :func:`place_lot` instead.
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    height = len(lines)
    width = len(lines[0]) if lines else 0
    if any(len(line) != width for line in lines):
        raise ValueError("ragged ascii map")
    constraints = GridConstraints(width, height)
    roads = {
        Cell(x + 1, y + 1)
        for y, line in enumerate(lines)
        for x, ch in enumerate(line)
        if ch == "#"
    }
    updates: Dict[Cell, Tile] = {}
    for y, line in enumerate(lines):
        for x, ch in enumerate(line):
            cell = Cell(x + 1, y + 1)
            if ch == "#":
                mask = 0
                for direction, neighbor in cell.orthogonal_neighbors(constraints):
                    if neighbor in roads:
                        mask |= direction.bit
                updates[cell] = Tile.fixed(road_tile_id(mask), built=True)
            elif ch == "g":
                updates[cell] = Tile.fixed(GRASS_TILE, built=True)
            elif ch == "o":
                updates[cell] = Tile.buffer()
            elif ch != ".":
                raise ValueError(f"unsupported glyph {ch!r} in ascii map")
    return Tilemap.empty(constraints).with_tiles(updates)

def place_lot(tilemap: Tilemap, name: str, anchor: Cell, catalog: TileCatalog = CATALOG) -> Tilemap:
    large = catalog.lot_by_name(name)
    if large is None:
        raise ValueError(f"unknown lot {name!r}")
    return place_large_tile(tilemap, anchor, large, built=True)

def render_svg(tilemap: Tilemap, catalog: TileCatalog = CATALOG) -> Tuple[str, str]:
    scale = 32
    w = tilemap.constraints.width
    h = tilemap.constraints.height
    svg_w = w * scale + 2
    svg_h = h * scale + 2

    palette: Dict[str, str] = {}
    rects: List[str] = []
    for cell, tile in tilemap.items():
        glyph = _glyph(tile, catalog)
        if glyph == ".":
            continue
        if glyph == "L":
            name = catalog.large(tile.parent[0]).name
        else:
            name = LEGEND[glyph]
        fill = palette.setdefault(name, _color(name))
        x = (cell.x - 1) * scale + 1
        y = (cell.y - 1) * scale + 1
        rects.append(
            f'<rect x="{x}" y="{y}" width="{scale}" height="{scale}" fill="{fill}" stroke="black" stroke-width="1"/>'
        )
        if tile.is_settled and catalog.is_road(tile.tile_id):
            rects.append(
                f'<text x="{x+4}" y="{y+14}" font-size="10" fill="white">{tile.tile_id}</text>'
            )
    grid = f'<rect x="1" y="1" width="{svg_w-2}" height="{svg_h-2}" fill="none" stroke="black" stroke-width="2"/>'
    svg = (
        f'<svg class="layout-svg" xmlns="http://www.w3.org/2000/svg" '
        f'width="{svg_w}" height="{svg_h}" '
        f'viewBox="0 0 {svg_w} {svg_h}" preserveAspectRatio="xMinYMin meet">'
        f'{grid}{"".join(rects)}</svg>'
    )

    legend = "".join(f"<li><span class='swatch' style='background:{c}'></span>{n}</li>" for n, c in palette.items())
    return svg, legend
