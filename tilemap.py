# tilemap.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

from models import Cell, Direction, GridConstraints, place_in
from tile import Tile, TileId, advance
from tiles import CATALOG, LargeTile, TileCatalog


@dataclass(frozen=True)
class Tilemap:
    constraints: GridConstraints
    tiles: Tuple[Tile, ...]

    @staticmethod
    def empty(constraints: GridConstraints) -> "Tilemap":
        return Tilemap(constraints, (Tile.empty(),) * constraints.size)

    # ---------- reads ----------

    def tile_at(self, cell: Cell) -> Tile:
        return self.tiles[cell.to_index(self.constraints)]

    def cells(self) -> Iterator[Cell]:
        for index in range(self.constraints.size):
            yield Cell.from_index_unsafe(self.constraints, index)

    def items(self) -> Iterator[Tuple[Cell, Tile]]:
        for index, tile in enumerate(self.tiles):
            yield Cell.from_index_unsafe(self.constraints, index), tile

    def fixed_id(self, cell: Cell) -> Optional[TileId]:
        tile = self.tile_at(cell)
        return tile.tile_id if tile.is_settled else None

    def open_cells(self) -> List[Cell]:
        return [cell for cell, tile in self.items() if tile.is_open]

    def tile_ids(self) -> List[TileId]:
        """Flat id array, 0 for anything not fixed."""
        return [tile.tile_id if tile.is_fixed else 0 for tile in self.tiles]

    def neighbor(self, cell: Cell, direction: Direction) -> Optional[Cell]:
        return cell.next_orthogonal_cell(self.constraints, direction)

    # ---------- writes (return new values) ----------

    def set_tile(self, cell: Cell, tile: Tile) -> "Tilemap":
        return self.with_tiles({cell: tile})

    def with_tiles(self, updates: Mapping[Cell, Tile]) -> "Tilemap":
        if not updates:
            return self
        tiles = list(self.tiles)
        for cell, tile in updates.items():
            tiles[cell.to_index(self.constraints)] = tile
        return Tilemap(self.constraints, tuple(tiles))

    def advance(self, delta_ms: float) -> "Tilemap":
        return Tilemap(self.constraints, tuple(advance(t, delta_ms) for t in self.tiles))

    # ---------- comparisons ----------

    def changed_cells(self, other: "Tilemap") -> FrozenSet[Cell]:
        out = set()
        for index, (a, b) in enumerate(zip(self.tiles, other.tiles)):
            if a != b:
                out.add(Cell.from_index_unsafe(self.constraints, index))
        return frozenset(out)

    def lots(self, catalog: TileCatalog = CATALOG) -> List[Tuple[TileId, Cell]]:
        """Placed large tiles as (large id, anchor cell), in flat-index order."""
        out: List[Tuple[TileId, Cell]] = []
        for cell, tile in self.items():
            if not tile.is_fixed or tile.parent is None:
                continue
            large_id, index = tile.parent
            large = catalog.larges.get(large_id)
            if large is not None and index == large.anchor_index:
                out.append((large_id, cell))
        return out


# ---------- large tiles ----------

def footprint(constraints: GridConstraints, driveway_cell: Cell,
              large: LargeTile) -> Optional[List[Tuple[int, Cell]]]:
    """(footprint index, global cell) pairs with the anchor on ``driveway_cell``."""

    anchor = large.anchor_local
    # origin may sit outside the grid; place_in rejects cells that do
    origin = Cell(driveway_cell.x - anchor.x + 1, driveway_cell.y - anchor.y + 1)
    out: List[Tuple[int, Cell]] = []
    for index in range(large.size):
        cell = place_in(constraints, origin, large.local_cell(index))
        if cell is None:
            return None
        out.append((index, cell))
    return out


def check_large_tile_fit(tilemap: Tilemap, driveway_cell: Cell,
                         large: LargeTile) -> Optional[LargeTile]:
    """Return ``large`` when its whole footprint is free for it, else ``None``.

    Free means each footprint cell is empty, buffer, or a superposition still
    holding the subtile id that would land there.  Never mutates anything.
    """

    cells = footprint(tilemap.constraints, driveway_cell, large)
    if cells is None:
        return None
    for index, cell in cells:
        tile = tilemap.tile_at(cell)
        if tile.is_empty or tile.is_buffer:
            continue
        if tile.is_superposition and large.subtile_id(index) in tile.candidates:
            continue
        return None
    return large


def anchor_for_subtile(constraints: GridConstraints, cell: Cell, large: LargeTile,
                       index: int) -> Optional[Cell]:
    """Where the anchor goes when footprint cell ``index`` lands on ``cell``."""

    local = large.local_cell(index)
    anchor = large.anchor_local
    return Cell.from_coordinates(
        constraints,
        cell.x + anchor.x - local.x,
        cell.y + anchor.y - local.y,
    )


def anchor_cell_of(tilemap: Tilemap, cell: Cell,
                   catalog: TileCatalog = CATALOG) -> Optional[Cell]:
    """Recompute the anchor of the large tile covering ``cell``."""

    tile = tilemap.tile_at(cell)
    if not tile.is_fixed or tile.parent is None:
        return None
    large = catalog.larges.get(tile.parent[0])
    if large is None:
        return None
    return anchor_for_subtile(tilemap.constraints, cell, large, tile.parent[1])


def footprint_of(tilemap: Tilemap, cell: Cell,
                 catalog: TileCatalog = CATALOG) -> List[Cell]:
    """Every cell of the placed large tile covering ``cell`` (or just ``cell``)."""

    anchor = anchor_cell_of(tilemap, cell, catalog)
    if anchor is None:
        return [cell]
    large = catalog.large(tilemap.tile_at(cell).parent[0])
    cells = footprint(tilemap.constraints, anchor, large)
    if cells is None:
        return [cell]
    return [c for _, c in cells]


def place_large_tile(tilemap: Tilemap, driveway_cell: Cell, large: LargeTile,
                     *, built: bool = False) -> Tilemap:
    cells = footprint(tilemap.constraints, driveway_cell, large)
    if cells is None:
        raise ValueError(f"{large.name} does not fit at {driveway_cell}")
    updates: Dict[Cell, Tile] = {
        cell: Tile.fixed(large.subtile_id(index), (large.id, index), built=built)
        for index, cell in cells
    }
    return tilemap.with_tiles(updates)


def edge_options(tilemap: Tilemap, cell: Cell) -> Optional[Tuple[TileId, ...]]:
    """Ids a neighbour has to be compatible with; ``None`` means unconstrained."""

    tile = tilemap.tile_at(cell)
    if tile.is_settled:
        return (tile.tile_id,)
    if tile.is_superposition:
        return tile.candidates
    return None


__all__ = [
    "Tilemap",
    "anchor_cell_of",
    "anchor_for_subtile",
    "check_large_tile_fit",
    "edge_options",
    "footprint",
    "footprint_of",
    "place_large_tile",
]
