# tiles.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from config import CFG
from models import Cell, Direction, ORTHOGONAL_DIRECTIONS

TileId = int
Inventory = Dict[TileId, int]

# ---------- sockets ----------

ROAD = "road"
GRASS = "grass"
LOT = "lot"
LOT_ENTRY = "lot_entry"
DRIVE = "drive"
_INNER_PREFIX = "inner:"

# Ordered pairs (own edge, facing edge).  Pairs listed both ways are
# symmetric; a pair listed one way only is a one-way piece.
SOCKET_PAIRS: FrozenSet[Tuple[str, str]] = frozenset({
    (ROAD, ROAD),
    (GRASS, GRASS),
    (GRASS, LOT),
    (LOT, GRASS),
    (LOT, LOT),
    (LOT_ENTRY, DRIVE),
    (DRIVE, LOT_ENTRY),
})


def sockets_compatible(own: str, facing: str) -> bool:
    if own.startswith(_INNER_PREFIX):
        # inner edges of a large tile only meet their own partner edge
        return own == facing
    return (own, facing) in SOCKET_PAIRS


class TileBiome(Enum):
    ROAD = "road"
    NATURE = "nature"
    LOT = "lot"


# ---------- catalog entries ----------

@dataclass(frozen=True)
class SingleTile:
    id: TileId
    name: str
    sockets: Tuple[str, str, str, str]  # ordered like ORTHOGONAL_DIRECTIONS
    biome: TileBiome
    parent: Optional[Tuple[TileId, int]] = None
    lot_entry: Optional[Direction] = None

    def socket(self, direction: Direction) -> str:
        return self.sockets[direction.index]

    @property
    def arm_mask(self) -> int:
        mask = 0
        for direction in ORTHOGONAL_DIRECTIONS:
            if self.socket(direction) == ROAD:
                mask |= direction.bit
        return mask


@dataclass(frozen=True)
class LargeTile:
    id: TileId
    name: str
    width: int
    height: int
    anchor_index: int
    entry_direction: Direction
    biome: TileBiome = TileBiome.LOT
    subtiles: Tuple[SingleTile, ...] = field(default=(), compare=False)

    @property
    def size(self) -> int:
        return self.width * self.height

    def local_cell(self, index: int) -> Cell:
        return Cell(index % self.width + 1, index // self.width + 1)

    @property
    def anchor_local(self) -> Cell:
        return self.local_cell(self.anchor_index)

    def subtile_id(self, index: int) -> TileId:
        return self.id * 100 + index

    @property
    def anchor_subtile_id(self) -> TileId:
        return self.subtile_id(self.anchor_index)


def _road_name(mask: int) -> str:
    if mask == 0:
        return "road_isolated"
    arms = "".join(d.name[0] for d in ORTHOGONAL_DIRECTIONS if mask & d.bit)
    return f"road_{arms}"


def _road_tile(tile_id: TileId, mask: int, entry: Optional[Direction] = None) -> SingleTile:
    sockets = []
    for direction in ORTHOGONAL_DIRECTIONS:
        if mask & direction.bit:
            sockets.append(ROAD)
        elif direction is entry:
            sockets.append(LOT_ENTRY)
        else:
            sockets.append(GRASS)
    name = _road_name(mask)
    if entry is not None:
        name = f"{name}_entry_{entry.name.lower()}"
    return SingleTile(tile_id, name, tuple(sockets), TileBiome.ROAD, lot_entry=entry)


def _lot_subtiles(lot_id: TileId, name: str, width: int, height: int,
                  anchor_index: int, entry: Direction) -> Tuple[SingleTile, ...]:
    out: List[SingleTile] = []
    for index in range(width * height):
        lx, ly = index % width + 1, index // width + 1
        sockets = []
        for direction in ORTHOGONAL_DIRECTIONS:
            nx, ny = lx + direction.dx, ly + direction.dy
            if 1 <= nx <= width and 1 <= ny <= height:
                other = (nx - 1) + (ny - 1) * width
                lo, hi = min(index, other), max(index, other)
                sockets.append(f"{_INNER_PREFIX}{lot_id}:{lo}-{hi}")
            elif index == anchor_index and direction is entry:
                sockets.append(DRIVE)
            else:
                sockets.append(LOT)
        out.append(SingleTile(
            lot_id * 100 + index,
            f"{name}[{index}]",
            tuple(sockets),
            TileBiome.LOT,
            parent=(lot_id, index),
        ))
    return tuple(out)


def _large_tile(lot_id: TileId, name: str, width: int, height: int,
                anchor_index: int, entry: Direction) -> LargeTile:
    ax, ay = anchor_index % width + 1, anchor_index // width + 1
    nx, ny = ax + entry.dx, ay + entry.dy
    if 1 <= nx <= width and 1 <= ny <= height:
        raise ValueError(f"{name}: entry edge of the anchor must face outside the footprint")
    return LargeTile(
        lot_id, name, width, height, anchor_index, entry,
        subtiles=_lot_subtiles(lot_id, name, width, height, anchor_index, entry),
    )


# ---------- id layout ----------

ISOLATED_ROAD = 16
GRASS_TILE = 17
_LOT_ENTRY_BASE = 100


def road_tile_id(mask: int) -> TileId:
    return mask if mask else ISOLATED_ROAD


def lot_entry_tile_id(mask: int, side: Direction) -> TileId:
    return _LOT_ENTRY_BASE + mask * 4 + side.index


DEFAULT_LOTS = (
    # id, name, width, height, anchor index, entry direction
    (200, "residential_a", 2, 2, 2, Direction.DOWN),
    (201, "residential_b", 2, 2, 1, Direction.UP),
    (202, "shop", 3, 2, 3, Direction.LEFT),
    (203, "workshop", 2, 3, 1, Direction.RIGHT),
    (204, "school", 3, 3, 7, Direction.DOWN),
    (205, "cottage", 1, 2, 0, Direction.RIGHT),
)


class TileCatalog:
    """Static tile definitions plus the lookups the solver needs."""

    def __init__(self, singles: Iterable[SingleTile], larges: Iterable[LargeTile]):
        self.singles: Dict[TileId, SingleTile] = {}
        self.larges: Dict[TileId, LargeTile] = {}
        self.lots_by_name: Dict[str, LargeTile] = {}
        for tile in singles:
            self.singles[tile.id] = tile
        for large in larges:
            self.larges[large.id] = large
            self.lots_by_name[large.name] = large
            for sub in large.subtiles:
                self.singles[sub.id] = sub
        self._shape_family: Dict[int, Tuple[TileId, ...]] = {}
        for tile in self.singles.values():
            if tile.biome is TileBiome.ROAD:
                fam = self._shape_family.setdefault(tile.arm_mask, ())
                self._shape_family[tile.arm_mask] = tuple(sorted(fam + (tile.id,)))

    # ---------- lookups ----------

    def large(self, tile_id: TileId) -> LargeTile:
        return self.larges[tile_id]

    def is_known(self, tile_id: TileId) -> bool:
        return tile_id in self.singles

    def lot_by_name(self, name: str) -> Optional[LargeTile]:
        return self.lots_by_name.get(name)

    def large_for_subtile(self, tile_id: TileId) -> Optional[LargeTile]:
        tile = self.singles.get(tile_id)
        if tile is None or tile.parent is None:
            return None
        return self.larges.get(tile.parent[0])

    def subtile_of(self, tile_id: TileId) -> Optional[Tuple[LargeTile, int]]:
        """(large tile, footprint index) for a lot subtile id."""
        tile = self.singles.get(tile_id)
        if tile is None or tile.parent is None:
            return None
        large = self.larges.get(tile.parent[0])
        if large is None:
            return None
        return large, tile.parent[1]

    def is_road(self, tile_id: TileId) -> bool:
        tile = self.singles.get(tile_id)
        return tile is not None and tile.biome is TileBiome.ROAD

    def is_lot_entry(self, tile_id: TileId) -> bool:
        tile = self.singles.get(tile_id)
        return tile is not None and tile.lot_entry is not None

    def biome(self, tile_id: TileId) -> TileBiome:
        return self.singles[tile_id].biome

    def socket(self, tile_id: TileId, direction: Direction) -> str:
        return self.singles[tile_id].socket(direction)

    def arm_mask(self, tile_id: TileId) -> int:
        tile = self.singles.get(tile_id)
        if tile is None or tile.biome is not TileBiome.ROAD:
            return 0
        return tile.arm_mask

    def shape_family(self, tile_id: TileId) -> Tuple[TileId, ...]:
        """Plain road id plus every lot-entry variant with the same arms."""
        return self._shape_family.get(self.arm_mask(tile_id), (tile_id,))

    # ---------- adjacency ----------

    def compatible(self, tile_id: TileId, direction: Direction, other_id: TileId) -> bool:
        """Can ``other_id`` sit on the ``direction`` side of ``tile_id``?"""
        own = self.singles[tile_id].socket(direction)
        facing = self.singles[other_id].socket(direction.opposite())
        return sockets_compatible(own, facing)

    # ---------- universes ----------

    def road_ids(self) -> Tuple[TileId, ...]:
        return tuple(sorted(t.id for t in self.singles.values() if t.biome is TileBiome.ROAD))

    def nature_ids(self, inventory: Optional[Mapping[TileId, int]] = None) -> Tuple[TileId, ...]:
        """Candidates for a buffer cell: grass plus subtiles of lots in stock."""
        out = [t.id for t in self.singles.values() if t.biome is TileBiome.NATURE]
        for large in self.larges.values():
            if inventory is not None and not has_stock(inventory, large.id):
                continue
            out.extend(sub.id for sub in large.subtiles)
        return tuple(sorted(out))

    def weight(self, tile_id: TileId) -> float:
        tile = self.singles[tile_id]
        if tile.biome is TileBiome.LOT:
            return float(CFG.LOT_WEIGHT)
        if tile.biome is TileBiome.NATURE:
            return float(CFG.GRASS_WEIGHT)
        if tile.lot_entry is not None:
            return float(CFG.LOT_ENTRY_WEIGHT)
        return float(CFG.ROAD_WEIGHT)


def build_default_catalog() -> TileCatalog:
    singles: List[SingleTile] = []
    for mask in range(16):
        singles.append(_road_tile(road_tile_id(mask), mask))
        for side in ORTHOGONAL_DIRECTIONS:
            if not mask & side.bit:
                singles.append(_road_tile(lot_entry_tile_id(mask, side), mask, side))
    singles.append(SingleTile(GRASS_TILE, "grass", (GRASS,) * 4, TileBiome.NATURE))
    larges = [_large_tile(*spec) for spec in DEFAULT_LOTS]
    return TileCatalog(singles, larges)


CATALOG = build_default_catalog()


# ---------- inventory ----------

def default_inventory(catalog: TileCatalog = CATALOG) -> Inventory:
    return {lot_id: int(CFG.DEFAULT_LOT_STOCK) for lot_id in sorted(catalog.larges)}


def has_stock(inventory: Mapping[TileId, int], tile_id: TileId) -> bool:
    # ids without an inventory entry are unconstrained
    if tile_id not in inventory:
        return True
    return inventory[tile_id] > 0


def take_stock(inventory: Mapping[TileId, int], tile_id: TileId) -> Inventory:
    out = dict(inventory)
    if tile_id in out:
        out[tile_id] = max(0, out[tile_id] - 1)
    return out


def return_stock(inventory: Mapping[TileId, int], tile_id: TileId) -> Inventory:
    out = dict(inventory)
    if tile_id in out:
        out[tile_id] = out[tile_id] + 1
    return out


__all__ = [
    "CATALOG",
    "DRIVE",
    "GRASS",
    "GRASS_TILE",
    "ISOLATED_ROAD",
    "Inventory",
    "LOT",
    "LOT_ENTRY",
    "LargeTile",
    "ROAD",
    "SOCKET_PAIRS",
    "SingleTile",
    "TileBiome",
    "TileCatalog",
    "build_default_catalog",
    "default_inventory",
    "has_stock",
    "lot_entry_tile_id",
    "return_stock",
    "road_tile_id",
    "sockets_compatible",
    "take_stock",
]
