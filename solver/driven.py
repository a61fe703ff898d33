# solver/driven.py
"""
Entry points used by the editor and the HTTP surface.

Each one takes the current values (seed, inventory, tilemap, history),
opens up the smallest region the edit affects, runs the solver over it and
returns a :class:`DrivenResult`.  Nothing is mutated; callers keep or drop
the returned values.

Pass ``solve=False`` to get the prepared model back without running it, for
callers that reveal the solve step by step.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from models import Cell
from solver.buffer import BufferUpdate, History, update_on_placement, update_on_removal
from solver.seed import SeedState
from solver.wfc import Model, Phase, init_model
from solver.wfc import solve as run_solver
from tile import Tile, TileId
from tilemap import Tilemap, anchor_cell_of, footprint_of
from tiles import (
    CATALOG, DRIVE, LOT_ENTRY, ROAD, Inventory, TileBiome, TileCatalog, return_stock,
    road_tile_id,
)

log = logging.getLogger(__name__)


class Cue(Enum):
    BUILD_ROAD = "build_road"
    DESTROY_ROAD = "destroy_road"
    BUILD_LOT = "build_lot"
    REMOVE_LOT = "remove_lot"


@dataclass(frozen=True)
class DrivenResult:
    model: Model
    tilemap: Tilemap
    changed: FrozenSet[Cell]
    actions: Tuple[Cue, ...]
    history: History

    @property
    def failed(self) -> bool:
        return self.model.phase is Phase.FAILED


# ---------------- helpers ----------------

def _settled_road(tilemap: Tilemap, cell: Optional[Cell], catalog: TileCatalog) -> bool:
    if cell is None:
        return False
    tile_id = tilemap.fixed_id(cell)
    return tile_id is not None and catalog.is_road(tile_id)


def road_tile_for(tilemap: Tilemap, cell: Cell, catalog: TileCatalog = CATALOG) -> TileId:
    """Road id whose arms point at every settled road next to ``cell``."""

    mask = 0
    for direction, neighbor in cell.orthogonal_neighbors(tilemap.constraints):
        if _settled_road(tilemap, neighbor, catalog):
            mask |= direction.bit
    return road_tile_id(mask)


def _universe(tile_id: TileId, inventory: Mapping[TileId, int], catalog: TileCatalog) -> Tuple[TileId, ...]:
    if catalog.biome(tile_id) is TileBiome.ROAD:
        return catalog.road_ids()
    return catalog.nature_ids(inventory)


def _serving_entry(tilemap: Tilemap, anchor: Cell, catalog: TileCatalog) -> Optional[Cell]:
    """Road cell the lot anchored at ``anchor`` drives out onto."""

    tile = tilemap.tile_at(anchor)
    if tile.parent is None:
        return None
    large = catalog.large(tile.parent[0])
    return anchor.next_orthogonal_cell(tilemap.constraints, large.entry_direction)


def _lot_entry_cells(tilemap: Tilemap, catalog: TileCatalog) -> Dict[Cell, Cell]:
    """Entry road cell -> anchor of the placed lot it serves."""

    out: Dict[Cell, Cell] = {}
    for _, anchor in tilemap.lots(catalog):
        entry = _serving_entry(tilemap, anchor, catalog)
        if entry is not None and _settled_road(tilemap, entry, catalog):
            out[entry] = anchor
    return out


def _drop_lot(tilemap: Tilemap, inventory: Inventory, cell: Cell, catalog: TileCatalog,
              *, animate: bool) -> Tuple[Tilemap, Inventory]:
    """Take the whole lot covering ``cell`` off the map and return its stock."""

    large_id = tilemap.tile_at(cell).parent[0]
    cells = footprint_of(tilemap, cell, catalog)
    updates: Dict[Cell, Tile] = {}
    for c in cells:
        tile = tilemap.tile_at(c)
        if animate and tile.is_settled:
            updates[c] = tile.start_removal()
        else:
            updates[c] = Tile.buffer()
    log.debug("lot %s at %s removed", large_id, cells[0])
    return tilemap.with_tiles(updates), return_stock(inventory, large_id)


def _keep_unchanged(before: Tilemap, after: Tilemap) -> Tilemap:
    """Cells re-fixed to what they already were keep their old lifecycle."""

    updates: Dict[Cell, Tile] = {}
    for cell, tile in after.items():
        old = before.tile_at(cell)
        if (
            tile.is_settled and old.is_settled
            and tile.tile_id == old.tile_id and tile.parent == old.parent
            and tile != old
        ):
            updates[cell] = old
    return after.with_tiles(updates)


def _new_lot_cues(before: Tilemap, after: Tilemap, catalog: TileCatalog) -> List[Cue]:
    old = set(before.lots(catalog))
    return [Cue.BUILD_LOT for lot in after.lots(catalog) if lot not in old]


def _apply_buffers(tilemap: Tilemap, update: BufferUpdate) -> Tilemap:
    updates: Dict[Cell, Tile] = {c: Tile.buffer() for c in update.buffer}
    for c in update.clear:
        if tilemap.tile_at(c).is_buffer:
            updates[c] = Tile.empty()
    return tilemap.with_tiles(updates)


def _run(seed: SeedState, inventory: Inventory, before: Tilemap, tilemap: Tilemap,
         actions: List[Cue], history: History, catalog: TileCatalog, solve: bool) -> DrivenResult:
    model = init_model(seed, inventory, tilemap, catalog)
    if not solve:
        return DrivenResult(model, model.tilemap, before.changed_cells(model.tilemap),
                            tuple(actions), history)
    model = run_solver(model)
    if model.phase is Phase.FAILED:
        log.info("re-solve failed: %s (backtracks=%d)", model.reason, model.backtracks)
    final = _keep_unchanged(before, model.tilemap)
    actions = actions + _new_lot_cues(before, final, catalog)
    return DrivenResult(model, final, before.changed_cells(final), tuple(actions), history)


def finish(result: DrivenResult, before: Tilemap, catalog: TileCatalog = CATALOG) -> DrivenResult:
    """Complete a result prepared with ``solve=False`` once its model is done."""

    final = _keep_unchanged(before, result.model.tilemap)
    actions = result.actions + tuple(_new_lot_cues(before, final, catalog))
    return DrivenResult(result.model, final, before.changed_cells(final), actions, result.history)


# ---------------- entry points ----------------

def add_tile_by_id(seed: SeedState, inventory: Mapping[TileId, int], cell: Cell, tile_id: TileId,
                   tilemap: Tilemap, history: Sequence[Cell] = (), *,
                   catalog: TileCatalog = CATALOG, solve: bool = True) -> DrivenResult:
    if not catalog.is_known(tile_id):
        raise ValueError(f"unknown tile id {tile_id}")
    if catalog.large_for_subtile(tile_id) is not None:
        raise ValueError(f"lot subtile {tile_id} cannot be placed by hand")

    before = tilemap
    inventory = dict(inventory)
    actions: List[Cue] = []

    # a lot already on its way out was refunded when its removal started
    if tilemap.tile_at(cell).is_settled and tilemap.tile_at(cell).parent is not None:
        tilemap, inventory = _drop_lot(tilemap, inventory, cell, catalog, animate=False)
        actions.append(Cue.REMOVE_LOT)

    tilemap = tilemap.set_tile(cell, Tile.fixed(tile_id))
    is_road = catalog.is_road(tile_id)
    if is_road:
        actions.append(Cue.BUILD_ROAD)

    for direction, neighbor in cell.orthogonal_neighbors(tilemap.constraints):
        other = tilemap.tile_at(neighbor)
        if not other.is_settled or catalog.compatible(tile_id, direction, other.tile_id):
            continue
        if other.parent is not None:
            tilemap, inventory = _drop_lot(tilemap, inventory, neighbor, catalog, animate=False)
            actions.append(Cue.REMOVE_LOT)
        else:
            tilemap = tilemap.set_tile(
                neighbor, Tile.superposition(_universe(other.tile_id, inventory, catalog))
            )

    new_history: History = ()
    if is_road:
        update = update_on_placement(tilemap, cell, history, catalog)
        new_history = update.history
        tilemap = _apply_buffers(tilemap, update)
        # roads next to fresh buffers may grow a lot entrance
        for buffered in sorted(update.buffer):
            for _, road in buffered.orthogonal_neighbors(tilemap.constraints):
                if road == cell or not _settled_road(tilemap, road, catalog):
                    continue
                family = catalog.shape_family(tilemap.fixed_id(road))
                if len(family) > 1:
                    tilemap = tilemap.set_tile(road, Tile.superposition(family))

    return _run(seed, inventory, before, tilemap, actions, new_history, catalog, solve)


def on_remove_tile(seed: SeedState, inventory: Mapping[TileId, int], cell: Cell,
                   tilemap: Tilemap, history: Sequence[Cell] = (), *,
                   catalog: TileCatalog = CATALOG, solve: bool = True) -> DrivenResult:
    before = tilemap
    inventory = dict(inventory)
    tile = tilemap.tile_at(cell)
    if not tile.is_settled:
        model = Model(tilemap, seed, inventory, phase=Phase.DONE, catalog=catalog)
        return DrivenResult(model, tilemap, frozenset(), (), tuple(history))

    actions: List[Cue] = []
    if tile.parent is not None:
        entry = _serving_entry(tilemap, anchor_cell_of(tilemap, cell, catalog), catalog)
        tilemap, inventory = _drop_lot(tilemap, inventory, cell, catalog, animate=True)
        actions.append(Cue.REMOVE_LOT)
        if _settled_road(tilemap, entry, catalog):
            family = catalog.shape_family(tilemap.fixed_id(entry))
            tilemap = tilemap.set_tile(entry, Tile.superposition(family))
        return _run(seed, inventory, before, tilemap, actions, tuple(history), catalog, solve)

    removed_road = catalog.is_road(tile.tile_id)
    tilemap = tilemap.set_tile(cell, tile.start_removal())
    update: Optional[BufferUpdate] = None
    if removed_road:
        actions.append(Cue.DESTROY_ROAD)
        # neighbours still read as roads here
        update = update_on_removal(tilemap, cell, history, catalog)

    for direction, neighbor in cell.orthogonal_neighbors(tilemap.constraints):
        other = tilemap.tile_at(neighbor)
        if not other.is_settled:
            continue
        if other.parent is not None:
            large = catalog.large(other.parent[0])
            faces_removed = (
                other.parent[1] == large.anchor_index
                and large.entry_direction is direction.opposite()
            )
            if faces_removed:
                tilemap, inventory = _drop_lot(tilemap, inventory, neighbor, catalog, animate=True)
                actions.append(Cue.REMOVE_LOT)
            continue
        if catalog.socket(other.tile_id, direction.opposite()) in (DRIVE, LOT_ENTRY, ROAD):
            # this edge was leaning on the removed tile
            tilemap = tilemap.set_tile(
                neighbor, Tile.superposition(_universe(other.tile_id, inventory, catalog))
            )

    new_history: History = tuple(history)
    if update is not None:
        new_history = update.history
        tilemap = _apply_buffers(tilemap, update)

    return _run(seed, inventory, before, tilemap, actions, new_history, catalog, solve)


def restart_wfc(seed: SeedState, inventory: Mapping[TileId, int], tilemap: Tilemap, *,
                catalog: TileCatalog = CATALOG, solve: bool = True) -> DrivenResult:
    """Re-solve every road and grass tile; placed lots and their entrances stay."""

    before = tilemap
    keep = _lot_entry_cells(tilemap, catalog)
    updates: Dict[Cell, Tile] = {}
    for cell, tile in tilemap.items():
        if not tile.is_settled or tile.parent is not None or cell in keep:
            continue
        biome = catalog.biome(tile.tile_id)
        if biome is TileBiome.ROAD:
            updates[cell] = Tile.superposition(catalog.shape_family(tile.tile_id))
        elif biome is TileBiome.NATURE:
            updates[cell] = Tile.buffer()
    tilemap = tilemap.with_tiles(updates)
    log.debug("restart reopened %d cells", len(updates))
    return _run(seed, dict(inventory), before, tilemap, [], (), catalog, solve)


__all__ = [
    "Cue",
    "DrivenResult",
    "add_tile_by_id",
    "finish",
    "on_remove_tile",
    "restart_wfc",
    "road_tile_for",
]
