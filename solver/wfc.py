# solver/wfc.py
"""
Resolve every superposition/buffer cell of a :class:`Tilemap` to a fixed
tile so that all orthogonally adjacent fixed tiles have compatible sockets.

The model is an immutable value.  :func:`step` performs one bounded unit of
work (a collapse followed by propagation, or a backtrack) and returns a new
model; :func:`solve` keeps stepping until the phase is ``DONE`` or
``FAILED``.  Backtracking restores earlier tilemap snapshots from the
decision stack, so no in-place undo exists anywhere.

Cell selection picks the open cell with the fewest candidates; ties fall
back to row-major flat index.  That order is part of the save format:
changing it changes replays.  Every candidate of the chosen cell is a
decision option, lot subtiles included: picking footprint cell ``k`` of a
lot places the whole lot at the anchor that ``k`` implies.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Set, Tuple

from config import CFG
from models import Cell, Direction, GridConstraints, ORTHOGONAL_DIRECTIONS
from solver.seed import SeedState, weighted_choice
from tile import Tile, TileId
from tilemap import Tilemap, anchor_for_subtile, check_large_tile_fit, footprint, place_large_tile
from tiles import (
    CATALOG, DRIVE, LOT_ENTRY, ROAD, Inventory, LargeTile, TileCatalog,
    has_stock, sockets_compatible, take_stock,
)

log = logging.getLogger(__name__)

# sockets that need a real partner on the other side
_NEEDS_PARTNER = (ROAD, DRIVE, LOT_ENTRY)


class Phase(Enum):
    SOLVING = "solving"
    DONE = "done"
    FAILED = "failed"


class StopCondition(Enum):
    DONE = "done"      # halt once the run is finished
    IDLE = "idle"      # also halt after a step that fixed nothing new


@dataclass(frozen=True)
class Decision:
    tilemap: Tilemap       # state right before the collapse
    inventory: Inventory
    cell: Cell
    remaining: Tuple[TileId, ...]


@dataclass(frozen=True)
class Model:
    tilemap: Tilemap
    seed: SeedState
    inventory: Inventory
    phase: Phase = Phase.SOLVING
    stack: Tuple[Decision, ...] = ()
    backtracks: int = 0
    steps: int = 0
    retry: Optional[Cell] = None
    contradiction: Optional[Cell] = None
    reason: str = ""
    catalog: TileCatalog = field(default=CATALOG, compare=False, repr=False)


# ---------------- working view ----------------

class _View:
    """Mutable scratch copy of a tilemap used inside one propagation."""

    def __init__(self, tilemap: Tilemap):
        self.constraints: GridConstraints = tilemap.constraints
        self.tiles: List[Tile] = list(tilemap.tiles)
        self.dirty: Set[int] = set()

    def tile_at(self, cell: Cell) -> Tile:
        return self.tiles[cell.to_index(self.constraints)]

    def set(self, cell: Cell, tile: Tile) -> None:
        index = cell.to_index(self.constraints)
        self.tiles[index] = tile
        self.dirty.add(index)

    def freeze(self, base: Tilemap) -> Tilemap:
        if not self.dirty:
            return base
        return Tilemap(self.constraints, tuple(self.tiles))


# ---------------- candidate checks ----------------

def neighbor_options(view, cell: Cell, inventory: Mapping[TileId, int],
                     catalog: TileCatalog = CATALOG) -> Optional[Tuple[TileId, ...]]:
    """What a neighbour at ``cell`` can still be; ``None`` when unconstrained."""

    tile = view.tile_at(cell)
    if tile.is_settled:
        return (tile.tile_id,)
    if tile.is_superposition:
        return tile.candidates
    if tile.is_buffer:
        return catalog.nature_ids(inventory)
    return None


def _edge_ok(view, cell: Cell, tile_id: TileId, direction: Direction,
             inventory: Mapping[TileId, int], catalog: TileCatalog) -> bool:
    own = catalog.socket(tile_id, direction)
    neighbor = cell.next_orthogonal_cell(view.constraints, direction)
    if neighbor is None:
        return own not in _NEEDS_PARTNER and not own.startswith("inner:")
    options = neighbor_options(view, neighbor, inventory, catalog)
    if options is None:
        return own not in _NEEDS_PARTNER
    back = direction.opposite()
    facing = {catalog.socket(other, back) for other in options}
    return any(sockets_compatible(own, f) for f in facing)


def _lot_anchor(view, cell: Cell, tile_id: TileId,
                catalog: TileCatalog) -> Optional[Tuple[LargeTile, Cell]]:
    """Lot and anchor cell implied by putting subtile ``tile_id`` on ``cell``."""

    found = catalog.subtile_of(tile_id)
    if found is None:
        return None
    large, index = found
    anchor = anchor_for_subtile(view.constraints, cell, large, index)
    if anchor is None:
        return None
    return large, anchor


def _large_admissible(view, anchor: Cell, large: LargeTile,
                      inventory: Mapping[TileId, int], catalog: TileCatalog) -> bool:
    if not has_stock(inventory, large.id):
        return False
    if check_large_tile_fit(view, anchor, large) is None:
        return False
    cells = footprint(view.constraints, anchor, large)
    covered = {c for _, c in cells}
    for index, fcell in cells:
        sub = large.subtile_id(index)
        for direction in ORTHOGONAL_DIRECTIONS:
            outside = fcell.next_orthogonal_cell(view.constraints, direction)
            if outside is not None and outside in covered:
                continue
            if not _edge_ok(view, fcell, sub, direction, inventory, catalog):
                return False
    return True


def candidate_ok(view, cell: Cell, tile_id: TileId, inventory: Mapping[TileId, int],
                 catalog: TileCatalog = CATALOG) -> bool:
    for direction in ORTHOGONAL_DIRECTIONS:
        if not _edge_ok(view, cell, tile_id, direction, inventory, catalog):
            return False
    if catalog.subtile_of(tile_id) is None:
        return True
    placement = _lot_anchor(view, cell, tile_id, catalog)
    if placement is None:
        return False
    large, anchor = placement
    return _large_admissible(view, anchor, large, inventory, catalog)


def filter_candidates(view, cell: Cell, candidates: Iterable[TileId],
                      inventory: Mapping[TileId, int],
                      catalog: TileCatalog = CATALOG) -> Tuple[TileId, ...]:
    return tuple(c for c in candidates if candidate_ok(view, cell, c, inventory, catalog))


def expand_buffer(view, cell: Cell, inventory: Mapping[TileId, int],
                  catalog: TileCatalog = CATALOG) -> Tuple[TileId, ...]:
    return filter_candidates(view, cell, catalog.nature_ids(inventory), inventory, catalog)


# ---------------- propagation ----------------

def _propagate(view: _View, start: Iterable[Cell], inventory: Mapping[TileId, int],
               catalog: TileCatalog) -> Optional[Cell]:
    """Breadth-first candidate reduction.  Returns the contradicting cell, if any."""

    queue = deque(start)
    queued = set(queue)
    while queue:
        current = queue.popleft()
        queued.discard(current)
        for _, neighbor in current.orthogonal_neighbors(view.constraints):
            tile = view.tile_at(neighbor)
            if tile.is_buffer:
                before: Optional[Tuple[TileId, ...]] = None
                candidates = catalog.nature_ids(inventory)
            elif tile.is_superposition:
                before = tile.candidates
                candidates = tile.candidates
            else:
                continue
            reduced = filter_candidates(view, neighbor, candidates, inventory, catalog)
            if before is not None and reduced == before:
                continue
            view.set(neighbor, Tile.superposition(reduced))
            if not reduced:
                return neighbor
            if neighbor not in queued:
                queue.append(neighbor)
                queued.add(neighbor)
    return None


def propagate(tilemap: Tilemap, start: Iterable[Cell], inventory: Mapping[TileId, int],
              catalog: TileCatalog = CATALOG) -> Tuple[Tilemap, Optional[Cell]]:
    view = _View(tilemap)
    bad = _propagate(view, start, inventory, catalog)
    return view.freeze(tilemap), bad


# ---------------- model lifecycle ----------------

def _borders_open(tilemap: Tilemap, cell: Cell) -> bool:
    return any(
        tilemap.tile_at(neighbor).is_open
        for _, neighbor in cell.orthogonal_neighbors(tilemap.constraints)
    )


def init_model(seed: SeedState, inventory: Mapping[TileId, int], tilemap: Tilemap,
               catalog: TileCatalog = CATALOG) -> Model:
    """Make the open region arc-consistent before the first decision.

    Propagation starts from every superposition and from every settled tile
    next to an open cell, so buffers already feel the fixed tiles around
    them when the first cell is picked.
    """

    inventory = dict(inventory)
    view = _View(tilemap)
    start: List[Cell] = []
    for cell, tile in tilemap.items():
        if tile.is_settled and _borders_open(tilemap, cell):
            start.append(cell)
            continue
        if not tile.is_superposition:
            continue
        reduced = filter_candidates(view, cell, tile.candidates, inventory, catalog)
        if reduced != tile.candidates:
            view.set(cell, Tile.superposition(reduced))
        if not reduced:
            return Model(view.freeze(tilemap), seed, inventory, phase=Phase.FAILED,
                         reason=f"no candidates left at {cell.coordinates()}", catalog=catalog)
        start.append(cell)
    bad = _propagate(view, start, inventory, catalog)
    model = Model(view.freeze(tilemap), seed, inventory, catalog=catalog)
    if bad is not None:
        return replace(model, phase=Phase.FAILED,
                       reason=f"contradiction at {bad.coordinates()} before any decision")
    return model


def _select_cell(model: Model) -> Optional[Cell]:
    if model.retry is not None:
        return model.retry
    buffer_entropy = len(model.catalog.nature_ids(model.inventory))
    best: Optional[Tuple[int, int]] = None
    for index, tile in enumerate(model.tilemap.tiles):
        if tile.is_superposition:
            entropy = len(tile.candidates)
        elif tile.is_buffer:
            entropy = buffer_entropy
        else:
            continue
        key = (entropy, index)
        if best is None or key < best:
            best = key
    if best is None:
        return None
    return Cell.from_index_unsafe(model.tilemap.constraints, best[1])


def _strip_exhausted(view: _View, large: LargeTile) -> Tuple[List[Cell], Optional[Cell]]:
    gone = {sub.id for sub in large.subtiles}
    changed: List[Cell] = []
    for index, tile in enumerate(view.tiles):
        if not tile.is_superposition or gone.isdisjoint(tile.candidates):
            continue
        cell = Cell.from_index_unsafe(view.constraints, index)
        kept = tuple(c for c in tile.candidates if c not in gone)
        view.set(cell, Tile.superposition(kept))
        if not kept:
            return changed, cell
        changed.append(cell)
    return changed, None


def _collapse(model: Model, cell: Cell) -> Model:
    catalog = model.catalog
    inventory = model.inventory
    tilemap = model.tilemap
    tile = tilemap.tile_at(cell)
    if tile.is_buffer:
        tilemap = tilemap.set_tile(cell, Tile.superposition(expand_buffer(tilemap, cell, inventory, catalog)))
        tile = tilemap.tile_at(cell)

    options = [c for c in tile.candidates if candidate_ok(tilemap, cell, c, inventory, catalog)]
    if not options:
        return replace(model, tilemap=tilemap, retry=None, contradiction=cell,
                       steps=model.steps + 1)

    choice, seed = weighted_choice(model.seed, [(c, catalog.weight(c)) for c in options])
    remaining = tuple(c for c in options if c != choice)
    decision = Decision(tilemap, inventory, cell, remaining)

    placement = _lot_anchor(tilemap, cell, choice, catalog)
    if placement is None:
        view = _View(tilemap)
        view.set(cell, Tile.fixed(choice))
        start = [cell]
    else:
        large, anchor = placement
        placed = place_large_tile(tilemap, anchor, large)
        view = _View(placed)
        view.dirty.add(cell.to_index(placed.constraints))
        start = [c for _, c in footprint(placed.constraints, anchor, large)]
        inventory = take_stock(inventory, large.id)
        log.debug("lot %s placed at %s via %s", large.name, anchor, cell)
        if not has_stock(inventory, large.id):
            stripped, bad = _strip_exhausted(view, large)
            start.extend(stripped)
            if bad is not None:
                return replace(model, tilemap=view.freeze(tilemap), seed=seed, inventory=inventory,
                               stack=model.stack + (decision,), retry=None, contradiction=bad,
                               steps=model.steps + 1)

    bad = _propagate(view, start, inventory, catalog)
    return replace(
        model,
        tilemap=view.freeze(tilemap),
        seed=seed,
        inventory=inventory,
        stack=model.stack + (decision,),
        retry=None,
        contradiction=bad,
        steps=model.steps + 1,
    )


def _backtrack(model: Model) -> Model:
    stack = list(model.stack)
    backtracks = model.backtracks
    catalog = model.catalog
    while stack:
        decision = stack.pop()
        backtracks += 1
        if backtracks > int(CFG.MAX_BACKTRACKS):
            log.warning("backtrack ceiling hit after %d pops", backtracks)
            return replace(model, phase=Phase.FAILED, stack=tuple(stack), backtracks=backtracks,
                           contradiction=None, retry=None, steps=model.steps + 1,
                           reason=f"backtrack limit {CFG.MAX_BACKTRACKS} exceeded")
        if not decision.remaining:
            continue
        reduced = decision.tilemap.set_tile(decision.cell, Tile.superposition(decision.remaining))
        tilemap, bad = propagate(reduced, [decision.cell], decision.inventory, catalog)
        if bad is not None:
            # every remaining alternative is already ruled out
            continue
        log.debug("backtracked to %s (%d alternatives left)", decision.cell, len(decision.remaining))
        return replace(model, tilemap=tilemap, inventory=decision.inventory, stack=tuple(stack),
                       backtracks=backtracks, retry=decision.cell, contradiction=None,
                       steps=model.steps + 1)
    log.debug("decision stack exhausted after %d backtracks", backtracks)
    return replace(model, phase=Phase.FAILED, stack=(), backtracks=backtracks, contradiction=None,
                   retry=None, steps=model.steps + 1, reason="no valid assignment exists")


def step(model: Model) -> Model:
    """One bounded unit of work: a collapse+propagate or a backtrack."""

    if model.phase is not Phase.SOLVING:
        return model
    if model.contradiction is not None:
        return _backtrack(model)
    cell = _select_cell(model)
    if cell is None:
        return replace(model, phase=Phase.DONE, stack=(), steps=model.steps + 1)
    return _collapse(model, cell)


def run_steps(model: Model, max_steps: int, stop: StopCondition = StopCondition.DONE) -> Model:
    """Advance at most ``max_steps`` units; resumable from the returned model."""

    for _ in range(max(0, int(max_steps))):
        if model.phase is not Phase.SOLVING:
            break
        before = model.tilemap
        model = step(model)
        if stop is StopCondition.IDLE and model.phase is Phase.SOLVING:
            newly_fixed = any(
                t.is_fixed and not b.is_fixed for t, b in zip(model.tilemap.tiles, before.tiles)
            )
            if not newly_fixed:
                break
    return model


def solve(model: Model) -> Model:
    while model.phase is Phase.SOLVING:
        model = step(model)
    return model


def solve_tilemap(seed: SeedState, inventory: Mapping[TileId, int], tilemap: Tilemap,
                  catalog: TileCatalog = CATALOG) -> Model:
    return solve(init_model(seed, inventory, tilemap, catalog))


__all__ = [
    "Decision",
    "Model",
    "Phase",
    "StopCondition",
    "candidate_ok",
    "expand_buffer",
    "filter_candidates",
    "init_model",
    "neighbor_options",
    "propagate",
    "run_steps",
    "solve",
    "solve_tilemap",
    "step",
]
