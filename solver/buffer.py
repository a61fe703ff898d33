# solver/buffer.py
"""
Buffer cells are where the solver is allowed to grow lots and grass next to
roads.  Every rule here only looks at the edited cell, its four neighbours
and their neighbours, so an edit costs the same on any grid size.

Rules for a placement:

* history keeps the last three placements and resets when the new cell is
  not adjacent to the previous one; a turn restarts the run at the corner;
* two collinear placements buffer nothing; the third buffers the sides of
  the run and its trailing end, never the cell ahead of the run;
* a placement that completes a straight line between two existing roads
  buffers the sides of the three cells it touches (the road before, the
  new cell, the road after), not the sides of the whole joined line, so
  the work stays bounded however long the joined runs are;
* inner corners of completed junctions are never buffered, and buffers
  already sitting there are cleared;
* nothing past the grid edge, and nothing already fixed, is buffered.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from models import Cell, Direction, ORTHOGONAL_DIRECTIONS, faces_grid_edge
from tilemap import Tilemap
from tiles import CATALOG, TileCatalog

HISTORY_LENGTH = 3

History = Tuple[Cell, ...]


@dataclass(frozen=True)
class BufferUpdate:
    buffer: FrozenSet[Cell]   # cells to turn into Buffer
    clear: FrozenSet[Cell]    # Buffer cells to turn back into Empty
    history: History


# ---------- helpers ----------

def _step(tilemap: Tilemap, cell: Cell, direction: Direction) -> Optional[Cell]:
    if faces_grid_edge(tilemap.constraints, cell, direction):
        return None
    return cell.next_orthogonal_cell(tilemap.constraints, direction)


def _is_road(tilemap: Tilemap, cell: Optional[Cell], catalog: TileCatalog) -> bool:
    if cell is None:
        return False
    tile_id = tilemap.fixed_id(cell)
    return tile_id is not None and catalog.is_road(tile_id)


def _sides(tilemap: Tilemap, cell: Cell, axis: Direction) -> List[Cell]:
    out = []
    for side in axis.perpendicular():
        neighbor = _step(tilemap, cell, side)
        if neighbor is not None:
            out.append(neighbor)
    return out


def _extend_history(history: Sequence[Cell], cell: Cell) -> History:
    if not history or not history[-1].is_adjacent(cell):
        return (cell,)
    out = tuple(history[-(HISTORY_LENGTH - 1):]) + (cell,)
    if len(out) == 3 and _run_direction(out) is None:
        # turned: the corner starts a new run
        return out[-2:]
    return out


def _run_direction(history: Sequence[Cell]) -> Optional[Direction]:
    """Building direction when every step in ``history`` goes the same way."""

    if len(history) < 2:
        return None
    direction = history[0].direction_to(history[1])
    if direction is None:
        return None
    for a, b in zip(history[1:], history[2:]):
        if a.direction_to(b) is not direction:
            return None
    return direction


def _connected_arms(tilemap: Tilemap, cell: Cell, catalog: TileCatalog) -> List[Direction]:
    tile_id = tilemap.fixed_id(cell)
    if tile_id is None or not catalog.is_road(tile_id):
        return []
    mask = catalog.arm_mask(tile_id)
    arms = []
    for direction in ORTHOGONAL_DIRECTIONS:
        if not mask & direction.bit:
            continue
        neighbor = _step(tilemap, cell, direction)
        if neighbor is None or not _is_road(tilemap, neighbor, catalog):
            return []
        if not catalog.arm_mask(tilemap.fixed_id(neighbor)) & direction.opposite().bit:
            return []
        arms.append(direction)
    return arms


def junction_corners(tilemap: Tilemap, cell: Cell, catalog: TileCatalog = CATALOG) -> FrozenSet[Cell]:
    """Inner corners of ``cell`` when it is a completed T or cross junction."""

    arms = _connected_arms(tilemap, cell, catalog)
    if len(arms) < 3:
        return frozenset()
    corners: Set[Cell] = set()
    for vertical in (Direction.UP, Direction.DOWN):
        for horizontal in (Direction.LEFT, Direction.RIGHT):
            if vertical in arms and horizontal in arms:
                corner = Cell.from_coordinates(
                    tilemap.constraints,
                    cell.x + horizontal.dx,
                    cell.y + vertical.dy,
                )
                if corner is not None:
                    corners.add(corner)
    return frozenset(corners)


def _suppressed_around(tilemap: Tilemap, cells: Iterable[Cell], catalog: TileCatalog) -> Set[Cell]:
    out: Set[Cell] = set()
    for cell in cells:
        out |= junction_corners(tilemap, cell, catalog)
        for _, neighbor in cell.orthogonal_neighbors(tilemap.constraints):
            out |= junction_corners(tilemap, neighbor, catalog)
    return out


def _finish(tilemap: Tilemap, wanted: Iterable[Cell], around: Sequence[Cell],
            history: History, catalog: TileCatalog,
            extra_clear: Iterable[Cell] = ()) -> BufferUpdate:
    suppressed = _suppressed_around(tilemap, around, catalog)
    buffer = frozenset(
        c for c in wanted
        if c not in suppressed and tilemap.tile_at(c).is_empty
    )
    clear = {c for c in suppressed if tilemap.tile_at(c).is_buffer}
    clear.update(extra_clear)
    return BufferUpdate(buffer, frozenset(clear), history)


# ---------- entry points ----------

def update_on_placement(tilemap: Tilemap, cell: Cell, history: Sequence[Cell],
                        catalog: TileCatalog = CATALOG) -> BufferUpdate:
    """``tilemap`` already holds the new road at ``cell``."""

    history = _extend_history(history, cell)
    wanted: List[Cell] = []
    ahead: Optional[Cell] = None

    if len(history) >= 2:
        direction = history[-2].direction_to(history[-1])
        if direction is not None:
            ahead = _step(tilemap, cell, direction)

    if len(history) == HISTORY_LENGTH:
        direction = _run_direction(history)
        if direction is not None:
            for run_cell in history:
                wanted.extend(_sides(tilemap, run_cell, direction))
            trailing = _step(tilemap, history[0], direction.opposite())
            if trailing is not None:
                wanted.append(trailing)

    for axis in (Direction.RIGHT, Direction.DOWN):
        before = _step(tilemap, cell, axis.opposite())
        after = _step(tilemap, cell, axis)
        if _is_road(tilemap, before, catalog) and _is_road(tilemap, after, catalog):
            for line_cell in (before, cell, after):
                wanted.extend(_sides(tilemap, line_cell, axis))

    wanted = [c for c in wanted if c != ahead]
    return _finish(tilemap, wanted, [cell], history, catalog)


def update_on_removal(tilemap: Tilemap, cell: Cell, history: Sequence[Cell],
                      catalog: TileCatalog = CATALOG) -> BufferUpdate:
    """``tilemap`` no longer counts ``cell`` as a settled road."""

    remaining = tuple(c for c in history if c != cell)
    if any(not a.is_adjacent(b) for a, b in zip(remaining, remaining[1:])):
        remaining = ()

    wanted: List[Cell] = []
    touched: List[Cell] = []
    for direction, neighbor in cell.orthogonal_neighbors(tilemap.constraints):
        if not _is_road(tilemap, neighbor, catalog):
            continue
        touched.append(neighbor)
        # the neighbour now ends where the removed road used to be
        wanted.extend(_sides(tilemap, neighbor, direction))
        beyond = _step(tilemap, neighbor, direction)
        if _is_road(tilemap, beyond, catalog):
            wanted.extend(_sides(tilemap, beyond, direction))

    own = [cell] if tilemap.tile_at(cell).is_buffer else []
    return _finish(tilemap, wanted, touched, remaining, catalog, extra_clear=own)


__all__ = [
    "BufferUpdate",
    "HISTORY_LENGTH",
    "History",
    "junction_corners",
    "update_on_placement",
    "update_on_removal",
]
