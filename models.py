# models.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


class CellOutOfBounds(ValueError):
    """An unsafe constructor was handed coordinates outside the grid."""


class Direction(Enum):
    UP = (0, -1)
    LEFT = (-1, 0)
    RIGHT = (1, 0)
    DOWN = (0, 1)

    @property
    def dx(self) -> int:
        return self.value[0]

    @property
    def dy(self) -> int:
        return self.value[1]

    @property
    def bit(self) -> int:
        # road arm bitmask: up=1, left=2, right=4, down=8
        return _DIRECTION_BITS[self]

    @property
    def index(self) -> int:
        return ORTHOGONAL_DIRECTIONS.index(self)

    def opposite(self) -> "Direction":
        return _OPPOSITES[self]

    def perpendicular(self) -> Tuple["Direction", "Direction"]:
        if self in (Direction.UP, Direction.DOWN):
            return (Direction.LEFT, Direction.RIGHT)
        return (Direction.UP, Direction.DOWN)


ORTHOGONAL_DIRECTIONS: Tuple[Direction, ...] = (
    Direction.UP,
    Direction.LEFT,
    Direction.RIGHT,
    Direction.DOWN,
)

_DIRECTION_BITS = {
    Direction.UP: 1,
    Direction.LEFT: 2,
    Direction.RIGHT: 4,
    Direction.DOWN: 8,
}

_OPPOSITES = {
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
    Direction.LEFT: Direction.RIGHT,
    Direction.RIGHT: Direction.LEFT,
}


class Bound(Enum):
    """Grid edges and corners a cell can touch."""

    TOP = "top"
    LEFT = "left"
    RIGHT = "right"
    BOTTOM = "bottom"
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"


@dataclass(frozen=True)
class GridConstraints:
    width: int
    height: int

    @property
    def size(self) -> int:
        return self.width * self.height

    def contains(self, x: int, y: int) -> bool:
        return 1 <= x <= self.width and 1 <= y <= self.height


@dataclass(frozen=True, order=True)
class Cell:
    """A 1-indexed grid coordinate.

    Build cells through :meth:`from_coordinates` / :meth:`from_index` (which
    return ``None`` when out of range) or the ``*_unsafe`` variants for call
    sites that already know the coordinates are valid.
    """

    x: int
    y: int

    # ---------- constructors ----------

    @staticmethod
    def from_coordinates(constraints: GridConstraints, x: int, y: int) -> Optional["Cell"]:
        if constraints.contains(x, y):
            return Cell(x, y)
        return None

    @staticmethod
    def from_coordinates_unsafe(constraints: GridConstraints, x: int, y: int) -> "Cell":
        if not constraints.contains(x, y):
            raise CellOutOfBounds(
                f"({x}, {y}) outside {constraints.width}×{constraints.height} grid"
            )
        return Cell(x, y)

    @staticmethod
    def from_index(constraints: GridConstraints, index: int) -> Optional["Cell"]:
        if index < 0 or index >= constraints.size:
            return None
        return Cell(index % constraints.width + 1, index // constraints.width + 1)

    @staticmethod
    def from_index_unsafe(constraints: GridConstraints, index: int) -> "Cell":
        cell = Cell.from_index(constraints, index)
        if cell is None:
            raise CellOutOfBounds(
                f"index {index} outside {constraints.width}×{constraints.height} grid"
            )
        return cell

    # ---------- queries ----------

    def to_index(self, constraints: GridConstraints) -> int:
        return (self.x - 1) + (self.y - 1) * constraints.width

    def coordinates(self) -> Tuple[int, int]:
        return (self.x, self.y)

    def translate_by(self, constraints: GridConstraints, offset: Tuple[int, int]) -> Optional["Cell"]:
        dx, dy = offset
        return Cell.from_coordinates(constraints, self.x + dx, self.y + dy)

    def next_orthogonal_cell(self, constraints: GridConstraints, direction: Direction) -> Optional["Cell"]:
        return self.translate_by(constraints, (direction.dx, direction.dy))

    def orthogonal_neighbors(self, constraints: GridConstraints) -> List[Tuple[Direction, "Cell"]]:
        out: List[Tuple[Direction, Cell]] = []
        for direction in ORTHOGONAL_DIRECTIONS:
            neighbor = self.next_orthogonal_cell(constraints, direction)
            if neighbor is not None:
                out.append((direction, neighbor))
        return out

    def direction_to(self, other: "Cell") -> Optional[Direction]:
        """Direction from this cell to an orthogonally adjacent ``other``."""
        delta = (other.x - self.x, other.y - self.y)
        for direction in ORTHOGONAL_DIRECTIONS:
            if direction.value == delta:
                return direction
        return None

    def is_adjacent(self, other: "Cell") -> bool:
        return self.direction_to(other) is not None

    def connected_bounds(self, constraints: GridConstraints) -> FrozenSet[Bound]:
        bounds = set()
        top = self.y == 1
        bottom = self.y == constraints.height
        left = self.x == 1
        right = self.x == constraints.width
        if top:
            bounds.add(Bound.TOP)
        if bottom:
            bounds.add(Bound.BOTTOM)
        if left:
            bounds.add(Bound.LEFT)
        if right:
            bounds.add(Bound.RIGHT)
        if top and left:
            bounds.add(Bound.TOP_LEFT)
        if top and right:
            bounds.add(Bound.TOP_RIGHT)
        if bottom and left:
            bounds.add(Bound.BOTTOM_LEFT)
        if bottom and right:
            bounds.add(Bound.BOTTOM_RIGHT)
        return frozenset(bounds)


_BOUND_BY_DIRECTION = {
    Direction.UP: Bound.TOP,
    Direction.LEFT: Bound.LEFT,
    Direction.RIGHT: Bound.RIGHT,
    Direction.DOWN: Bound.BOTTOM,
}


def faces_grid_edge(constraints: GridConstraints, cell: Cell, direction: Direction) -> bool:
    return _BOUND_BY_DIRECTION[direction] in cell.connected_bounds(constraints)


def place_in(global_constraints: GridConstraints, origin: Cell, local: Cell) -> Optional[Cell]:
    """Map ``local`` (1-indexed inside a subgrid) onto the grid at ``origin``.

    ``origin`` is where the subgrid's (1, 1) lands.  Returns ``None`` when the
    mapped cell would leave the grid.
    """

    return Cell.from_coordinates(
        global_constraints,
        origin.x + local.x - 1,
        origin.y + local.y - 1,
    )


__all__ = [
    "Bound",
    "Cell",
    "CellOutOfBounds",
    "Direction",
    "GridConstraints",
    "ORTHOGONAL_DIRECTIONS",
    "faces_grid_edge",
    "place_in",
]
