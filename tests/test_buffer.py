from models import Cell, Direction, GridConstraints
from solver.buffer import junction_corners, update_on_placement, update_on_removal
from tile import Tile
from tilemap import Tilemap
from tiles import road_tile_id

GRID = GridConstraints(12, 12)

UP, LEFT, RIGHT, DOWN = (d.bit for d in (Direction.UP, Direction.LEFT, Direction.RIGHT, Direction.DOWN))


def _roads(**cells):
    """_roads(c5_5=RIGHT, ...) -> tilemap with those road masks fixed."""
    updates = {}
    for key, mask in cells.items():
        x, y = (int(v) for v in key[1:].split("_"))
        updates[Cell(x, y)] = Tile.fixed(road_tile_id(mask), built=True)
    return Tilemap.empty(GRID).with_tiles(updates)


def test_two_collinear_placements_buffer_nothing():
    first = update_on_placement(_roads(c5_5=0), Cell(5, 5), ())
    assert first.buffer == frozenset()
    assert first.history == (Cell(5, 5),)

    second = update_on_placement(_roads(c5_5=RIGHT, c6_5=LEFT), Cell(6, 5), first.history)
    assert second.buffer == frozenset()
    assert second.history == (Cell(5, 5), Cell(6, 5))


def test_third_collinear_placement_buffers_sides_and_trailing_end():
    tilemap = _roads(c5_5=RIGHT, c6_5=LEFT | RIGHT, c7_5=LEFT)
    update = update_on_placement(tilemap, Cell(7, 5), (Cell(5, 5), Cell(6, 5)))

    assert update.buffer == {
        Cell(5, 4), Cell(5, 6),
        Cell(6, 4), Cell(6, 6),
        Cell(7, 4), Cell(7, 6),
        Cell(4, 5),
    }
    # never ahead of the building direction
    assert Cell(8, 5) not in update.buffer
    assert update.history == (Cell(5, 5), Cell(6, 5), Cell(7, 5))


def test_non_adjacent_placement_resets_history():
    tilemap = _roads(c5_5=RIGHT, c6_5=LEFT, c10_10=0)
    update = update_on_placement(tilemap, Cell(10, 10), (Cell(5, 5), Cell(6, 5)))
    assert update.history == (Cell(10, 10),)
    assert update.buffer == frozenset()


def test_turn_restarts_run_from_corner():
    tilemap = _roads(c5_5=RIGHT, c6_5=LEFT | DOWN, c6_6=UP)
    update = update_on_placement(tilemap, Cell(6, 6), (Cell(5, 5), Cell(6, 5)))
    assert update.history == (Cell(6, 5), Cell(6, 6))
    assert update.buffer == frozenset()


def test_joining_runs_into_straight_line_buffers_its_sides():
    tilemap = _roads(c4_5=RIGHT, c5_5=LEFT | RIGHT, c6_5=LEFT | RIGHT, c7_5=LEFT)
    # placed alone, not continuing any history
    update = update_on_placement(tilemap, Cell(6, 5), ())
    assert {Cell(5, 4), Cell(5, 6), Cell(6, 4), Cell(6, 6), Cell(7, 4), Cell(7, 6)} <= update.buffer


def test_non_straight_join_buffers_nothing():
    tilemap = _roads(c5_5=RIGHT, c6_5=LEFT | DOWN, c6_6=UP)
    update = update_on_placement(tilemap, Cell(6, 5), ())
    assert update.buffer == frozenset()


def test_completed_cross_suppresses_inner_corners():
    tilemap = _roads(
        c6_4=DOWN,
        c6_5=UP | DOWN,
        c5_6=RIGHT,
        c7_6=LEFT,
        c6_7=UP,
        c6_6=UP | LEFT | RIGHT | DOWN,
    )
    corners = {Cell(5, 5), Cell(7, 5), Cell(5, 7), Cell(7, 7)}
    assert junction_corners(tilemap, Cell(6, 6)) == corners

    stale = tilemap.set_tile(Cell(5, 5), Tile.buffer())
    update = update_on_placement(stale, Cell(6, 6), (Cell(6, 4), Cell(6, 5)))

    assert update.buffer == {Cell(5, 4), Cell(7, 4), Cell(6, 3)}
    assert update.buffer.isdisjoint(corners)
    assert update.clear == {Cell(5, 5)}


def test_unfinished_junction_does_not_suppress():
    # T whose left arm is missing its road
    tilemap = _roads(c6_5=DOWN, c7_6=LEFT, c6_7=UP, c6_6=UP | LEFT | RIGHT | DOWN)
    assert junction_corners(tilemap, Cell(6, 6)) == frozenset()


def test_grid_edge_is_never_buffered():
    tilemap = _roads(c1_1=RIGHT, c2_1=LEFT | RIGHT, c3_1=LEFT)
    update = update_on_placement(tilemap, Cell(3, 1), (Cell(1, 1), Cell(2, 1)))
    assert update.buffer == {Cell(1, 2), Cell(2, 2), Cell(3, 2)}


def test_removal_rebuffers_exposed_neighbour():
    tilemap = _roads(c5_5=RIGHT, c6_5=LEFT | RIGHT, c7_5=LEFT)
    removing = tilemap.set_tile(Cell(7, 5), tilemap.tile_at(Cell(7, 5)).start_removal())
    update = update_on_removal(removing, Cell(7, 5), (Cell(5, 5), Cell(6, 5), Cell(7, 5)))

    assert update.buffer == {Cell(6, 4), Cell(6, 6), Cell(5, 4), Cell(5, 6)}
    assert Cell(7, 5) not in update.buffer
    assert update.history == (Cell(5, 5), Cell(6, 5))


def test_removal_clears_own_buffer():
    tilemap = _roads(c5_5=0).set_tile(Cell(6, 5), Tile.buffer())
    update = update_on_removal(tilemap, Cell(6, 5), ())
    assert update.clear == {Cell(6, 5)}
