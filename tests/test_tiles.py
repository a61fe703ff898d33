import pytest

import tiles
from models import Cell, Direction, GridConstraints
from tile import Tile
from tilemap import Tilemap, anchor_cell_of, check_large_tile_fit, footprint_of, place_large_tile
from tiles import (
    CATALOG,
    DRIVE,
    GRASS,
    GRASS_TILE,
    LOT_ENTRY,
    ROAD,
    default_inventory,
    has_stock,
    lot_entry_tile_id,
    return_stock,
    road_tile_id,
    sockets_compatible,
    take_stock,
)

GRID = GridConstraints(6, 6)
RES_A = CATALOG.lot_by_name("residential_a")


def test_road_ids_follow_arm_bitmask():
    horizontal = road_tile_id(Direction.LEFT.bit | Direction.RIGHT.bit)
    assert horizontal == 6
    assert CATALOG.arm_mask(horizontal) == 6
    assert CATALOG.socket(horizontal, Direction.LEFT) == ROAD
    assert CATALOG.socket(horizontal, Direction.UP) == GRASS
    assert road_tile_id(0) == tiles.ISOLATED_ROAD
    assert CATALOG.is_road(tiles.ISOLATED_ROAD)
    assert not CATALOG.is_road(GRASS_TILE)


def test_lot_entry_variants_share_the_shape_family():
    entry_up = lot_entry_tile_id(6, Direction.UP)
    assert CATALOG.socket(entry_up, Direction.UP) == LOT_ENTRY
    assert CATALOG.is_lot_entry(entry_up)
    assert CATALOG.arm_mask(entry_up) == 6
    assert CATALOG.shape_family(6) == (6, entry_up, lot_entry_tile_id(6, Direction.DOWN))
    assert CATALOG.shape_family(entry_up) == CATALOG.shape_family(6)


def test_socket_pairs():
    assert sockets_compatible(ROAD, ROAD)
    assert sockets_compatible(LOT_ENTRY, DRIVE)
    assert sockets_compatible(DRIVE, LOT_ENTRY)
    assert not sockets_compatible(ROAD, GRASS)
    assert not sockets_compatible(LOT_ENTRY, GRASS)


def test_lot_driveway_only_meets_lot_entry():
    anchor = RES_A.anchor_subtile_id
    assert CATALOG.socket(anchor, Direction.DOWN) == DRIVE
    entry_up = lot_entry_tile_id(6, Direction.UP)
    assert CATALOG.compatible(entry_up, Direction.UP, anchor)
    assert not CATALOG.compatible(6, Direction.UP, anchor)


def test_inner_edges_only_meet_their_partner():
    left, right = RES_A.subtile_id(0), RES_A.subtile_id(1)
    assert CATALOG.compatible(left, Direction.RIGHT, right)
    other = CATALOG.lot_by_name("residential_b").subtile_id(1)
    assert not CATALOG.compatible(left, Direction.RIGHT, other)
    assert not CATALOG.compatible(left, Direction.RIGHT, GRASS_TILE)


def test_large_tile_entry_must_face_outside():
    with pytest.raises(ValueError):
        tiles._large_tile(300, "bad", 2, 2, 0, Direction.RIGHT)


def test_nature_universe_skips_lots_without_stock():
    inventory = {lot_id: 0 for lot_id in CATALOG.larges}
    assert CATALOG.nature_ids(inventory) == (GRASS_TILE,)
    inventory[RES_A.id] = 1
    assert set(CATALOG.nature_ids(inventory)) == {GRASS_TILE} | {s.id for s in RES_A.subtiles}


def test_inventory_helpers_return_new_mappings():
    inventory = default_inventory()
    taken = take_stock(inventory, RES_A.id)
    assert taken[RES_A.id] == inventory[RES_A.id] - 1
    assert return_stock(taken, RES_A.id) == inventory
    assert has_stock({}, RES_A.id)
    assert not has_stock({RES_A.id: 0}, RES_A.id)
    assert take_stock({RES_A.id: 0}, RES_A.id)[RES_A.id] == 0


def test_fit_on_empty_grid():
    tilemap = Tilemap.empty(GRID)
    # anchor is the bottom-left cell of the 2x2 footprint
    assert check_large_tile_fit(tilemap, Cell(1, 2), RES_A) is RES_A
    assert check_large_tile_fit(tilemap, Cell(1, 1), RES_A) is None
    assert check_large_tile_fit(tilemap, Cell(6, 6), RES_A) is None


def test_fit_respects_superposition_and_fixed_cells():
    base = Tilemap.empty(GRID).set_tile(Cell(2, 2), Tile.buffer())
    with_subtile = base.set_tile(Cell(2, 1), Tile.superposition([RES_A.subtile_id(1), GRASS_TILE]))
    assert check_large_tile_fit(with_subtile, Cell(1, 2), RES_A) is RES_A

    without_subtile = base.set_tile(Cell(2, 1), Tile.superposition([GRASS_TILE]))
    assert check_large_tile_fit(without_subtile, Cell(1, 2), RES_A) is None

    blocked = base.set_tile(Cell(1, 1), Tile.fixed(GRASS_TILE))
    assert check_large_tile_fit(blocked, Cell(1, 2), RES_A) is None
    # pure predicate
    assert blocked == base.set_tile(Cell(1, 1), Tile.fixed(GRASS_TILE))


def test_placed_lot_recovers_anchor_from_any_cell():
    tilemap = place_large_tile(Tilemap.empty(GRID), Cell(3, 4), RES_A, built=True)
    cells = footprint_of(tilemap, Cell(4, 3))
    assert sorted(cells) == sorted([Cell(3, 3), Cell(4, 3), Cell(3, 4), Cell(4, 4)])
    for cell in cells:
        assert tilemap.tile_at(cell).parent[0] == RES_A.id
        assert anchor_cell_of(tilemap, cell) == Cell(3, 4)
    assert tilemap.lots() == [(RES_A.id, Cell(3, 4))]
