from config import CFG
from models import Cell, Direction, GridConstraints
from render import parse_ascii
from solver.seed import SeedState, weighted_choice
from solver.wfc import Decision, Model, Phase, StopCondition, init_model, run_steps, solve, step
from tile import Tile
from tilemap import Tilemap
from tiles import CATALOG, GRASS_TILE, default_inventory, lot_entry_tile_id

COTTAGE = CATALOG.lot_by_name("cottage")


def _assert_adjacency(tilemap):
    for cell, tile in tilemap.items():
        if not tile.is_settled:
            continue
        for direction, neighbor in cell.orthogonal_neighbors(tilemap.constraints):
            other = tilemap.tile_at(neighbor)
            if other.is_settled:
                assert CATALOG.compatible(tile.tile_id, direction, other.tile_id), (cell, neighbor)


def _road_region():
    tilemap = parse_ascii(
        """
        ........
        ..ooo...
        ..###...
        ..ooo...
        ........
        """
    )
    middle = Cell(4, 3)
    family = CATALOG.shape_family(tilemap.fixed_id(middle))
    return tilemap.set_tile(middle, Tile.superposition(family))


def test_seed_draws_are_replayable():
    seed = SeedState.from_seed(99)
    values = []
    for _ in range(3):
        value, seed = seed.next_float()
        values.append(value)
    assert seed.steps == 3
    assert SeedState.replay(99, 3) == seed
    assert all(0.0 <= v < 1.0 for v in values)

    choice, after = weighted_choice(SeedState.from_seed(5), [(1, 0.0), (2, 1.0)])
    assert choice == 2
    assert after.steps == 1


def test_solve_resolves_every_open_cell_compatibly():
    model = solve(init_model(SeedState.from_seed(3), default_inventory(), _road_region()))
    assert model.phase is Phase.DONE
    assert model.tilemap.open_cells() == []
    _assert_adjacency(model.tilemap)
    # the three roads keep their arms
    assert [CATALOG.arm_mask(model.tilemap.fixed_id(Cell(x, 3))) for x in (3, 4, 5)] == [4, 6, 2]


def test_same_seed_and_tilemap_give_same_result():
    a = solve(init_model(SeedState.from_seed(11), default_inventory(), _road_region()))
    b = solve(init_model(SeedState.from_seed(11), default_inventory(), _road_region()))
    assert a.tilemap == b.tilemap
    assert a.seed == b.seed
    assert a.inventory == b.inventory


def test_stepping_matches_solve_and_counters_never_drop():
    start = init_model(SeedState.from_seed(21), default_inventory(), _road_region())
    model = start
    last_backtracks = 0
    last_steps = 0
    for _ in range(10000):
        if model.phase is not Phase.SOLVING:
            break
        model = step(model)
        assert model.backtracks >= last_backtracks
        assert model.steps > last_steps
        last_backtracks, last_steps = model.backtracks, model.steps
    assert model.phase is not Phase.SOLVING
    assert model.tilemap == solve(start).tilemap


def test_run_steps_is_resumable():
    start = init_model(SeedState.from_seed(21), default_inventory(), _road_region())
    assert run_steps(start, 0) is start
    partial = run_steps(start, 1)
    assert partial.steps == 1
    assert run_steps(partial, 100000).tilemap == solve(start).tilemap
    idle = run_steps(start, 100000, StopCondition.IDLE)
    assert idle.steps >= 1


def test_lot_entry_forces_lot_and_exhausts_stock():
    grid = GridConstraints(3, 3)
    tilemap = Tilemap.empty(grid).with_tiles({
        Cell(3, 1): Tile.fixed(lot_entry_tile_id(0, Direction.LEFT), built=True),
        Cell(2, 1): Tile.buffer(),
        Cell(1, 3): Tile.buffer(),
    })
    inventory = {lot_id: 0 for lot_id in CATALOG.larges}
    inventory[COTTAGE.id] = 1

    model = solve(init_model(SeedState.from_seed(0), inventory, tilemap))

    assert model.phase is Phase.DONE
    assert model.tilemap.tile_at(Cell(2, 1)).parent == (COTTAGE.id, 0)
    assert model.tilemap.tile_at(Cell(2, 2)).parent == (COTTAGE.id, 1)
    assert model.tilemap.fixed_id(Cell(1, 3)) == GRASS_TILE
    assert model.inventory[COTTAGE.id] == 0
    _assert_adjacency(model.tilemap)


def test_unsatisfiable_region_fails():
    grid = GridConstraints(3, 3)
    tilemap = Tilemap.empty(grid).with_tiles({
        Cell(3, 1): Tile.fixed(lot_entry_tile_id(0, Direction.LEFT), built=True),
        Cell(2, 1): Tile.buffer(),
    })
    inventory = {lot_id: 0 for lot_id in CATALOG.larges}
    model = solve(init_model(SeedState.from_seed(0), inventory, tilemap))
    assert model.phase is Phase.FAILED
    assert model.reason


def test_contradiction_at_init_fails_immediately():
    grid = GridConstraints(3, 1)
    tilemap = Tilemap.empty(grid).with_tiles({
        Cell(1, 1): Tile.fixed(lot_entry_tile_id(0, Direction.RIGHT), built=True),
        Cell(2, 1): Tile.superposition([GRASS_TILE]),
    })
    model = init_model(SeedState.from_seed(0), {}, tilemap)
    assert model.phase is Phase.FAILED
    assert model.steps == 0
    assert step(model) is model


def _decision_model(*decisions):
    top = decisions[-1].tilemap.set_tile(decisions[-1].cell, Tile.fixed(16))
    return Model(top, SeedState.from_seed(0), {}, stack=tuple(decisions), contradiction=Cell(1, 1))


def _snapshot(cell):
    grid = GridConstraints(3, 1)
    return Tilemap.empty(grid).set_tile(cell, Tile.superposition([GRASS_TILE, 16]))


def test_backtrack_restores_snapshot_and_retries_alternative():
    cell = Cell(2, 1)
    model = _decision_model(Decision(_snapshot(cell), {}, cell, (GRASS_TILE,)))

    after = step(model)
    assert after.backtracks == 1
    assert after.retry == cell
    assert after.contradiction is None
    assert after.stack == ()
    assert after.tilemap.tile_at(cell).candidates == (GRASS_TILE,)

    retried = step(after)
    assert retried.tilemap.fixed_id(cell) == GRASS_TILE
    assert solve(retried).phase is Phase.DONE


def test_chained_backtrack_pops_exhausted_levels():
    low = Decision(_snapshot(Cell(2, 1)), {}, Cell(2, 1), (GRASS_TILE,))
    high = Decision(_snapshot(Cell(3, 1)), {}, Cell(3, 1), ())
    after = step(_decision_model(low, high))
    assert after.backtracks == 2
    assert after.retry == Cell(2, 1)


def test_empty_stack_after_pop_fails():
    only = Decision(_snapshot(Cell(2, 1)), {}, Cell(2, 1), ())
    after = step(_decision_model(only))
    assert after.phase is Phase.FAILED
    assert after.backtracks == 1


def test_backtrack_ceiling(monkeypatch):
    monkeypatch.setattr(CFG, "MAX_BACKTRACKS", 0)
    cell = Cell(2, 1)
    after = step(_decision_model(Decision(_snapshot(cell), {}, cell, (GRASS_TILE,))))
    assert after.phase is Phase.FAILED
    assert "limit" in after.reason


SHOP = CATALOG.lot_by_name("shop")


def _shop_entry_map():
    # the entry road at (1,2) only leaves room for the shop anchored at (2,2)
    grid = GridConstraints(4, 3)
    return Tilemap.empty(grid).with_tiles({
        Cell(1, 1): Tile.fixed(GRASS_TILE, built=True),
        Cell(1, 2): Tile.fixed(lot_entry_tile_id(0, Direction.RIGHT), built=True),
    })


def test_buffers_next_to_settled_tiles_are_narrowed_before_solving():
    tilemap = _shop_entry_map()
    tilemap = tilemap.with_tiles({cell: Tile.buffer() for cell, tile in tilemap.items() if tile.is_empty})
    inventory = {lot_id: 1 for lot_id in CATALOG.larges}

    start = init_model(SeedState.from_seed(0), inventory, tilemap)
    assert start.phase is Phase.SOLVING
    assert start.tilemap.tile_at(Cell(2, 2)).candidates == (SHOP.anchor_subtile_id,)

    model = solve(start)
    assert model.phase is Phase.DONE
    assert model.tilemap.open_cells() == []
    assert model.tilemap.tile_at(Cell(2, 1)).parent == (SHOP.id, 0)
    assert model.tilemap.tile_at(Cell(2, 2)).parent == (SHOP.id, 3)
    assert model.inventory[SHOP.id] == 0
    _assert_adjacency(model.tilemap)


def test_collapsing_a_non_anchor_subtile_places_the_whole_lot():
    tilemap = _shop_entry_map().set_tile(Cell(2, 1), Tile.superposition([SHOP.subtile_id(0)]))
    inventory = {lot_id: 1 for lot_id in CATALOG.larges}

    model = solve(init_model(SeedState.from_seed(0), inventory, tilemap))

    assert model.phase is Phase.DONE
    assert model.steps == 2
    assert model.stack == ()
    for index in range(SHOP.size):
        x, y = 2 + index % SHOP.width, 1 + index // SHOP.width
        assert model.tilemap.tile_at(Cell(x, y)).parent == (SHOP.id, index)
    assert model.inventory[SHOP.id] == 0
    _assert_adjacency(model.tilemap)
