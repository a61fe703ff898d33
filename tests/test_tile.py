import unittest

from config import CFG
from tile import InvalidTransition, Lifecycle, LifecycleState, Tile, TileKind, advance, transition


class LifecycleTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._orig = (CFG.CONSTRUCTING_MS, CFG.REMOVING_MS)
        CFG.CONSTRUCTING_MS = 100
        CFG.REMOVING_MS = 50

    def tearDown(self) -> None:
        CFG.CONSTRUCTING_MS, CFG.REMOVING_MS = self._orig

    def test_placement_constructs_then_builds(self) -> None:
        tile = Tile.fixed(4)
        self.assertEqual(tile.lifecycle.state, LifecycleState.CONSTRUCTING)
        self.assertEqual(tile.lifecycle.remaining_ms, 100)

        tile = advance(tile, 60)
        self.assertEqual(tile.lifecycle.state, LifecycleState.CONSTRUCTING)
        tile = advance(tile, 60)
        self.assertEqual(tile.lifecycle.state, LifecycleState.BUILT)
        self.assertTrue(tile.is_settled)

    def test_removal_ends_empty(self) -> None:
        tile = Tile.fixed(4, built=True).start_removal()
        self.assertTrue(tile.is_removing)
        self.assertFalse(tile.is_settled)
        tile = advance(tile, 50)
        self.assertIs(tile.kind, TileKind.EMPTY)

    def test_construction_can_be_cancelled(self) -> None:
        tile = Tile.fixed(4).start_removal()
        self.assertEqual(tile.lifecycle.state, LifecycleState.REMOVING)

    def test_undefined_transition_is_rejected(self) -> None:
        built = Lifecycle(LifecycleState.BUILT)
        with self.assertRaises(InvalidTransition):
            transition(built, "place")
        with self.assertRaises(InvalidTransition):
            Tile.empty().apply("remove")
        # the rejected call left the value alone
        self.assertEqual(built.state, LifecycleState.BUILT)

    def test_advance_ignores_open_tiles(self) -> None:
        tile = Tile.superposition([3, 1, 3])
        self.assertEqual(tile.candidates, (1, 3))
        self.assertIs(advance(tile, 1000), tile)
        self.assertIs(advance(Tile.buffer(), 1000), Tile.buffer())


def test_with_candidates_only_on_superposition():
    tile = Tile.superposition([5, 2])
    assert tile.with_candidates([2]).candidates == (2,)
    assert tile.is_open and not tile.is_fixed
    try:
        Tile.empty().with_candidates([1])
    except ValueError:
        pass
    else:  # pragma: no cover
        raise AssertionError("empty tile accepted candidates")


if __name__ == "__main__":
    unittest.main()
