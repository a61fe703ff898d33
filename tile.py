# tile.py
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Tuple

from config import CFG

TileId = int
ParentTile = Tuple[TileId, int]  # (large tile id, footprint index)


class InvalidTransition(RuntimeError):
    """The lifecycle FSM has no transition for this (state, event) pair."""


class TileKind(Enum):
    EMPTY = "empty"
    SUPERPOSITION = "superposition"
    BUFFER = "buffer"
    FIXED = "fixed"


class LifecycleState(Enum):
    EMPTY = "empty"
    CONSTRUCTING = "constructing"
    BUILT = "built"
    REMOVING = "removing"


@dataclass(frozen=True)
class Lifecycle:
    state: LifecycleState
    remaining_ms: float = 0.0


# (state, event) -> next state
_TRANSITIONS = {
    (LifecycleState.EMPTY, "place"): LifecycleState.CONSTRUCTING,
    (LifecycleState.CONSTRUCTING, "finish"): LifecycleState.BUILT,
    (LifecycleState.CONSTRUCTING, "remove"): LifecycleState.REMOVING,
    (LifecycleState.BUILT, "remove"): LifecycleState.REMOVING,
    (LifecycleState.REMOVING, "clear"): LifecycleState.EMPTY,
}


def _duration(state: LifecycleState) -> float:
    if state is LifecycleState.CONSTRUCTING:
        return float(CFG.CONSTRUCTING_MS)
    if state is LifecycleState.REMOVING:
        return float(CFG.REMOVING_MS)
    return 0.0


def transition(fsm: Lifecycle, event: str) -> Lifecycle:
    nxt = _TRANSITIONS.get((fsm.state, event))
    if nxt is None:
        raise InvalidTransition(f"no '{event}' transition from {fsm.state.value}")
    return Lifecycle(nxt, _duration(nxt))


@dataclass(frozen=True)
class Tile:
    kind: TileKind
    candidates: Tuple[TileId, ...] = ()
    tile_id: Optional[TileId] = None
    parent: Optional[ParentTile] = None
    lifecycle: Optional[Lifecycle] = None

    # ---------- constructors ----------

    @staticmethod
    def empty() -> "Tile":
        return _EMPTY

    @staticmethod
    def buffer() -> "Tile":
        return _BUFFER

    @staticmethod
    def superposition(candidates: Iterable[TileId]) -> "Tile":
        return Tile(TileKind.SUPERPOSITION, candidates=tuple(sorted(set(candidates))))

    @staticmethod
    def fixed(tile_id: TileId, parent: Optional[ParentTile] = None, *, built: bool = False) -> "Tile":
        """A resolved tile.  New placements start constructing unless ``built``."""
        if built:
            fsm = Lifecycle(LifecycleState.BUILT)
        else:
            fsm = transition(Lifecycle(LifecycleState.EMPTY), "place")
        return Tile(TileKind.FIXED, tile_id=int(tile_id), parent=parent, lifecycle=fsm)

    # ---------- predicates ----------

    @property
    def is_empty(self) -> bool:
        return self.kind is TileKind.EMPTY

    @property
    def is_buffer(self) -> bool:
        return self.kind is TileKind.BUFFER

    @property
    def is_superposition(self) -> bool:
        return self.kind is TileKind.SUPERPOSITION

    @property
    def is_fixed(self) -> bool:
        return self.kind is TileKind.FIXED

    @property
    def is_open(self) -> bool:
        """Still waiting for the solver."""
        return self.kind in (TileKind.SUPERPOSITION, TileKind.BUFFER)

    @property
    def is_removing(self) -> bool:
        return self.is_fixed and self.lifecycle is not None and self.lifecycle.state is LifecycleState.REMOVING

    @property
    def is_settled(self) -> bool:
        """Fixed and not on its way out; what neighbours are checked against."""
        return self.is_fixed and not self.is_removing

    def with_candidates(self, candidates: Iterable[TileId]) -> "Tile":
        if self.kind is not TileKind.SUPERPOSITION:
            raise ValueError(f"{self.kind.value} tile has no candidate list")
        return Tile.superposition(candidates)

    # ---------- lifecycle ----------

    def apply(self, event: str) -> "Tile":
        if not self.is_fixed or self.lifecycle is None:
            raise InvalidTransition(f"'{event}' on a {self.kind.value} tile")
        nxt = transition(self.lifecycle, event)
        if nxt.state is LifecycleState.EMPTY:
            return _EMPTY
        return replace(self, lifecycle=nxt)

    def start_removal(self) -> "Tile":
        return self.apply("remove")


_EMPTY = Tile(TileKind.EMPTY)
_BUFFER = Tile(TileKind.BUFFER)


def advance(tile: Tile, delta_ms: float) -> Tile:
    """Advance the lifecycle timer; finished timers fire their transition."""

    if not tile.is_fixed or tile.lifecycle is None:
        return tile
    fsm = tile.lifecycle
    if fsm.state not in (LifecycleState.CONSTRUCTING, LifecycleState.REMOVING):
        return tile
    remaining = fsm.remaining_ms - max(0.0, float(delta_ms))
    if remaining > 0:
        return replace(tile, lifecycle=Lifecycle(fsm.state, remaining))
    event = "finish" if fsm.state is LifecycleState.CONSTRUCTING else "clear"
    return tile.apply(event)


__all__ = [
    "InvalidTransition",
    "Lifecycle",
    "LifecycleState",
    "ParentTile",
    "Tile",
    "TileId",
    "TileKind",
    "advance",
    "transition",
]
