# solver/seed.py
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Sequence, Tuple

_MASK64 = (1 << 64) - 1


@dataclass(frozen=True)
class SeedState:
    """Pure PRNG state.

    Each draw returns a value plus the next state; nothing is hidden in a
    module-level generator.  ``steps`` counts draws so a saved
    ``(initial, steps)`` pair replays to the exact same ``current``.
    """

    initial: int
    current: int
    steps: int = 0

    @staticmethod
    def from_seed(seed: int) -> "SeedState":
        seed = int(seed) & _MASK64
        return SeedState(seed, seed, 0)

    @staticmethod
    def replay(initial: int, steps: int) -> "SeedState":
        state = SeedState.from_seed(initial)
        for _ in range(max(0, int(steps))):
            _, state = state.next_float()
        return state

    def next_float(self) -> Tuple[float, "SeedState"]:
        rng = random.Random(self.current)
        value = rng.random()
        nxt = rng.getrandbits(64)
        return value, SeedState(self.initial, nxt, self.steps + 1)


def weighted_choice(seed: SeedState, options: Sequence[Tuple[int, float]]) -> Tuple[int, SeedState]:
    """Pick one id from ``(id, weight)`` pairs using exactly one draw."""

    if not options:
        raise ValueError("weighted_choice needs at least one option")
    value, seed = seed.next_float()
    total = sum(max(0.0, w) for _, w in options)
    if total <= 0:
        return options[int(value * len(options)) % len(options)][0], seed
    target = value * total
    acc = 0.0
    for tile_id, weight in options:
        acc += max(0.0, weight)
        if target < acc:
            return tile_id, seed
    return options[-1][0], seed


__all__ = ["SeedState", "weighted_choice"]
