"""Seedable RNG wrapper exposed to story scripts."""
from __future__ import annotations

from random import Random
from typing import Sequence, TypeVar

T_co = TypeVar("T_co")


class RNG:
    """Wrapper around random.Random that provides the dice helpers scripts use."""

    def __init__(self, seed: int | None = None) -> None:
        self._random = Random(seed)

    def randint(self, a: int, b: int) -> int:
        """Return a random integer N such that a <= N <= b."""
        return self._random.randint(a, b)

    def random(self) -> float:
        """Return the next random floating point number in the range [0.0, 1.0)."""
        return self._random.random()

    def choice(self, seq: Sequence[T_co]) -> T_co:
        """Return a random element from the non-empty sequence."""
        if not seq:
            raise ValueError("Cannot choose from an empty sequence.")
        return self._random.choice(seq)

    def roll(self, count: int, sides: int) -> int:
        """Return the total of `count` dice with `sides` faces each."""
        if count < 0 or sides < 1:
            raise ValueError("Dice rolls need a non-negative count and at least one side.")
        return sum(self._random.randint(1, sides) for _ in range(count))
