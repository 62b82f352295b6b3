"""
Deterministic random number generation.

A linear congruential generator whose whole state is a single 32-bit
integer, so that any run can be replayed from its seed.
"""

import math
import time
from typing import Optional

from dprsim.core.constants import (
    D20,
    LCG_INCREMENT,
    LCG_MODULUS,
    LCG_MULTIPLIER,
)


class SeededRandom:
    """Reproducible uniform variates and dice rolls.

    A single instance must not be shared across concurrent simulations,
    since every draw advances its state.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        if seed is None:
            seed = int(time.time() * 1000)
        self._seed = int(seed) % LCG_MODULUS
        self._state = self._seed

    def next(self) -> float:
        """
        Advances the generator.

        Returns:
            float: A uniform variate in [0, 1).

        """
        self._state = (LCG_MULTIPLIER * self._state + LCG_INCREMENT) % LCG_MODULUS
        return self._state / LCG_MODULUS

    def next_int(self, lo: int, hi: int) -> int:
        """Returns an integer uniformly drawn from [lo, hi]."""
        return math.floor(self.next() * (hi - lo + 1)) + lo

    def roll_die(self, sides: int) -> int:
        return self.next_int(1, sides)

    def roll_dice(self, count: int, sides: int) -> int:
        """
        Rolls `count` dice with `sides` faces and sums them.

        Args:
            count (int): Number of dice, non-positive counts roll nothing.
            sides (int): Number of faces per die.

        Returns:
            int: The sum of the rolls.

        """
        total = 0
        for _ in range(max(0, count)):
            total += self.roll_die(sides)
        return total

    def roll_d20(self) -> int:
        return self.roll_die(D20)

    def roll_advantage(self) -> int:
        """Rolls two d20 and keeps the higher."""
        first = self.roll_d20()
        second = self.roll_d20()
        return max(first, second)

    def roll_disadvantage(self) -> int:
        """Rolls two d20 and keeps the lower."""
        first = self.roll_d20()
        second = self.roll_d20()
        return min(first, second)

    def roll_elven_accuracy(self) -> int:
        """Rolls three d20 and keeps the highest."""
        return max(self.roll_d20(), self.roll_d20(), self.roll_d20())

    def chance(self, probability: float) -> bool:
        """Returns True with the given probability."""
        return self.next() < probability

    def reset(self) -> None:
        """Restores the generator to its original seed."""
        self._state = self._seed

    def get_seed(self) -> int:
        return self._seed

    def set_seed(self, seed: int) -> None:
        """Reseeds the generator, which also becomes the new reset point."""
        self._seed = int(seed) % LCG_MODULUS
        self._state = self._seed
