"""
Seeded PRNG
===========

32-bit linear congruential generator (Numerical Recipes constants).  The
stream is a pure function of the seed and the number of draws, so the same
seed replays the same league, auction and scorecards in any process.

Nothing in the league engine touches ``random`` or the clock for simulation
decisions; every random draw goes through a ``Prng`` created from an explicit
seed.
"""

import math
from typing import Sequence, TypeVar

from league_engine.errors import EmptyInputError, InvalidRangeError

T = TypeVar("T")

_MULTIPLIER = 1664525
_INCREMENT = 1013904223
_MASK = 0xFFFFFFFF
_MODULUS = 2 ** 32


class Prng:
    """Reproducible float/int/pick stream."""

    __slots__ = ("_state",)

    def __init__(self, seed: int):
        self._state = int(seed) & _MASK

    def next(self) -> float:
        """Advance the recurrence and return a float in [0, 1)."""
        self._state = (_MULTIPLIER * self._state + _INCREMENT) & _MASK
        return self._state / _MODULUS

    def next_int(self, lo: int, hi: int) -> int:
        """Integer in [lo, hi], both ends inclusive."""
        if hi < lo:
            raise InvalidRangeError(f"max ({hi}) must be greater than or equal to min ({lo})")
        return int(math.floor(self.next() * (hi - lo + 1))) + lo

    def pick(self, items: Sequence[T]) -> T:
        if len(items) == 0:
            raise EmptyInputError("cannot pick from an empty sequence")
        return items[self.next_int(0, len(items) - 1)]


def create_prng(seed: int) -> Prng:
    return Prng(seed)
