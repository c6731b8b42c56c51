#!/usr/bin/env python3
"""
PRNG Tests
==========

Determinism and guard rails of the seeded random stream.
"""

import pytest

from league_engine.errors import EmptyInputError, InvalidRangeError
from league_engine.prng import Prng, create_prng


# ═══════════════════════════════════════════════════════════════
# STREAM
# ═══════════════════════════════════════════════════════════════

class TestStream:
    def test_same_seed_same_sequence(self):
        a = create_prng(1234)
        b = create_prng(1234)
        assert [a.next() for _ in range(50)] == [b.next() for _ in range(50)]

    def test_different_seeds_diverge(self):
        a = create_prng(1)
        b = create_prng(2)
        assert [a.next() for _ in range(5)] != [b.next() for _ in range(5)]

    def test_floats_in_unit_interval(self):
        prng = Prng(99)
        for _ in range(1000):
            value = prng.next()
            assert 0.0 <= value < 1.0

    def test_first_value_from_recurrence(self):
        # (1664525 * 0 + 1013904223) mod 2^32
        assert Prng(0).next() == 1013904223 / 2 ** 32

    def test_large_seed_is_masked(self):
        assert Prng(2 ** 32 + 5).next() == Prng(5).next()


# ═══════════════════════════════════════════════════════════════
# INTEGERS AND PICKS
# ═══════════════════════════════════════════════════════════════

class TestIntegers:
    def test_next_int_inclusive_bounds(self):
        prng = create_prng(7)
        values = {prng.next_int(1, 3) for _ in range(500)}
        assert values == {1, 2, 3}

    def test_next_int_single_value(self):
        prng = create_prng(7)
        assert all(prng.next_int(4, 4) == 4 for _ in range(20))

    def test_next_int_rejects_inverted_range(self):
        with pytest.raises(InvalidRangeError):
            create_prng(7).next_int(5, 4)

    def test_invalid_range_is_value_error(self):
        with pytest.raises(ValueError):
            create_prng(7).next_int(10, 0)

    def test_pick_returns_member(self):
        prng = create_prng(3)
        items = ["a", "b", "c"]
        for _ in range(50):
            assert prng.pick(items) in items

    def test_pick_empty_raises(self):
        with pytest.raises(EmptyInputError):
            create_prng(3).pick([])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
