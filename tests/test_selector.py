#!/usr/bin/env python3
"""
Tests for domain/selector.py
"""

import random

import pytest

from config import ASSETS, DURATIONS, MULTIPLIERS
from domain.models import Direction
from domain.selector import OutcomeSelector


class TestOutcomeSelector:

    def test_draws_come_from_catalogs(self):
        selector = OutcomeSelector(ASSETS, MULTIPLIERS, DURATIONS,
                                   rng=random.Random(11))
        for _ in range(200):
            params = selector.draw(25)
            assert params.asset in ASSETS
            assert params.direction in (Direction.LONG, Direction.SHORT)
            assert params.leverage in MULTIPLIERS
            assert params.duration in DURATIONS
            assert params.stake == 25

    def test_every_value_is_reachable(self):
        selector = OutcomeSelector(ASSETS, MULTIPLIERS, DURATIONS,
                                   rng=random.Random(5))
        draws = [selector.draw(10) for _ in range(2000)]
        assert {d.asset for d in draws} == set(ASSETS)
        assert {d.direction for d in draws} == set(Direction)
        assert {d.leverage for d in draws} == set(MULTIPLIERS)
        assert {d.duration for d in draws} == set(DURATIONS)

    def test_same_seed_same_sequence(self):
        a = OutcomeSelector(ASSETS, MULTIPLIERS, DURATIONS, rng=random.Random(3))
        b = OutcomeSelector(ASSETS, MULTIPLIERS, DURATIONS, rng=random.Random(3))
        assert [a.draw(5) for _ in range(20)] == [b.draw(5) for _ in range(20)]

    def test_reference_leverage_is_smallest_multiplier(self):
        selector = OutcomeSelector(ASSETS, MULTIPLIERS, DURATIONS)
        assert selector.reference_leverage == 10

    @pytest.mark.parametrize("multipliers,durations", [
        ((), DURATIONS),
        (MULTIPLIERS, ()),
        ((0, 10), DURATIONS),
        (MULTIPLIERS, (5, -1)),
    ])
    def test_rejects_bad_catalogs(self, multipliers, durations):
        with pytest.raises(ValueError):
            OutcomeSelector(ASSETS, multipliers, durations)
