"""
Shared fixtures: an in-memory price feed, a hand-cranked clock and an
engine factory that pins the drawn round so scenarios are deterministic.
"""

import random

import pytest

from config import GameConfig
from domain.engine import TradeEngine
from helpers import FakeClock, FakeFeed, FixedSelector, make_params


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_engine(feed, clock):

    def _make(params=None, autorun=False, **config_overrides):
        params = params or make_params()
        config_overrides.setdefault("default_stake", params.stake)
        config = GameConfig(**config_overrides)
        return TradeEngine(feed,
                           config,
                           selector=FixedSelector(params),
                           rng=random.Random(7),
                           clock=clock,
                           autorun=autorun)

    return _make
