"""
Test doubles and small drivers shared by the engine and gateway tests.
"""

import asyncio
import json

from config import ASSETS
from domain.models import Direction, RoundParameters

ASSET_BY_SYMBOL = {a.symbol: a for a in ASSETS}


class FakeFeed:
    """Stands in for PriceFeed: a connected flag and a symbol -> price map."""

    def __init__(self, connected=True):
        self.is_connected = connected
        self.prices = {}

    def get_last_price(self, symbol):
        return self.prices.get(symbol)


class FakeClock:

    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FixedSelector:
    """Always draws the same round; reference leverage matches the catalog."""

    reference_leverage = 10

    def __init__(self, params):
        self.params = params

    def draw(self, stake):
        p = self.params
        return RoundParameters(p.asset, p.direction, p.leverage, p.duration,
                               stake)


def make_params(symbol="BTC", direction=Direction.LONG, leverage=100,
                duration=30, stake=10):
    return RoundParameters(ASSET_BY_SYMBOL[symbol], direction, leverage,
                           duration, stake)


def open_round(engine, simulate_if_offline=False):
    """Drive a manual engine from IDLE to OPEN."""
    engine.start_round(simulate_if_offline=simulate_if_offline)
    engine.finish_reveal()
    while engine.countdown is not None:
        engine.countdown_tick()
    return engine.position


_CLOSE = object()


def price_update(feed_id, mantissa, expo):
    return {
        "type": "price_update",
        "price_feed": {
            "id": feed_id,
            "price": {
                "price": mantissa,
                "expo": expo,
                "conf": "1",
                "publish_time": 1700000000
            }
        }
    }


class FakeConnection:
    """Scripted upstream socket: frames are pushed in by the test."""

    def __init__(self):
        self.sent = []
        self.inbox = asyncio.Queue()
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    def push(self, msg):
        self.inbox.put_nowait(msg if isinstance(msg, str) else json.dumps(msg))

    def drop(self):
        self.inbox.put_nowait(_CLOSE)

    def fail(self, exc):
        self.inbox.put_nowait(exc)

    async def close(self):
        self.closed = True
        self.inbox.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeUpstream:
    """Connector double: counts attempts and hands out FakeConnections."""

    def __init__(self, refuse=0, delay=0.0):
        self.refuse = refuse
        self.delay = delay
        self.attempts = 0
        self.connections = []

    async def __call__(self, url):
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.refuse > 0:
            self.refuse -= 1
            raise OSError("connection refused")
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def open_count(self):
        return sum(1 for c in self.connections if not c.closed)
