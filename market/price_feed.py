# market/price_feed.py
from __future__ import annotations

import asyncio
import json
import math
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from config import HERMES_WS_URL, PRICE_FEEDS
from errors import FeedConnectionError, MalformedPriceMessage
from logger import get_logger

logger = get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]


def normalize_feed_id(feed_id: str) -> str:
    fid = feed_id.strip().lower()
    return fid[2:] if fid.startswith("0x") else fid


def _as_int(value) -> int:
    """Strict integer field: int (not bool) or a string of digits."""
    if isinstance(value, bool):
        raise TypeError(f"boolean {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    raise TypeError(f"not an integer: {value!r}")


def decode_price_update(raw) -> Optional[Tuple[str, float]]:
    """
    Decode one inbound frame.

    Returns (feed_id, price) for a ``price_update``, None for any other
    message type. Raises MalformedPriceMessage when the frame is not JSON or
    the price block is missing, non-integer or not a positive finite number.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedPriceMessage(f"invalid json: {e}") from e
    if not isinstance(data, dict):
        raise MalformedPriceMessage("frame is not an object")
    if data.get("type") != "price_update":
        return None

    try:
        feed = data["price_feed"]
        feed_id = normalize_feed_id(feed["id"])
        mantissa = _as_int(feed["price"]["price"])
        expo = _as_int(feed["price"]["expo"])
        price = mantissa * 10.0 ** expo
    except (KeyError, TypeError, ValueError, AttributeError,
            OverflowError) as e:
        raise MalformedPriceMessage(f"bad price_update: {e!r}") from e

    if not math.isfinite(price) or price <= 0:
        raise MalformedPriceMessage(f"unusable price {price} for {feed_id}")
    return feed_id, price


class PriceFeed:
    """
    Streaming last-price cache for a fixed symbol -> feed id table.

    One connection task at a time; when it ends for any reason a single
    retry is scheduled after ``reconnect_delay`` seconds, forever, until
    ``close()``. Reads never block: ``get_last_price`` is a dict lookup on
    the same store the message handler writes.
    """

    def __init__(self,
                 feed_ids: Mapping[str, str] = PRICE_FEEDS,
                 url: str = HERMES_WS_URL,
                 reconnect_delay: float = 3.0,
                 connector: Optional[Connector] = None):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._ids_by_symbol: Dict[str, str] = {
            s: normalize_feed_id(f) for s, f in feed_ids.items()
        }
        self._prices: Dict[str, float] = {}  # feed id -> last price
        self._connector = connector or websockets.connect
        self._ws: Any = None
        self._connected = False
        self._task: Optional[asyncio.Task] = None
        self._retry: Optional[asyncio.TimerHandle] = None
        self._closed = False
        # counters for the status route and tests
        self.connect_attempts = 0
        self.dropped_messages = 0
        self.last_error: Optional[str] = None

    # ---------- read side ----------
    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def reconnect_pending(self) -> bool:
        return self._retry is not None

    def get_last_price(self, symbol: str) -> Optional[float]:
        fid = self._ids_by_symbol.get(symbol)
        if fid is None:
            return None
        return self._prices.get(fid)

    def prices(self) -> Dict[str, Optional[float]]:
        return {s: self._prices.get(fid) for s, fid in self._ids_by_symbol.items()}

    def subscribe_message(self) -> dict:
        return {"type": "subscribe", "ids": list(self._ids_by_symbol.values())}

    # ---------- lifecycle ----------
    def start(self) -> None:
        """Open the first connection. Must run inside the event loop."""
        self.connect()

    def connect(self) -> None:
        if self._closed:
            return
        if self._connected:
            logger.debug("already connected, skipping")
            return
        if self._task is not None and not self._task.done():
            logger.debug("connection attempt already in flight, skipping")
            return
        self._cancel_retry()
        self.connect_attempts += 1
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def close(self) -> None:
        self._closed = True
        self._cancel_retry()
        task, self._task = self._task, None
        ws = self._ws
        if ws is not None:
            await self._close_quietly(ws)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._connected = False
        self._ws = None
        logger.info("price feed closed")

    # ---------- connection task ----------
    async def _open(self) -> Any:
        try:
            return await self._connector(self.url)
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            raise FeedConnectionError(f"cannot reach {self.url}: {e!r}") from e

    async def _listen(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self.handle_message(raw)
        except ConnectionClosedError as e:
            raise FeedConnectionError(f"connection dropped: {e}") from e

    async def _run(self) -> None:
        ws = None
        try:
            logger.info("connecting to %s", self.url)
            ws = await self._open()
            self._ws = ws
            self._connected = True
            self.last_error = None
            logger.info("price feed connected, subscribing to %d feeds",
                        len(self._ids_by_symbol))
            await ws.send(json.dumps(self.subscribe_message()))
            await self._listen(ws)
            logger.warning("price feed closed by server")
        except asyncio.CancelledError:
            raise
        except FeedConnectionError as e:
            self.last_error = str(e)
            logger.warning("price feed connection lost: %s", e)
        except Exception as e:
            self.last_error = repr(e)
            logger.exception("price feed failed")
        finally:
            self._connected = False
            self._ws = None
            if ws is not None and not self._closed:
                await self._close_quietly(ws)
            self._schedule_reconnect()

    def handle_message(self, raw) -> None:
        try:
            update = decode_price_update(raw)
        except MalformedPriceMessage as e:
            self.dropped_messages += 1
            logger.warning("dropping malformed feed message: %s", e)
            return
        if update is None:
            return
        feed_id, price = update
        self._prices[feed_id] = price

    # ---------- retry timer ----------
    def _schedule_reconnect(self) -> None:
        if self._closed or self._retry is not None:
            return
        logger.info("reconnecting in %.1fs", self.reconnect_delay)
        self._retry = asyncio.get_running_loop().call_later(
            self.reconnect_delay, self._on_retry)

    def _on_retry(self) -> None:
        self._retry = None
        self.connect()

    def _cancel_retry(self) -> None:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None

    async def _close_quietly(self, ws: Any) -> None:
        try:
            await ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug("ignoring error while closing feed socket: %r", e)
