# gateway/utils.py
from __future__ import annotations

import asyncio

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from domain.engine import TradeEngine
from errors import GameError
from logger import get_logger

logger = get_logger(__name__)


async def send_json_safe(ws: WebSocket, payload: dict) -> bool:
  if ws.client_state is not WebSocketState.CONNECTED:
    return False
  try:
    await ws.send_json(payload)
    return True
  except (RuntimeError, OSError) as e:
    logger.debug("send failed, client gone: %r", e)
    return False


async def pump_outbox(ws: WebSocket, outbox: "asyncio.Queue[dict]") -> None:
  """Forward queued payloads in order until cancelled."""
  while True:
    payload = await outbox.get()
    await send_json_safe(ws, payload)


def state_payload(engine: TradeEngine, event: str) -> dict:
  return {"type": "STATE", "event": event, **engine.snapshot()}


def error_payload(err: GameError) -> dict:
  return {"type": "ERROR", "code": err.code, "message": str(err)}
