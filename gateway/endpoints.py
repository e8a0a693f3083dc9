# gateway/endpoints.py
from __future__ import annotations

import asyncio
import json
import time

from fastapi import WebSocket, WebSocketDisconnect

from domain.engine import TradeEngine
from errors import GameError, InvalidStakeError
from gateway.utils import error_payload, pump_outbox, state_payload
from logger import get_logger
from state import gen_session_id, sessions

logger = get_logger(__name__)


async def ws_endpoint(ws: WebSocket):
  """
  One connection = one session: its own engine and ledger, sharing the
  process-wide price feed. Every engine event is pushed as a STATE
  snapshot; commands that fail come back as ERROR {code}.
  """
  await ws.accept()
  app_state = ws.app.state
  engine = TradeEngine(app_state.feed, app_state.config)
  sid = gen_session_id()
  sessions[sid] = engine

  outbox: "asyncio.Queue[dict]" = asyncio.Queue()

  def forward(event: str) -> None:
    outbox.put_nowait(state_payload(engine, event))

  engine.add_listener(forward)
  sender = asyncio.create_task(pump_outbox(ws, outbox))

  # greet
  outbox.put_nowait({"type": "HELLO", "sessionId": sid})
  outbox.put_nowait(state_payload(engine, "HELLO"))
  logger.info("session %s connected (%d live)", sid, len(sessions))

  try:
    while True:
      message = await ws.receive()
      if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
      # binary frames carry no command
      raw = message.get("text")
      try:
        msg = json.loads(raw) if raw is not None else None
      except ValueError:
        msg = None
      if not isinstance(msg, dict):
        outbox.put_nowait({"type": "ERROR", "code": "bad_request"})
        continue
      mtype = msg.get("type")

      try:
        if mtype == "START_ROUND":
          engine.start_round(
              simulate_if_offline=bool(msg.get("simulate", False)))

        elif mtype == "SELECT_STAKE":
          amount = msg.get("amount")
          if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise InvalidStakeError(f"bad stake {amount!r}")
          engine.select_stake(amount)

        elif mtype == "GET_STATE":
          outbox.put_nowait(state_payload(engine, "STATE"))

        elif mtype == "PING":
          outbox.put_nowait({"type": "PONG", "ts": time.time()})

        else:
          # ignore unknown
          pass
      except GameError as e:
        logger.info("session %s: %s rejected (%s)", sid, mtype, e.code)
        outbox.put_nowait(error_payload(e))

  except WebSocketDisconnect:
    logger.info("session %s disconnected", sid)
  finally:
    sessions.pop(sid, None)
    engine.remove_listener(forward)
    await engine.cancel()
    sender.cancel()
    try:
      await sender
    except asyncio.CancelledError:
      pass
