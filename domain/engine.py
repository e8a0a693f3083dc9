# domain/engine.py
from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from config import ASSETS, DURATIONS, MULTIPLIERS, STAKES, GameConfig
from domain.ledger import Ledger, settlement_payload, snapshot_ledger
from domain.models import (
    CloseReason,
    EngineState,
    Position,
    PositionStatus,
    RoundParameters,
    SettlementRecord,
)
from domain.pricing import (
    clamp_pnl,
    closure_reason,
    payout_for,
    pnl_fraction,
    simulate_price,
)
from domain.selector import OutcomeSelector
from errors import (
    FeedOfflineError,
    InsufficientBalanceError,
    InvalidStakeError,
    PositionStateError,
    RoundInProgressError,
)
from logger import get_logger
from market.price_feed import PriceFeed

logger = get_logger(__name__)

Listener = Callable[[str], Any]

REVEAL_FIELDS = ("asset", "direction", "leverage", "duration")


class TradeEngine:
  """
  Round lifecycle for one session:

      IDLE -> REVEALING -> COUNTDOWN -> OPEN -> SETTLED (-> next round)

  Every transition is a plain synchronous method, so it runs to completion
  between awaits. With ``autorun`` (the default) ``start_round`` spawns one
  asyncio task that sleeps between those steps; with ``autorun=False`` the
  caller drives ``reveal_next`` / ``finish_reveal`` / ``countdown_tick`` /
  ``tick`` itself.
  """

  def __init__(self,
               feed: PriceFeed,
               config: Optional[GameConfig] = None,
               ledger: Optional[Ledger] = None,
               selector: Optional[OutcomeSelector] = None,
               rng: Optional[random.Random] = None,
               clock: Callable[[], float] = time.time,
               stakes: Sequence[float] = STAKES,
               autorun: bool = True):
    self.config = config or GameConfig()
    self.feed = feed
    self.ledger = ledger or Ledger(self.config.starting_balance,
                                   self.config.ledger_capacity)
    self.selector = selector or OutcomeSelector(ASSETS, MULTIPLIERS,
                                                DURATIONS)
    self.rng = rng or random.Random()
    self.clock = clock
    self.stakes = tuple(stakes)
    if self.config.default_stake not in self.stakes:
      raise InvalidStakeError(
          f"default stake {self.config.default_stake} not in {self.stakes}")
    self.stake = self.config.default_stake
    self.autorun = autorun

    self.state = EngineState.IDLE
    self.params: Optional[RoundParameters] = None
    self.revealed: Dict[str, Any] = {}
    self.countdown: Optional[int] = None
    self.position: Optional[Position] = None
    self.last_settlement: Optional[SettlementRecord] = None

    self._task: Optional[asyncio.Task] = None
    self._listeners: List[Listener] = []
    self._next_record_id = 1

  # ---------- commands ----------
  def select_stake(self, amount: float) -> None:
    if not self.state.accepts_start():
      raise RoundInProgressError("stake is locked while a round runs")
    if amount not in self.stakes:
      raise InvalidStakeError(f"stake {amount} not in {list(self.stakes)}")
    self.stake = amount
    self._notify("STAKE_SELECTED")

  def start_round(self, simulate_if_offline: bool = False) -> RoundParameters:
    """
    Debit the stake and draw a new round.

    Raises RoundInProgressError, InsufficientBalanceError or
    FeedOfflineError before anything is mutated. FeedOfflineError is the
    offer to play on simulated prices: call again with
    ``simulate_if_offline=True`` to accept it.
    """
    if not self.state.accepts_start():
      raise RoundInProgressError(f"round is {self.state.value}")
    stake = self.stake
    if self.ledger.balance < stake:
      raise InsufficientBalanceError(self.ledger.balance, stake)
    if not self.feed.is_connected and not simulate_if_offline:
      raise FeedOfflineError("price feed offline")
    loop = asyncio.get_running_loop() if self.autorun else None

    self._cancel_task()
    self.ledger.debit(stake)
    params = self.selector.draw(stake)

    self.params = params
    self.revealed = {}
    self.countdown = None
    self.position = None
    self.last_settlement = None
    self.state = EngineState.REVEALING
    logger.info("round started: stake %.2f, balance %.2f, feed %s",
                stake, self.ledger.balance,
                "live" if self.feed.is_connected else "offline")
    self._notify("ROUND_STARTED")

    if loop is not None:
      self._task = loop.create_task(self._run_round())
    return params

  async def cancel(self) -> None:
    """
    Stop the running round timeline, if any. A round that has not
    settled yet is voided: the stake goes back to the balance and the
    engine returns to IDLE, so ``start_round`` works again.
    """
    task = self._task
    self._cancel_task()
    if task is not None:
      try:
        await task
      except asyncio.CancelledError:
        pass
    if self.state in (EngineState.REVEALING, EngineState.COUNTDOWN,
                      EngineState.OPEN):
      stake = self.params.stake
      self.ledger.credit(stake)
      self.params = None
      self.revealed = {}
      self.countdown = None
      self.position = None
      self.state = EngineState.IDLE
      logger.info("round voided, stake %.2f refunded", stake)
      self._notify("CANCELLED")

  def add_listener(self, callback: Listener) -> None:
    self._listeners.append(callback)

  def remove_listener(self, callback: Listener) -> None:
    if callback in self._listeners:
      self._listeners.remove(callback)

  # ---------- transitions ----------
  def reveal_next(self) -> Optional[str]:
    """Expose the next drawn field; None once everything is shown."""
    self._expect(EngineState.REVEALING)
    for name in REVEAL_FIELDS:
      if name not in self.revealed:
        self.revealed[name] = getattr(self.params, name)
        self._notify("REVEAL")
        return name
    return None

  def finish_reveal(self) -> Position:
    self._expect(EngineState.REVEALING)
    for name in REVEAL_FIELDS:
      self.revealed.setdefault(name, getattr(self.params, name))
    self.position = Position(self.params, self.config.history_cap)
    self.countdown = self.config.countdown_start
    self.state = EngineState.COUNTDOWN
    if self.countdown <= 0:
      self._open_position()
    else:
      self._notify("COUNTDOWN")
    return self.position

  def countdown_tick(self) -> None:
    self._expect(EngineState.COUNTDOWN)
    self.countdown -= 1
    if self.countdown <= 0:
      self._open_position()
    else:
      self._notify("COUNTDOWN")

  def tick(self) -> Optional[SettlementRecord]:
    """
    One OPEN-state evaluation: next price, P&L, then stop-loss before
    expiry. Returns the settlement when the position closes on this
    tick; does nothing unless the engine is OPEN.
    """
    if self.state is not EngineState.OPEN:
      return None
    pos = self.position
    params = pos.params
    now = self.clock()

    price = self._next_price(pos)
    pnl = pnl_fraction(pos.entry_price, price, params.leverage,
                       params.direction)
    reason = closure_reason(pnl, pos.elapsed(now), params.duration)
    if reason is None:
      pos.record_sample(pnl, price)
      logger.debug("%s %.6f pnl %.4f", params.asset.symbol, price, pnl)
      self._notify("TICK")
      return None
    return self._settle(reason, pnl, price, now)

  def _open_position(self) -> None:
    symbol = self.params.asset.symbol
    live = self.feed.get_last_price(symbol)
    simulated = live is None
    entry = self.config.placeholder_price if simulated else live
    self.position.lock_entry(entry, self.clock(), simulated)
    self.countdown = None
    self.state = EngineState.OPEN
    logger.info("position open: %s %s x%s for %ss @ %.6f%s",
                symbol, self.params.direction.value, self.params.leverage,
                self.params.duration, entry,
                " (simulated)" if simulated else "")
    self._notify("OPEN")

  def _settle(self, reason: CloseReason, pnl: float, price: float,
              now: float) -> SettlementRecord:
    pos = self.position
    final = clamp_pnl(pnl)
    payout = payout_for(pos.params.stake, final)

    pos.close(reason, final, price, now)
    self.state = EngineState.SETTLED
    self.ledger.credit(payout)
    record = SettlementRecord.from_position(pos, payout,
                                            self._next_record_id)
    self._next_record_id += 1
    self.ledger.record_settlement(record)
    self.last_settlement = record

    logger.info("settled %s: pnl %.4f payout %.2f balance %.2f",
                reason.value, final, payout, self.ledger.balance)
    self._notify("SETTLED")
    return record

  def _next_price(self, pos: Position) -> float:
    if not pos.is_simulated:
      live = self.feed.get_last_price(pos.params.asset.symbol)
      if live is not None:
        return live
    return simulate_price(pos.current_price, pos.params,
                          self.selector.reference_leverage, self.rng,
                          self.config.sim_price_floor)

  # ---------- timeline ----------
  async def _run_round(self) -> None:
    cfg = self.config
    try:
      for delay in cfg.reveal_stage_seconds:
        await asyncio.sleep(delay)
        self.reveal_next()
      await asyncio.sleep(cfg.reveal_pause_seconds)
      self.finish_reveal()

      while self.state is EngineState.COUNTDOWN:
        await asyncio.sleep(cfg.countdown_interval)
        self.countdown_tick()

      while self.state is EngineState.OPEN:
        await asyncio.sleep(cfg.tick_interval)
        if self.tick() is not None:
          break
    finally:
      if self._task is asyncio.current_task():
        self._task = None

  def _cancel_task(self) -> None:
    task, self._task = self._task, None
    if task is not None and not task.done():
      task.cancel()

  def _expect(self, state: EngineState) -> None:
    if self.state is not state:
      raise PositionStateError(
          f"expected {state.value}, engine is {self.state.value}")

  def _notify(self, event: str) -> None:
    for cb in list(self._listeners):
      try:
        cb(event)
      except Exception:
        logger.exception("listener failed on %s", event)

  # ---------- read side ----------
  def snapshot(self) -> dict:
    now = self.clock()
    return {
        "state": self.state.value,
        "stake": self.stake,
        "stakes": list(self.stakes),
        "feedConnected": self.feed.is_connected,
        "reveal": reveal_payload(self.revealed),
        "countdown": self.countdown,
        "position": (position_payload(self.position, now)
                     if self.position is not None else None),
        "lastSettlement": (settlement_payload(self.last_settlement)
                           if self.last_settlement is not None else None),
        **snapshot_ledger(self.ledger),
    }


def reveal_payload(revealed: Dict[str, Any]) -> dict:
  out: Dict[str, Any] = {}
  for name, value in revealed.items():
    if name == "asset":
      out[name] = value.symbol
    elif name == "direction":
      out[name] = value.value
    else:
      out[name] = value
  return out


def position_payload(pos: Position, now: float) -> dict:
  p = pos.params
  if pos.status is PositionStatus.OPEN:
    remaining = max(0.0, p.duration - pos.elapsed(now))
  elif pos.status is PositionStatus.PENDING:
    remaining = float(p.duration)
  else:
    remaining = 0.0
  return {
      "asset": p.asset.symbol,
      "assetName": p.asset.name,
      "direction": p.direction.value,
      "leverage": p.leverage,
      "duration": p.duration,
      "stake": p.stake,
      "status": pos.status.value,
      "entryPrice": pos.entry_price,
      "currentPrice": pos.current_price,
      "pnl": round(pos.pnl, 6),
      "value": round(p.stake * (1 + pos.pnl), 2),
      "stopLoss": pos.stop_loss,
      "isSimulated": pos.is_simulated,
      "remainingSec": round(remaining, 1),
      "closeReason": pos.close_reason.value if pos.close_reason else None,
      "history": list(pos.history),
  }
