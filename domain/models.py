# domain/models.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Optional, Tuple

from errors import PositionStateError

STOP_LOSS_FRACTION = -1.0  # full stake; there is no take-profit


class Direction(str, Enum):
  LONG = "LONG"
  SHORT = "SHORT"

  @property
  def sign(self) -> int:
    return 1 if self is Direction.LONG else -1


class EngineState(str, Enum):
  IDLE = "IDLE"
  REVEALING = "REVEALING"
  COUNTDOWN = "COUNTDOWN"
  OPEN = "OPEN"
  SETTLED = "SETTLED"

  def accepts_start(self) -> bool:
    return self in (EngineState.IDLE, EngineState.SETTLED)


class PositionStatus(str, Enum):
  PENDING = "PENDING"  # countdown running, no entry yet
  OPEN = "OPEN"
  CLOSED = "CLOSED"

  def is_terminal(self) -> bool:
    return self is PositionStatus.CLOSED


class CloseReason(str, Enum):
  STOP_LOSS = "STOP_LOSS"
  TIME_EXPIRY = "TIME_EXPIRY"


@dataclass(frozen=True)
class Asset:
  symbol: str
  name: str
  base_volatility: float  # only drives simulated prices


@dataclass(frozen=True)
class RoundParameters:
  asset: Asset
  direction: Direction
  leverage: float
  duration: float  # seconds
  stake: float


class Position:
  """
  A live bet. Starts PENDING with history [0] and no entry price; the
  engine locks the entry exactly once when the countdown ends, feeds it
  samples while OPEN, then closes it for good.
  """

  def __init__(self, params: RoundParameters, history_cap: int = 100):
    if history_cap < 1:
      raise ValueError("history_cap must be >= 1")
    self.params = params
    self.entry_price: Optional[float] = None
    self.current_price: Optional[float] = None
    self.start_ts: Optional[float] = None
    self.status = PositionStatus.PENDING
    self.pnl: float = 0.0
    self.is_simulated = False
    self.stop_loss = STOP_LOSS_FRACTION
    self.history: Deque[float] = deque([0.0], maxlen=history_cap)
    self.close_reason: Optional[CloseReason] = None
    self.close_ts: Optional[float] = None

  def lock_entry(self, price: float, ts: float, simulated: bool) -> None:
    if self.entry_price is not None:
      raise PositionStateError("entry price already locked")
    if self.status is not PositionStatus.PENDING:
      raise PositionStateError(f"cannot open a {self.status.value} position")
    if not price > 0:
      raise PositionStateError(f"entry price must be positive, got {price}")
    self.entry_price = price
    self.current_price = price
    self.start_ts = ts
    self.is_simulated = simulated
    self.status = PositionStatus.OPEN

  def record_sample(self, pnl: float, price: float) -> None:
    if self.status is not PositionStatus.OPEN:
      raise PositionStateError("samples only apply to an open position")
    self.pnl = pnl
    self.current_price = price
    self.history.append(pnl)

  def close(self, reason: CloseReason, final_pnl: float, price: float,
            ts: float) -> None:
    if self.status is not PositionStatus.OPEN:
      raise PositionStateError("only an open position can close")
    # history ends on the settled value, then freezes
    self.history.append(final_pnl)
    self.pnl = final_pnl
    self.current_price = price
    self.close_reason = reason
    self.close_ts = ts
    self.status = PositionStatus.CLOSED

  def elapsed(self, now: float) -> float:
    if self.start_ts is None:
      return 0.0
    return max(0.0, now - self.start_ts)


@dataclass(frozen=True)
class SettlementRecord:
  record_id: int
  params: RoundParameters
  entry_price: float
  exit_price: float
  start_ts: float
  close_ts: float
  is_simulated: bool
  history: Tuple[float, ...]
  final_pnl: float
  payout: float
  close_reason: CloseReason

  @property
  def profit(self) -> float:
    return self.payout - self.params.stake

  @classmethod
  def from_position(cls, position: Position, payout: float,
                    record_id: int) -> "SettlementRecord":
    if not position.status.is_terminal():
      raise PositionStateError("position is not settled")
    return cls(
        record_id=record_id,
        params=position.params,
        entry_price=position.entry_price,
        exit_price=position.current_price,
        start_ts=position.start_ts,
        close_ts=position.close_ts,
        is_simulated=position.is_simulated,
        history=tuple(position.history),
        final_pnl=position.pnl,
        payout=payout,
        close_reason=position.close_reason,
    )
