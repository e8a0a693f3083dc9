# domain/ledger.py
from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List

from domain.models import SettlementRecord
from errors import InsufficientBalanceError
from logger import get_logger

logger = get_logger(__name__)


class Ledger:
  """Session balance plus the most recent settlements, newest first."""

  def __init__(self, starting_balance: float, capacity: int = 10):
    if capacity < 1:
      raise ValueError("capacity must be >= 1")
    self.balance = float(starting_balance)
    self.history: Deque[SettlementRecord] = deque(maxlen=capacity)
    # whole-session totals; history only keeps the tail
    self.rounds = 0
    self.wins = 0
    self.losses = 0
    self.realized_pnl = 0.0

  def debit(self, amount: float) -> None:
    if amount <= 0:
      raise ValueError(f"debit must be positive, got {amount}")
    if amount > self.balance:
      raise InsufficientBalanceError(self.balance, amount)
    self.balance -= amount

  def credit(self, amount: float) -> None:
    if amount < 0:
      raise ValueError(f"credit must be non-negative, got {amount}")
    self.balance += amount

  def record_settlement(self, record: SettlementRecord) -> None:
    # appendleft on a bounded deque evicts from the right: the oldest
    self.history.appendleft(record)
    self.rounds += 1
    profit = record.profit
    if profit > 0:
      self.wins += 1
    elif profit < 0:
      self.losses += 1
    self.realized_pnl += profit
    logger.debug("ledger: %d settlements kept, balance %.2f",
                 len(self.history), self.balance)

  def stats(self) -> Dict[str, float]:
    return {
        "rounds": self.rounds,
        "wins": self.wins,
        "losses": self.losses,
        "realizedPnL": round(self.realized_pnl, 2),
    }


def settlement_payload(record: SettlementRecord) -> dict:
  p = record.params
  return {
      "id": record.record_id,
      "asset": p.asset.symbol,
      "direction": p.direction.value,
      "leverage": p.leverage,
      "duration": p.duration,
      "stake": p.stake,
      "entryPrice": record.entry_price,
      "exitPrice": record.exit_price,
      "finalPnl": round(record.final_pnl, 6),
      "payout": round(record.payout, 2),
      "profit": round(record.profit, 2),
      "closeReason": record.close_reason.value,
      "isSimulated": record.is_simulated,
      "startTs": record.start_ts,
      "closeTs": record.close_ts,
  }


def snapshot_ledger(ledger: Ledger) -> dict:
  rows: List[dict] = [settlement_payload(r) for r in ledger.history]
  return {
      "balance": round(ledger.balance, 2),
      "history": rows,
      "stats": ledger.stats(),
  }
