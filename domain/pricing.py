# domain/pricing.py
from __future__ import annotations

import random
from typing import Optional

from domain.models import STOP_LOSS_FRACTION, CloseReason, Direction, RoundParameters
from logger import get_logger

logger = get_logger(__name__)


def pnl_fraction(entry_price: float, price: float, leverage: float,
                 direction: Direction) -> float:
  """Leveraged return on stake: -1.0 means the whole stake is gone."""
  change = (price - entry_price) / entry_price
  return change * leverage * direction.sign


def clamp_pnl(pnl: float) -> float:
  return max(STOP_LOSS_FRACTION, pnl)


def payout_for(stake: float, pnl: float) -> float:
  return stake * (1 + clamp_pnl(pnl))


def closure_reason(pnl: float, elapsed: float,
                   duration: float) -> Optional[CloseReason]:
  # stop-loss wins when both fire on the same tick
  if pnl <= STOP_LOSS_FRACTION:
    return CloseReason.STOP_LOSS
  if elapsed >= duration:
    return CloseReason.TIME_EXPIRY
  return None


def floor_price(x: float, floor: Optional[float]) -> float:
  if floor is None or x >= floor:
    return x
  logger.debug("simulated price %.6f clamped to floor %.6f", x, floor)
  return floor


def simulate_price(prev: float, params: RoundParameters,
                   reference_leverage: float, rng: random.Random,
                   floor: Optional[float] = None) -> float:
  """
  One bounded random-walk step. Volatility scales with leverage relative
  to the smallest catalog multiplier so riskier rounds move faster:
      change = (u - 0.5) * vol * (leverage / reference), u ~ U[0, 1)
  """
  volatility = params.asset.base_volatility * (params.leverage /
                                               reference_leverage)
  change = (rng.random() - 0.5) * volatility
  return floor_price(prev * (1 + change), floor)
