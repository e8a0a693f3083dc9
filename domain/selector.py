# domain/selector.py
from __future__ import annotations

import random
from typing import Optional, Sequence

from domain.models import Asset, Direction, RoundParameters


class OutcomeSelector:
  """Uniform, independent draw of asset / direction / leverage / duration."""

  def __init__(self, assets: Sequence[Asset], multipliers: Sequence[float],
               durations: Sequence[float],
               rng: Optional[random.Random] = None):
    if not assets or not multipliers or not durations:
      raise ValueError("catalogs must not be empty")
    if min(multipliers) <= 0 or min(durations) <= 0:
      raise ValueError("multipliers and durations must be positive")
    self.assets = tuple(assets)
    self.multipliers = tuple(multipliers)
    self.durations = tuple(durations)
    self.rng = rng or random.Random()

  @property
  def reference_leverage(self) -> float:
    return min(self.multipliers)

  def draw(self, stake: float) -> RoundParameters:
    rng = self.rng
    return RoundParameters(
        asset=rng.choice(self.assets),
        direction=Direction.LONG if rng.random() < 0.5 else Direction.SHORT,
        leverage=rng.choice(self.multipliers),
        duration=rng.choice(self.durations),
        stake=stake,
    )
