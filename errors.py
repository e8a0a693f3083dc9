# errors.py
from __future__ import annotations


class GameError(Exception):
    """Base class for everything the engine raises on purpose."""

    code = "error"


class FeedConnectionError(GameError):
    code = "feed_connection"


class MalformedPriceMessage(FeedConnectionError):
    code = "malformed_price"


class InsufficientBalanceError(GameError):
    code = "insufficient_balance"

    def __init__(self, balance: float, amount: float):
        super().__init__(f"balance {balance:.2f} is below {amount:.2f}")
        self.balance = balance
        self.amount = amount


class RoundInProgressError(GameError):
    code = "round_in_progress"


class FeedOfflineError(GameError):
    """Feed is down; the caller may retry with simulation enabled."""

    code = "feed_offline"


class InvalidStakeError(GameError, ValueError):
    code = "invalid_stake"


class PositionStateError(GameError):
    code = "position_state"
