# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from domain.models import Asset

# ---------- Catalogs ----------
ASSETS: Tuple[Asset, ...] = (
    Asset("BTC", "Bitcoin", 0.15),
    Asset("ETH", "Ethereum", 0.25),
    Asset("SOL", "Solana", 0.45),
)
MULTIPLIERS: Tuple[int, ...] = (10, 25, 50, 100, 150, 200, 250)
DURATIONS: Tuple[int, ...] = (5, 10, 15, 20, 25, 30, 35, 40, 45)  # seconds
STAKES: Tuple[int, ...] = (5, 10, 25, 50, 100)

# ---------- Upstream feed ----------
HERMES_WS_URL = "wss://hermes.pyth.network/ws"
PRICE_FEEDS: Dict[str, str] = {
    "BTC": "e62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43",
    "ETH": "ff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace",
    "SOL": "ef0d8b6fda2ceba41da15d4095d1da392a0d2f8ed0c6c7bc0f4cfac8c280b56d",
}

# ---------- Game defaults ----------
DEFAULT_STARTING_BALANCE = 1000.0
DEFAULT_STAKE = 10
PLACEHOLDER_ENTRY_PRICE = 100.0
PRICE_TICK = 0.01


@dataclass(frozen=True)
class GameConfig:
    """Timing and capacity knobs for one engine."""

    starting_balance: float = DEFAULT_STARTING_BALANCE
    default_stake: float = DEFAULT_STAKE

    # reveal: asset, direction, leverage, duration
    reveal_stage_seconds: Tuple[float, ...] = (0.8, 1.0, 1.0, 1.0)
    reveal_pause_seconds: float = 0.6
    countdown_start: int = 3
    countdown_interval: float = 0.8
    tick_interval: float = 0.1

    history_cap: int = 100            # P&L samples kept per position
    ledger_capacity: int = 10         # settlements kept per session

    placeholder_price: float = PLACEHOLDER_ENTRY_PRICE
    sim_price_floor: Optional[float] = PRICE_TICK

    feed_url: str = HERMES_WS_URL
    reconnect_delay: float = 3.0

    @property
    def reveal_seconds(self) -> float:
        return sum(self.reveal_stage_seconds) + self.reveal_pause_seconds


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number") from e


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer") from e


def load_config() -> GameConfig:
    """Build a GameConfig from SPINTRADE_* environment variables."""
    starting_balance = _get_float("SPINTRADE_STARTING_BALANCE",
                                  DEFAULT_STARTING_BALANCE)
    if starting_balance < 0:
        raise RuntimeError("SPINTRADE_STARTING_BALANCE must be >= 0")

    stake = _get_float("SPINTRADE_DEFAULT_STAKE", DEFAULT_STAKE)
    if stake not in STAKES:
        raise RuntimeError(
            f"SPINTRADE_DEFAULT_STAKE must be one of {list(STAKES)}")

    tick_interval = _get_float("SPINTRADE_TICK_INTERVAL", 0.1)
    reconnect_delay = _get_float("SPINTRADE_RECONNECT_DELAY", 3.0)
    if tick_interval <= 0 or reconnect_delay <= 0:
        raise RuntimeError("tick interval and reconnect delay must be > 0")

    history_cap = _get_int("SPINTRADE_HISTORY_CAP", 100)
    ledger_capacity = _get_int("SPINTRADE_LEDGER_CAPACITY", 10)
    if history_cap < 1 or ledger_capacity < 1:
        raise RuntimeError("history and ledger capacities must be >= 1")

    return GameConfig(
        starting_balance=starting_balance,
        default_stake=stake,
        tick_interval=tick_interval,
        history_cap=history_cap,
        ledger_capacity=ledger_capacity,
        feed_url=os.getenv("SPINTRADE_FEED_URL", HERMES_WS_URL),
        reconnect_delay=reconnect_delay,
    )
