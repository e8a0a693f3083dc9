# api/routes.py
from fastapi import APIRouter, Request

from config import ASSETS, DURATIONS, MULTIPLIERS, STAKES

router = APIRouter()


@router.get("/catalog")
async def catalog(request: Request):
    """Everything a spin can land on, plus the selectable stakes."""
    config = request.app.state.config
    return {
        "assets": [{
            "symbol": a.symbol,
            "name": a.name,
            "volatility": a.base_volatility
        } for a in ASSETS],
        "multipliers": list(MULTIPLIERS),
        "durations": list(DURATIONS),
        "stakes": list(STAKES),
        "startingBalance": config.starting_balance,
    }


@router.get("/feed")
async def feed_status(request: Request):
    feed = request.app.state.feed
    return {
        "connected": feed.is_connected,
        "url": feed.url,
        "prices": feed.prices(),
        "reconnectPending": feed.reconnect_pending,
        "connectAttempts": feed.connect_attempts,
        "droppedMessages": feed.dropped_messages,
        "lastError": feed.last_error,
    }
