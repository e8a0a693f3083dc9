# main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# REST routes
from api.routes import router as api_router
from config import PRICE_FEEDS, load_config
from gateway.endpoints import ws_endpoint
from logger import get_logger
from market.price_feed import PriceFeed
from state import sessions

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # one upstream feed shared by every session
    config = load_config()
    feed = PriceFeed(PRICE_FEEDS,
                     url=config.feed_url,
                     reconnect_delay=config.reconnect_delay)
    app.state.config = config
    app.state.feed = feed
    feed.start()
    logger.info("spin-trade engine up, feed %s", config.feed_url)
    try:
        yield
    finally:
        for engine in list(sessions.values()):
            await engine.cancel()
        await feed.close()


app = FastAPI(title="Spin Trade", version="1.0", lifespan=lifespan)

# --- CORS: the presentation layer is served elsewhere ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- REST API ---
app.include_router(api_router)

# --- WebSockets ---
app.add_api_websocket_route("/ws", ws_endpoint)


# --- Healthcheck ---
@app.get("/health")
async def health():
    return {
        "status": "ok",
        "feedConnected": app.state.feed.is_connected,
        "sessions": len(sessions),
    }


# --- Dev runner ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
