import logging
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import config as app_config
from .database import DatabaseService
from .discord_bot import DiscordBot
from .executor import TradeExecutor
from .market_making import MarketMakingController
from .sessions import SessionStore, SessionSweeper

# Initialize logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize database service
db_service = DatabaseService(app_config.MONGO_URL, app_config.MONGO_DB)

# In-memory wizard sessions, shared by the bot and the sweeper
session_store = SessionStore(ttl_seconds=app_config.SESSION_TTL_SECONDS)

# Initialize Discord bot (will be started in lifespan)
discord_bot: DiscordBot = None

# Initialize session sweeper (will be started in lifespan)
session_sweeper: SessionSweeper = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    global discord_bot, session_sweeper

    # Startup
    logger.info("Starting up...")

    # Setup database indexes
    await db_service.setup_indexes()

    # Start Discord bot in background
    discord_bot = DiscordBot(
        db_service,
        session_store,
        executor=TradeExecutor(db_service),
        market_maker=MarketMakingController(db_service),
    )
    asyncio.create_task(discord_bot.start())
    logger.info("Discord bot started")

    session_sweeper = SessionSweeper(session_store, interval_seconds=app_config.SESSION_SWEEP_SECONDS)
    await session_sweeper.start()

    yield

    # Shutdown
    logger.info("Shutting down...")
    if session_sweeper:
        await session_sweeper.stop()
    if discord_bot:
        await discord_bot.stop()


app = FastAPI(lifespan=lifespan)


# Health check endpoint for Dokku
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "discord_ready": bool(discord_bot and discord_bot.client.is_ready()),
        "active_sessions": len(session_store),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
