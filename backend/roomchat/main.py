"""roomchat backend application.

This is the main entry point for the roomchat service: a real-time chat
backend with username login, chat rooms, direct messages and presence
(who is online, who is typing, who is in which room).

Modules:
    - api: REST endpoints for login, rooms and message history
    - realtime: WebSocket sessions, room channels and broadcasts
    - presence: in-memory presence registry
    - storage: DuckDB-backed users, rooms and messages
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomchat.api import router as api_router
from roomchat.config import get_config
from roomchat.realtime import router as realtime_router
from roomchat.storage import ChatStore, get_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn.access logs every HTTP request and WebSocket handshake.
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in roomchat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info("CORS allowed origins: %s", config.server.allowed_origins)

    store = get_store()
    logger.info("Chat store ready: %s", store.db_path)

    yield  # Application runs here

    # Shutdown
    ChatStore.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="roomchat API",
    description="Real-time chat backend with rooms, direct messages and presence",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(api_router)
app.include_router(realtime_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
