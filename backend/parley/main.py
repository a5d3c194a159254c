"""Parley Backend Application.

This is the main entry point for the Parley backend service. Parley relays
text and file messages between pairs of users over WebSockets, keeps the
conversations in an embedded DuckDB database and tracks who is online.

Modules:
    - chat: presence registry, room keys, conversation store, delivery engine
    - users: user profile records
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from parley import __version__
from parley.chat.engine import DeliveryEngine
from parley.chat.hub import ConnectionHub
from parley.chat.presence import PresenceRegistry
from parley.chat.router import router as chat_router
from parley.chat.store import ConversationStore
from parley.config import AppConfig, get_config
from parley.storage import Database
from parley.users.hashing import Pbkdf2PasswordHasher
from parley.users.router import router as users_router
from parley.users.service import UserService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in ("uvicorn.access", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Configuration to use. Defaults to the process config.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the chat core on startup and tear it down on shutdown."""
        cfg = config or get_config()

        # Apply configured log level to root logger so that
        # `logging.level: "debug"` in parley.settings.yaml activates DEBUG output.
        configured_level = getattr(logging, cfg.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", cfg.logging.level.upper())

        db = Database(cfg.storage.db_path)
        store = ConversationStore(db, max_message_length=cfg.chat.max_message_length)
        app.state.db = db
        app.state.engine = DeliveryEngine(
            registry=PresenceRegistry(),
            store=store,
            hub=ConnectionHub(),
            broadcast_room=cfg.chat.broadcast_room,
        )
        app.state.users = UserService(db, Pbkdf2PasswordHasher())
        logger.info("Chat core ready (db=%s)", cfg.storage.db_path)

        yield  # Application runs here

        # Shutdown
        app.state.engine.registry.clear()
        db.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Parley API",
        description="Real-time 1:1 chat backend with presence tracking",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(chat_router)
    app.include_router(users_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
