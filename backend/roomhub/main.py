"""Roomhub Backend Application.

This is the main entry point for the Roomhub service: a realtime coordinator
for chat rooms and game rooms.

Modules:
    - config: YAML settings/secrets with environment overrides
    - rooms: store, registry, membership, message routing, broadcast,
      WebSocket and HTTP endpoints
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomhub.config import AppConfig, get_config
from roomhub.rooms.errors import StoreUnavailableError
from roomhub.rooms.hub import RoomHub
from roomhub.rooms.router import router as rooms_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence per-request and per-frame chatter.
for _noisy in ("uvicorn.access", "websockets", "websockets.protocol"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Explicit configuration. Defaults to ``get_config()``.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the store on startup, close it on shutdown."""
        configured_level = getattr(logging, config.log_level, None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", config.log_level)

        hub = RoomHub.from_config(config)
        try:
            hub.open()
        except StoreUnavailableError as exc:
            # Fatal: nothing works without the store.
            logger.critical("Room store unavailable, refusing to start: %s", exc)
            raise
        app.state.hub = hub
        logger.info(
            f"Roomhub ready on http://{config.server.host}:{config.server.port} "
            f"(mode={config.server.mode})"
        )

        yield  # Application runs here

        hub.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Roomhub API",
        description="Realtime chat and game room coordinator",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.include_router(rooms_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
