"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coda_server.config import CodaServerSettings
from coda_server.ollama import OllamaClient
from coda_server.routers import chat, health, sessions
from coda_server.sessions import SessionManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    The Ollama client and the session manager are created once at startup
    and stored in app.state for reuse across all requests.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: CodaServerSettings = app.state.settings
    app.state.ollama_client = OllamaClient(
        host=settings.ollama_host,
        model=settings.model,
        think=settings.think,
    )
    logger.info(f"Initialized Ollama client with host: {settings.ollama_host}")

    connected = await app.state.ollama_client.check_connection()
    if connected:
        logger.info("Successfully connected to Ollama")
    else:
        logger.warning("Could not connect to Ollama - check if server is running")

    app.state.session_manager = SessionManager(
        settings=settings,
        model_client=app.state.ollama_client,
    )
    logger.info(f"Workspace: {settings.resolved_workspace_dir}")

    yield

    # Shutdown: stop running streams and clean up resources
    app.state.session_manager.cancel_all()
    await app.state.ollama_client.close()
    logger.info("Ollama client closed")


def create_app(settings: CodaServerSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional CodaServerSettings instance. If not provided,
                  settings will be loaded from environment variables.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    from coda_server import __version__

    if settings is None:
        from coda_server.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="coda-server",
        description="Headless coding-agent runtime for Ollama models",
        version=__version__,
        lifespan=lifespan,
    )

    # Store settings in app.state for lifespan access
    app.state.settings = settings

    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(chat.router)

    return app
