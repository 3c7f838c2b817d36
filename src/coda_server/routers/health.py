"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from coda_server import __version__
from coda_server.models.health import HealthResponse
from coda_server.ollama import OllamaClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current health status and version of the coda-server.
    Also checks connectivity to the Ollama server if the client is initialized.
    """
    ollama_connected = None
    ollama_host = None

    if hasattr(request.app.state, "ollama_client"):
        ollama_client: OllamaClient = request.app.state.ollama_client
        ollama_host = ollama_client.host
        ollama_connected = await ollama_client.check_connection()
        logger.debug(f"Ollama connectivity check: {ollama_connected}")

    return HealthResponse(
        status="ok",
        version=__version__,
        model=request.app.state.settings.model,
        ollama_connected=ollama_connected,
        ollama_host=ollama_host,
    )
