"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject common dependencies like settings, the Ollama
client and sessions.
"""

from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status

from coda_server.config import CodaServerSettings
from coda_server.ollama import OllamaClient
from coda_server.sessions import AgentSession, SessionManager, SessionNotFoundError


@lru_cache
def get_settings() -> CodaServerSettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the CODA_ prefix.

    Returns:
        CodaServerSettings: The application configuration settings.
    """
    return CodaServerSettings()


def api_error(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> HTTPException:
    """Build an HTTPException with the structured error detail used by all routers."""
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            }
        },
    )


def get_ollama_client(request: Request) -> OllamaClient:
    """Get the Ollama client from app state.

    Raises:
        HTTPException: If the Ollama client is not initialized (503 Service Unavailable).
    """
    if not hasattr(request.app.state, "ollama_client"):
        raise api_error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "service_unavailable",
            "Ollama client not initialized",
        )
    return request.app.state.ollama_client


def get_session_manager(request: Request) -> SessionManager:
    """Get the SessionManager created at startup.

    Sessions live in memory, so the same manager serves every request.

    Raises:
        HTTPException: If the manager is not initialized (503 Service Unavailable).
    """
    if not hasattr(request.app.state, "session_manager"):
        raise api_error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "service_unavailable",
            "Session manager not initialized",
        )
    return request.app.state.session_manager


def get_agent_session(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> AgentSession:
    """Resolve the session named in the path.

    Raises:
        HTTPException: 404 if the session does not exist
    """
    try:
        return session_manager.get_session(session_id)
    except SessionNotFoundError:
        raise api_error(
            status.HTTP_404_NOT_FOUND,
            "session_not_found",
            f"Session {session_id} not found",
            {"session_id": session_id},
        )


def ensure_idle(session: AgentSession) -> None:
    """Reject requests that would change a session while a prompt runs.

    Raises:
        HTTPException: 409 if the session is busy
    """
    if session.is_busy:
        raise api_error(
            status.HTTP_409_CONFLICT,
            "session_busy",
            f"Session {session.session_id} is processing a prompt",
            {"session_id": session.session_id},
        )
