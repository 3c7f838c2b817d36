"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from coda_server.models.chat import CancelResponse, ChatRequest, ChatResponse
from coda_server.models.health import HealthResponse
from coda_server.models.sessions import (
    AddContextFileRequest,
    ContextFilesResponse,
    ContextInfoResponse,
    CreateSessionRequest,
    MessageResponse,
    MessagesResponse,
    RollbackRequest,
    SessionListItem,
    SessionListResponse,
    SessionResponse,
    SnapshotResponse,
    ToolCallResponse,
)

__all__ = [
    "AddContextFileRequest",
    "CancelResponse",
    "ChatRequest",
    "ChatResponse",
    "ContextFilesResponse",
    "ContextInfoResponse",
    "CreateSessionRequest",
    "HealthResponse",
    "MessageResponse",
    "MessagesResponse",
    "RollbackRequest",
    "SessionListItem",
    "SessionListResponse",
    "SessionResponse",
    "SnapshotResponse",
    "ToolCallResponse",
]
