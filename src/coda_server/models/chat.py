"""Pydantic models for chat API requests and responses.

This module defines the request and response schemas for the chat endpoints,
including both streaming and non-streaming chat interactions. Streaming
responses carry the agent events themselves (see coda_server.agent.events).
"""

from pydantic import BaseModel, ConfigDict, Field

from coda_server.agent.types import TurnOutcome


class ChatRequest(BaseModel):
    """Request body for chat endpoints.

    Used by both POST /api/v1/chat/{session_id} (non-streaming)
    and POST /api/v1/chat/{session_id}/stream (streaming).
    """

    message: str = Field(..., min_length=1, description="The user prompt to send.")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "List the files in the src directory"},
            ]
        }
    )


class ChatResponse(BaseModel):
    """Response body for non-streaming chat endpoint.

    Returned by POST /api/v1/chat/{session_id} once the prompt has been
    processed through all turns.
    """

    session_id: str = Field(description="Session identifier")
    content: str = Field(description="Final assistant text")
    outcome: TurnOutcome = Field(description="How the prompt ended")
    turns: int = Field(description="Number of generations used")
    message_count: int = Field(description="History length after the prompt")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "session_id": "a1b2c3d4e5",
                "content": "The src directory contains main.py and utils.py.",
                "outcome": "completed",
                "turns": 2,
                "message_count": 5,
            }
        }
    )


class CancelResponse(BaseModel):
    """Response body for cancelling an active stream."""

    session_id: str
    cancelled: bool
