"""Pydantic models for session API requests and responses."""

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request body for creating a new session."""

    system_prompt: str | None = Field(
        None,
        description="Optional system prompt. Defaults to the prompt rendered from the configured template.",
    )


class SessionResponse(BaseModel):
    """Response model for a single session (metadata only)."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int
    busy: bool = Field(False, description="Whether a prompt is being processed")


class SessionListItem(BaseModel):
    """A session item in the list response."""

    session_id: str
    model: str
    created_at: str
    updated_at: str
    message_count: int
    preview: str = Field("", description="Preview of first user message")


class SessionListResponse(BaseModel):
    """Response model for listing sessions."""

    sessions: list[SessionListItem]


class ToolCallResponse(BaseModel):
    """A tool call requested by the assistant."""

    id: str
    name: str
    arguments: str = Field(description="Arguments as a JSON object string")


class MessageResponse(BaseModel):
    """Response model for a single message."""

    role: str
    content: str
    tool_calls: list[ToolCallResponse] | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None


class MessagesResponse(BaseModel):
    """Response model for a session's message history."""

    session_id: str
    messages: list[MessageResponse]


class SnapshotResponse(BaseModel):
    """Current history length, usable as a rollback target."""

    session_id: str
    snapshot: int


class RollbackRequest(BaseModel):
    """Request body for rolling back history to a snapshot."""

    snapshot: int = Field(..., ge=0, description="Message count to truncate the history to")


class AddContextFileRequest(BaseModel):
    """Request body for attaching a file to the next prompt."""

    path: str = Field(..., min_length=1, description="File path, relative to the workspace")
    content: str | None = Field(
        None,
        description="File content. When omitted the file is read from the workspace.",
    )


class ContextFilesResponse(BaseModel):
    """Context files attached to the next prompt."""

    session_id: str
    files: dict[str, str]


class ContextInfoResponse(BaseModel):
    """Context window usage of a session."""

    session_id: str
    model: str
    total_tokens: int
    used_tokens: int
    system_prompt_tokens: int
    system_tools_tokens: int
    memory_files_tokens: int
    messages_tokens: int
    autocompact_buffer: int
    free_tokens: int
