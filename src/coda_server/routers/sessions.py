"""Sessions router for agent session operations.

This module provides REST API endpoints for:
- Creating, listing, retrieving and deleting sessions
- Reading the message history
- Taking snapshots, rolling back and clearing history
- Managing the context files attached to the next prompt
- Reporting context window usage
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from coda_server.agent.context import compute_context_info
from coda_server.agent.types import Message
from coda_server.dependencies import (
    api_error,
    ensure_idle,
    get_agent_session,
    get_ollama_client,
    get_session_manager,
)
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
from coda_server.ollama import OllamaClient
from coda_server.sessions import AgentSession, SessionManager, SessionNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def _session_response(session: AgentSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        model=session.model,
        created_at=session.created_at,
        updated_at=session.updated_at,
        message_count=session.message_count,
        busy=session.is_busy,
    )


def _message_response(message: Message) -> MessageResponse:
    responses = message.tool_responses
    if responses:
        response = responses[0]
        return MessageResponse(
            role=message.role.value,
            content=response.content,
            tool_call_id=response.tool_call_id,
            tool_name=response.name,
        )

    tool_calls = [
        ToolCallResponse(id=call.id, name=call.name, arguments=call.arguments)
        for call in message.tool_calls
    ]
    return MessageResponse(
        role=message.role.value,
        content=message.text,
        tool_calls=tool_calls or None,
    )


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new session",
)
async def create_session(
    request: CreateSessionRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionResponse:
    """Create a new agent session.

    The system prompt is rendered from the configured template unless the
    request provides one. AGENTS.md in the workspace, if present, is loaded
    as persistent context.

    Raises:
        HTTPException: 500 if the configured system prompt template is missing
    """
    try:
        session = session_manager.create_session(system_prompt=request.system_prompt)
    except FileNotFoundError as e:
        logger.error(f"Failed to create session: {e}")
        raise api_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "system_prompt_missing",
            f"System prompt template not found: {e.filename}",
        )
    return _session_response(session)


@router.get(
    "",
    response_model=SessionListResponse,
    summary="List all sessions",
)
async def list_sessions(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionListResponse:
    """List all sessions, sorted by most recently updated."""
    items = [
        SessionListItem(
            session_id=session.session_id,
            model=session.model,
            created_at=session.created_at,
            updated_at=session.updated_at,
            message_count=session.message_count,
            preview=session.get_preview(),
        )
        for session in session_manager.list_sessions()
    ]
    return SessionListResponse(sessions=items)


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get session details",
)
async def get_session(
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> SessionResponse:
    return _session_response(session)


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a session",
)
async def delete_session(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> None:
    """Delete a session, cancelling its active stream if there is one.

    Raises:
        HTTPException: 404 if session not found
    """
    try:
        session_manager.delete_session(session_id)
    except SessionNotFoundError:
        logger.warning(f"Session {session_id} not found")
        raise api_error(
            status.HTTP_404_NOT_FOUND,
            "session_not_found",
            f"Session {session_id} not found",
            {"session_id": session_id},
        )


@router.get(
    "/{session_id}/messages",
    response_model=MessagesResponse,
    summary="Get session messages",
)
async def get_messages(
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> MessagesResponse:
    """Get the full message history, system message first."""
    return MessagesResponse(
        session_id=session.session_id,
        messages=[_message_response(message) for message in session.engine.messages],
    )


@router.get(
    "/{session_id}/snapshot",
    response_model=SnapshotResponse,
    summary="Take a history snapshot",
)
async def get_snapshot(
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> SnapshotResponse:
    return SnapshotResponse(session_id=session.session_id, snapshot=session.engine.snapshot())


@router.post(
    "/{session_id}/rollback",
    response_model=SessionResponse,
    summary="Roll back history to a snapshot",
)
async def rollback(
    request: RollbackRequest,
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> SessionResponse:
    """Truncate the history to a snapshot. The system message is always kept.

    Raises:
        HTTPException: 409 if the session is processing a prompt
    """
    ensure_idle(session)
    session.engine.rollback_to(request.snapshot)
    session.touch()
    logger.info(f"Rolled back session {session.session_id} to {session.message_count} messages")
    return _session_response(session)


@router.post(
    "/{session_id}/clear",
    response_model=SessionResponse,
    summary="Clear session history",
)
async def clear_history(
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> SessionResponse:
    """Drop everything but the system message.

    Raises:
        HTTPException: 409 if the session is processing a prompt
    """
    ensure_idle(session)
    session.engine.clear_history()
    session.touch()
    return _session_response(session)


@router.get(
    "/{session_id}/context-files",
    response_model=ContextFilesResponse,
    summary="List context files",
)
async def list_context_files(
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> ContextFilesResponse:
    return ContextFilesResponse(session_id=session.session_id, files=session.engine.context_files)


@router.post(
    "/{session_id}/context-files",
    response_model=ContextFilesResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a context file",
)
async def add_context_file(
    body: AddContextFileRequest,
    http_request: Request,
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> ContextFilesResponse:
    """Attach a file to the next prompt.

    When no content is given the file is read from the workspace.

    Raises:
        HTTPException: 404 if the file cannot be read, 409 if the session is busy
    """
    ensure_idle(session)

    content = body.content
    if content is None:
        path = Path(body.path).expanduser()
        if not path.is_absolute():
            path = http_request.app.state.settings.resolved_workspace_dir / path
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read context file {path}: {e}")
            raise api_error(
                status.HTTP_404_NOT_FOUND,
                "file_not_readable",
                f"Could not read file {body.path}",
                {"path": body.path},
            )

    session.engine.add_context_file(body.path, content)
    session.touch()
    return ContextFilesResponse(session_id=session.session_id, files=session.engine.context_files)


@router.delete(
    "/{session_id}/context-files",
    response_model=ContextFilesResponse,
    summary="Clear context files",
)
async def clear_context_files(
    session: Annotated[AgentSession, Depends(get_agent_session)],
    include_memory: bool = False,
) -> ContextFilesResponse:
    """Drop attached context files, keeping AGENTS.md unless include_memory is set.

    Raises:
        HTTPException: 409 if the session is processing a prompt
    """
    ensure_idle(session)
    session.engine.clear_context(include_memory=include_memory)
    return ContextFilesResponse(session_id=session.session_id, files=session.engine.context_files)


@router.get(
    "/{session_id}/context",
    response_model=ContextInfoResponse,
    summary="Get context window usage",
)
async def get_context_info(
    session: Annotated[AgentSession, Depends(get_agent_session)],
    ollama_client: Annotated[OllamaClient, Depends(get_ollama_client)],
) -> ContextInfoResponse:
    """Break down how much of the model's context window the session uses."""
    total = await ollama_client.get_context_length(session.model)
    info = compute_context_info(session.engine, session.model, total)
    return ContextInfoResponse(
        session_id=session.session_id,
        model=info.model,
        total_tokens=info.total_tokens,
        used_tokens=info.used_tokens,
        system_prompt_tokens=info.system_prompt_tokens,
        system_tools_tokens=info.system_tools_tokens,
        memory_files_tokens=info.memory_files_tokens,
        messages_tokens=info.messages_tokens,
        autocompact_buffer=info.autocompact_buffer,
        free_tokens=info.free_tokens,
    )
