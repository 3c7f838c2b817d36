"""Chat API endpoints.

This module provides endpoints for submitting prompts to sessions, either
blocking until the prompt has been processed or streaming agent events via
SSE, and for cancelling an active stream.
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sse_starlette.sse import EventSourceResponse

from coda_server.agent.events import TERMINAL_STREAM_EVENTS
from coda_server.agent.model import GenerationError
from coda_server.dependencies import api_error, ensure_idle, get_agent_session
from coda_server.models.chat import CancelResponse, ChatRequest, ChatResponse
from coda_server.sessions import AgentSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])

# Seconds between client disconnect checks while no event arrives
DISCONNECT_POLL_INTERVAL = 1.0


@router.post("/{session_id}", response_model=ChatResponse)
async def chat_non_streaming(
    request_body: ChatRequest,
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> ChatResponse:
    """Send a prompt to a session and wait for the final response.

    The prompt runs through the full turn loop, including all tool calls
    the model requests.

    Raises:
        HTTPException: 404 if session not found, 409 if the session is busy,
            502 if the model fails
    """
    ensure_idle(session)
    session.touch()

    try:
        result = await session.engine.ask(request_body.message)
    except GenerationError as e:
        logger.error(f"Generation failed for session {session.session_id}: {e}")
        raise api_error(
            status.HTTP_502_BAD_GATEWAY,
            "ollama_error",
            f"Failed to get response from Ollama: {str(e)}",
            {"session_id": session.session_id},
        )
    finally:
        session.touch()

    return ChatResponse(
        session_id=session.session_id,
        content=result.content,
        outcome=result.outcome,
        turns=result.turns,
        message_count=session.message_count,
    )


@router.post("/{session_id}/stream")
async def chat_streaming(
    request_body: ChatRequest,
    request: Request,
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> EventSourceResponse:
    """Stream a prompt's progress via Server-Sent Events (SSE).

    Every agent event is forwarded with its type as the SSE event name and
    its JSON form as data. The stream ends after the terminal event.

    SSE Events:
        - stream_started: Processing began
        - stream_chunk: Each text chunk from the model
        - tool_call_scheduled / tool_call_executing / tool_call_succeeded /
          tool_call_failed: Tool lifecycle
        - max_tokens_reached, loop_detected: Early endings, followed by
          stream_completed
        - stream_completed, stream_interrupted, stream_failed,
          max_turns_exceeded: Terminal events

    Raises:
        HTTPException: 404 if session not found, 409 if the session is busy
    """
    ensure_idle(session)

    # Subscribe first so no event of this stream is missed
    queue = session.hub.subscribe()
    stream = session.start_stream(request_body.message)
    logger.info(f"Started streaming prompt for session {session.session_id}")

    async def event_generator():
        """Forward hub events until the stream's terminal event."""
        finished = False
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=DISCONNECT_POLL_INTERVAL)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        logger.warning(
                            f"Client disconnected during streaming for session {session.session_id}"
                        )
                        break
                    continue

                finished = isinstance(event, TERMINAL_STREAM_EVENTS)
                yield {"event": event.type, "data": event.model_dump_json()}
                if finished:
                    break
        finally:
            # Nobody is listening any more, stop the agent
            if not finished:
                stream.cancel()
            session.hub.unsubscribe(queue)
            session.touch()

    return EventSourceResponse(event_generator())


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_stream(
    session: Annotated[AgentSession, Depends(get_agent_session)],
) -> CancelResponse:
    """Cancel the session's active stream.

    The stream stops at its next cancellation point and ends with a
    stream_interrupted event carrying the partial text.

    Raises:
        HTTPException: 404 if the session has no active stream
    """
    if not session.cancel_stream():
        raise api_error(
            status.HTTP_404_NOT_FOUND,
            "no_active_stream",
            f"Session {session.session_id} has no active stream",
            {"session_id": session.session_id},
        )
    return CancelResponse(session_id=session.session_id, cancelled=True)
