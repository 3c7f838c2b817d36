"""Lifecycle and streaming events emitted by the agent core.

Every event is an immutable pydantic model tagged by its ``type`` field, and
``AgentEvent`` is the discriminated union of all of them. Consumers (the SSE
router, tests, a console renderer) match on the concrete class or on
``type``; the core only ever produces events, it never reads them back.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from coda_server.agent.types import ToolCall

logger = logging.getLogger(__name__)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class _ToolCallEvent(_Event):
    call_id: str = Field(description="Scheduler-assigned tool call id")
    tool_name: str
    arguments: str

    @classmethod
    def from_call(cls, call: ToolCall, **extra):
        """Snapshot a ToolCall so no mutable state leaves the scheduler."""
        return cls(call_id=call.id, tool_name=call.tool_name, arguments=call.arguments, **extra)


class ToolCallScheduled(_ToolCallEvent):
    type: Literal["tool_call_scheduled"] = "tool_call_scheduled"


class ToolCallExecuting(_ToolCallEvent):
    type: Literal["tool_call_executing"] = "tool_call_executing"


class ToolCallSucceeded(_ToolCallEvent):
    type: Literal["tool_call_succeeded"] = "tool_call_succeeded"
    result: str


class ToolCallFailed(_ToolCallEvent):
    type: Literal["tool_call_failed"] = "tool_call_failed"
    error: str


class StreamStarted(_Event):
    type: Literal["stream_started"] = "stream_started"


class StreamChunk(_Event):
    type: Literal["stream_chunk"] = "stream_chunk"
    text: str


class StreamCompleted(_Event):
    type: Literal["stream_completed"] = "stream_completed"


class StreamInterrupted(_Event):
    type: Literal["stream_interrupted"] = "stream_interrupted"
    partial_text: str


class StreamFailed(_Event):
    type: Literal["stream_failed"] = "stream_failed"
    error: str


class MaxTurnsExceeded(_Event):
    type: Literal["max_turns_exceeded"] = "max_turns_exceeded"
    max_turns: int


class MaxTokensReached(_Event):
    type: Literal["max_tokens_reached"] = "max_tokens_reached"
    partial_text: str


class LoopDetected(_Event):
    type: Literal["loop_detected"] = "loop_detected"
    tool_name: str
    count: int


AgentEvent = Annotated[
    ToolCallScheduled
    | ToolCallExecuting
    | ToolCallSucceeded
    | ToolCallFailed
    | StreamStarted
    | StreamChunk
    | StreamCompleted
    | StreamInterrupted
    | StreamFailed
    | MaxTurnsExceeded
    | MaxTokensReached
    | LoopDetected,
    Field(discriminator="type"),
]

# Events that end a stream. A stream emits exactly one of them.
TERMINAL_STREAM_EVENTS = (StreamCompleted, StreamInterrupted, StreamFailed, MaxTurnsExceeded)

Notifier = Callable[[AgentEvent], None]


def null_notifier(event: AgentEvent) -> None:
    """Notifier that drops every event."""


class EventHub:
    """Fan-out notifier delivering events to subscriber queues.

    The hub is itself a Notifier and is handed to the engine and scheduler
    of a session. HTTP handlers subscribe for the lifetime of a request and
    drain their queue. Delivery uses ``put_nowait`` on unbounded queues so
    notifying never blocks the producer.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue] = []

    def __call__(self, event: AgentEvent) -> None:
        logger.debug(f"Event: {event.type}")
        for queue in list(self._subscribers):
            queue.put_nowait(event)

    def subscribe(self) -> asyncio.Queue:
        """Register and return a new queue receiving all future events."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
