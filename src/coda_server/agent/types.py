"""Core data types for the conversation engine and tool scheduler.

This module defines the message model shared by the engine, the model
client and the HTTP layer, plus the per-invocation tool call records used
by the scheduler.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from coda_server.tools.base import Tool


class Role(str, Enum):
    """Role of a message in the conversation history."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class TextPart:
    """Plain text content."""

    text: str
    kind: str = "text"


@dataclass(frozen=True)
class ToolCallPart:
    """A tool invocation requested by the model.

    Attributes:
        id: Identifier the matching ToolResponsePart refers back to
        name: Name of the requested tool
        arguments: Arguments as a JSON object string
    """

    id: str
    name: str
    arguments: str
    kind: str = "tool_call"


@dataclass(frozen=True)
class ToolResponsePart:
    """The result of a tool invocation fed back to the model."""

    tool_call_id: str
    name: str
    content: str
    kind: str = "tool_response"


Part = TextPart | ToolCallPart | ToolResponsePart


@dataclass
class Message:
    """A single entry of the conversation history.

    A message is an ordered list of parts. Assistant messages may mix text
    with tool call requests; tool messages carry exactly one response.
    """

    role: Role
    parts: list[Part] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [part for part in self.parts if isinstance(part, ToolCallPart)]

    @property
    def tool_responses(self) -> list[ToolResponsePart]:
        return [part for part in self.parts if isinstance(part, ToolResponsePart)]

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role=Role.SYSTEM, parts=[TextPart(text=text)])

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, parts=[TextPart(text=text)])

    @classmethod
    def tool_response(cls, tool_call_id: str, name: str, content: str) -> "Message":
        return cls(
            role=Role.TOOL,
            parts=[ToolResponsePart(tool_call_id=tool_call_id, name=name, content=content)],
        )


class StopReason(str, Enum):
    """Why the model stopped generating."""

    END = "end"
    MAX_TOKENS = "max_tokens"


@dataclass
class Generation:
    """One assistant turn as returned by a model client.

    Attributes:
        content: Visible text of the response
        reasoning_content: Thinking output, empty if the model produced none
        stop_reason: Normal completion or truncation by length
        tool_calls: Tool invocations requested in this turn, in order
    """

    content: str = ""
    reasoning_content: str = ""
    stop_reason: StopReason = StopReason.END
    tool_calls: list[ToolCallPart] = field(default_factory=list)


class ToolCallStatus(str, Enum):
    """Lifecycle state of a scheduled tool call."""

    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {ToolCallStatus.SUCCESS, ToolCallStatus.ERROR, ToolCallStatus.CANCELLED}
)


@dataclass
class ToolCall:
    """A tool invocation owned by the scheduler.

    Only the task executing the call mutates ``status``, ``result`` and
    ``error``; the identity fields never change after creation.
    """

    id: str
    tool: "Tool"
    arguments: str
    status: ToolCallStatus = ToolCallStatus.SCHEDULED
    result: str | None = None
    error: str | None = None

    @property
    def tool_name(self) -> str:
        return self.tool.name

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class ToolCallResult:
    """Value delivered once on a scheduled call's result future.

    Exactly one of ``output`` and ``error`` is set.
    """

    output: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if (self.output is None) == (self.error is None):
            raise ValueError("ToolCallResult needs exactly one of output or error")

    @property
    def ok(self) -> bool:
        return self.error is None


class TurnOutcome(str, Enum):
    """How the processing of one submitted prompt ended."""

    COMPLETED = "completed"
    MAX_TURNS_EXCEEDED = "max_turns_exceeded"
    MAX_TOKENS = "max_tokens"
    LOOP_DETECTED = "loop_detected"
    CANCELLED = "cancelled"


@dataclass
class TurnResult:
    """Result of processing one prompt through the turn loop."""

    content: str
    outcome: TurnOutcome
    turns: int
