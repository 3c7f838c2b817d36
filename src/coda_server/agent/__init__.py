"""Agent core: conversation engine, tool scheduler and their events.

The engine drives the turn loop between a ModelClient and the tools of a
ToolRegistry; the scheduler executes tool calls one at a time in order.
Both report their lifecycle through a Notifier.
"""

from coda_server.agent.engine import ConversationEngine
from coda_server.agent.events import AgentEvent, EventHub, Notifier, null_notifier
from coda_server.agent.model import (
    GenerationCancelled,
    GenerationError,
    ModelClient,
    ToolSchema,
)
from coda_server.agent.scheduler import ToolScheduler
from coda_server.agent.streaming import StreamTask
from coda_server.agent.types import Message, Role, TurnOutcome, TurnResult

__all__ = [
    "AgentEvent",
    "ConversationEngine",
    "EventHub",
    "GenerationCancelled",
    "GenerationError",
    "Message",
    "ModelClient",
    "Notifier",
    "Role",
    "StreamTask",
    "ToolScheduler",
    "ToolSchema",
    "TurnOutcome",
    "TurnResult",
    "null_notifier",
]
