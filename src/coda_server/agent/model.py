"""Model client contract used by the conversation engine.

The engine never talks to a provider directly. It hands the full history
and the tool schema catalog to a ``ModelClient`` and gets back a
``Generation``. ``coda_server.ollama.OllamaClient`` is the implementation
shipped with the server; tests use scripted fakes.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from coda_server.agent.types import Generation, Message

ChunkCallback = Callable[[str], None]


@dataclass(frozen=True)
class ToolSchema:
    """Model-facing description of a tool.

    Attributes:
        name: Tool name, identical to the executable tool's name
        description: What the tool does, shown to the model
        parameters: JSON schema of the tool's arguments object
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_function(self) -> dict[str, Any]:
        """Render as an OpenAI/Ollama style function definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class GenerationError(Exception):
    """The model client failed to produce a response."""


class GenerationCancelled(Exception):
    """Generation stopped because cancellation was requested."""


class ModelClient(Protocol):
    """Generates the next assistant turn."""

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolSchema],
        on_chunk: ChunkCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Generation:
        """Generate a response for the given history.

        Args:
            messages: Full ordered conversation history
            tools: Tool schema catalog offered to the model
            on_chunk: Called with each text chunk as it arrives. It may raise
                GenerationCancelled to stop the generation.
            cancel: Checked between chunks; when set the client raises
                GenerationCancelled

        Returns:
            Generation with content, reasoning, stop reason and tool calls
        """
        ...
