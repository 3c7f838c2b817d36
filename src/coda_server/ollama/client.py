"""Async Ollama client wrapper.

This module provides ``OllamaClient``, the ModelClient implementation used
by the server. It wraps ollama.AsyncClient, always streams chat responses
and assembles them into a single ``Generation``. The client is created once
at startup and shared by all sessions.
"""

import asyncio
import logging

import ollama

from coda_server.agent.model import (
    ChunkCallback,
    GenerationCancelled,
    GenerationError,
    ToolSchema,
)
from coda_server.agent.types import Generation, Message, StopReason
from coda_server.ollama.messages import (
    DEFAULT_CONTEXT_LENGTH,
    context_length_from_show,
    from_ollama_tool_call,
    to_ollama_messages,
)

logger = logging.getLogger(__name__)


class OllamaClient:
    """Async client generating assistant turns with an Ollama model.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        model: Model used for generation (e.g., "qwen3:14b")
        think: Whether to request thinking output from models that support it
        _client: The underlying ollama.AsyncClient instance
    """

    def __init__(self, host: str, model: str, think: bool = False) -> None:
        """Initialize the Ollama client.

        Args:
            host: The Ollama server URL
            model: Model used for generation
            think: Request thinking output
        """
        self.host = host
        self.model = model
        self.think = think
        self._client = ollama.AsyncClient(host=host)
        logger.info(f"OllamaClient initialized with host: {host}, model: {model}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            # Try to list models as a connectivity check
            await self._client.list()
            logger.debug("Ollama connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def get_context_length(self, model: str | None = None) -> int:
        """Get the context window size of a model.

        Falls back to a conservative default when the model cannot be
        inspected.
        """
        name = model or self.model
        try:
            show_response = await self._client.show(name)
        except Exception as e:
            logger.warning(f"Failed to get context length for {name}: {e}")
            return DEFAULT_CONTEXT_LENGTH
        return context_length_from_show(show_response)

    async def generate(
        self,
        messages: list[Message],
        tools: list[ToolSchema],
        on_chunk: ChunkCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Generation:
        """Stream a chat response and collect it into a Generation.

        Every content chunk is passed to ``on_chunk`` as it arrives. The
        cancel event is checked before each chunk is processed.

        Raises:
            GenerationCancelled: If cancellation was requested mid-stream
            GenerationError: If the Ollama request fails
        """
        content: list[str] = []
        thinking: list[str] = []
        tool_calls = []
        stop_reason = StopReason.END

        logger.debug(f"Starting chat stream with model: {self.model}, messages: {len(messages)}")
        try:
            stream = await self._client.chat(
                model=self.model,
                messages=to_ollama_messages(messages),
                tools=[schema.to_function() for schema in tools] or None,
                stream=True,
                think=self.think or None,
            )
            async for chunk in stream:
                if cancel is not None and cancel.is_set():
                    raise GenerationCancelled()

                message = chunk.message
                if message.thinking:
                    thinking.append(message.thinking)
                if message.content:
                    content.append(message.content)
                    if on_chunk is not None:
                        on_chunk(message.content)
                for tool_call in message.tool_calls or []:
                    tool_calls.append(from_ollama_tool_call(tool_call))

                if chunk.done:
                    if chunk.done_reason == "length":
                        stop_reason = StopReason.MAX_TOKENS
                    logger.debug(f"Chat stream completed: done_reason={chunk.done_reason}")
        except GenerationCancelled:
            logger.info("Chat stream cancelled")
            raise
        except (ollama.ResponseError, ollama.RequestError) as e:
            logger.error(f"Chat stream failed: {e}")
            raise GenerationError(str(e)) from e
        except ConnectionError as e:
            logger.error(f"Could not reach Ollama at {self.host}: {e}")
            raise GenerationError(f"could not reach Ollama at {self.host}") from e

        return Generation(
            content="".join(content),
            reasoning_content="".join(thinking),
            stop_reason=stop_reason,
            tool_calls=tool_calls,
        )

    async def close(self) -> None:
        """Close the client and clean up resources.

        ollama.AsyncClient uses httpx internally, which handles cleanup.
        """
        logger.debug("OllamaClient closed")
