"""Context window usage of a conversation.

Token counts use tiktoken's ``cl100k_base`` encoding as an approximation
for every model. When the encoding cannot be loaded, counts fall back to
four characters per token.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache

import tiktoken

from coda_server.agent.types import TextPart, ToolCallPart, ToolResponsePart

logger = logging.getLogger(__name__)

AUTOCOMPACT_BUFFER_RATIO = 0.225
MEMORY_FILE_OVERHEAD_TOKENS = 20
DEFAULT_CONTEXT_WINDOW = 8192


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding | None:
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception as e:
        logger.warning(f"tiktoken encoding unavailable, estimating tokens: {e}")
        return None


def count_tokens(text: str) -> int:
    if not text:
        return 0
    encoding = _encoding()
    if encoding is None:
        return len(text) // 4
    return len(encoding.encode(text, disallowed_special=()))


@dataclass
class ContextInfo:
    """Breakdown of context window usage.

    Attributes:
        model: Model name the window size belongs to
        total_tokens: Size of the model's context window
        used_tokens: Sum of the system prompt, tool, memory and message tokens
        autocompact_buffer: Reserve kept free for compaction, capped by what is left
        free_tokens: Remaining tokens after usage and the buffer
    """

    model: str
    total_tokens: int
    used_tokens: int
    system_prompt_tokens: int
    system_tools_tokens: int
    memory_files_tokens: int
    messages_tokens: int
    autocompact_buffer: int
    free_tokens: int


def compute_context_info(engine, model: str, total_tokens: int | None = None) -> ContextInfo:
    """Measure how much of the context window a conversation occupies.

    Args:
        engine: ConversationEngine to measure
        model: Model name reported in the result
        total_tokens: Context window size (default: DEFAULT_CONTEXT_WINDOW)
    """
    total = total_tokens or DEFAULT_CONTEXT_WINDOW
    messages = engine.messages

    system_prompt_tokens = count_tokens(engine.system_prompt)

    schemas = [schema.to_function() for schema in engine.registry.schemas()]
    system_tools_tokens = count_tokens(json.dumps(schemas)) if schemas else 0

    memory_files_tokens = sum(
        count_tokens(path) + count_tokens(content) + MEMORY_FILE_OVERHEAD_TOKENS
        for path, content in engine.context_files.items()
    )

    messages_tokens = 0
    for message in messages[1:]:
        for part in message.parts:
            if isinstance(part, TextPart):
                messages_tokens += count_tokens(part.text)
            elif isinstance(part, ToolCallPart):
                messages_tokens += count_tokens(part.name) + count_tokens(part.arguments)
            elif isinstance(part, ToolResponsePart):
                messages_tokens += count_tokens(part.name) + count_tokens(part.content)

    used = system_prompt_tokens + system_tools_tokens + memory_files_tokens + messages_tokens
    buffer = min(round(total * AUTOCOMPACT_BUFFER_RATIO), max(total - used, 0))
    free = max(total - used - buffer, 0)

    return ContextInfo(
        model=model,
        total_tokens=total,
        used_tokens=used,
        system_prompt_tokens=system_prompt_tokens,
        system_tools_tokens=system_tools_tokens,
        memory_files_tokens=memory_files_tokens,
        messages_tokens=messages_tokens,
        autocompact_buffer=buffer,
        free_tokens=free,
    )
