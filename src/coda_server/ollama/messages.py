"""Conversion between engine messages and the Ollama chat format."""

import json
import logging
import uuid
from typing import Any

from coda_server.agent.types import Message, Role, ToolCallPart

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LENGTH = 2048


def _get_value(obj: Any, key: str, default: Any = None) -> Any:
    # Ollama responses are pydantic objects, test doubles are often dicts
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _decode_arguments(arguments: str) -> dict[str, Any]:
    if not arguments:
        return {}
    try:
        decoded = json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning(f"Sending undecodable tool arguments as empty object: {arguments[:80]}")
        return {}
    return decoded if isinstance(decoded, dict) else {}


def to_ollama_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Render history in the shape ``ollama.AsyncClient.chat`` expects.

    Tool messages are expanded to one Ollama message per response part.
    """
    rendered: list[dict[str, Any]] = []
    for message in messages:
        if message.role == Role.TOOL:
            for response in message.tool_responses:
                rendered.append(
                    {"role": "tool", "content": response.content, "tool_name": response.name}
                )
            continue

        entry: dict[str, Any] = {"role": message.role.value, "content": message.text}
        if message.role == Role.ASSISTANT and message.tool_calls:
            entry["tool_calls"] = [
                {"function": {"name": call.name, "arguments": _decode_arguments(call.arguments)}}
                for call in message.tool_calls
            ]
        rendered.append(entry)
    return rendered


def from_ollama_tool_call(tool_call: Any) -> ToolCallPart:
    """Convert a streamed Ollama tool call, assigning it an id.

    Ollama does not identify tool calls, so ids are generated here.
    """
    function = _get_value(tool_call, "function", {})
    arguments = _get_value(function, "arguments", {}) or {}
    return ToolCallPart(
        id=f"call_{uuid.uuid4().hex[:24]}",
        name=_get_value(function, "name", ""),
        arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
    )


def context_length_from_show(show_response: Any) -> int:
    """Read the context window size from an Ollama ``show`` response.

    Looks for ``<family>.context_length`` first, then any key ending in
    ``.context_length``.
    """
    details = _get_value(show_response, "details", {}) or {}
    family = _get_value(details, "family", "") or ""
    modelinfo = _get_value(show_response, "modelinfo", None) or {}
    if not isinstance(modelinfo, dict):
        modelinfo = dict(modelinfo)

    family_key = f"{family}.context_length"
    if family_key in modelinfo:
        return int(modelinfo[family_key])
    for key, value in modelinfo.items():
        if key.endswith(".context_length"):
            return int(value)
    return DEFAULT_CONTEXT_LENGTH
