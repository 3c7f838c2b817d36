"""Fixtures for agent core unit tests.

Provides a scripted model client, simple tools and an engine factory so
tests can drive the turn loop without a model server.
"""

import asyncio
import uuid

import pytest
from pydantic import BaseModel

from coda_server.agent.engine import ConversationEngine
from coda_server.agent.types import Generation, ToolCallPart
from coda_server.tools.base import Tool, ToolError, ToolRegistry


class ScriptedModelClient:
    """Model client replaying a fixed list of steps.

    A step is a Generation (its content is passed to ``on_chunk``), an
    exception to raise, or an async callable ``step(on_chunk, cancel)``
    returning a Generation. Every call records the history it received.
    """

    def __init__(self, steps):
        self.steps = list(steps)
        self.calls: list[list] = []
        self.tools_seen: list[list] = []

    async def generate(self, messages, tools, on_chunk=None, cancel=None):
        self.calls.append(list(messages))
        self.tools_seen.append(list(tools))
        if not self.steps:
            raise AssertionError("model called more often than scripted")
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return await step(on_chunk, cancel)
        if on_chunk is not None and step.content:
            on_chunk(step.content)
        return step


class EchoArgs(BaseModel):
    text: str = ""


class EchoTool(Tool):
    """Returns its text argument and records every call."""

    description = "Echo the text back"
    args_model = EchoArgs

    def __init__(self, name: str = "echo"):
        self.name = name
        self.calls: list[str] = []

    async def run(self, params: EchoArgs) -> str:
        self.calls.append(params.text)
        await asyncio.sleep(0)
        return f"echo: {params.text}"


class FailingTool(Tool):
    name = "fail"
    description = "Always fails"
    args_model = EchoArgs

    async def run(self, params: EchoArgs) -> str:
        raise ToolError(f"boom {params.text}".strip())


def make_call(name: str, arguments: str = "{}", call_id: str | None = None) -> ToolCallPart:
    return ToolCallPart(id=call_id or f"call_{uuid.uuid4().hex[:8]}", name=name, arguments=arguments)


@pytest.fixture
def tool_call():
    return make_call


@pytest.fixture
def echo_tool():
    return EchoTool()


@pytest.fixture
def failing_tool():
    return FailingTool()


@pytest.fixture
def events():
    """List collecting every event the notifier receives."""
    return []


@pytest.fixture
def make_engine(events, echo_tool, failing_tool):
    """Build an engine around a ScriptedModelClient.

    The registry holds ``echo_tool`` and ``failing_tool`` unless tools are given.
    """

    def _make(steps, tools=None, max_turns=999, system_prompt="You are a test agent."):
        registry = ToolRegistry(tools if tools is not None else [echo_tool, failing_tool])
        return ConversationEngine(
            model_client=ScriptedModelClient(steps),
            registry=registry,
            notifier=events.append,
            system_prompt=system_prompt,
            max_turns=max_turns,
        )

    return _make


@pytest.fixture
def generation():
    """Shorthand for building Generation objects."""

    def _generation(content="", tool_calls=None, **kwargs):
        return Generation(content=content, tool_calls=tool_calls or [], **kwargs)

    return _generation
