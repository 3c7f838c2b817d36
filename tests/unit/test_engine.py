"""Unit tests for the ConversationEngine turn loop (blocking mode)."""

import asyncio

import pytest

from coda_server.agent.engine import TRUNCATION_NOTICE, ConversationEngine
from coda_server.agent.events import LoopDetected, MaxTokensReached, MaxTurnsExceeded
from coda_server.agent.model import GenerationError
from coda_server.agent.types import Generation, Role, StopReason, TurnOutcome
from coda_server.tools.base import ToolRegistry


def _roles(engine):
    return [m.role for m in engine.messages]


@pytest.mark.asyncio
async def test_simple_answer_uses_grace_round(make_engine, generation):
    """Test that a tool-free answer gets one grace round and stops on repeated content."""
    engine = make_engine([generation("Hello!"), generation("Hello!")])

    result = await engine.ask("hi")

    assert result.outcome == TurnOutcome.COMPLETED
    assert result.content == "Hello!"
    assert result.turns == 2
    assert _roles(engine) == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.ASSISTANT]


@pytest.mark.asyncio
async def test_identical_content_ignores_surrounding_whitespace(make_engine, generation):
    engine = make_engine([generation("Plan: read files"), generation("  Plan: read files\n")])

    result = await engine.ask("go")

    assert result.outcome == TurnOutcome.COMPLETED
    assert result.turns == 2
    assert engine.model_client.steps == []


@pytest.mark.asyncio
async def test_grace_round_is_used_only_once(make_engine, generation):
    """Test that changing content does not buy a second grace round."""
    engine = make_engine([generation("first"), generation("second"), generation("third")])

    result = await engine.ask("go")

    assert result.content == "second"
    assert result.turns == 2
    assert len(engine.model_client.steps) == 1


@pytest.mark.asyncio
async def test_empty_first_response_ends_prompt(make_engine, generation):
    engine = make_engine([generation(""), generation("unused")])

    result = await engine.ask("go")

    assert result.outcome == TurnOutcome.COMPLETED
    assert result.turns == 1
    # Nothing to record for an empty response
    assert _roles(engine) == [Role.SYSTEM, Role.USER]


@pytest.mark.asyncio
async def test_tool_call_result_is_fed_back(make_engine, generation, tool_call, echo_tool):
    """Test the full generate, dispatch, generate cycle."""
    call = tool_call("echo", '{"text": "abc"}', call_id="call_1")
    engine = make_engine([generation("Let me check", [call]), generation("It said abc")])

    result = await engine.ask("echo abc")

    assert result.outcome == TurnOutcome.COMPLETED
    assert result.content == "It said abc"
    assert echo_tool.calls == ["abc"]

    messages = engine.messages
    assert [m.role for m in messages] == [
        Role.SYSTEM,
        Role.USER,
        Role.ASSISTANT,
        Role.TOOL,
        Role.ASSISTANT,
    ]
    assert messages[2].text == "Let me check"
    assert messages[2].tool_calls == [call]
    response = messages[3].tool_responses[0]
    assert response.tool_call_id == "call_1"
    assert response.name == "echo"
    assert response.content == "echo: abc"

    # The second generation saw the tool response
    second_history = engine.model_client.calls[1]
    assert second_history[-1].role == Role.TOOL


@pytest.mark.asyncio
async def test_tool_schemas_are_offered_to_the_model(make_engine, generation):
    engine = make_engine([generation("")])

    await engine.ask("hi")

    names = [schema.name for schema in engine.model_client.tools_seen[0]]
    assert names == ["echo", "fail"]


@pytest.mark.asyncio
async def test_responses_appended_in_request_order(make_engine, generation, tool_call, echo_tool):
    calls = [
        tool_call("echo", '{"text": "1"}'),
        tool_call("fail", "{}"),
        tool_call("echo", '{"text": "2"}'),
    ]
    engine = make_engine([generation("", calls), generation("done")])

    await engine.ask("go")

    tool_messages = [m for m in engine.messages if m.role == Role.TOOL]
    assert [m.tool_responses[0].tool_call_id for m in tool_messages] == [c.id for c in calls]
    assert [m.text for m in tool_messages] == ["", "", ""]
    contents = [m.tool_responses[0].content for m in tool_messages]
    assert contents == ["echo: 1", "Error: boom", "echo: 2"]
    assert echo_tool.calls == ["1", "2"]


@pytest.mark.asyncio
async def test_unknown_tool_yields_error_response_and_continues(make_engine, generation, tool_call):
    """Test that an unknown tool is answered with an error and the loop goes on."""
    call = tool_call("nonexistent_tool", "{}")
    engine = make_engine([generation("", [call]), generation("Sorry, I cannot do that")])

    result = await engine.ask("do something")

    assert result.content == "Sorry, I cannot do that"
    assert len(engine.model_client.calls) == 2
    tool_message = engine.messages[3]
    assert tool_message.role == Role.TOOL
    assert tool_message.tool_responses[0].content == 'Error: unknown tool "nonexistent_tool"'


@pytest.mark.asyncio
async def test_loop_detected_on_third_identical_call(make_engine, generation, tool_call, echo_tool, events):
    """Test that the third identical consecutive call never executes."""
    args = '{"text": "same"}'
    engine = make_engine(
        [
            generation("", [tool_call("echo", args)]),
            generation("", [tool_call("echo", args)]),
            generation("", [tool_call("echo", args)]),
            generation("never reached"),
        ]
    )

    result = await engine.ask("loop")

    assert result.outcome == TurnOutcome.LOOP_DETECTED
    assert result.turns == 3
    assert echo_tool.calls == ["same", "same"]
    assert len(engine.model_client.steps) == 1

    last = engine.messages[-1]
    assert last.role == Role.TOOL
    assert "tool call loop detected" in last.tool_responses[0].content
    loop_events = [e for e in events if isinstance(e, LoopDetected)]
    assert loop_events == [LoopDetected(tool_name="echo", count=3)]


@pytest.mark.asyncio
async def test_loop_within_one_response_skips_remaining_calls(make_engine, generation, tool_call, echo_tool):
    """Test that calls after the looping one still get a response."""
    calls = [
        tool_call("echo", '{"text": "x"}'),
        tool_call("echo", '{"text": "x"}'),
        tool_call("echo", '{"text": "x"}'),
        tool_call("echo", '{"text": "y"}'),
    ]
    engine = make_engine([generation("", calls)])

    result = await engine.ask("go")

    assert result.outcome == TurnOutcome.LOOP_DETECTED
    assert echo_tool.calls == ["x", "x"]
    tool_messages = [m for m in engine.messages if m.role == Role.TOOL]
    assert len(tool_messages) == 4
    assert tool_messages[3].tool_responses[0].tool_call_id == calls[3].id
    assert tool_messages[3].tool_responses[0].content.startswith("Skipped")


@pytest.mark.asyncio
async def test_different_arguments_reset_the_repetition_count(make_engine, generation, tool_call, echo_tool):
    engine = make_engine(
        [
            generation("", [tool_call("echo", '{"text": "a"}')]),
            generation("", [tool_call("echo", '{"text": "a"}')]),
            generation("", [tool_call("echo", '{"text": "b"}')]),
            generation("", [tool_call("echo", '{"text": "b"}')]),
            generation("done"),
        ]
    )

    result = await engine.ask("go")

    assert result.outcome == TurnOutcome.COMPLETED
    assert echo_tool.calls == ["a", "a", "b", "b"]


@pytest.mark.asyncio
async def test_max_tokens_keeps_partial_text_and_drops_calls(make_engine, generation, tool_call, echo_tool, events):
    truncated = generation(
        "partial answ",
        [tool_call("echo", '{"text": "x"}')],
        stop_reason=StopReason.MAX_TOKENS,
    )
    engine = make_engine([truncated])

    result = await engine.ask("write a lot")

    assert result.outcome == TurnOutcome.MAX_TOKENS
    assert result.content == "partial answ" + TRUNCATION_NOTICE
    assert echo_tool.calls == []
    last = engine.messages[-1]
    assert last.role == Role.ASSISTANT
    assert last.text == "partial answ"
    assert last.tool_calls == []
    assert MaxTokensReached(partial_text="partial answ") in events


@pytest.mark.asyncio
async def test_max_turns_exceeded(make_engine, generation, tool_call, events):
    """Test that the loop stops at max_turns and leaves no unanswered call."""
    engine = make_engine(
        [
            generation("step one", [tool_call("echo", '{"text": "1"}')]),
            generation("step two", [tool_call("echo", '{"text": "2"}')]),
        ],
        max_turns=2,
    )

    result = await engine.ask("go")

    assert result.outcome == TurnOutcome.MAX_TURNS_EXCEEDED
    assert result.content == "step two\n\nEnded after 2 iterations"
    assert result.turns == 2
    assert engine.messages[-1].role == Role.TOOL
    assert events[-1] == MaxTurnsExceeded(max_turns=2)


@pytest.mark.asyncio
async def test_reasoning_is_wrapped_in_thinking_block(make_engine, generation):
    engine = make_engine([generation("42", reasoning_content="6 times 7"), generation("")])

    result = await engine.ask("answer?")

    assert engine.messages[2].text == "<thinking>\n6 times 7\n</thinking>\n\n42"
    assert result.content == "<thinking>\n6 times 7\n</thinking>\n\n42"


@pytest.mark.asyncio
async def test_generation_error_propagates_after_user_message(make_engine):
    engine = make_engine([GenerationError("model unavailable")])
    engine.add_context_file("notes.txt", "remember this")

    with pytest.raises(GenerationError):
        await engine.ask("hello")

    assert _roles(engine) == [Role.SYSTEM, Role.USER]
    assert engine.context_files == {}
    assert engine.is_busy is False


@pytest.mark.asyncio
async def test_cancel_before_first_generation(make_engine, generation):
    engine = make_engine([generation("unused")])
    cancel = asyncio.Event()
    cancel.set()

    result = await engine.ask("hi", cancel=cancel)

    assert result.outcome == TurnOutcome.CANCELLED
    assert engine.model_client.calls == []
    assert _roles(engine) == [Role.SYSTEM, Role.USER]


@pytest.mark.asyncio
async def test_cancel_requested_before_tool_execution(make_engine, tool_call, echo_tool):
    """Test that calls requested after cancellation are answered but not run."""
    cancel = asyncio.Event()
    call = tool_call("echo", '{"text": "x"}')

    async def step(on_chunk, cancel_event):
        cancel.set()
        return Generation(content="", tool_calls=[call])

    engine = make_engine([step])

    result = await engine.ask("go", cancel=cancel)

    assert result.outcome == TurnOutcome.CANCELLED
    assert echo_tool.calls == []
    assert engine.messages[-1].tool_responses[0].content == "Error: cancelled before execution"


@pytest.mark.asyncio
async def test_context_files_prefix_prompt_and_are_cleared(make_engine, generation):
    engine = make_engine([generation("")])
    engine.add_context_file("a.py", "print(1)")
    engine.add_context_file("b.py", "print(2)")
    assert engine.has_context_files

    await engine.ask("explain")

    assert engine.messages[1].text == (
        "--- Context from: a.py ---\nprint(1)\n--- End of Context from: a.py ---"
        "\n\n"
        "--- Context from: b.py ---\nprint(2)\n--- End of Context from: b.py ---"
        "\nexplain"
    )
    assert engine.has_context_files is False


@pytest.mark.asyncio
async def test_project_memory_survives_prompts(make_engine, generation, tmp_path):
    (tmp_path / "AGENTS.md").write_text("Use tabs.")
    engine = make_engine([generation(""), generation("")])

    assert engine.load_project_memory(tmp_path) is True
    engine.add_context_file("x.txt", "temp")
    await engine.ask("first")

    assert engine.context_files == {"AGENTS.md": "Use tabs."}
    await engine.ask("second")
    assert engine.messages[-1].text.startswith("--- Context from: AGENTS.md ---\nUse tabs.")

    engine.clear_context(include_memory=True)
    assert engine.context_files == {}


def test_load_project_memory_without_file(make_engine, tmp_path):
    engine = make_engine([])
    assert engine.load_project_memory(tmp_path) is False
    assert engine.context_files == {}


@pytest.mark.asyncio
async def test_rollback_restores_snapshot(make_engine, generation, tool_call):
    engine = make_engine(
        [
            generation("", [tool_call("echo", '{"text": "a"}')]),
            generation("done"),
        ]
    )
    snapshot = engine.snapshot()
    assert snapshot == 1

    await engine.ask("go")
    assert len(engine.messages) == 5

    engine.rollback_to(snapshot)
    assert _roles(engine) == [Role.SYSTEM]
    assert engine.system_prompt == "You are a test agent."


@pytest.mark.parametrize(
    ("target", "expected"),
    [(0, 1), (-5, 1), (1, 1), (3, 3), (5, 5), (99, 5)],
)
def test_rollback_clamps_target(make_engine, target, expected):
    """Test that rollback keeps max(1, min(target, len)) messages."""
    engine = make_engine([])
    for i in range(4):
        engine._messages.append(engine.messages[0].user(f"m{i}"))
    assert len(engine.messages) == 5

    engine.rollback_to(target)

    assert len(engine.messages) == expected
    assert engine.messages[0].role == Role.SYSTEM


@pytest.mark.asyncio
async def test_rollback_resets_loop_detection(make_engine, generation, tool_call, echo_tool):
    args = '{"text": "same"}'
    engine = make_engine(
        [
            generation("", [tool_call("echo", args)]),
            generation("", [tool_call("echo", args)]),
            generation("ok"),
            generation("", [tool_call("echo", args)]),
            generation("ok"),
        ]
    )

    await engine.ask("first")
    engine.rollback_to(1)
    result = await engine.ask("second")

    # Without the reset the third call would count as a loop
    assert result.outcome == TurnOutcome.COMPLETED
    assert echo_tool.calls == ["same", "same", "same"]


@pytest.mark.asyncio
async def test_clear_history_keeps_system_message(make_engine, generation):
    engine = make_engine([generation("hi"), generation("hi")])
    await engine.ask("hello")
    engine.add_context_file("f", "c")

    engine.clear_history()

    assert _roles(engine) == [Role.SYSTEM]
    assert engine.context_files == {}


@pytest.mark.asyncio
async def test_engine_is_busy_while_prompt_runs(make_engine):
    release = asyncio.Event()

    async def step(on_chunk, cancel):
        await release.wait()
        return Generation(content="")

    engine = make_engine([step])
    task = asyncio.create_task(engine.ask("go"))
    await asyncio.sleep(0)

    assert engine.is_busy is True
    release.set()
    await task
    assert engine.is_busy is False


def test_max_turns_must_be_positive():
    with pytest.raises(ValueError):
        ConversationEngine(model_client=None, registry=ToolRegistry(), max_turns=0)
