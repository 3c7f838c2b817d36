"""Conversation engine: the turn loop between the model and the tools.

One ``ConversationEngine`` owns the history of one session. Each submitted
prompt runs the loop

    Generating -> ToolDispatch -> Generating -> ... -> Done | Aborted

bounded by ``max_turns``. Tool calls requested by the model are routed
through the ``ToolScheduler`` and their results are appended as ``tool``
messages before the next generation. The loop aborts on repeated identical
tool calls, on truncation by length and on cancellation.

Only one prompt runs per engine at a time. ``ask`` runs a prompt to the end;
``ask_stream`` returns a ``StreamTask`` right away and reports progress
through the notifier.
"""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from coda_server.agent.events import (
    LoopDetected,
    MaxTokensReached,
    MaxTurnsExceeded,
    Notifier,
    null_notifier,
)
from coda_server.agent.loop_detection import LoopDetector
from coda_server.agent.model import GenerationCancelled, ModelClient
from coda_server.agent.scheduler import ToolScheduler
from coda_server.agent.streaming import StreamTask
from coda_server.agent.types import (
    Message,
    Role,
    StopReason,
    TextPart,
    ToolCallPart,
    TurnOutcome,
    TurnResult,
)

if TYPE_CHECKING:
    from coda_server.tools.base import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 999
PROJECT_MEMORY_FILE = "AGENTS.md"
TRUNCATION_NOTICE = "\n\n[Response truncated due to length limit]"
SKIPPED_AFTER_LOOP = "Skipped: not executed because a tool call loop was detected"


class ConversationEngine:
    """Turn-based state machine driving one conversation.

    Args:
        model_client: Produces assistant turns
        registry: Tools offered to and executable by the model
        notifier: Receives engine, stream and tool lifecycle events
        system_prompt: Content of the system message at index 0
        max_turns: Upper bound of generations per submitted prompt
        scheduler: Tool scheduler (default: a new one sharing the notifier)

    Raises:
        ValueError: If max_turns is smaller than 1
    """

    def __init__(
        self,
        model_client: ModelClient,
        registry: "ToolRegistry",
        notifier: Notifier = null_notifier,
        system_prompt: str = "",
        max_turns: int = DEFAULT_MAX_TURNS,
        scheduler: ToolScheduler | None = None,
    ) -> None:
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")

        self.model_client = model_client
        self.registry = registry
        self.notifier = notifier
        self.max_turns = max_turns
        self.scheduler = scheduler or ToolScheduler(notifier)

        self._messages: list[Message] = [Message.system(system_prompt)]
        self._context_files: dict[str, str] = {}
        self._loop_detector = LoopDetector()
        self._lock = asyncio.Lock()

    @property
    def messages(self) -> list[Message]:
        """Copy of the conversation history."""
        return list(self._messages)

    @property
    def system_prompt(self) -> str:
        return self._messages[0].text

    @property
    def is_busy(self) -> bool:
        """True while a prompt is being processed."""
        return self._lock.locked()

    # Prompt processing

    async def ask(self, prompt: str, cancel: asyncio.Event | None = None) -> TurnResult:
        """Process a prompt to completion.

        The user message is recorded before the first generation, so it stays
        in history even if generation fails.

        Args:
            prompt: User prompt
            cancel: Optional event that stops the loop when set

        Returns:
            TurnResult with the final assistant text and how the prompt ended

        Raises:
            GenerationError: If the model client fails
        """
        async with self._lock:
            return await self._run_prompt(prompt, cancel)

    def ask_stream(self, prompt: str) -> StreamTask:
        """Start processing a prompt in the background.

        Must be called from the running event loop. Progress, chunks and the
        terminal event are delivered through the notifier.
        """
        stream = StreamTask(self, prompt, self.notifier)
        stream.start()
        return stream

    async def run_stream(self, stream: StreamTask) -> TurnResult:
        """Run a prompt on behalf of a StreamTask."""
        async with self._lock:
            return await self._run_prompt(stream.prompt, stream.cancel_event, stream)

    async def _run_prompt(
        self,
        prompt: str,
        cancel: asyncio.Event | None,
        stream: StreamTask | None = None,
    ) -> TurnResult:
        self._messages.append(Message.user(self._prompt_with_context(prompt)))
        try:
            result = await self._turn_loop(cancel, stream)
        finally:
            self.clear_context()
        logger.info(f"Prompt finished: outcome={result.outcome.value}, turns={result.turns}")
        return result

    async def _turn_loop(self, cancel: asyncio.Event | None, stream: StreamTask | None) -> TurnResult:
        tools = self.registry.schemas()
        final_text = ""
        previous_content = ""
        had_tool_call = False
        grace_used = False

        for turn in range(1, self.max_turns + 1):
            if stream is not None:
                stream.reset_buffer()
            if cancel is not None and cancel.is_set():
                return self._interrupted(stream, turn)

            try:
                generation = await self.model_client.generate(
                    self._messages,
                    tools,
                    on_chunk=stream.on_chunk if stream is not None else None,
                    cancel=cancel,
                )
            except GenerationCancelled:
                return self._interrupted(stream, turn)
            except asyncio.CancelledError:
                # Task cancelled mid-generation: keep what was streamed so far
                self._interrupted(stream, turn)
                raise

            text = generation.content
            if generation.reasoning_content:
                text = f"<thinking>\n{generation.reasoning_content}\n</thinking>\n\n{generation.content}"

            if generation.stop_reason == StopReason.MAX_TOKENS:
                # Calls of a truncated response are dropped so none is left unanswered
                self._append_assistant(text, [])
                self.notifier(MaxTokensReached(partial_text=generation.content))
                logger.warning("Response truncated due to length limit")
                return TurnResult(
                    content=generation.content + TRUNCATION_NOTICE,
                    outcome=TurnOutcome.MAX_TOKENS,
                    turns=turn,
                )

            if text.strip():
                final_text = text
            self._append_assistant(text, generation.tool_calls)

            if not generation.tool_calls:
                # One grace round lets a model that only planned go on to act
                if (
                    stream is not None
                    or had_tool_call
                    or grace_used
                    or generation.content.strip() == previous_content.strip()
                ):
                    return TurnResult(content=final_text, outcome=TurnOutcome.COMPLETED, turns=turn)
                grace_used = True
                previous_content = generation.content
                continue

            had_tool_call = True
            if await self._dispatch_tool_calls(generation.tool_calls, cancel):
                return TurnResult(content=final_text, outcome=TurnOutcome.LOOP_DETECTED, turns=turn)

        logger.warning(f"Prompt ended after reaching max_turns={self.max_turns}")
        self.notifier(MaxTurnsExceeded(max_turns=self.max_turns))
        return TurnResult(
            content=f"{final_text}\n\nEnded after {self.max_turns} iterations",
            outcome=TurnOutcome.MAX_TURNS_EXCEEDED,
            turns=self.max_turns,
        )

    def _interrupted(self, stream: StreamTask | None, turn: int) -> TurnResult:
        partial = stream.buffer if stream is not None else ""
        if partial.strip():
            self._append_assistant(partial, [])
        logger.info(f"Prompt cancelled during turn {turn}")
        return TurnResult(content=partial, outcome=TurnOutcome.CANCELLED, turns=turn)

    async def _dispatch_tool_calls(self, calls: list[ToolCallPart], cancel: asyncio.Event | None) -> bool:
        """Run the requested calls in order and append one response per call.

        Returns:
            True if a tool call loop was detected and the prompt must end
        """
        for index, call in enumerate(calls):
            if self._loop_detector.check(call.name, call.arguments):
                count = self._loop_detector.count
                self._append_tool_response(
                    call,
                    f"Error: tool call loop detected: {call.name} was requested {count} "
                    "times in a row with the same arguments. Stopping.",
                )
                for skipped in calls[index + 1 :]:
                    self._append_tool_response(skipped, SKIPPED_AFTER_LOOP)
                self.notifier(LoopDetected(tool_name=call.name, count=count))
                return True

            try:
                content = await self._execute_tool_call(call, cancel)
            except asyncio.CancelledError:
                for pending in calls[index:]:
                    self._append_tool_response(pending, "Error: cancelled")
                raise
            self._append_tool_response(call, content)

        return False

    async def _execute_tool_call(self, call: ToolCallPart, cancel: asyncio.Event | None) -> str:
        tool = self.registry.get(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {call.name}")
            return f'Error: unknown tool "{call.name}"'
        if cancel is not None and cancel.is_set():
            return "Error: cancelled before execution"

        result = await self.scheduler.schedule(tool, call.arguments)
        if result.ok:
            return result.output
        return f"Error: {result.error}"

    def _append_assistant(self, text: str, tool_calls: list[ToolCallPart]) -> None:
        parts: list = []
        if text.strip():
            parts.append(TextPart(text=text))
        parts.extend(tool_calls)
        if parts:
            self._messages.append(Message(role=Role.ASSISTANT, parts=parts))

    def _append_tool_response(self, call: ToolCallPart, content: str) -> None:
        self._messages.append(Message.tool_response(call.id, call.name, content))

    # History

    def snapshot(self) -> int:
        """Return the current message count for a later rollback."""
        return len(self._messages)

    def rollback_to(self, snapshot: int) -> None:
        """Truncate history to a snapshot, never dropping the system message.

        Loop detection state is reset in every case.
        """
        self._loop_detector.reset()
        keep = max(1, snapshot)
        if keep >= len(self._messages):
            return
        logger.info(f"Rolling back history from {len(self._messages)} to {keep} messages")
        del self._messages[keep:]

    def clear_history(self) -> None:
        """Keep only the system message and forget transient state."""
        del self._messages[1:]
        self._loop_detector.reset()
        self.clear_context()

    # Context files

    def _prompt_with_context(self, prompt: str) -> str:
        if not self._context_files:
            return prompt
        blocks = [
            f"--- Context from: {path} ---\n{content}\n--- End of Context from: {path} ---"
            for path, content in self._context_files.items()
        ]
        return "\n\n".join(blocks) + "\n" + prompt

    def add_context_file(self, path: str, content: str) -> None:
        """Attach file content to the next submitted prompt."""
        self._context_files[path] = content

    def clear_context(self, include_memory: bool = False) -> None:
        """Drop transient context files.

        Args:
            include_memory: Also drop the persistent project memory entry
        """
        memory = self._context_files.get(PROJECT_MEMORY_FILE)
        self._context_files = {}
        if memory is not None and not include_memory:
            self._context_files[PROJECT_MEMORY_FILE] = memory

    @property
    def context_files(self) -> dict[str, str]:
        return dict(self._context_files)

    @property
    def has_context_files(self) -> bool:
        return bool(self._context_files)

    def load_project_memory(self, root: Path) -> bool:
        """Load ``AGENTS.md`` from a project root as persistent context.

        Returns:
            True if the file was found and loaded
        """
        path = root / PROJECT_MEMORY_FILE
        if not path.is_file():
            return False
        self._context_files[PROJECT_MEMORY_FILE] = path.read_text(encoding="utf-8")
        logger.info(f"Loaded project memory from {path}")
        return True
