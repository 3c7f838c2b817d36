"""Background task running one streamed prompt.

A ``StreamTask`` owns everything a streamed prompt needs: the cancel event,
the buffer of the current turn's chunks and the asyncio task driving the
engine. It talks to the outside world only through its notifier. Every
stream emits ``StreamStarted`` and then exactly one terminal event.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from coda_server.agent.events import (
    Notifier,
    StreamChunk,
    StreamCompleted,
    StreamFailed,
    StreamInterrupted,
    StreamStarted,
)
from coda_server.agent.model import GenerationCancelled
from coda_server.agent.types import TurnOutcome, TurnResult

if TYPE_CHECKING:
    from coda_server.agent.engine import ConversationEngine

logger = logging.getLogger(__name__)


class StreamTask:
    """Handle of a prompt processed in the background.

    Attributes:
        prompt: The submitted user prompt
        cancel_event: Set by ``cancel``; observed before each generation and
            between chunks
        result: TurnResult once the stream finished normally, else None
        error: Exception that ended the stream, if any
    """

    def __init__(self, engine: "ConversationEngine", prompt: str, notifier: Notifier) -> None:
        self.prompt = prompt
        self.cancel_event = asyncio.Event()
        self.result: TurnResult | None = None
        self.error: Exception | None = None
        self._engine = engine
        self._notifier = notifier
        self._chunks: list[str] = []
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("stream already started")
        self._task = asyncio.get_running_loop().create_task(self._run(), name="coda-stream")

    async def _run(self) -> TurnResult | None:
        self._notifier(StreamStarted())
        try:
            result = await self._engine.run_stream(self)
        except asyncio.CancelledError:
            self._notifier(StreamInterrupted(partial_text=self.buffer))
            raise
        except Exception as e:
            logger.error(f"Stream failed: {e}")
            self.error = e
            self._notifier(StreamFailed(error=str(e) or type(e).__name__))
            return None

        self.result = result
        if result.outcome == TurnOutcome.CANCELLED:
            self._notifier(StreamInterrupted(partial_text=result.content))
        elif result.outcome != TurnOutcome.MAX_TURNS_EXCEEDED:
            # MaxTurnsExceeded was already emitted by the engine and ends the stream
            self._notifier(StreamCompleted())
        return result

    def on_chunk(self, text: str) -> None:
        """Record a chunk of the current turn and forward it.

        Raises:
            GenerationCancelled: If cancellation has been requested
        """
        if self.cancel_event.is_set():
            raise GenerationCancelled()
        self._chunks.append(text)
        self._notifier(StreamChunk(text=text))

    def reset_buffer(self) -> None:
        self._chunks = []

    @property
    def buffer(self) -> str:
        """Text accumulated during the current turn."""
        return "".join(self._chunks)

    def cancel(self) -> None:
        """Request cancellation. The stream ends with StreamInterrupted."""
        self.cancel_event.set()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> TurnResult | None:
        """Wait for the stream to finish and return its result."""
        if self._task is None:
            raise RuntimeError("stream not started")
        return await self._task
