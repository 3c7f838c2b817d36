"""Strictly ordered, single-flight tool execution queue.

``ToolScheduler.schedule`` never blocks: it records the call, reports it to
the notifier and returns a future that resolves exactly once with a
``ToolCallResult``. Calls execute one at a time in submission order, each
in its own asyncio task. When a call finishes the scheduler starts the next
queued one.

The mutable state is guarded by a ``threading.Lock`` which is only taken
for short critical sections and never held across an await or while the
notifier runs.
"""

import asyncio
import logging
import threading
import uuid
from collections import deque

from coda_server.agent.events import (
    Notifier,
    ToolCallExecuting,
    ToolCallFailed,
    ToolCallScheduled,
    ToolCallSucceeded,
    null_notifier,
)
from coda_server.agent.types import ToolCall, ToolCallResult, ToolCallStatus

logger = logging.getLogger(__name__)


class ToolScheduler:
    """FIFO queue running one tool call at a time.

    Args:
        notifier: Receives the lifecycle events of every call
    """

    def __init__(self, notifier: Notifier = null_notifier) -> None:
        self._notifier = notifier
        self._lock = threading.Lock()
        self._queue: deque[ToolCall] = deque()
        self._calls: dict[str, ToolCall] = {}
        self._futures: dict[str, asyncio.Future] = {}
        self._executing: ToolCall | None = None
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, tool, arguments: str) -> "asyncio.Future[ToolCallResult]":
        """Queue a tool call and return the future of its result.

        Must be called from the running event loop.

        Args:
            tool: Tool to execute
            arguments: JSON argument string passed to ``tool.call``

        Returns:
            Future resolved once with the call's ToolCallResult. Tool failures
            are delivered as results with ``error`` set, never raised.
        """
        loop = asyncio.get_running_loop()
        call = ToolCall(id=str(uuid.uuid4()), tool=tool, arguments=arguments)
        future: asyncio.Future = loop.create_future()

        with self._lock:
            self._queue.append(call)
            self._calls[call.id] = call
            self._futures[call.id] = future

        logger.debug(f"Scheduled tool call {call.id} ({call.tool_name})")
        self._notifier(ToolCallScheduled.from_call(call))
        self._process_queue()
        return future

    def _process_queue(self) -> None:
        with self._lock:
            if self._executing is not None or not self._queue:
                return
            call = self._queue.popleft()
            call.status = ToolCallStatus.EXECUTING
            self._executing = call

        self._notifier(ToolCallExecuting.from_call(call))
        task = asyncio.get_running_loop().create_task(
            self._execute(call), name=f"tool-{call.tool_name}-{call.id[:8]}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, call: ToolCall) -> None:
        try:
            output = await call.tool.call(call.arguments)
        except asyncio.CancelledError:
            logger.warning(f"Tool call {call.id} ({call.tool_name}) was cancelled")
            self._finish(call, ToolCallStatus.CANCELLED, error="tool execution was cancelled")
            raise
        except Exception as e:
            logger.info(f"Tool call {call.id} ({call.tool_name}) failed: {e}")
            self._finish(call, ToolCallStatus.ERROR, error=str(e) or type(e).__name__)
        else:
            self._finish(call, ToolCallStatus.SUCCESS, output="" if output is None else str(output))

    def _finish(
        self,
        call: ToolCall,
        status: ToolCallStatus,
        output: str | None = None,
        error: str | None = None,
    ) -> None:
        with self._lock:
            call.status = status
            call.result = output
            call.error = error
            future = self._futures.pop(call.id, None)
            self._calls.pop(call.id, None)
            self._executing = None

        if status == ToolCallStatus.SUCCESS:
            self._notifier(ToolCallSucceeded.from_call(call, result=output))
            result = ToolCallResult(output=output)
        else:
            self._notifier(ToolCallFailed.from_call(call, error=error))
            result = ToolCallResult(error=error)

        # The awaiting side may have gone away
        if future is not None and not future.done():
            future.set_result(result)

        self._process_queue()

    @property
    def pending(self) -> int:
        """Number of calls waiting to execute."""
        with self._lock:
            return len(self._queue)

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._executing is not None

    def get_call(self, call_id: str) -> ToolCall | None:
        """Look up a queued or executing call by id."""
        with self._lock:
            return self._calls.get(call_id)
