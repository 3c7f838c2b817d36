"""AgentSession: one conversation served by the API.

A session bundles the conversation engine with the event hub its engine,
scheduler and streams report to, plus the metadata shown by the API.
Sessions live in memory only.
"""

import logging
import uuid
from datetime import datetime, timezone

from coda_server.agent import ConversationEngine, EventHub, StreamTask
from coda_server.agent.types import Role

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AgentSession:
    """A live conversation with its engine and event hub.

    Attributes:
        session_id: 10-character hexadecimal identifier
        model: Model the session generates with
        engine: ConversationEngine holding the history
        hub: EventHub the engine reports to
        created_at: ISO 8601 creation timestamp
        updated_at: ISO 8601 timestamp of the last change
    """

    def __init__(
        self,
        session_id: str,
        model: str,
        engine: ConversationEngine,
        hub: EventHub,
    ) -> None:
        self.session_id = session_id
        self.model = model
        self.engine = engine
        self.hub = hub
        self.created_at = _now()
        self.updated_at = self.created_at
        self._stream: StreamTask | None = None

    @staticmethod
    def generate_session_id() -> str:
        """Generate a new unique session ID.

        Returns:
            10-character hexadecimal string
        """
        return uuid.uuid4().hex[:10]

    def touch(self) -> None:
        self.updated_at = _now()

    @property
    def message_count(self) -> int:
        return len(self.engine.messages)

    @property
    def active_stream(self) -> StreamTask | None:
        """The stream currently running for this session, if any."""
        if self._stream is not None and self._stream.done:
            self._stream = None
        return self._stream

    @property
    def is_busy(self) -> bool:
        return self.engine.is_busy or self.active_stream is not None

    def start_stream(self, prompt: str) -> StreamTask:
        """Start a streamed prompt and remember it for cancellation.

        Raises:
            RuntimeError: If a prompt is already running
        """
        if self.is_busy:
            raise RuntimeError(f"session {self.session_id} is busy")
        self._stream = self.engine.ask_stream(prompt)
        self.touch()
        return self._stream

    def cancel_stream(self) -> bool:
        """Cancel the active stream.

        Returns:
            True if a stream was running and has been asked to stop
        """
        stream = self.active_stream
        if stream is None:
            return False
        stream.cancel()
        logger.info(f"Cancellation requested for session {self.session_id}")
        return True

    def get_preview(self, max_length: int = 100) -> str:
        """Get a preview of the first user message."""
        for message in self.engine.messages:
            if message.role == Role.USER:
                text = message.text.strip()
                if len(text) > max_length:
                    return text[:max_length] + "..."
                return text
        return ""
