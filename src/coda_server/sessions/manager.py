"""SessionManager for CRUD operations on agent sessions.

This module provides the SessionManager class which handles:
- Creating sessions with their engine, tools and system prompt
- Listing sessions, newest first
- Retrieving and deleting sessions

Sessions are kept in memory for the lifetime of the server process.
"""

import logging

from coda_server.agent import ConversationEngine, EventHub, ModelClient
from coda_server.agent.prompts import build_system_prompt
from coda_server.config import CodaServerSettings
from coda_server.sessions.session import AgentSession
from coda_server.tools import HostShellRunner, ShellRunner, build_default_registry

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """No session exists with the requested id."""


class SessionManager:
    """Manages agent sessions with CRUD operations.

    Args:
        settings: Server settings (workspace, model, limits, prompt template)
        model_client: Model client shared by all sessions
        shell_runner: Runner for shell commands (default: HostShellRunner)
    """

    def __init__(
        self,
        settings: CodaServerSettings,
        model_client: ModelClient,
        shell_runner: ShellRunner | None = None,
    ) -> None:
        self.settings = settings
        self.model_client = model_client
        self.shell_runner = shell_runner or HostShellRunner(timeout=settings.shell_timeout)
        self._sessions: dict[str, AgentSession] = {}

    def create_session(self, system_prompt: str | None = None) -> AgentSession:
        """Create a new session.

        Args:
            system_prompt: Explicit system prompt. When omitted the prompt is
                rendered from the configured template.

        Returns:
            The newly created AgentSession

        Raises:
            FileNotFoundError: If the configured system prompt template is missing
        """
        workspace = self.settings.resolved_workspace_dir
        registry = build_default_registry(workspace, self.shell_runner)

        if system_prompt is None:
            system_prompt = build_system_prompt(
                registry.names(),
                workspace,
                self.settings.resolved_system_prompt_path,
            )

        hub = EventHub()
        engine = ConversationEngine(
            model_client=self.model_client,
            registry=registry,
            notifier=hub,
            system_prompt=system_prompt,
            max_turns=self.settings.max_turns,
        )
        if self.settings.load_project_memory:
            engine.load_project_memory(workspace)

        session_id = AgentSession.generate_session_id()
        session = AgentSession(
            session_id=session_id,
            model=self.settings.model,
            engine=engine,
            hub=hub,
        )
        self._sessions[session_id] = session

        logger.info(f"Created new session {session_id} with model {session.model}")
        return session

    def list_sessions(self) -> list[AgentSession]:
        """List all sessions, sorted by updated_at descending."""
        return sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def get_session(self, session_id: str) -> AgentSession:
        """Get a specific session by ID.

        Raises:
            SessionNotFoundError: If session doesn't exist
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def delete_session(self, session_id: str) -> None:
        """Delete a session, cancelling its active stream.

        Raises:
            SessionNotFoundError: If session doesn't exist
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.cancel_stream()
        logger.info(f"Deleted session {session_id}")

    def cancel_all(self) -> None:
        """Cancel every running stream, used at shutdown."""
        for session in self._sessions.values():
            session.cancel_stream()

    def __len__(self) -> int:
        return len(self._sessions)
