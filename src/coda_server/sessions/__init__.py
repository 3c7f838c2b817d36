"""Session management for coda-server.

This package provides in-memory agent sessions and the manager that creates,
lists and deletes them.
"""

from coda_server.sessions.manager import SessionManager, SessionNotFoundError
from coda_server.sessions.session import AgentSession

__all__ = ["AgentSession", "SessionManager", "SessionNotFoundError"]
