"""Unit tests for SessionManager CRUD operations.

Tests the manager's ability to create, list, retrieve and delete sessions,
including system prompt rendering and project memory loading.
"""

from unittest.mock import AsyncMock

import pytest

from coda_server.agent.engine import PROJECT_MEMORY_FILE
from coda_server.sessions import SessionManager, SessionNotFoundError
from coda_server.tools import HostShellRunner


@pytest.fixture
def mock_model_client():
    """Create a mock model client."""
    return AsyncMock()


@pytest.fixture
def manager(test_settings, mock_model_client):
    return SessionManager(test_settings, mock_model_client)


def test_create_session(manager, test_settings):
    """Test creating a new session."""
    session = manager.create_session()

    assert len(session.session_id) == 10
    assert session.model == "llama3.2:latest"
    assert session.message_count == 1
    assert session.engine.max_turns == test_settings.max_turns
    assert "read_file" in session.engine.system_prompt
    assert str(test_settings.resolved_workspace_dir) in session.engine.system_prompt
    assert session.engine.registry.names()[0] == "read_file"
    assert len(manager) == 1


def test_create_session_with_explicit_prompt(manager):
    session = manager.create_session(system_prompt="Be brief.")

    assert session.engine.system_prompt == "Be brief."


def test_create_session_with_prompt_template(test_settings, mock_model_client, workspace):
    (workspace / "agent.md").write_text("Tools: $tools")
    settings = test_settings.model_copy(update={"system_prompt_path": "agent.md"})

    session = SessionManager(settings, mock_model_client).create_session()

    assert session.engine.system_prompt.startswith("Tools: read_file, write_file")


def test_missing_prompt_template_raises(test_settings, mock_model_client):
    settings = test_settings.model_copy(update={"system_prompt_path": "missing.md"})
    manager = SessionManager(settings, mock_model_client)

    with pytest.raises(FileNotFoundError):
        manager.create_session()
    assert len(manager) == 0


def test_project_memory_loaded(manager, workspace):
    (workspace / PROJECT_MEMORY_FILE).write_text("Run the tests.")

    session = manager.create_session()

    assert session.engine.context_files == {PROJECT_MEMORY_FILE: "Run the tests."}


def test_project_memory_disabled(test_settings, mock_model_client, workspace):
    (workspace / PROJECT_MEMORY_FILE).write_text("Run the tests.")
    settings = test_settings.model_copy(update={"load_project_memory": False})

    session = SessionManager(settings, mock_model_client).create_session()

    assert session.engine.context_files == {}


def test_shell_runner_uses_configured_timeout(manager, test_settings):
    assert isinstance(manager.shell_runner, HostShellRunner)
    assert manager.shell_runner.timeout == test_settings.shell_timeout


def test_sessions_are_isolated(manager):
    first = manager.create_session()
    second = manager.create_session()

    first.engine.add_context_file("a.txt", "A")

    assert first.session_id != second.session_id
    assert first.engine is not second.engine
    assert first.hub is not second.hub
    assert second.engine.context_files == {}


def test_list_sessions_newest_first(manager):
    first = manager.create_session()
    second = manager.create_session()
    first.updated_at = "2026-01-02T00:00:00Z"
    second.updated_at = "2026-01-01T00:00:00Z"

    sessions = manager.list_sessions()

    assert [s.session_id for s in sessions] == [first.session_id, second.session_id]


def test_get_session(manager):
    session = manager.create_session()

    assert manager.get_session(session.session_id) is session
    with pytest.raises(SessionNotFoundError):
        manager.get_session("nonexistent")


def test_delete_session(manager):
    session = manager.create_session()

    manager.delete_session(session.session_id)

    assert len(manager) == 0
    with pytest.raises(SessionNotFoundError):
        manager.delete_session(session.session_id)
