"""Pytest configuration and shared fixtures for coda-server tests.

This module provides common fixtures used across all test modules,
including test app creation and async client setup.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from coda_server import create_app
from coda_server.config import CodaServerSettings


@pytest.fixture
def workspace(tmp_path):
    """Create an isolated workspace directory for tools and context files."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def test_settings(workspace):
    """Create test settings pointing at the temporary workspace.

    Args:
        workspace: Temporary workspace fixture.

    Returns:
        CodaServerSettings: Settings instance configured for testing.
    """
    return CodaServerSettings(
        host="127.0.0.1",
        port=8000,
        ollama_host="http://localhost:11434",
        model="llama3.2:latest",
        workspace_dir=str(workspace),
        max_turns=10,
        shell_timeout=10.0,
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def test_app(test_settings):
    """Create a FastAPI test application instance."""
    return create_app(settings=test_settings)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
