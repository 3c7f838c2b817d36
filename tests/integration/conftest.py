"""Pytest configuration for integration tests.

This module provides integration-test-specific fixtures that ensure
proper test isolation and mocking for API endpoint tests.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from coda_server.agent.types import Generation


@pytest.fixture(autouse=True)
def mock_ollama_client():
    """Mock OllamaClient for all integration tests.

    This fixture patches the OllamaClient class before the app is created,
    ensuring the lifespan uses our mock instead of creating a real client.
    Tests replace ``generate`` to script the model.
    """
    with patch("coda_server.app.OllamaClient") as mock_client_class:
        mock_instance = AsyncMock()
        mock_instance.host = "http://localhost:11434"
        mock_instance.model = "llama3.2:latest"
        mock_instance.check_connection.return_value = True
        mock_instance.get_context_length.return_value = 8192
        mock_instance.generate.return_value = Generation(content="Hello from the model")

        mock_client_class.return_value = mock_instance

        yield mock_instance


@pytest.fixture
def parse_sse():
    """Parse an SSE response body into a list of {"event", "data"} dicts."""

    def _parse(text: str) -> list[dict]:
        events = []
        # Normalize line endings and split by double newline
        normalized_text = text.replace("\r\n", "\n")
        for block in normalized_text.strip().split("\n\n"):
            event_type = None
            event_data = None
            for part in block.split("\n"):
                if part.startswith("event:"):
                    event_type = part.split(":", 1)[1].strip()
                elif part.startswith("data:"):
                    event_data = part.split(":", 1)[1].strip()
            if event_type and event_data:
                events.append({"event": event_type, "data": json.loads(event_data)})
        return events

    return _parse
