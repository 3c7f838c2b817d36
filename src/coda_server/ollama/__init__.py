"""Ollama client wrapper and integration layer.

This package provides the Ollama-backed model client used by the
conversation engine. All Ollama interactions are async and use streaming.
"""

from coda_server.ollama.client import OllamaClient

__all__ = ["OllamaClient"]
