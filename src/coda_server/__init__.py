"""coda-server: Headless coding-agent runtime served over HTTP.

This package provides a REST API and SSE streaming interface for running
multi-turn agent conversations against Ollama models, with the model
executing local file and shell tools.
"""

__version__ = "0.1.0"

from coda_server.app import create_app  # noqa: E402

__all__ = ["create_app", "__version__"]
