"""CLI entry point for coda-server.

This module provides the command-line interface for starting the coda-server.
It can be invoked as `coda-server` (via the script entry point) or
`python -m coda_server`.
"""

import argparse
import sys

import uvicorn

from coda_server import __version__, create_app
from coda_server.config import CodaServerSettings
from coda_server.log_config import setup_logging


def main() -> None:
    """Main entry point for the coda-server CLI.

    Parses command-line arguments and starts the uvicorn server with the
    FastAPI application.
    """
    parser = argparse.ArgumentParser(
        prog="coda-server",
        description="Headless coding-agent runtime for Ollama models",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"coda-server {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via CODA_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via CODA_PORT)",
    )

    parser.add_argument(
        "--ollama-host",
        type=str,
        default=None,
        help="Ollama server URL (default: http://localhost:11434, can be set via CODA_OLLAMA_HOST)",
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model used by all sessions (can be set via CODA_MODEL)",
    )

    parser.add_argument(
        "--workspace",
        type=str,
        default=None,
        help="Directory the agent's tools operate in (default: ., can be set via CODA_WORKSPACE_DIR)",
    )

    parser.add_argument(
        "--max-turns",
        type=int,
        default=None,
        help="Maximum generations per prompt (default: 999, can be set via CODA_MAX_TURNS)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via CODA_LOG_LEVEL)",
    )

    args = parser.parse_args()

    # Build settings, CLI args override environment variables
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.ollama_host is not None:
        settings_kwargs["ollama_host"] = args.ollama_host
    if args.model is not None:
        settings_kwargs["model"] = args.model
    if args.workspace is not None:
        settings_kwargs["workspace_dir"] = args.workspace
    if args.max_turns is not None:
        settings_kwargs["max_turns"] = args.max_turns
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    settings = CodaServerSettings(**settings_kwargs)
    setup_logging(settings.log_level)

    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    sys.exit(main())
