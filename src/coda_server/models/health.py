"""Health check response model."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of coda-server.
        model: The model sessions generate with.
        ollama_connected: Whether Ollama is reachable, None if no client is initialized.
        ollama_host: The Ollama host URL, None if no client is initialized.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of coda-server")
    model: str | None = Field(default=None, description="Configured model")
    ollama_connected: bool | None = Field(
        default=None,
        description="Whether Ollama is connected",
    )
    ollama_host: str | None = Field(
        default=None,
        description="Ollama host URL",
    )
