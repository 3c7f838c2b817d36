"""Configuration module for coda-server using pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CodaServerSettings(BaseSettings):
    """Main configuration settings for coda-server.

    All settings can be overridden via environment variables with the CODA_ prefix.
    For example, CODA_OLLAMA_HOST will override the ollama_host setting.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Ollama
    ollama_host: str = "http://localhost:11434"
    model: str = "qwen3:14b"
    think: bool = False

    # Agent
    max_turns: int = Field(default=999, ge=1)
    workspace_dir: str = "."
    system_prompt_path: str | None = None
    load_project_memory: bool = True

    # Tools
    shell_timeout: float = Field(default=120.0, gt=0)

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="CODA_")

    @property
    def resolved_workspace_dir(self) -> Path:
        """Get the absolute path of the workspace the tools operate in."""
        return Path(self.workspace_dir).expanduser().resolve()

    @property
    def resolved_system_prompt_path(self) -> Path | None:
        """Get the system prompt template override, relative to the workspace."""
        if not self.system_prompt_path:
            return None
        path = Path(self.system_prompt_path).expanduser()
        if not path.is_absolute():
            path = self.resolved_workspace_dir / path
        return path
