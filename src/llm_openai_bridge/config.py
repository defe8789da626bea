"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server bind host")
    port: int = Field(default=3775, description="Server port")
    auto_start: bool = Field(default=False, description="Start the server on launch")
    log_level: str = Field(default="info", description="Logging level")
    log_file: str | None = Field(
        default=None,
        description="Optional diagnostic log file (in addition to stderr)",
    )

    # Model selection
    default_model: str = Field(default="gpt-4", description="Fallback model id")
    discovery_vendors: list[str] = Field(
        default_factory=lambda: ["copilot", "openrouter"],
        description="Vendors queried in addition to the wildcard selector for /v1/models",
    )

    # Upstream capability settings
    upstream_base_url: str = Field(
        default="http://127.0.0.1:4141/v1",
        description="Base URL of the OpenAI-compatible upstream",
    )
    upstream_api_key: str = Field(default="", description="Upstream API key")
    request_timeout: int = Field(default=120, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Max retries for model discovery")
    token_counter: str = Field(
        default="approximate",
        description="Token counting method (approximate or tiktoken)",
    )

    # Lifecycle recovery
    recovery_delay: float = Field(
        default=0.5,
        description="Seconds to wait after signalling a port holder to stop",
    )
    recovery_stop_command: str | None = Field(
        default=None,
        description="Shell command that asks a stale instance to release the port",
    )

    @property
    def log_file_path(self) -> Path | None:
        """Get full path to the diagnostic log file."""
        if not self.log_file:
            return None
        return Path(self.log_file).expanduser().resolve()

    @property
    def base_url(self) -> str:
        """Local URL the server listens on."""
        return f"http://{self.host}:{self.port}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
