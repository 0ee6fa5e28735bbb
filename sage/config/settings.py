"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Sage Coach API"
    api_version: str = "v1"

    # Anthropic Configuration
    anthropic_api_key: str = Field(
        default="",
        description="Claude API key. Seeds the credential store; can be set later at runtime."
    )
    anthropic_base_url: Optional[str] = Field(
        default=None,
        description="Override the Messages API base URL (proxies, local gateways)."
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-5",
        description="Claude model used for coaching replies."
    )
    anthropic_max_tokens: int = Field(
        default=1024,
        description="Max tokens for single-turn completions."
    )
    anthropic_conversation_max_tokens: int = Field(
        default=2048,
        description="Max tokens for multi-turn and streamed replies."
    )
    anthropic_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single network attempt."
    )
    anthropic_max_retries: int = Field(
        default=1,
        description="Retries for non-streaming calls that fail with a 5xx status."
    )

    # Persistence
    database_path: str = Field(
        default="sage.db",
        description="Path of the SQLite database file. Created on first open."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Return the names of settings that still need a value.

        The API key is not fatal at startup: it can be supplied later
        through the credential store, and every completion call reports
        its absence as MissingCredential.
        """
        missing = []

        if not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")
        if not self.database_path:
            missing.append("DATABASE_PATH")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
