"""
Global settings from environment variables.
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentRunSettings(BaseSettings):
    """
    Global configuration loaded from environment variables.

    Environment variables should be prefixed with AGENTRUN_
    Example: AGENTRUN_LOG_LEVEL=DEBUG, AGENTRUN_RETRY_PRESET=aggressive
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTRUN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # Core settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    # Agent loop defaults
    max_steps: int = Field(default=10, ge=1)
    retry_preset: Literal["default", "disabled", "aggressive", "conservative"] = "default"

    # Model Provider Settings
    # OpenAI (and OpenAI-compatible endpoints)
    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = None
    openai_model: str = "gpt-4o-mini"

    # Anthropic
    anthropic_api_key: SecretStr | None = None
    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_max_tokens: int = Field(default=4096, ge=1)


# Global settings instance (singleton)
settings = AgentRunSettings()


__all__ = ["AgentRunSettings", "settings"]
