"""
Configuration management for Agent Relay

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderName = Literal["openai", "anthropic", "google", "openrouter", "ollama"]

SUPPORTED_PROVIDERS: tuple[str, ...] = ("openai", "anthropic", "google", "openrouter", "ollama")


class ProviderConfig(BaseSettings):
    """Configuration for a single model provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: ProviderName = "openai"
    api_key: str = ""
    base_url: str | None = None
    organization: str | None = None
    timeout: float = 30.0
    max_retries: int = 3
    max_tokens: int = 4096
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Agent-Relay"
    log_level: str = "INFO"

    # Provider credentials
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str | None = Field(default=None, description="OpenAI-compatible base URL")
    openai_organization: str | None = Field(default=None, description="OpenAI organization id")
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    anthropic_base_url: str | None = Field(default=None, description="Anthropic base URL")
    google_api_key: str = Field(default="", description="Google AI API key for Gemini")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    ollama_host: str = Field(default="http://127.0.0.1:11434", description="Ollama server URL")

    # Provider call behaviour
    provider_timeout: float = Field(default=30.0, description="Model call timeout in seconds")
    provider_max_retries: int = Field(default=3, description="SDK-level retries per model call")
    max_tokens: int = 4096
    temperature: float = 0.7

    # Orchestration
    max_tool_iterations: int = Field(default=10, description="Max tool rounds per turn")
    http_tool_timeout: float = Field(default=30.0, description="Timeout for HTTP tools in seconds")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/agent_relay.db",
        description="Database connection URL"
    )

    @field_validator("max_tool_iterations")
    @classmethod
    def check_max_tool_iterations(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_tool_iterations must be at least 1")
        return v

    def get_provider_config(self, provider: str) -> ProviderConfig:
        """Get configuration for a provider."""
        api_key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
            "openrouter": self.openrouter_api_key,
            "ollama": "",
        }

        base_url_map = {
            "openai": self.openai_base_url,
            "anthropic": self.anthropic_base_url,
            "google": None,
            "openrouter": "https://openrouter.ai/api/v1",
            "ollama": self.ollama_host,
        }

        return ProviderConfig(
            provider=provider,  # type: ignore
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            organization=self.openai_organization if provider == "openai" else None,
            timeout=self.provider_timeout,
            max_retries=self.provider_max_retries,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
