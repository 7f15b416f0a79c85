"""
Adapter factory and registry.

Supports: OpenAI, Anthropic Claude, Google Gemini (native), OpenRouter, Ollama.

Model identifiers are written ``provider/model`` (for example
``openai/gpt-4o`` or ``openrouter/anthropic/claude-sonnet-4``); everything
after the first slash is the provider's own model name.
"""

import structlog

from ..config import Settings, get_settings
from ..errors import InvalidModelIdentifierError, UnsupportedProviderError
from .base import Document, Embedding, ModelAdapter

logger = structlog.get_logger()


def parse_model_identifier(identifier: str) -> tuple[str, str]:
    """Split ``provider/model`` into its parts."""
    provider, sep, model = identifier.partition("/")
    if not sep or not provider.strip() or not model.strip():
        raise InvalidModelIdentifierError(identifier)
    return provider.strip().lower(), model.strip()


def create_adapter(provider: str, settings: Settings) -> ModelAdapter:
    """Create an adapter for a provider.

    Provider routing:
    - openai -> OpenAIAdapter (native OpenAI SDK)
    - anthropic -> AnthropicAdapter (native Anthropic SDK)
    - google -> GoogleGeminiAdapter (native Gemini SDK)
    - openrouter -> OpenAIAdapter (OpenAI-compatible endpoint)
    - ollama -> OllamaAdapter (ollama client)
    """
    provider = provider.lower()

    if provider in ("openai", "openrouter"):
        from .openai import OpenAIAdapter

        config = settings.get_provider_config(provider)
        return OpenAIAdapter(
            api_key=config.api_key,
            base_url=config.base_url,
            organization=config.organization,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            max_retries=config.max_retries,
            provider=provider,
        )
    elif provider == "anthropic":
        from .anthropic import AnthropicAdapter

        config = settings.get_provider_config(provider)
        return AnthropicAdapter(
            api_key=config.api_key,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )
    elif provider == "google":
        from .google import GoogleGeminiAdapter

        config = settings.get_provider_config(provider)
        return GoogleGeminiAdapter(
            api_key=config.api_key,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
        )
    elif provider == "ollama":
        from .ollama import OllamaAdapter

        config = settings.get_provider_config(provider)
        return OllamaAdapter(
            host=config.base_url or "http://127.0.0.1:11434",
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
        )
    else:
        raise UnsupportedProviderError(provider)


class AdapterRegistry:
    """Holds one adapter per provider, built on first use.

    Built once at startup and passed to whatever needs model access.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._adapters: dict[str, ModelAdapter] = {}

    def register(self, provider: str, adapter: ModelAdapter) -> None:
        """Install an adapter for a provider, replacing any existing one."""
        self._adapters[provider.lower()] = adapter
        logger.info("Adapter registered", provider=provider)

    def get(self, provider: str) -> ModelAdapter:
        """Get the adapter for a provider, creating it if needed."""
        key = provider.lower()
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = create_adapter(key, self.settings)
            self._adapters[key] = adapter
        return adapter

    def resolve(self, identifier: str) -> tuple[ModelAdapter, str]:
        """Resolve ``provider/model`` to its adapter and bare model name."""
        provider, model = parse_model_identifier(identifier)
        return self.get(provider), model

    def providers(self) -> list[str]:
        """List providers with a constructed adapter."""
        return list(self._adapters.keys())

    async def embed(self, identifier: str, documents: list[Document]) -> list[Embedding]:
        """Embed documents with the model named by ``provider/model``."""
        adapter, model = self.resolve(identifier)
        return await adapter.embed(model, documents)
