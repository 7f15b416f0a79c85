"""
LLM module for multi-provider model support.

Providers:
- OpenAI GPT (native SDK)
- Anthropic Claude (native SDK)
- Google Gemini (native SDK)
- OpenRouter (via OpenAI-compatible endpoint)
- Ollama (local models)

Provider SDKs are imported when an adapter is first created.
"""

from .base import Document, Embedding, ModelAdapter, ToolDefinition, cancellable, emit
from .factory import AdapterRegistry, create_adapter, parse_model_identifier
from .messages import (
    AiMessage,
    AudioPart,
    HumanMessage,
    ImagePart,
    Message,
    OutputMessage,
    SystemMessage,
    ToolCall,
    ToolCallsMessage,
    ToolResponseMessage,
    message_from_dict,
    message_to_dict,
)

__all__ = [
    "AdapterRegistry",
    "AiMessage",
    "AudioPart",
    "Document",
    "Embedding",
    "HumanMessage",
    "ImagePart",
    "Message",
    "ModelAdapter",
    "OutputMessage",
    "SystemMessage",
    "ToolCall",
    "ToolCallsMessage",
    "ToolDefinition",
    "ToolResponseMessage",
    "cancellable",
    "create_adapter",
    "emit",
    "message_from_dict",
    "message_to_dict",
    "parse_model_identifier",
]
