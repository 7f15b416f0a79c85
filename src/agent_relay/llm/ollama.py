"""
Ollama adapter for locally served models.
"""

import asyncio
import uuid
from typing import Any

import httpx
import ollama
import structlog

from ..errors import ProviderError
from .base import (
    Document,
    Embedding,
    ModelAdapter,
    OnMessage,
    OutputFormat,
    ToolDefinition,
    cancellable,
    emit,
)
from .messages import (
    AiMessage,
    HumanMessage,
    ImagePart,
    Message,
    OutputMessage,
    SystemMessage,
    ToolCall,
    ToolCallsMessage,
    ToolResponseMessage,
)

logger = structlog.get_logger()


def _image_data(part: ImagePart) -> str:
    # Ollama takes raw base64 (or a local path), not data URLs
    if part.url.startswith("data:"):
        return part.url.partition(",")[2]
    return part.url


class OllamaAdapter(ModelAdapter):
    """Ollama chat adapter."""

    def __init__(
        self,
        host: str = "http://127.0.0.1:11434",
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
    ):
        super().__init__("", host, max_tokens, temperature, timeout)
        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    @property
    def provider_name(self) -> str:
        return "ollama"

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert Messages to Ollama chat format."""
        converted = []
        call_names: dict[str, str] = {}

        for msg in messages:
            match msg:
                case SystemMessage(content=content):
                    converted.append({"role": "system", "content": content})
                case HumanMessage(content=content):
                    if isinstance(content, str):
                        converted.append({"role": "user", "content": content})
                    else:
                        converted.append({
                            "role": "user",
                            "content": "",
                            "images": [_image_data(p) for p in content if isinstance(p, ImagePart)],
                        })
                case AiMessage(content=content):
                    converted.append({"role": "assistant", "content": content})
                case ToolCallsMessage(calls=calls, content=content):
                    for call in calls:
                        call_names[call.id] = call.tool_name
                    converted.append({
                        "role": "assistant",
                        "content": content or "",
                        "tool_calls": [
                            {
                                "function": {
                                    "name": call.tool_name,
                                    "arguments": call.params if isinstance(call.params, dict) else {},
                                }
                            }
                            for call in calls
                        ],
                    })
                case ToolResponseMessage(call_id=call_id, content=content):
                    converted.append({
                        "role": "tool",
                        "content": content,
                        "tool_name": call_names.get(call_id, ""),
                    })
                case _:
                    raise TypeError(f"Unsupported message type: {type(msg).__name__}")

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": {"type": "object", "properties": {}, **tool.parameters},
                },
            }
            for tool in tools
        ]

    async def infer(
        self,
        model: str,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        format: OutputFormat | None = None,
        on_message: OnMessage | None = None,
        signal: asyncio.Event | None = None,
        agent_name: str | None = None,
    ) -> OutputMessage:
        """Run one Ollama chat call."""
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": self._convert_messages(messages),
            "stream": False,
            "options": {"temperature": self.temperature, "num_predict": self.max_tokens},
        }

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        if format == "json":
            kwargs["format"] = "json"

        try:
            response = await cancellable(self.client.chat(**kwargs), signal)
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.error("Ollama API error", model=model, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        message = response.message
        output: OutputMessage
        if message.tool_calls:
            output = ToolCallsMessage(
                calls=[
                    ToolCall(
                        id=f"call_{uuid.uuid4().hex[:24]}",
                        tool_name=tc.function.name,
                        params=dict(tc.function.arguments or {}),
                    )
                    for tc in message.tool_calls
                ],
                content=message.content or None,
            )
        else:
            output = AiMessage(content=message.content or "", name=agent_name or "assistant")

        await emit(on_message, output)
        return output

    async def embed(self, model: str, documents: list[Document]) -> list[Embedding]:
        try:
            response = await self.client.embed(
                model=model,
                input=[doc.content for doc in documents],
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.error("Ollama embedding error", model=model, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        return [Embedding(model=model, embeddings=[list(v)]) for v in response.embeddings]

    async def list_models(self) -> list[str]:
        try:
            response = await self.client.list()
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.error("Ollama model listing error", error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e
        return [m.model for m in response.models if m.model]
