"""
OpenAI adapter (also serves OpenRouter and other compatible APIs).
"""

import asyncio
import json
from typing import Any

import openai
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
    AudioPart,
    ContentPart,
    HumanMessage,
    ImagePart,
    Message,
    MessageContent,
    OutputMessage,
    SystemMessage,
    ToolCall,
    ToolCallsMessage,
    ToolResponseMessage,
)

logger = structlog.get_logger()


def _content_to_openai(content: MessageContent) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content

    parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, ImagePart):
            image_url: dict[str, Any] = {"url": part.url}
            if part.detail:
                image_url["detail"] = part.detail
            parts.append({"type": "image_url", "image_url": image_url})
        else:
            parts.append({
                "type": "input_audio",
                "input_audio": {"data": part.url, "format": part.format},
            })
    return parts


def _content_from_openai(content: Any) -> MessageContent:
    if content is None:
        return ""
    if isinstance(content, str):
        return content

    parts: list[ContentPart] = []
    for part in content:
        if part.get("type") == "image_url":
            image_url = part["image_url"]
            parts.append(ImagePart(url=image_url["url"], detail=image_url.get("detail")))
        elif part.get("type") == "input_audio":
            audio = part["input_audio"]
            parts.append(AudioPart(url=audio["data"], format=audio.get("format", "wav")))
        else:
            return json.dumps(content)
    return parts


def _parse_arguments(arguments: str | None) -> dict[str, Any] | str:
    if not arguments:
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        return arguments


def message_to_openai(message: Message) -> dict[str, Any]:
    """Convert a Message to an OpenAI chat message."""
    match message:
        case SystemMessage(content=content):
            return {"role": "system", "content": content}
        case HumanMessage(content=content, name=name):
            return {"role": "user", "name": name, "content": _content_to_openai(content)}
        case AiMessage(content=content, name=name):
            return {"role": "assistant", "name": name, "content": content}
        case ToolCallsMessage(calls=calls, content=content):
            return {
                "role": "assistant",
                "content": content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.tool_name,
                            "arguments": (
                                call.params if isinstance(call.params, str)
                                else json.dumps(call.params)
                            ),
                        },
                    }
                    for call in calls
                ],
            }
        case ToolResponseMessage(call_id=call_id, content=content):
            return {"role": "tool", "tool_call_id": call_id, "content": content}
        case _:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")


def openai_to_message(param: dict[str, Any], agent_name: str | None = None) -> Message:
    """Convert an OpenAI chat message (request or response shape) to a Message."""
    role = param.get("role")

    match role:
        case "system":
            return SystemMessage(content=param.get("content") or "")
        case "user":
            return HumanMessage(
                content=_content_from_openai(param.get("content")),
                name=param.get("name") or "user",
            )
        case "assistant":
            tool_calls = param.get("tool_calls") or []
            if tool_calls:
                return ToolCallsMessage(
                    calls=[
                        ToolCall(
                            id=tc["id"],
                            tool_name=tc["function"]["name"],
                            params=_parse_arguments(tc["function"].get("arguments")),
                        )
                        for tc in tool_calls
                    ],
                    content=param.get("content") or None,
                )
            content = param.get("content")
            return AiMessage(
                content=content if isinstance(content, str) else json.dumps(content or ""),
                name=agent_name or param.get("name") or "assistant",
            )
        case "tool":
            return ToolResponseMessage(
                call_id=param["tool_call_id"],
                content=str(param.get("content") or ""),
            )
        case _:
            raise ValueError(f"Unsupported role: {role}")


def tool_to_openai(tool: ToolDefinition) -> dict[str, Any]:
    """Convert a ToolDefinition to OpenAI function format."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": {"type": "object", "properties": {}, **tool.parameters},
        },
    }


class OpenAIAdapter(ModelAdapter):
    """OpenAI chat completions adapter."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        organization: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
        max_retries: int = 3,
        provider: str = "openai",
    ):
        super().__init__(api_key, base_url, max_tokens, temperature, timeout)
        self._provider = provider
        try:
            self.client = openai.AsyncOpenAI(
                api_key=api_key or None,
                base_url=base_url,
                organization=organization,
                timeout=timeout,
                max_retries=max_retries,
            )
        except openai.OpenAIError as e:
            # Raised when no API key is configured or found in the environment
            raise ProviderError(provider, str(e)) from e

    @property
    def provider_name(self) -> str:
        return self._provider

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
        """Run one chat completion."""
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [message_to_openai(m) for m in messages],
        }

        if tools:
            kwargs["tools"] = [tool_to_openai(t) for t in tools]

        if format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await cancellable(self.client.chat.completions.create(**kwargs), signal)
        except openai.APIError as e:
            logger.error("OpenAI API error", provider=self.provider_name, model=model, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        choice = response.choices[0]
        output = openai_to_message(choice.message.model_dump(exclude_none=True), agent_name)
        await emit(on_message, output)
        return output  # type: ignore[return-value]

    async def embed(self, model: str, documents: list[Document]) -> list[Embedding]:
        try:
            response = await self.client.embeddings.create(
                model=model,
                input=[doc.content for doc in documents],
            )
        except openai.APIError as e:
            logger.error("OpenAI embedding error", model=model, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        return [Embedding(model=model, embeddings=[item.embedding]) for item in response.data]

    async def list_models(self) -> list[str]:
        try:
            page = await self.client.models.list()
        except openai.APIError as e:
            logger.error("OpenAI model listing error", error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e
        return [m.id for m in page.data]
