"""
Anthropic Claude adapter.
"""

import asyncio
from typing import Any

import anthropic
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
    MessageContent,
    OutputMessage,
    SystemMessage,
    ToolCall,
    ToolCallsMessage,
    ToolResponseMessage,
)

logger = structlog.get_logger()

JSON_INSTRUCTION = "Respond only with a single valid JSON object and no other text."


def _image_block(part: ImagePart) -> dict[str, Any]:
    if part.url.startswith("data:"):
        header, _, data = part.url.partition(",")
        media_type = header[len("data:"):].split(";")[0] or "image/png"
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": data},
        }
    return {"type": "image", "source": {"type": "url", "url": part.url}}


def _content_to_anthropic(content: MessageContent) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content

    blocks = []
    for part in content:
        if isinstance(part, ImagePart):
            blocks.append(_image_block(part))
        else:
            logger.warning("Anthropic does not accept audio input, dropping part")
    return blocks


def messages_to_anthropic(messages: list[Message]) -> tuple[str | None, list[dict[str, Any]]]:
    """Convert Messages to Anthropic's (system, messages) pair.

    System messages are lifted into the system prompt. Consecutive tool
    responses are merged into one user turn, as the API expects all results
    for a tool_use turn together.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for msg in messages:
        match msg:
            case SystemMessage(content=content):
                system_parts.append(content)
            case HumanMessage(content=content):
                converted.append({"role": "user", "content": _content_to_anthropic(content)})
            case AiMessage(content=content):
                converted.append({"role": "assistant", "content": content})
            case ToolCallsMessage(calls=calls, content=content):
                blocks: list[dict[str, Any]] = []
                if content:
                    blocks.append({"type": "text", "text": content})
                for call in calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.tool_name,
                        "input": call.params if isinstance(call.params, dict) else {},
                    })
                converted.append({"role": "assistant", "content": blocks})
            case ToolResponseMessage(call_id=call_id, content=content):
                block = {"type": "tool_result", "tool_use_id": call_id, "content": content}
                previous = converted[-1] if converted else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and previous["content"]
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            case _:
                raise TypeError(f"Unsupported message type: {type(msg).__name__}")

    system = "\n\n".join(system_parts) if system_parts else None
    return system, converted


def anthropic_to_messages(param: dict[str, Any], agent_name: str | None = None) -> list[Message]:
    """Convert one Anthropic message back into Messages.

    A user turn holding several tool results expands to several
    ToolResponseMessages.
    """
    role = param.get("role")
    content = param.get("content")

    if role == "user":
        if isinstance(content, str):
            return [HumanMessage(content=content)]
        results = [b for b in content if b.get("type") == "tool_result"]
        if results:
            return [
                ToolResponseMessage(call_id=b["tool_use_id"], content=str(b.get("content", "")))
                for b in results
            ]
        text = "".join(b.get("text", "") for b in content if b.get("type") == "text")
        return [HumanMessage(content=text)]

    if role == "assistant":
        if isinstance(content, str):
            return [AiMessage(content=content, name=agent_name or "assistant")]
        text = ""
        calls = []
        for block in content:
            if block.get("type") == "text":
                text += block.get("text", "")
            elif block.get("type") == "tool_use":
                calls.append(ToolCall(
                    id=block["id"],
                    tool_name=block["name"],
                    params=dict(block.get("input") or {}),
                ))
        if calls:
            return [ToolCallsMessage(calls=calls, content=text or None)]
        return [AiMessage(content=text, name=agent_name or "assistant")]

    raise ValueError(f"Unsupported role: {role}")


def tool_to_anthropic(tool: ToolDefinition) -> dict[str, Any]:
    """Convert a ToolDefinition to Anthropic format."""
    return {
        "name": tool.name,
        "description": tool.description,
        "input_schema": {"type": "object", "properties": {}, **tool.parameters},
    }


class AnthropicAdapter(ModelAdapter):
    """Anthropic Claude adapter."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
        max_retries: int = 3,
    ):
        super().__init__(api_key, base_url, max_tokens, temperature, timeout)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key or None,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

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
        """Run one Claude messages call."""
        system, converted = messages_to_anthropic(messages)

        if format == "json":
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": converted,
        }

        if system:
            kwargs["system"] = system

        if tools:
            kwargs["tools"] = [tool_to_anthropic(t) for t in tools]

        try:
            response = await cancellable(self.client.messages.create(**kwargs), signal)
        except anthropic.APIError as e:
            logger.error("Anthropic API error", model=model, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        reply = {
            "role": "assistant",
            "content": [block.model_dump() for block in response.content],
        }
        output = anthropic_to_messages(reply, agent_name)[0]
        await emit(on_message, output)
        return output  # type: ignore[return-value]

    async def embed(self, model: str, documents: list[Document]) -> list[Embedding]:
        raise ProviderError(self.provider_name, "embeddings are not offered by this provider")

    async def list_models(self) -> list[str]:
        try:
            page = await self.client.models.list()
        except anthropic.APIError as e:
            logger.error("Anthropic model listing error", error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e
        return [m.id for m in page.data]
