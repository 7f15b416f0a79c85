"""
Native Google Gemini adapter.

Uses the google-generativeai SDK directly. Gemini has no tool call ids, so
ids are generated on the way in, and tool responses are matched back to
their function names through the preceding tool_calls message.
"""

import asyncio
import copy
import uuid
from typing import Any

import structlog

from ..errors import InferenceCancelledError, ProviderError
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

# JSON schema keywords Gemini function declarations reject
_UNSUPPORTED_SCHEMA_KEYS = {"default", "additionalProperties", "$schema", "title", "examples"}


def _clean_schema(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {
            key: _clean_schema(value)
            for key, value in schema.items()
            if key not in _UNSUPPORTED_SCHEMA_KEYS
        }
    if isinstance(schema, list):
        return [_clean_schema(item) for item in schema]
    return schema


def _model_path(model: str) -> str:
    return model if model.startswith("models/") else f"models/{model}"


class GoogleGeminiAdapter(ModelAdapter):
    """Native Google Gemini adapter."""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
    ):
        super().__init__(api_key, base_url, max_tokens, temperature, timeout)
        self._client = None

    def _get_client(self):
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                import google.generativeai as genai
            except ImportError as e:
                raise ProviderError(
                    self.provider_name,
                    "google-generativeai not installed. Run: pip install google-generativeai",
                ) from e
            genai.configure(api_key=self.api_key)
            self._client = genai
        return self._client

    @property
    def provider_name(self) -> str:
        return "google"

    def _convert_messages(self, messages: list[Message]) -> tuple[str | None, list[dict[str, Any]]]:
        """Convert Messages to Gemini contents.

        Gemini uses 'user' and 'model' roles; system messages become the
        system instruction.
        """
        system_parts: list[str] = []
        converted: list[dict[str, Any]] = []
        call_names: dict[str, str] = {}

        for msg in messages:
            match msg:
                case SystemMessage(content=content):
                    system_parts.append(content)
                case HumanMessage(content=content):
                    if isinstance(content, str):
                        parts: list[dict[str, Any]] = [{"text": content}]
                    else:
                        parts = []
                        for part in content:
                            if isinstance(part, ImagePart) and part.url.startswith("data:"):
                                header, _, data = part.url.partition(",")
                                mime = header[len("data:"):].split(";")[0]
                                parts.append({"inline_data": {"mime_type": mime, "data": data}})
                            else:
                                parts.append({"text": f"[{part.type}: {part.url}]"})
                    converted.append({"role": "user", "parts": parts})
                case AiMessage(content=content):
                    converted.append({"role": "model", "parts": [{"text": content}]})
                case ToolCallsMessage(calls=calls, content=content):
                    parts = [{"text": content}] if content else []
                    for call in calls:
                        call_names[call.id] = call.tool_name
                        parts.append({
                            "function_call": {
                                "name": call.tool_name,
                                "args": call.params if isinstance(call.params, dict) else {},
                            }
                        })
                    converted.append({"role": "model", "parts": parts})
                case ToolResponseMessage(call_id=call_id, content=content):
                    converted.append({
                        "role": "user",
                        "parts": [{
                            "function_response": {
                                "name": call_names.get(call_id, "unknown"),
                                "response": {"result": content},
                            }
                        }],
                    })
                case _:
                    raise TypeError(f"Unsupported message type: {type(msg).__name__}")

        system = "\n\n".join(system_parts) if system_parts else None
        return system, converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Gemini function declarations."""
        function_declarations = []

        for tool in tools:
            params = _clean_schema(copy.deepcopy(tool.parameters))
            params.setdefault("type", "object")
            if not params.get("properties"):
                function_declarations.append({
                    "name": tool.name,
                    "description": tool.description,
                })
                continue

            function_declarations.append({
                "name": tool.name,
                "description": tool.description,
                "parameters": params,
            })

        return [{"function_declarations": function_declarations}]

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
        """Run one Gemini generate_content call."""
        genai = self._get_client()

        generation_config: dict[str, Any] = {
            "max_output_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if format == "json":
            generation_config["response_mime_type"] = "application/json"

        system, contents = self._convert_messages(messages)

        model_kwargs: dict[str, Any] = {
            "model_name": model,
            "generation_config": generation_config,
        }

        if system:
            model_kwargs["system_instruction"] = system

        generative_model = genai.GenerativeModel(**model_kwargs)

        generate_kwargs: dict[str, Any] = {"contents": contents}

        if tools:
            generate_kwargs["tools"] = self._convert_tools(tools)

        try:
            response = await cancellable(
                generative_model.generate_content_async(**generate_kwargs),
                signal,
            )
        except InferenceCancelledError:
            raise
        except Exception as e:
            logger.error("Gemini API error", model=model, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        content = ""
        tool_calls = []

        if response.candidates:
            for part in response.candidates[0].content.parts:
                fc = getattr(part, "function_call", None)
                if fc and fc.name:
                    tool_calls.append(ToolCall(
                        id=f"call_{uuid.uuid4().hex[:24]}",
                        tool_name=fc.name,
                        params=dict(fc.args) if fc.args else {},
                    ))
                elif getattr(part, "text", None):
                    content += part.text

        output: OutputMessage
        if tool_calls:
            output = ToolCallsMessage(calls=tool_calls, content=content or None)
        else:
            output = AiMessage(content=content, name=agent_name or "assistant")

        await emit(on_message, output)
        return output

    async def embed(self, model: str, documents: list[Document]) -> list[Embedding]:
        genai = self._get_client()
        try:
            result = await asyncio.to_thread(
                genai.embed_content,
                model=_model_path(model),
                content=[doc.content for doc in documents],
            )
        except Exception as e:
            logger.error("Gemini embedding error", model=model, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        return [Embedding(model=model, embeddings=[vector]) for vector in result["embedding"]]

    async def list_models(self) -> list[str]:
        genai = self._get_client()

        def _list() -> list[str]:
            return [
                m.name.removeprefix("models/")
                for m in genai.list_models()
                if "generateContent" in m.supported_generation_methods
            ]

        try:
            return await asyncio.to_thread(_list)
        except Exception as e:
            logger.error("Gemini model listing error", error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e
