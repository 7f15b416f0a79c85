"""
Tests for provider adapters and their wire-format conversions.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from anthropic.types import TextBlock, ToolUseBlock
from openai.types.chat import ChatCompletion

from agent_relay.agent import Orchestrator
from agent_relay.errors import InferenceCancelledError, ProviderError
from agent_relay.llm import AdapterRegistry
from agent_relay.llm.anthropic import (
    JSON_INSTRUCTION,
    AnthropicAdapter,
    anthropic_to_messages,
    messages_to_anthropic,
)
from agent_relay.llm.base import ToolDefinition
from agent_relay.llm.google import GoogleGeminiAdapter
from agent_relay.llm.messages import (
    AiMessage,
    HumanMessage,
    SystemMessage,
    ToolCall,
    ToolCallsMessage,
    ToolResponseMessage,
)
from agent_relay.llm.ollama import OllamaAdapter
from agent_relay.llm.openai import (
    OpenAIAdapter,
    message_to_openai,
    openai_to_message,
    tool_to_openai,
)

CALCULATOR = ToolDefinition(
    name="calculator",
    description="Add two numbers",
    parameters={
        "type": "object",
        "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
        "required": ["a", "b"],
    },
)


def completion(message: dict) -> ChatCompletion:
    return ChatCompletion.model_validate({
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o",
        "choices": [{"index": 0, "finish_reason": "stop", "message": message}],
    })


@pytest.mark.parametrize(
    "message",
    [
        SystemMessage(content="You are helpful"),
        HumanMessage(content="2+2?", name="alice"),
        AiMessage(content="4", name="calc"),
        ToolCallsMessage(calls=[
            ToolCall(id="call_1", tool_name="calculator", params={"a": 2, "b": 2}),
            ToolCall(id="call_2", tool_name="clock", params={}),
        ]),
        ToolResponseMessage(call_id="call_1", content="4"),
    ],
    ids=["system", "human", "ai", "tool_calls", "tool_response"],
)
def test_openai_round_trip(message):
    """Test every role survives conversion to OpenAI format and back."""
    assert openai_to_message(message_to_openai(message)) == message


def test_openai_tool_calls_shape():
    """Test tool calls map to assistant tool_calls with JSON arguments."""
    message = ToolCallsMessage(calls=[ToolCall(id="call_1", tool_name="calculator", params={"a": 2})])

    param = message_to_openai(message)

    assert param["role"] == "assistant"
    assert param["tool_calls"][0]["id"] == "call_1"
    assert param["tool_calls"][0]["function"] == {"name": "calculator", "arguments": '{"a": 2}'}


def test_openai_bad_arguments_kept_raw():
    """Test unparseable tool arguments stay a string for the tool to reject."""
    message = openai_to_message({
        "role": "assistant",
        "tool_calls": [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "calculator", "arguments": "{a: 2"},
        }],
    })

    assert isinstance(message, ToolCallsMessage)
    assert message.calls[0].params == "{a: 2"


def test_tool_to_openai():
    """Test tool definition conversion."""
    converted = tool_to_openai(CALCULATOR)

    assert converted["type"] == "function"
    assert converted["function"]["name"] == "calculator"
    assert converted["function"]["parameters"]["required"] == ["a", "b"]


@pytest.mark.asyncio
async def test_openai_infer_tool_calls():
    """Test an OpenAI reply with tool calls becomes a ToolCallsMessage."""
    adapter = OpenAIAdapter(api_key="sk-test")
    adapter.client = MagicMock()
    adapter.client.chat.completions.create = AsyncMock(return_value=completion({
        "role": "assistant",
        "content": None,
        "tool_calls": [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "calculator", "arguments": '{"a": 2, "b": 2}'},
        }],
    }))
    seen = []

    result = await adapter.infer(
        "gpt-4o",
        [HumanMessage(content="2+2?")],
        tools=[CALCULATOR],
        on_message=seen.append,
    )

    assert result == ToolCallsMessage(
        calls=[ToolCall(id="call_1", tool_name="calculator", params={"a": 2, "b": 2})]
    )
    assert seen == [result]
    kwargs = adapter.client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["tools"][0]["function"]["name"] == "calculator"


@pytest.mark.asyncio
async def test_openai_infer_json_format():
    """Test json output format requests a JSON object response."""
    adapter = OpenAIAdapter(api_key="sk-test")
    adapter.client = MagicMock()
    adapter.client.chat.completions.create = AsyncMock(
        return_value=completion({"role": "assistant", "content": '{"answer": 4}'})
    )

    result = await adapter.infer("gpt-4o", [HumanMessage(content="2+2?")], format="json", agent_name="calc")

    assert result == AiMessage(content='{"answer": 4}', name="calc")
    kwargs = adapter.client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_openai_error_wrapped():
    """Test SDK errors surface as ProviderError."""
    adapter = OpenAIAdapter(api_key="sk-test")
    adapter.client = MagicMock()
    adapter.client.chat.completions.create = AsyncMock(
        side_effect=openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
    )

    with pytest.raises(ProviderError) as exc_info:
        await adapter.infer("gpt-4o", [HumanMessage(content="hi")])

    assert exc_info.value.provider == "openai"


@pytest.mark.asyncio
async def test_infer_cancelled_by_signal():
    """Test setting the signal aborts an in-flight call."""
    adapter = OpenAIAdapter(api_key="sk-test")
    adapter.client = MagicMock()
    started = asyncio.Event()

    async def slow_create(**kwargs):
        started.set()
        await asyncio.sleep(10)

    adapter.client.chat.completions.create = slow_create
    signal = asyncio.Event()

    task = asyncio.create_task(adapter.infer("gpt-4o", [HumanMessage(content="hi")], signal=signal))
    await started.wait()
    signal.set()

    with pytest.raises(InferenceCancelledError):
        await task


def test_anthropic_conversion_lifts_system_and_merges_results():
    """Test system prompts are lifted and tool results grouped in one turn."""
    system, converted = messages_to_anthropic([
        SystemMessage(content="You are helpful"),
        HumanMessage(content="2+2 and 3+3?"),
        ToolCallsMessage(calls=[
            ToolCall(id="toolu_1", tool_name="calculator", params={"a": 2, "b": 2}),
            ToolCall(id="toolu_2", tool_name="calculator", params={"a": 3, "b": 3}),
        ]),
        ToolResponseMessage(call_id="toolu_1", content="4"),
        ToolResponseMessage(call_id="toolu_2", content="6"),
    ])

    assert system == "You are helpful"
    assert [m["role"] for m in converted] == ["user", "assistant", "user"]
    assert [b["type"] for b in converted[1]["content"]] == ["tool_use", "tool_use"]
    assert converted[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "toolu_1", "content": "4"},
        {"type": "tool_result", "tool_use_id": "toolu_2", "content": "6"},
    ]


def test_anthropic_tool_use_reply():
    """Test tool_use blocks become a ToolCallsMessage."""
    messages = anthropic_to_messages({
        "role": "assistant",
        "content": [
            {"type": "text", "text": "Let me add that."},
            {"type": "tool_use", "id": "toolu_1", "name": "calculator", "input": {"a": 2, "b": 2}},
        ],
    })

    assert messages == [
        ToolCallsMessage(
            calls=[ToolCall(id="toolu_1", tool_name="calculator", params={"a": 2, "b": 2})],
            content="Let me add that.",
        )
    ]


@pytest.mark.asyncio
async def test_anthropic_infer_json_instruction():
    """Test json format is requested through the system prompt."""
    adapter = AnthropicAdapter(api_key="sk-ant-test")
    adapter.client = MagicMock()
    adapter.client.messages.create = AsyncMock(
        return_value=MagicMock(content=[TextBlock(type="text", text='{"answer": 4}')])
    )

    result = await adapter.infer(
        "claude-sonnet-4",
        [SystemMessage(content="You are helpful"), HumanMessage(content="2+2?")],
        format="json",
        agent_name="calc",
    )

    assert result == AiMessage(content='{"answer": 4}', name="calc")
    kwargs = adapter.client.messages.create.call_args.kwargs
    assert kwargs["system"] == f"You are helpful\n\n{JSON_INSTRUCTION}"
    assert kwargs["messages"] == [{"role": "user", "content": "2+2?"}]


@pytest.mark.asyncio
async def test_anthropic_infer_tool_use():
    """Test a tool_use response from the SDK is normalized."""
    adapter = AnthropicAdapter(api_key="sk-ant-test")
    adapter.client = MagicMock()
    adapter.client.messages.create = AsyncMock(return_value=MagicMock(content=[
        ToolUseBlock(type="tool_use", id="toolu_1", name="calculator", input={"a": 2, "b": 2}),
    ]))

    result = await adapter.infer("claude-sonnet-4", [HumanMessage(content="2+2?")], tools=[CALCULATOR])

    assert isinstance(result, ToolCallsMessage)
    assert result.calls[0].params == {"a": 2, "b": 2}
    kwargs = adapter.client.messages.create.call_args.kwargs
    assert kwargs["tools"][0]["input_schema"]["required"] == ["a", "b"]


@pytest.mark.asyncio
async def test_anthropic_has_no_embeddings():
    """Test embedding through Anthropic raises ProviderError."""
    adapter = AnthropicAdapter(api_key="sk-ant-test")

    with pytest.raises(ProviderError):
        await adapter.embed("claude-sonnet-4", [])


def test_gemini_conversion_names_function_responses():
    """Test tool responses are matched to their function names for Gemini."""
    adapter = GoogleGeminiAdapter(api_key="test")

    system, contents = adapter._convert_messages([
        SystemMessage(content="You are helpful"),
        HumanMessage(content="2+2?"),
        ToolCallsMessage(calls=[ToolCall(id="call_1", tool_name="calculator", params={"a": 2, "b": 2})]),
        ToolResponseMessage(call_id="call_1", content="4"),
    ])

    assert system == "You are helpful"
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[1]["parts"][0]["function_call"] == {"name": "calculator", "args": {"a": 2, "b": 2}}
    assert contents[2]["parts"][0]["function_response"] == {
        "name": "calculator",
        "response": {"result": "4"},
    }


def test_gemini_tool_schema_cleaned():
    """Test schema keywords Gemini rejects are stripped without touching the original."""
    adapter = GoogleGeminiAdapter(api_key="test")
    tool = ToolDefinition(
        name="search",
        description="Search",
        parameters={
            "type": "object",
            "properties": {"k": {"type": "string", "default": "2"}},
            "additionalProperties": False,
        },
    )

    declarations = adapter._convert_tools([tool])[0]["function_declarations"]

    assert declarations[0]["parameters"] == {"type": "object", "properties": {"k": {"type": "string"}}}
    assert tool.parameters["properties"]["k"]["default"] == "2"


def test_ollama_conversion_names_tool_messages():
    """Test Ollama tool messages carry the called tool's name."""
    adapter = OllamaAdapter()

    converted = adapter._convert_messages([
        ToolCallsMessage(calls=[ToolCall(id="call_1", tool_name="calculator", params={"a": 2, "b": 2})]),
        ToolResponseMessage(call_id="call_1", content="4"),
    ])

    assert converted[0]["tool_calls"][0]["function"]["arguments"] == {"a": 2, "b": 2}
    assert converted[1] == {"role": "tool", "content": "4", "tool_name": "calculator"}


def slow_call(started: asyncio.Event):
    async def call(*args, **kwargs):
        started.set()
        await asyncio.sleep(10)

    return call


async def cancel_once_started(coro, started: asyncio.Event):
    signal = asyncio.Event()
    task = asyncio.create_task(coro(signal))
    await started.wait()
    signal.set()
    with pytest.raises(InferenceCancelledError):
        await task


@pytest.mark.asyncio
async def test_ask_sends_single_message():
    """Test ask wraps one message into an infer call."""
    adapter = OpenAIAdapter(api_key="sk-test")
    adapter.client = MagicMock()
    adapter.client.chat.completions.create = AsyncMock(
        return_value=completion({"role": "assistant", "content": "hello"})
    )

    result = await adapter.ask("gpt-4o", HumanMessage(content="hi"), agent_name="greeter")

    assert result == AiMessage(content="hello", name="greeter")
    kwargs = adapter.client.chat.completions.create.call_args.kwargs
    assert [(m["role"], m["content"]) for m in kwargs["messages"]] == [("user", "hi")]
    assert "tools" not in kwargs


@pytest.mark.asyncio
async def test_anthropic_cancelled_by_signal():
    """Test a Claude call is aborted when the signal fires."""
    adapter = AnthropicAdapter(api_key="sk-ant-test")
    adapter.client = MagicMock()
    started = asyncio.Event()
    adapter.client.messages.create = slow_call(started)

    await cancel_once_started(
        lambda signal: adapter.infer("claude-sonnet-4", [HumanMessage(content="hi")], signal=signal),
        started,
    )


def gemini_adapter(generate) -> GoogleGeminiAdapter:
    adapter = GoogleGeminiAdapter(api_key="test")
    adapter._client = MagicMock()
    adapter._client.GenerativeModel.return_value.generate_content_async = generate
    return adapter


def gemini_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


@pytest.mark.asyncio
async def test_gemini_infer_function_calls():
    """Test Gemini function_call parts become tool calls with generated ids."""
    generate = AsyncMock(return_value=gemini_response(
        SimpleNamespace(function_call=None, text="Adding both."),
        SimpleNamespace(function_call=SimpleNamespace(name="calculator", args={"a": 2, "b": 2}), text=""),
        SimpleNamespace(function_call=SimpleNamespace(name="calculator", args={"a": 3, "b": 3}), text=""),
    ))
    adapter = gemini_adapter(generate)
    seen = []

    result = await adapter.infer(
        "gemini-1.5-pro",
        [SystemMessage(content="You are helpful"), HumanMessage(content="2+2 and 3+3?")],
        tools=[CALCULATOR],
        on_message=seen.append,
    )

    assert isinstance(result, ToolCallsMessage)
    assert result.content == "Adding both."
    assert [call.params for call in result.calls] == [{"a": 2, "b": 2}, {"a": 3, "b": 3}]
    assert all(call.id.startswith("call_") for call in result.calls)
    assert result.calls[0].id != result.calls[1].id
    assert seen == [result]
    model_kwargs = adapter._client.GenerativeModel.call_args.kwargs
    assert model_kwargs["system_instruction"] == "You are helpful"
    assert generate.call_args.kwargs["tools"][0]["function_declarations"][0]["name"] == "calculator"


@pytest.mark.asyncio
async def test_gemini_infer_text_and_json():
    """Test a text reply and the JSON response type."""
    adapter = gemini_adapter(AsyncMock(return_value=gemini_response(
        SimpleNamespace(function_call=None, text='{"answer": 4}'),
    )))

    result = await adapter.infer("gemini-1.5-pro", [HumanMessage(content="2+2?")], format="json", agent_name="calc")

    assert result == AiMessage(content='{"answer": 4}', name="calc")
    config = adapter._client.GenerativeModel.call_args.kwargs["generation_config"]
    assert config["response_mime_type"] == "application/json"


@pytest.mark.asyncio
async def test_gemini_cancelled_by_signal():
    """Test a cancelled Gemini call is reported as a cancellation."""
    started = asyncio.Event()
    adapter = gemini_adapter(slow_call(started))

    await cancel_once_started(
        lambda signal: adapter.infer("gemini-1.5-pro", [HumanMessage(content="hi")], signal=signal),
        started,
    )


@pytest.mark.asyncio
async def test_gemini_cancellation_skips_fallbacks(settings):
    """Test cancelling a turn does not move on to fallback models."""
    started = asyncio.Event()
    generate = MagicMock(side_effect=slow_call(started))
    adapters = AdapterRegistry(settings)
    adapters.register("google", gemini_adapter(generate))

    await cancel_once_started(
        lambda signal: Orchestrator(adapters).run(
            ["google/gemini-1.5-pro", "google/gemini-1.5-flash"],
            [HumanMessage(content="hi")],
            signal=signal,
        ),
        started,
    )

    assert generate.call_count == 1


@pytest.mark.asyncio
async def test_gemini_api_error_wrapped():
    """Test SDK failures surface as ProviderError."""
    adapter = gemini_adapter(AsyncMock(side_effect=RuntimeError("quota exceeded")))

    with pytest.raises(ProviderError, match="quota exceeded"):
        await adapter.infer("gemini-1.5-pro", [HumanMessage(content="hi")])


def ollama_reply(content="", tool_calls=None):
    return SimpleNamespace(message=SimpleNamespace(content=content, tool_calls=tool_calls))


@pytest.mark.asyncio
async def test_ollama_infer_tool_calls():
    """Test Ollama tool calls are normalized with generated ids."""
    adapter = OllamaAdapter()
    adapter.client = MagicMock()
    adapter.client.chat = AsyncMock(return_value=ollama_reply(tool_calls=[
        SimpleNamespace(function=SimpleNamespace(name="calculator", arguments={"a": 2, "b": 2})),
    ]))

    result = await adapter.infer("llama3.1", [HumanMessage(content="2+2?")], tools=[CALCULATOR])

    assert isinstance(result, ToolCallsMessage)
    assert result.calls[0].tool_name == "calculator"
    assert result.calls[0].params == {"a": 2, "b": 2}
    assert result.calls[0].id.startswith("call_")
    kwargs = adapter.client.chat.call_args.kwargs
    assert kwargs["stream"] is False
    assert kwargs["tools"][0]["function"]["parameters"]["required"] == ["a", "b"]


@pytest.mark.asyncio
async def test_ollama_infer_json_answer():
    """Test a plain Ollama reply with JSON format requested."""
    adapter = OllamaAdapter()
    adapter.client = MagicMock()
    adapter.client.chat = AsyncMock(return_value=ollama_reply(content='{"answer": 4}'))

    result = await adapter.infer("llama3.1", [HumanMessage(content="2+2?")], format="json", agent_name="calc")

    assert result == AiMessage(content='{"answer": 4}', name="calc")
    assert adapter.client.chat.call_args.kwargs["format"] == "json"


@pytest.mark.asyncio
async def test_ollama_unreachable_server(settings):
    """Test a refused connection is a provider error, so fallbacks run."""
    ollama_adapter = OllamaAdapter(host="http://127.0.0.1:1")
    ollama_adapter.client = MagicMock()
    ollama_adapter.client.chat = AsyncMock(side_effect=ConnectionError("Failed to connect to Ollama"))
    fallback = MagicMock()
    fallback.infer = AsyncMock(return_value=AiMessage(content="from fallback"))
    adapters = AdapterRegistry(settings)
    adapters.register("ollama", ollama_adapter)
    adapters.register("backup", fallback)

    with pytest.raises(ProviderError, match="Failed to connect"):
        await ollama_adapter.infer("llama3.1", [HumanMessage(content="hi")])

    result = await Orchestrator(adapters).run(["ollama/llama3.1", "backup/model"], [HumanMessage(content="hi")])

    assert result.content == "from fallback"


@pytest.mark.asyncio
async def test_ollama_cancelled_by_signal():
    """Test an Ollama call is aborted when the signal fires."""
    adapter = OllamaAdapter()
    adapter.client = MagicMock()
    started = asyncio.Event()
    adapter.client.chat = slow_call(started)

    await cancel_once_started(
        lambda signal: adapter.infer("llama3.1", [HumanMessage(content="hi")], signal=signal),
        started,
    )
