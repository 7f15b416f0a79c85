"""
Inference orchestration: the tool-calling loop.

The orchestrator drives one conversation to a plain answer:

1. Call the model with the full message list and the turn's tool definitions
2. If the reply requests tools, run every call concurrently and append the
   tool responses in call order
3. Repeat until the model answers, or fail once the round limit is exceeded

Each model call tries the primary model and then the fallbacks in order.
"""

import asyncio

import structlog

from ..errors import InferenceCancelledError, MaxToolIterationsError, ProviderError
from ..llm.base import OnMessage, OutputFormat, emit
from ..llm.factory import AdapterRegistry
from ..llm.messages import (
    AiMessage,
    Message,
    OutputMessage,
    ToolCall,
    ToolResponseMessage,
)
from ..tools import ToolRegistry

logger = structlog.get_logger()

DEFAULT_MAX_TOOL_ITERATIONS = 10


class Orchestrator:
    """Runs the model/tool loop against an adapter registry."""

    def __init__(
        self,
        adapters: AdapterRegistry,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
    ):
        self.adapters = adapters
        self.max_tool_iterations = max_tool_iterations

    async def run(
        self,
        models: list[str],
        messages: list[Message],
        tools: ToolRegistry | None = None,
        format: OutputFormat | None = None,
        on_message: OnMessage | None = None,
        signal: asyncio.Event | None = None,
        agent_name: str | None = None,
        recursive: bool = True,
    ) -> OutputMessage:
        """Run the loop until the model produces a plain answer.

        With ``recursive=False`` the first reply is returned as is, even
        when it requests tool calls.
        """
        registry = tools or ToolRegistry()
        history = list(messages)
        rounds = 0

        while True:
            if signal is not None and signal.is_set():
                raise InferenceCancelledError("Cancelled by caller")

            reply = await self.infer(
                models,
                history,
                registry,
                format=format,
                on_message=on_message,
                signal=signal,
                agent_name=agent_name,
            )

            if isinstance(reply, AiMessage) or not recursive:
                return reply

            if rounds >= self.max_tool_iterations:
                logger.error(
                    "Tool iteration limit exceeded",
                    agent=agent_name,
                    max_iterations=self.max_tool_iterations,
                )
                raise MaxToolIterationsError(self.max_tool_iterations)

            rounds += 1
            logger.info(
                "Executing tool round",
                agent=agent_name,
                iteration=rounds,
                calls=[call.tool_name for call in reply.calls],
            )

            responses = await self.execute_calls(reply.calls, registry)
            history.append(reply)
            for response in responses:
                await emit(on_message, response)
                history.append(response)

    async def infer(
        self,
        models: list[str],
        messages: list[Message],
        tools: ToolRegistry,
        format: OutputFormat | None = None,
        on_message: OnMessage | None = None,
        signal: asyncio.Event | None = None,
        agent_name: str | None = None,
    ) -> OutputMessage:
        """One model call, falling back through ``models`` on provider errors."""
        # Bad identifiers fail the turn before any model is called
        resolved = [(identifier, *self.adapters.resolve(identifier)) for identifier in models]

        definitions = tools.get_definitions() or None
        last_error: ProviderError | None = None

        for identifier, adapter, model in resolved:
            try:
                return await adapter.infer(
                    model,
                    messages,
                    tools=definitions,
                    format=format,
                    on_message=on_message,
                    signal=signal,
                    agent_name=agent_name,
                )
            except ProviderError as e:
                last_error = e
                logger.warning("Model call failed", model=identifier, error=str(e))

        if last_error is None:
            raise ValueError("At least one model is required")
        raise last_error

    async def execute_calls(
        self,
        calls: list[ToolCall],
        registry: ToolRegistry,
    ) -> list[ToolResponseMessage]:
        """Run tool calls concurrently; one response per call, in call order."""
        results = await asyncio.gather(
            *(registry.execute(call) for call in calls),
            return_exceptions=True,
        )

        responses = []
        for call, result in zip(calls, results):
            if isinstance(result, (InferenceCancelledError, asyncio.CancelledError)):
                raise result
            if isinstance(result, BaseException):
                logger.error("Tool call failed", tool=call.tool_name, error=str(result))
                responses.append(ToolResponseMessage(call_id=call.id, content=f"Error: {result}"))
            else:
                responses.append(result.to_message())
        return responses
