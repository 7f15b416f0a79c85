"""
Base classes for model provider adapters.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, TypeVar

from ..errors import InferenceCancelledError
from .messages import Message, OutputMessage

T = TypeVar("T")

OnMessage = Callable[[Message], Awaitable[None] | None]
OutputFormat = Literal["json"]


@dataclass
class ToolDefinition:
    """Definition of a tool that the model can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class Document:
    """A piece of text to embed."""

    content: str
    model: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Embedding:
    """Embedding vectors produced for one document."""

    model: str
    embeddings: list[list[float]]


async def cancellable(awaitable: Awaitable[T], signal: asyncio.Event | None) -> T:
    """Await ``awaitable`` unless ``signal`` fires first.

    When the signal is set the underlying task is cancelled, which aborts
    the in-flight HTTP request, and InferenceCancelledError is raised.
    """
    if signal is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if signal.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise InferenceCancelledError("Cancelled before the call started")

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if task.cancelled():
        raise InferenceCancelledError("Cancelled by caller")
    return task.result()


async def emit(on_message: OnMessage | None, message: Message) -> None:
    """Deliver a message to a sync or async ``on_message`` hook."""
    if on_message is None:
        return
    result = on_message(message)
    if inspect.isawaitable(result):
        await result


class ModelAdapter(ABC):
    """Base class for model provider adapters."""

    def __init__(
        self,
        api_key: str = "",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass

    @abstractmethod
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
        """Run one model call and return the normalized reply."""
        pass

    @abstractmethod
    async def embed(self, model: str, documents: list[Document]) -> list[Embedding]:
        """Embed documents, one Embedding per document."""
        pass

    @abstractmethod
    async def list_models(self) -> list[str]:
        """List the model names the provider serves."""
        pass

    async def ask(
        self,
        model: str,
        message: Message,
        tools: list[ToolDefinition] | None = None,
        agent_name: str | None = None,
        signal: asyncio.Event | None = None,
    ) -> OutputMessage:
        """Send a single message to the model."""
        return await self.infer(
            model,
            [message],
            tools=tools,
            signal=signal,
            agent_name=agent_name,
        )
