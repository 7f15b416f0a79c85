"""
Shared fixtures: a scripted model adapter and a throwaway SQLite store.
"""

import pytest
import pytest_asyncio

from agent_relay.config import Settings
from agent_relay.llm import AdapterRegistry
from agent_relay.llm.base import Document, Embedding, ModelAdapter, emit
from agent_relay.store import SQLRecordStore


class ScriptedAdapter(ModelAdapter):
    """Replies from a script; each entry is a message, an exception, or a
    callable taking the request messages and returning a message."""

    def __init__(self, replies=None, provider="fake", vectors=None):
        super().__init__()
        self.replies = list(replies or [])
        self.calls = []
        self.vectors = vectors or {}
        self._provider = provider

    @property
    def provider_name(self) -> str:
        return self._provider

    async def infer(
        self,
        model,
        messages,
        tools=None,
        format=None,
        on_message=None,
        signal=None,
        agent_name=None,
    ):
        self.calls.append({
            "model": model,
            "messages": list(messages),
            "tools": tools,
            "format": format,
            "agent_name": agent_name,
        })
        if not self.replies:
            raise AssertionError("No scripted reply left")

        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages)

        await emit(on_message, reply)
        return reply

    async def embed(self, model, documents: list[Document]) -> list[Embedding]:
        return [
            Embedding(model=model, embeddings=[self.vectors.get(doc.content, [0.0, 0.0, 1.0])])
            for doc in documents
        ]

    async def list_models(self) -> list[str]:
        return ["model"]


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="sk-test",
        anthropic_api_key="sk-ant-test",
        openrouter_api_key="sk-or-test",
        max_tool_iterations=10,
        _env_file=None,
    )


@pytest.fixture
def adapter():
    return ScriptedAdapter()


@pytest.fixture
def adapters(settings, adapter):
    registry = AdapterRegistry(settings)
    registry.register("fake", adapter)
    return registry


@pytest_asyncio.fixture
async def store(tmp_path):
    store = await SQLRecordStore.connect(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    yield store
    await store.close()
