"""
Turns: stateless agent calls and stateful thread calls.
"""

import asyncio

import httpx
import structlog

from ..config import Settings, get_settings
from ..errors import AgentCycleError, NotFoundError
from ..knowledge import KnowledgeSearch
from ..llm.base import OnMessage, emit
from ..llm.factory import AdapterRegistry
from ..llm.messages import HumanMessage, Message, OutputMessage, SystemMessage
from ..records import Agent
from ..store import RecordStore
from ..tools import (
    ToolContext,
    ToolRegistry,
    create_agent_tool,
    create_http_tool,
    create_knowledge_base_tool,
)
from .core import Orchestrator
from .scaling import ContextScaler

logger = structlog.get_logger()

DEFAULT_PLATFORM = "api"


class TurnRunner:
    """Runs agent and thread turns against a record store.

    Owns the HTTP client used by tools unless one is passed in; use it as
    an async context manager or call ``aclose``.
    """

    def __init__(
        self,
        store: RecordStore,
        adapters: AdapterRegistry,
        knowledge_search: KnowledgeSearch | None = None,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.adapters = adapters
        self.knowledge_search = knowledge_search
        self.orchestrator = Orchestrator(adapters, self.settings.max_tool_iterations)
        self.scaler = ContextScaler(store, adapters)

        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=self.settings.http_tool_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "TurnRunner":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def build_tools(
        self,
        agent: Agent,
        context: ToolContext,
        stack: tuple[Agent, ...],
        signal: asyncio.Event | None = None,
    ) -> ToolRegistry:
        """Resolve an agent's tools, knowledge bases and helper agents.

        ``stack`` holds the agents currently running, outermost first; a
        helper already on it fails with AgentCycleError when called.
        """
        registry = ToolRegistry()

        for record in agent.tools:
            registry.register(create_http_tool(record, context, self.http_client, signal))

        if agent.knowledge_bases:
            if self.knowledge_search is None:
                logger.warning("No knowledge search configured, skipping knowledge bases", agent=agent.name)
            else:
                for kb in agent.knowledge_bases:
                    registry.register(create_knowledge_base_tool(kb, self.knowledge_search))

        async def delegate(helper: Agent, message: HumanMessage) -> OutputMessage:
            if any(running.id == helper.id for running in stack):
                raise AgentCycleError(helper.name, [running.name for running in stack])

            logger.info("Delegating to helper agent", agent=agent.name, helper=helper.name)
            helper_context = ToolContext(
                platform=context.platform,
                latest_message=message,
                author_id=context.author_id,
            )
            helper_tools = await self.build_tools(helper, helper_context, (*stack, helper), signal)
            return await self.orchestrator.run(
                helper.models,
                [SystemMessage(content=helper.prompt), message],
                tools=helper_tools,
                format=helper.output_format,
                signal=signal,
                agent_name=helper.name,
            )

        for helper in await self.store.get_helper_agents(agent):
            registry.register(create_agent_tool(helper, agent, delegate))

        return registry

    async def run_agent_turn(
        self,
        agent_name: str,
        new_message: HumanMessage,
        on_message: OnMessage | None = None,
        signal: asyncio.Event | None = None,
    ) -> OutputMessage:
        """Stateless turn: the agent's prompt plus one new message."""
        agent = await self.store.get_agent_by_name(agent_name)
        if agent is None:
            raise NotFoundError("Agent", agent_name)

        context = ToolContext(
            platform=DEFAULT_PLATFORM,
            latest_message=new_message,
            author_id=new_message.author_id,
        )
        tools = await self.build_tools(agent, context, (agent,), signal)

        logger.info("Running agent turn", agent=agent.name, tools=tools.list_tools())
        return await self.orchestrator.run(
            agent.models,
            [SystemMessage(content=agent.prompt), new_message],
            tools=tools,
            format=agent.output_format,
            on_message=on_message,
            signal=signal,
            agent_name=agent.name,
        )

    async def run_thread_turn(
        self,
        thread_id: str,
        new_message: HumanMessage,
        agent_name: str | None = None,
        on_message: OnMessage | None = None,
        signal: asyncio.Event | None = None,
    ) -> OutputMessage:
        """Stateful turn: scaled thread history, then persist what was said."""
        thread = await self.store.get_thread(thread_id)
        if thread is None:
            raise NotFoundError("Thread", thread_id)

        agent = await self._thread_agent(thread_id, thread.default_agent_id, agent_name)

        context = ToolContext(
            platform=thread.platform or DEFAULT_PLATFORM,
            latest_message=new_message,
            author_id=new_message.author_id,
        )
        tools = await self.build_tools(agent, context, (agent,), signal)

        history = await self.store.get_thread_messages(thread_id)
        scaled = await self.scaler.scale(thread, agent, history, signal=signal)

        produced: list[Message] = []

        async def record(message: Message) -> None:
            produced.append(message)
            await emit(on_message, message)

        logger.info(
            "Running thread turn",
            thread_id=thread_id,
            agent=agent.name,
            history=len(history),
            scaled=len(scaled),
        )
        result = await self.orchestrator.run(
            agent.models,
            [SystemMessage(content=agent.prompt), *scaled, new_message],
            tools=tools,
            format=agent.output_format,
            on_message=record,
            signal=signal,
            agent_name=agent.name,
        )

        await self.store.add_messages_to_thread(thread_id, [new_message, *produced])
        return result

    async def _thread_agent(
        self,
        thread_id: str,
        default_agent_id: str | None,
        agent_name: str | None,
    ) -> Agent:
        if agent_name:
            agent = await self.store.get_agent_by_name(agent_name)
            if agent is None:
                raise NotFoundError("Agent", agent_name)
            return agent

        if default_agent_id is None:
            raise NotFoundError("Default agent for thread", thread_id)

        agent = await self.store.get_agent(default_agent_id)
        if agent is None:
            raise NotFoundError("Agent", default_agent_id)
        return agent
