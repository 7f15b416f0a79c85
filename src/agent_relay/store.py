"""
Record store for agents, tools, knowledge bases, threads, messages and summaries.

``RecordStore`` is the interface the engine depends on; ``SQLRecordStore``
implements it on SQLAlchemy's async ORM.
"""

import dataclasses
from abc import ABC, abstractmethod
from typing import Any, Iterable

import structlog
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from .errors import NotFoundError
from .llm.messages import (
    AiMessage,
    HumanMessage,
    Message,
    SystemMessage,
    ToolCallsMessage,
    ToolResponseMessage,
    message_from_dict,
    message_to_dict,
)
from .models import (
    AgentModel,
    ContextModel,
    KnowledgeBaseModel,
    MessageModel,
    SummaryModel,
    ToolModel,
    agent_helpers,
    agent_knowledge_bases,
    agent_tools,
    init_database,
)
from .records import Agent, KnowledgeBase, Summary, Thread, ToolRecord

logger = structlog.get_logger()


class RecordStore(ABC):
    """Persistence the engine depends on."""

    @abstractmethod
    async def get_agent(self, agent_id: str) -> Agent | None:
        pass

    @abstractmethod
    async def get_agent_by_name(self, name: str) -> Agent | None:
        pass

    @abstractmethod
    async def get_thread(self, thread_id: str) -> Thread | None:
        pass

    @abstractmethod
    async def get_thread_messages(self, thread_id: str) -> list[Message]:
        """All messages of a thread, oldest first."""
        pass

    @abstractmethod
    async def add_messages_to_thread(self, thread_id: str, messages: list[Message]) -> list[Message]:
        """Append messages in one transaction and return them with ids."""
        pass

    @abstractmethod
    async def get_latest_summary(self, context_id: str) -> Summary | None:
        """Most recent summary not tied to a block."""
        pass

    @abstractmethod
    async def get_block_summaries(self, context_id: str) -> list[Summary]:
        """Block summaries ordered by block number."""
        pass

    @abstractmethod
    async def add_summary(
        self,
        context_id: str,
        content: str,
        start_message_id: str | None,
        end_message_id: str | None,
        block_number: int | None = None,
    ) -> Summary:
        pass

    async def get_helper_agents(self, agent: Agent) -> list[Agent]:
        """Load the helper agents an agent references."""
        helpers = []
        for helper_id in agent.helper_agent_ids:
            helper = await self.get_agent(helper_id)
            if helper is None:
                raise NotFoundError("Helper agent", helper_id)
            helpers.append(helper)
        return helpers


def _tool_record(row: ToolModel) -> ToolRecord:
    return ToolRecord(
        id=row.id,
        name=row.name,
        description=row.description,
        parameters=row.parameters or {},
        endpoint=row.endpoint,
        method=row.method,
    )


def _knowledge_base(row: KnowledgeBaseModel) -> KnowledgeBase:
    return KnowledgeBase(
        id=row.id,
        name=row.name,
        description=row.description,
        embedding_model=row.embedding_model,
        database_provider=row.database_provider,
        models=list(row.models or [row.embedding_model]),
    )


def _thread(row: ContextModel) -> Thread:
    return Thread(
        id=row.id,
        platform=row.platform,
        description=row.description,
        default_agent_id=row.default_agent_id,
        scaling_algorithm=row.scaling_algorithm,
        scaling_config=row.scaling_config,
    )


def _summary(row: SummaryModel) -> Summary:
    return Summary(
        id=row.id,
        context_id=row.context_id,
        content=row.summary_content,
        start_message_id=row.start_message_id,
        end_message_id=row.end_message_id,
        block_number=row.block_number,
        created_at=row.created_at,
    )


def _message_row(thread_id: str, position: int, message: Message) -> dict[str, Any]:
    data = message_to_dict(message)
    row: dict[str, Any] = {
        "context_id": thread_id,
        "position": position,
        "role": message.role,
        "name": data.get("name"),
        "content": None,
        "parts": None,
        "call_id": None,
        "calls": None,
        "author_id": data.get("authorId"),
    }

    match message:
        case HumanMessage(content=str() as content):
            row["content"] = content
        case HumanMessage():
            row["parts"] = data["content"]
        case SystemMessage(content=content) | AiMessage(content=content):
            row["content"] = content
        case ToolCallsMessage(content=content):
            row["content"] = content
            row["calls"] = data["calls"]
        case ToolResponseMessage(call_id=call_id, content=content):
            row["content"] = content
            row["call_id"] = call_id
        case _:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")

    return row


def _message(row: MessageModel) -> Message:
    data: dict[str, Any] = {
        "role": row.role,
        "name": row.name,
        "content": row.parts if row.parts is not None else row.content,
        "calls": row.calls,
        "id": row.call_id,
        "authorId": row.author_id,
    }
    message = message_from_dict(data)
    message.db_id = row.id
    message.context_id = row.context_id
    message.created_at = row.created_at
    return message


class SQLRecordStore(RecordStore):
    """RecordStore backed by SQLAlchemy async sessions."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    @classmethod
    async def connect(cls, database_url: str) -> "SQLRecordStore":
        """Create tables if needed and return a store."""
        return cls(await init_database(database_url))

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self.session_maker.kw["bind"].dispose()

    async def _agent(self, session, row: AgentModel) -> Agent:
        result = await session.execute(
            select(agent_helpers.c.helper_id).where(agent_helpers.c.agent_id == row.id)
        )
        return Agent(
            id=row.id,
            name=row.name,
            description=row.description,
            prompt=row.prompt,
            primary_model=row.primary_model,
            fallback_models=list(row.fallback_models or []),
            output_format=row.output_format,  # type: ignore[arg-type]
            tools=[_tool_record(t) for t in row.tools],
            knowledge_bases=[_knowledge_base(kb) for kb in row.knowledge_bases],
            helper_agent_ids=list(result.scalars().all()),
        )

    async def get_agent(self, agent_id: str) -> Agent | None:
        async with self.session_maker() as session:
            row = await session.get(AgentModel, agent_id)
            return await self._agent(session, row) if row else None

    async def get_agent_by_name(self, name: str) -> Agent | None:
        async with self.session_maker() as session:
            result = await session.execute(select(AgentModel).where(AgentModel.name == name))
            row = result.scalar_one_or_none()
            return await self._agent(session, row) if row else None

    async def get_thread(self, thread_id: str) -> Thread | None:
        async with self.session_maker() as session:
            row = await session.get(ContextModel, thread_id)
            return _thread(row) if row else None

    async def get_thread_messages(self, thread_id: str) -> list[Message]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(MessageModel)
                .where(MessageModel.context_id == thread_id)
                .order_by(MessageModel.position)
            )
            return [_message(row) for row in result.scalars().all()]

    async def add_messages_to_thread(self, thread_id: str, messages: list[Message]) -> list[Message]:
        stored: list[Message] = []
        async with self.session_maker() as session:
            async with session.begin():
                if await session.get(ContextModel, thread_id) is None:
                    raise NotFoundError("Thread", thread_id)

                result = await session.execute(
                    select(func.coalesce(func.max(MessageModel.position), -1))
                    .where(MessageModel.context_id == thread_id)
                )
                position = result.scalar_one() + 1

                for offset, message in enumerate(messages):
                    row = MessageModel(**_message_row(thread_id, position + offset, message))
                    session.add(row)
                    await session.flush()
                    stored.append(dataclasses.replace(message, db_id=row.id, context_id=thread_id))

        logger.info("Messages added to thread", thread_id=thread_id, count=len(stored))
        return stored

    async def get_latest_summary(self, context_id: str) -> Summary | None:
        async with self.session_maker() as session:
            result = await session.execute(
                select(SummaryModel)
                .where(SummaryModel.context_id == context_id, SummaryModel.block_number.is_(None))
                .order_by(SummaryModel.created_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _summary(row) if row else None

    async def get_block_summaries(self, context_id: str) -> list[Summary]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(SummaryModel)
                .where(SummaryModel.context_id == context_id, SummaryModel.block_number.is_not(None))
                .order_by(SummaryModel.block_number)
            )
            return [_summary(row) for row in result.scalars().all()]

    async def add_summary(
        self,
        context_id: str,
        content: str,
        start_message_id: str | None,
        end_message_id: str | None,
        block_number: int | None = None,
    ) -> Summary:
        async with self.session_maker() as session:
            async with session.begin():
                row = SummaryModel(
                    context_id=context_id,
                    summary_content=content,
                    start_message_id=start_message_id,
                    end_message_id=end_message_id,
                    block_number=block_number,
                )
                session.add(row)
            await session.refresh(row)
            logger.info("Summary stored", context_id=context_id, block_number=block_number)
            return _summary(row)

    async def get_tool_by_name(self, name: str) -> ToolRecord | None:
        async with self.session_maker() as session:
            result = await session.execute(select(ToolModel).where(ToolModel.name == name))
            row = result.scalar_one_or_none()
            return _tool_record(row) if row else None

    async def get_knowledge_base_by_name(self, name: str) -> KnowledgeBase | None:
        async with self.session_maker() as session:
            result = await session.execute(
                select(KnowledgeBaseModel).where(KnowledgeBaseModel.name == name)
            )
            row = result.scalar_one_or_none()
            return _knowledge_base(row) if row else None

    async def create_tool(
        self,
        name: str,
        endpoint: str,
        method: str = "GET",
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> ToolRecord:
        async with self.session_maker() as session:
            async with session.begin():
                row = ToolModel(
                    name=name,
                    endpoint=endpoint,
                    method=method.upper(),
                    description=description,
                    parameters=parameters or {},
                )
                session.add(row)
            return _tool_record(row)

    async def create_knowledge_base(
        self,
        name: str,
        embedding_model: str,
        description: str | None = None,
        database_provider: str = "memory",
    ) -> KnowledgeBase:
        async with self.session_maker() as session:
            async with session.begin():
                row = KnowledgeBaseModel(
                    name=name,
                    embedding_model=embedding_model,
                    description=description,
                    database_provider=database_provider,
                    models=[embedding_model],
                )
                session.add(row)
            return _knowledge_base(row)

    async def create_agent(
        self,
        name: str,
        prompt: str,
        primary_model: str,
        description: str | None = None,
        fallback_models: list[str] | None = None,
        output_format: str | None = None,
        tool_ids: Iterable[str] = (),
        knowledge_base_ids: Iterable[str] = (),
        helper_agent_ids: Iterable[str] = (),
    ) -> Agent:
        async with self.session_maker() as session:
            async with session.begin():
                row = AgentModel(
                    name=name,
                    prompt=prompt,
                    primary_model=primary_model,
                    description=description,
                    fallback_models=fallback_models or [],
                    output_format=output_format,
                )
                session.add(row)
                await session.flush()

                for tool_id in tool_ids:
                    await session.execute(insert(agent_tools).values(agent_id=row.id, tool_id=tool_id))
                for kb_id in knowledge_base_ids:
                    await session.execute(
                        insert(agent_knowledge_bases).values(agent_id=row.id, knowledge_base_id=kb_id)
                    )
                for helper_id in helper_agent_ids:
                    await session.execute(
                        insert(agent_helpers).values(agent_id=row.id, helper_id=helper_id)
                    )
            agent_id = row.id

        agent = await self.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        return agent

    async def add_helper_agent(self, agent_id: str, helper_id: str) -> None:
        """Link an existing agent as a helper of another."""
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(insert(agent_helpers).values(agent_id=agent_id, helper_id=helper_id))

    async def create_thread(
        self,
        default_agent_id: str | None = None,
        scaling_algorithm: str | None = None,
        scaling_config: dict[str, Any] | None = None,
        platform: str | None = None,
        description: str | None = None,
    ) -> Thread:
        async with self.session_maker() as session:
            async with session.begin():
                row = ContextModel(
                    default_agent_id=default_agent_id,
                    scaling_algorithm=scaling_algorithm,
                    scaling_config=scaling_config,
                    platform=platform,
                    description=description,
                )
                session.add(row)
            return _thread(row)
