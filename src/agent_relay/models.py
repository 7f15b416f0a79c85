"""
Database models for Agent Relay

Uses SQLAlchemy 2.0 async ORM for database operations.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Table, Text, func
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""
    pass


def _uuid() -> str:
    return str(uuid4())


agent_tools = Table(
    "agent_tools",
    Base.metadata,
    Column("agent_id", String(36), ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True),
    Column("tool_id", String(36), ForeignKey("tools.id", ondelete="CASCADE"), primary_key=True),
)

agent_knowledge_bases = Table(
    "agent_knowledge_bases",
    Base.metadata,
    Column("agent_id", String(36), ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "knowledge_base_id",
        String(36),
        ForeignKey("knowledge_bases.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

agent_helpers = Table(
    "agent_helpers",
    Base.metadata,
    Column("agent_id", String(36), ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True),
    Column("helper_id", String(36), ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True),
)


class AgentModel(Base):
    """Agent configuration."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt: Mapped[str] = mapped_column(Text)
    primary_model: Mapped[str] = mapped_column(String(255))
    fallback_models: Mapped[list[str]] = mapped_column(JSON, default=list)
    output_format: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    tools: Mapped[list["ToolModel"]] = relationship(secondary=agent_tools, lazy="selectin")
    knowledge_bases: Mapped[list["KnowledgeBaseModel"]] = relationship(
        secondary=agent_knowledge_bases, lazy="selectin"
    )


class ToolModel(Base):
    """HTTP tool registration."""

    __tablename__ = "tools"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    parameters: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    endpoint: Mapped[str] = mapped_column(Text)
    method: Mapped[str] = mapped_column(String(10))

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class KnowledgeBaseModel(Base):
    """Knowledge base registration."""

    __tablename__ = "knowledge_bases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    embedding_model: Mapped[str] = mapped_column(String(255))
    database_provider: Mapped[str] = mapped_column(String(50), default="memory")
    models: Mapped[list[str]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DocumentModel(Base):
    """An embedded knowledge base document."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    knowledge_base: Mapped[str] = mapped_column(String(255), index=True)
    content: Mapped[str] = mapped_column(Text)
    model: Mapped[str] = mapped_column(String(255), index=True)
    embedding: Mapped[list[float]] = mapped_column(JSON)
    # "metadata" is reserved on declarative classes
    doc_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ContextModel(Base):
    """Thread/context with its scaling policy."""

    __tablename__ = "contexts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    platform: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_agent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("agents.id", ondelete="SET NULL"), nullable=True
    )
    scaling_algorithm: Mapped[str | None] = mapped_column(String(20), nullable=True)
    scaling_config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class MessageModel(Base):
    """A persisted conversation message."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    context_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contexts.id", ondelete="CASCADE"), index=True
    )
    # Position within the context; messages of one turn share a timestamp
    position: Mapped[int] = mapped_column(Integer)

    role: Mapped[str] = mapped_column(String(20))
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    parts: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    call_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    calls: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    author_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class SummaryModel(Base):
    """A cached summary of a message range."""

    __tablename__ = "summaries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    context_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contexts.id", ondelete="CASCADE"), index=True
    )
    start_message_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    end_message_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    summary_content: Mapped[str] = mapped_column(Text)
    block_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


async def init_database(database_url: str) -> async_sessionmaker:
    """Initialize the database and return session maker."""
    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False)
