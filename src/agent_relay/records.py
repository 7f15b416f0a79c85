"""
Domain records handed out by the record store, and the scaling config union.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal, Union

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = structlog.get_logger()


@dataclass
class ToolRecord:
    """A registered HTTP tool."""

    id: str
    name: str
    endpoint: str
    method: str
    description: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class KnowledgeBase:
    """A named collection of embedded documents."""

    id: str
    name: str
    embedding_model: str
    database_provider: str = "memory"
    description: str | None = None
    models: list[str] = field(default_factory=list)


@dataclass
class Agent:
    """A configured agent.

    ``helper_agent_ids`` are references; helpers are loaded on demand so
    cyclic helper graphs can be stored.
    """

    id: str
    name: str
    prompt: str
    primary_model: str
    description: str | None = None
    fallback_models: list[str] = field(default_factory=list)
    output_format: Literal["json"] | None = None
    tools: list[ToolRecord] = field(default_factory=list)
    knowledge_bases: list[KnowledgeBase] = field(default_factory=list)
    helper_agent_ids: list[str] = field(default_factory=list)

    @property
    def models(self) -> list[str]:
        """Primary model followed by fallbacks."""
        return [self.primary_model, *self.fallback_models]


@dataclass
class Thread:
    """A persisted conversation context."""

    id: str
    platform: str | None = None
    description: str | None = None
    default_agent_id: str | None = None
    scaling_algorithm: str | None = None
    scaling_config: dict[str, Any] | None = None


@dataclass
class Summary:
    """A cached condensation of a message range."""

    id: str
    context_id: str
    content: str
    start_message_id: str | None = None
    end_message_id: str | None = None
    block_number: int | None = None
    created_at: datetime | None = None


class WindowScaling(BaseModel):
    algorithm: Literal["window"] = "window"
    size: int = Field(gt=0)


class ThresholdScaling(BaseModel):
    algorithm: Literal["threshold"] = "threshold"
    total_window: int = Field(gt=0)
    summarization_threshold: int = Field(ge=0)


class BlockScaling(BaseModel):
    algorithm: Literal["block"] = "block"
    block_size: int = Field(gt=0)
    max_blocks: int | None = Field(default=None, gt=0)
    block_summarization_threshold: int | None = Field(default=None, ge=0)


ScalingConfig = Annotated[
    Union[WindowScaling, ThresholdScaling, BlockScaling],
    Field(discriminator="algorithm"),
]

_scaling_adapter: TypeAdapter = TypeAdapter(ScalingConfig)


def parse_scaling_config(
    algorithm: str | None,
    config: dict[str, Any] | None,
) -> WindowScaling | ThresholdScaling | BlockScaling | None:
    """Parse a persisted (algorithm, config) pair.

    Returns None when nothing is configured or the pair is not usable;
    unusable configs are logged, not raised.
    """
    if not algorithm or config is None:
        return None

    try:
        return _scaling_adapter.validate_python({**config, "algorithm": algorithm})
    except ValidationError as e:
        logger.warning(
            "Unusable scaling config, using full history",
            algorithm=algorithm,
            error=str(e),
        )
        return None
