"""Abstract vector index interface and shared dataclasses."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

Metadata = dict[str, Any]


@dataclass
class SearchResult:
    """A document returned by a similarity search."""

    id: str
    content: str
    model: str
    similarity: float
    metadata: Metadata = field(default_factory=dict)


class VectorIndex(ABC):
    """Backend-agnostic similarity search over knowledge bases."""

    @abstractmethod
    async def add(
        self,
        knowledge_base: str,
        contents: list[str],
        embeddings: list[list[float]],
        model: str,
        metadatas: list[Metadata] | None = None,
    ) -> list[str]:
        """Insert documents and return their ids."""

    @abstractmethod
    async def search(
        self,
        knowledge_base: str,
        query_embedding: list[float],
        k: int,
        model_filter: str | None = None,
    ) -> list[SearchResult]:
        """Return the top-k most similar documents."""
