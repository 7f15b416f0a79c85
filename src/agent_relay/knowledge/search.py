"""
Knowledge base search: embed through the adapter registry, then query the index.
"""

import structlog

from ..llm.base import Document
from ..llm.factory import AdapterRegistry
from ..records import KnowledgeBase
from .base import SearchResult, VectorIndex

logger = structlog.get_logger()


class KnowledgeSearch:
    """Embeds documents and queries with the knowledge base's model."""

    def __init__(self, adapters: AdapterRegistry, index: VectorIndex):
        self.adapters = adapters
        self.index = index

    async def add_documents(self, kb: KnowledgeBase, documents: list[Document]) -> list[str]:
        """Embed and index documents into a knowledge base."""
        for doc in documents:
            if not doc.content.strip():
                raise ValueError("Document content cannot be empty")

        model = kb.embedding_model
        embeddings = await self.adapters.embed(model, documents)
        ids = await self.index.add(
            kb.name,
            [doc.content for doc in documents],
            [e.embeddings[0] for e in embeddings],
            model,
            [doc.metadata for doc in documents],
        )
        logger.info("Documents indexed", knowledge_base=kb.name, count=len(ids))
        return ids

    async def search(
        self,
        kb: KnowledgeBase,
        query: str,
        k: int,
        model_filter: str | None = None,
    ) -> list[SearchResult]:
        """Top-k documents most similar to the query."""
        model = model_filter or kb.embedding_model
        embeddings = await self.adapters.embed(model, [Document(content=query)])
        if not embeddings:
            return []
        return await self.index.search(kb.name, embeddings[0].embeddings[0], k, model_filter=model)
