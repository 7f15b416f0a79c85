"""VectorIndex persisted in the relational database.

Embeddings are stored as JSON arrays next to their content and ranked with
numpy at query time, so documents indexed by one process are searchable
from the next.
"""

import numpy as np
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models import DocumentModel
from .base import Metadata, SearchResult, VectorIndex

logger = structlog.get_logger()


class SQLVectorIndex(VectorIndex):
    """Cosine-similarity index over the ``documents`` table."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def add(
        self,
        knowledge_base: str,
        contents: list[str],
        embeddings: list[list[float]],
        model: str,
        metadatas: list[Metadata] | None = None,
    ) -> list[str]:
        if len(contents) != len(embeddings):
            raise ValueError("contents and embeddings must have the same length")

        rows = [
            DocumentModel(
                knowledge_base=knowledge_base,
                content=content,
                model=model,
                embedding=[float(v) for v in embeddings[idx]],
                doc_metadata=(metadatas[idx] if metadatas else {}) or {},
            )
            for idx, content in enumerate(contents)
        ]

        async with self.session_maker() as session:
            async with session.begin():
                session.add_all(rows)

        logger.debug("Documents stored", knowledge_base=knowledge_base, count=len(rows))
        return [row.id for row in rows]

    async def search(
        self,
        knowledge_base: str,
        query_embedding: list[float],
        k: int,
        model_filter: str | None = None,
    ) -> list[SearchResult]:
        query = select(DocumentModel).where(DocumentModel.knowledge_base == knowledge_base)
        if model_filter:
            query = query.where(DocumentModel.model == model_filter)

        async with self.session_maker() as session:
            result = await session.execute(query)
            rows = [row for row in result.scalars().all() if len(row.embedding) == len(query_embedding)]

        if not rows:
            return []

        matrix = np.array([row.embedding for row in rows], dtype=float)
        vector = np.array(query_embedding, dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
        norms[norms == 0] = 1.0
        similarities = matrix @ vector / norms

        ranked = np.argsort(-similarities)[:k]
        return [
            SearchResult(
                id=rows[i].id,
                content=rows[i].content,
                model=rows[i].model,
                similarity=float(similarities[i]),
                metadata=rows[i].doc_metadata or {},
            )
            for i in ranked
        ]
