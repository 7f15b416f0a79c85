"""Simple in-memory VectorIndex used for testing or single-process deployments."""

from dataclasses import dataclass

import numpy as np

from .base import Metadata, SearchResult, VectorIndex


@dataclass
class _StoredDoc:
    id: str
    content: str
    model: str
    embedding: np.ndarray
    metadata: Metadata


class InMemoryVectorIndex(VectorIndex):
    """Cosine-similarity index kept in process memory."""

    def __init__(self) -> None:
        self._collections: dict[str, list[_StoredDoc]] = {}

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

        docs = self._collections.setdefault(knowledge_base, [])
        ids = []
        for idx, content in enumerate(contents):
            doc_id = f"{knowledge_base}:{len(docs)}"
            docs.append(_StoredDoc(
                id=doc_id,
                content=content,
                model=model,
                embedding=np.array(embeddings[idx], dtype=float),
                metadata=(metadatas[idx] if metadatas else {}) or {},
            ))
            ids.append(doc_id)
        return ids

    async def search(
        self,
        knowledge_base: str,
        query_embedding: list[float],
        k: int,
        model_filter: str | None = None,
    ) -> list[SearchResult]:
        query = np.array(query_embedding, dtype=float)
        results = []
        for stored in self._collections.get(knowledge_base, []):
            if model_filter and stored.model != model_filter:
                continue
            if stored.embedding.shape != query.shape:
                continue
            results.append(SearchResult(
                id=stored.id,
                content=stored.content,
                model=stored.model,
                similarity=self._similarity(stored.embedding, query),
                metadata=stored.metadata,
            ))
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:k]

    def _similarity(self, a: np.ndarray, b: np.ndarray) -> float:
        denom = (np.linalg.norm(a) * np.linalg.norm(b)) or 1.0
        return float(np.dot(a, b) / denom)
