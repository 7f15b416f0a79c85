"""
Knowledge bases: vector index interface, in-memory and SQL indexes, and search.
"""

from .base import SearchResult, VectorIndex
from .memory import InMemoryVectorIndex
from .search import KnowledgeSearch
from .sql import SQLVectorIndex

__all__ = [
    "InMemoryVectorIndex",
    "KnowledgeSearch",
    "SQLVectorIndex",
    "SearchResult",
    "VectorIndex",
]
