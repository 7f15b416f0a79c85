"""
Tests for knowledge base indexing and search.
"""

import pytest

from agent_relay.knowledge import InMemoryVectorIndex, KnowledgeSearch, SQLVectorIndex
from agent_relay.llm.base import Document
from agent_relay.records import KnowledgeBase
from agent_relay.store import SQLRecordStore

KB = KnowledgeBase(id="kb1", name="handbook", embedding_model="fake/embedder")


@pytest.mark.asyncio
async def test_index_orders_by_similarity():
    """Test results come back most similar first."""
    index = InMemoryVectorIndex()
    await index.add("handbook", ["north", "east", "north-east"], [[0, 1], [1, 0], [1, 1]], "m")

    results = await index.search("handbook", [0, 1], k=2)

    assert [r.content for r in results] == ["north", "north-east"]
    assert results[0].similarity == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_index_filters_by_model():
    """Test embeddings from other models are ignored."""
    index = InMemoryVectorIndex()
    await index.add("handbook", ["old"], [[1, 0]], "old-model")
    await index.add("handbook", ["new"], [[1, 0]], "new-model", [{"source": "wiki"}])

    results = await index.search("handbook", [1, 0], k=5, model_filter="new-model")

    assert [(r.content, r.metadata) for r in results] == [("new", {"source": "wiki"})]


@pytest.mark.asyncio
async def test_index_unknown_knowledge_base():
    """Test searching an empty knowledge base returns nothing."""
    assert await InMemoryVectorIndex().search("nothing", [1.0], k=3) == []


@pytest.mark.asyncio
async def test_search_embeds_with_knowledge_base_model(adapters, adapter):
    """Test documents and queries are embedded with the knowledge base's model."""
    adapter.vectors = {
        "Vacation is 25 days": [1.0, 0.0],
        "Parking is free": [0.0, 1.0],
        "how much vacation": [0.8, 0.2],
    }
    search = KnowledgeSearch(adapters, InMemoryVectorIndex())

    ids = await search.add_documents(KB, [
        Document(content="Vacation is 25 days", metadata={"page": 4}),
        Document(content="Parking is free"),
    ])
    results = await search.search(KB, "how much vacation", k=1)

    assert ids == ["handbook:0", "handbook:1"]
    assert [(r.content, r.metadata) for r in results] == [("Vacation is 25 days", {"page": 4})]
    assert results[0].model == "fake/embedder"


@pytest.mark.asyncio
async def test_add_empty_document_rejected(adapters):
    """Test empty documents are refused."""
    search = KnowledgeSearch(adapters, InMemoryVectorIndex())

    with pytest.raises(ValueError):
        await search.add_documents(KB, [Document(content="   ")])


@pytest.mark.asyncio
async def test_sql_index_orders_and_filters(store):
    """Test the database index ranks by similarity within one knowledge base and model."""
    index = SQLVectorIndex(store.session_maker)
    ids = await index.add(
        "handbook",
        ["north", "east", "north-east"],
        [[0, 1], [1, 0], [1, 1]],
        "m",
        [{"page": 1}, {"page": 2}, {"page": 3}],
    )
    await index.add("handbook", ["stale north"], [[0, 1]], "old-model")
    await index.add("other", ["other north"], [[0, 1]], "m")

    results = await index.search("handbook", [0, 1], k=2, model_filter="m")

    assert len(set(ids)) == 3
    assert [(r.content, r.metadata) for r in results] == [("north", {"page": 1}), ("north-east", {"page": 3})]
    assert results[0].id == ids[0]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(0.7071, abs=1e-3)


@pytest.mark.asyncio
async def test_sql_index_survives_reconnect(tmp_path):
    """Test documents indexed through one store are found through the next."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'kb.db'}"
    first = await SQLRecordStore.connect(url)
    await SQLVectorIndex(first.session_maker).add("handbook", ["kept"], [[1.0, 0.0]], "m")
    await first.close()

    second = await SQLRecordStore.connect(url)
    try:
        results = await SQLVectorIndex(second.session_maker).search("handbook", [1.0, 0.0], k=5)
    finally:
        await second.close()

    assert [r.content for r in results] == ["kept"]


@pytest.mark.asyncio
async def test_sql_index_empty_and_mismatched(store):
    """Test unknown knowledge bases and other dimensions return nothing."""
    index = SQLVectorIndex(store.session_maker)
    await index.add("handbook", ["flat"], [[1.0, 0.0, 0.0]], "m")

    assert await index.search("nothing", [1.0, 0.0], k=3) == []
    assert await index.search("handbook", [1.0, 0.0], k=3) == []
