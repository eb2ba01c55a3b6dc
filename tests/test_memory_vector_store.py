"""Tests for the in-memory vector store."""

import pytest

from src.core import VectorStoreException
from src.infrastructure.vectorstore import ArticleRecord, ChunkRecord, InMemoryVectorStore


def chunk(chunk_id: str, document_id: str, index: int, embedding, content: str = "text") -> ChunkRecord:
    return ChunkRecord(
        id=chunk_id,
        document_id=document_id,
        document_title=f"Title {document_id}",
        chunk_index=index,
        content=content,
        embedding=embedding,
        char_start=0,
        char_end=len(content),
        token_count=1,
    )


@pytest.fixture
def store():
    return InMemoryVectorStore()


@pytest.mark.asyncio
async def test_chunks_hidden_until_document_is_searchable(store):
    await store.add_chunk(chunk("c1", "doc-1", 0, [1.0, 0.0]))

    assert await store.search([1.0, 0.0], threshold=0.0, limit=5) == []

    await store.set_document_searchable("doc-1", True)

    matches = await store.search([1.0, 0.0], threshold=0.0, limit=5)
    assert [m.id for m in matches] == ["c1"]
    assert matches[0].document_title == "Title doc-1"


@pytest.mark.asyncio
async def test_threshold_is_strict(store):
    await store.add_chunk(chunk("c1", "doc-1", 0, [1.0, 0.0]))
    await store.set_document_searchable("doc-1", True)

    assert await store.search([1.0, 0.0], threshold=1.0, limit=5) == []
    matches = await store.search([1.0, 0.0], threshold=0.999, limit=5)
    assert matches[0].similarity == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_results_ordered_by_similarity_then_id(store):
    await store.add_chunk(chunk("b", "doc-1", 0, [1.0, 0.0]))
    await store.add_chunk(chunk("a", "doc-1", 1, [2.0, 0.0]))
    await store.add_chunk(chunk("c", "doc-1", 2, [1.0, 1.0]))
    await store.set_document_searchable("doc-1", True)

    matches = await store.search([1.0, 0.0], threshold=0.0, limit=5)

    assert [m.id for m in matches] == ["a", "b", "c"]
    assert len(await store.search([1.0, 0.0], threshold=0.0, limit=2)) == 2


@pytest.mark.asyncio
async def test_zero_query_vector_matches_nothing_above_zero(store):
    await store.add_chunk(chunk("c1", "doc-1", 0, [1.0, 0.0]))
    await store.set_document_searchable("doc-1", True)

    assert await store.search([0.0, 0.0], threshold=0.0, limit=5) == []


@pytest.mark.asyncio
async def test_duplicate_chunk_index_rejected(store):
    await store.add_chunk(chunk("c1", "doc-1", 0, [1.0, 0.0]))

    with pytest.raises(VectorStoreException):
        await store.add_chunk(chunk("c2", "doc-1", 0, [0.0, 1.0]))

    await store.add_chunk(chunk("c3", "doc-2", 0, [0.0, 1.0]))
    assert await store.count_chunks() == 2


@pytest.mark.asyncio
async def test_delete_by_document(store):
    await store.add_chunk(chunk("c1", "doc-1", 0, [1.0, 0.0]))
    await store.add_chunk(chunk("c2", "doc-1", 1, [1.0, 0.0]))
    await store.add_chunk(chunk("c3", "doc-2", 0, [1.0, 0.0]))

    assert await store.delete_by_document("doc-1") == 2
    assert await store.delete_by_document("doc-1") == 0
    assert await store.count_chunks("doc-1") == 0
    assert await store.count_chunks() == 1


@pytest.mark.asyncio
async def test_unpublished_articles_are_not_returned(store):
    await store.add_article(ArticleRecord(id="a1", title="Reset", content="Hold it", embedding=[1.0, 0.0]))
    await store.add_article(ArticleRecord(
        id="a2", title="Draft", content="Soon", embedding=[1.0, 0.0], published=False
    ))

    matches = await store.search_articles([1.0, 0.0], threshold=0.5, limit=5)

    assert [m.id for m in matches] == ["a1"]


@pytest.mark.asyncio
async def test_article_is_replaced_by_id(store):
    await store.add_article(ArticleRecord(id="a1", title="Old", content="x", embedding=[1.0, 0.0]))
    await store.add_article(ArticleRecord(id="a1", title="New", content="y", embedding=[1.0, 0.0]))

    matches = await store.search_articles([1.0, 0.0], threshold=0.5, limit=5)

    assert [m.title for m in matches] == ["New"]
