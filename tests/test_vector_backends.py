"""Tests for the Milvus and pgvector backends without a running server."""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from pymilvus import MilvusException
from sqlalchemy.dialects import postgresql

from src.core import VectorStoreException
from src.infrastructure.vectorstore import pgvector_store
from src.infrastructure.vectorstore.milvus_store import MilvusVectorStore
from src.infrastructure.vectorstore.pgvector_store import PgVectorStore

from tests.conftest import hashed_vector


def milvus_hit(chunk_id: str, score: float, document_id: str = "doc-1") -> dict:
    return {
        "id": chunk_id,
        "distance": score,
        "entity": {
            "document_id": document_id,
            "document_title": "Router Manual",
            "chunk_index": 0,
            "content": f"content of {chunk_id}",
            "page_number": 1,
            "section_title": "FACTORY RESET",
        },
    }


def milvus_store() -> MilvusVectorStore:
    client = MagicMock()
    client.has_collection.return_value = True
    return MilvusVectorStore(chunk_collection="chunks", article_collection="articles", client=client)


class TestMilvusVectorStore:

    @pytest.mark.asyncio
    async def test_search_filters_searchable_and_drops_scores_at_threshold(self):
        store = milvus_store()
        store._client.search.return_value = [[
            milvus_hit("chunk-b", 0.9),
            milvus_hit("chunk-a", 0.9),
            milvus_hit("chunk-c", 0.75),
            milvus_hit("chunk-d", 0.7),
            milvus_hit("chunk-e", 0.4),
        ]]

        matches = await store.search(hashed_vector("query"), threshold=0.7, limit=10)

        assert [m.id for m in matches] == ["chunk-a", "chunk-b", "chunk-c"]
        assert matches[0].document_title == "Router Manual"
        assert matches[0].section_title == "FACTORY RESET"
        kwargs = store._client.search.call_args.kwargs
        assert kwargs["collection_name"] == "chunks"
        assert kwargs["filter"] == "searchable == true"
        assert kwargs["limit"] == 10
        assert kwargs["search_params"] == {"metric_type": "COSINE"}

    @pytest.mark.asyncio
    async def test_set_document_searchable_upserts_flag(self):
        store = milvus_store()
        store._client.query.return_value = [
            {"id": "chunk-1", "document_id": "doc-1", "searchable": False, "vector": [0.1]},
            {"id": "chunk-2", "document_id": "doc-1", "searchable": False, "vector": [0.2]},
        ]

        await store.set_document_searchable("doc-1", True)

        assert store._client.query.call_args.kwargs["filter"] == 'document_id == "doc-1"'
        upserted = store._client.upsert.call_args.kwargs
        assert upserted["collection_name"] == "chunks"
        assert [row["searchable"] for row in upserted["data"]] == [True, True]
        assert [row["id"] for row in upserted["data"]] == ["chunk-1", "chunk-2"]

    @pytest.mark.asyncio
    async def test_set_document_searchable_without_chunks(self):
        store = milvus_store()
        store._client.query.return_value = []

        await store.set_document_searchable("doc-1", False)

        store._client.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_by_document_returns_count(self):
        store = milvus_store()
        store._client.delete.return_value = {"delete_count": 4}

        assert await store.delete_by_document("doc-1") == 4
        assert store._client.delete.call_args.kwargs["filter"] == 'document_id == "doc-1"'

    @pytest.mark.asyncio
    async def test_client_error_maps_to_vector_store_exception(self):
        store = milvus_store()
        store._client.search.side_effect = MilvusException(message="collection not loaded")

        with pytest.raises(VectorStoreException):
            await store.search(hashed_vector("query"), threshold=0.5, limit=5)


class RecordingSession:
    """Captures executed statements and returns the configured rows."""

    def __init__(self, rows=None):
        self.rows = rows or []
        self.statements = []

    async def execute(self, stmt):
        self.statements.append(stmt)
        result = MagicMock()
        result.all.return_value = self.rows
        return result


@pytest.fixture
def recording_session(monkeypatch):
    session = RecordingSession()

    @asynccontextmanager
    async def session_context():
        yield session

    monkeypatch.setattr(pgvector_store, "get_session_context", session_context)
    return session


class TestPgVectorStore:

    @pytest.mark.asyncio
    async def test_search_query_restricts_to_active_completed_documents(self, recording_session):
        await PgVectorStore().search(hashed_vector("query"), threshold=0.6123, limit=7)

        compiled = recording_session.statements[0].compile(dialect=postgresql.dialect())
        sql = str(compiled)
        where_clause = sql.split("WHERE", 1)[1].split("ORDER BY", 1)[0]
        order_clause = sql.split("ORDER BY", 1)[1]

        assert "JOIN documents ON documents.id = document_chunks.document_id" in sql
        assert "documents.is_active IS true" in where_clause
        assert "documents.processing_status = " in where_clause
        assert "<=>" in where_clause
        assert " > %(" in where_clause
        assert order_clause.index("<=>") < order_clause.index("document_chunks.id ASC")
        assert "completed" in compiled.params.values()
        assert 0.6123 in compiled.params.values()
        assert 7 in compiled.params.values()

    @pytest.mark.asyncio
    async def test_search_maps_rows(self, recording_session):
        chunk = SimpleNamespace(
            id="11111111-1111-1111-1111-111111111111",
            document_id="22222222-2222-2222-2222-222222222222",
            chunk_index=3,
            content="Hold the reset button.",
            page_number=2,
            section_title="FACTORY RESET",
        )
        recording_session.rows = [(chunk, "Router Manual", 0.91)]

        matches = await PgVectorStore().search(hashed_vector("query"), threshold=0.6, limit=5)

        assert len(matches) == 1
        assert matches[0].id == chunk.id
        assert matches[0].document_title == "Router Manual"
        assert matches[0].similarity == pytest.approx(0.91)
        assert matches[0].page_number == 2

    @pytest.mark.asyncio
    async def test_article_search_only_published(self, recording_session):
        await PgVectorStore().search_articles(hashed_vector("query"), threshold=0.5, limit=3)

        sql = str(recording_session.statements[0].compile(dialect=postgresql.dialect()))

        assert "knowledge_base_articles.published IS true" in sql.split("WHERE", 1)[1]
