"""
Milvus Vector Store
===================

Zilliz Cloud / Milvus implementation of the vector store.

Milvus has no join against the documents table, so each chunk row carries
the parent title and a ``searchable`` flag. The ingestion pipeline flips
the flag on completion and soft deletion flips it back; search filters on
it server-side.
"""

import asyncio
from typing import Any, Dict, List, Optional

from pymilvus import DataType, MilvusClient, MilvusException

from src.config import settings
from src.core import VectorStoreException
from src.infrastructure.vectorstore.base import (
    ArticleMatch,
    ArticleRecord,
    ChunkMatch,
    ChunkRecord,
    IVectorStore,
    rank_key,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CHUNK_FIELDS = [
    "id", "document_id", "document_title", "chunk_index", "content",
    "page_number", "section_title", "char_start", "char_end", "token_count",
    "searchable",
]
ARTICLE_FIELDS = ["id", "title", "content", "published"]


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class MilvusVectorStore(IVectorStore):
    """
    Milvus implementation using MilvusClient with COSINE metric.

    MilvusClient is synchronous; calls run in a worker thread.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        token: Optional[str] = None,
        chunk_collection: Optional[str] = None,
        article_collection: Optional[str] = None,
        client: Optional[MilvusClient] = None,
    ):
        self._uri = uri or settings.milvus_uri
        self._token = token or settings.milvus_token
        self._chunk_collection = chunk_collection or settings.milvus_chunk_collection
        self._article_collection = article_collection or settings.milvus_article_collection
        self._dimension = settings.embedding_dimension
        self._client = client
        self._initialized = False

    async def _call(self, method: str, **kwargs: Any) -> Any:
        if not self._initialized:
            await self.initialize()
        try:
            return await asyncio.to_thread(getattr(self._client, method), **kwargs)
        except MilvusException as e:
            raise VectorStoreException(f"Milvus {method} failed: {str(e)}")

    async def initialize(self) -> None:
        """Connect and create both collections if they do not exist."""
        if self._initialized:
            return

        if self._client is None:
            if not self._uri:
                raise VectorStoreException("MILVUS_URI not configured")
            self._client = MilvusClient(uri=self._uri, token=self._token or None)

        try:
            await asyncio.to_thread(self._ensure_chunk_collection)
            await asyncio.to_thread(self._ensure_article_collection)
        except MilvusException as e:
            raise VectorStoreException(f"Failed to initialize Milvus: {str(e)}")

        self._initialized = True
        logger.info(
            "Milvus vector store initialized",
            extra={"chunk_collection": self._chunk_collection}
        )

    def _create(self, name: str, schema: Any) -> None:
        index_params = self._client.prepare_index_params()
        index_params.add_index(field_name="vector", index_type="AUTOINDEX", metric_type="COSINE")
        self._client.create_collection(
            collection_name=name,
            schema=schema,
            index_params=index_params,
        )

    def _ensure_chunk_collection(self) -> None:
        if self._client.has_collection(self._chunk_collection):
            return
        schema = MilvusClient.create_schema(auto_id=False, enable_dynamic_field=False)
        schema.add_field("id", DataType.VARCHAR, is_primary=True, max_length=64)
        schema.add_field("vector", DataType.FLOAT_VECTOR, dim=self._dimension)
        schema.add_field("document_id", DataType.VARCHAR, max_length=64)
        schema.add_field("document_title", DataType.VARCHAR, max_length=1000)
        schema.add_field("chunk_index", DataType.INT64)
        schema.add_field("content", DataType.VARCHAR, max_length=65535)
        schema.add_field("page_number", DataType.INT64, nullable=True)
        schema.add_field("section_title", DataType.VARCHAR, max_length=1000, nullable=True)
        schema.add_field("char_start", DataType.INT64)
        schema.add_field("char_end", DataType.INT64)
        schema.add_field("token_count", DataType.INT64)
        schema.add_field("searchable", DataType.BOOL)
        self._create(self._chunk_collection, schema)

    def _ensure_article_collection(self) -> None:
        if self._client.has_collection(self._article_collection):
            return
        schema = MilvusClient.create_schema(auto_id=False, enable_dynamic_field=False)
        schema.add_field("id", DataType.VARCHAR, is_primary=True, max_length=64)
        schema.add_field("vector", DataType.FLOAT_VECTOR, dim=self._dimension)
        schema.add_field("title", DataType.VARCHAR, max_length=1000)
        schema.add_field("content", DataType.VARCHAR, max_length=65535)
        schema.add_field("published", DataType.BOOL)
        self._create(self._article_collection, schema)

    @staticmethod
    def _chunk_row(chunk: ChunkRecord) -> Dict[str, Any]:
        return {
            "id": chunk.id,
            "vector": chunk.embedding,
            "document_id": chunk.document_id,
            "document_title": chunk.document_title,
            "chunk_index": chunk.chunk_index,
            "content": chunk.content,
            "page_number": chunk.page_number,
            "section_title": chunk.section_title,
            "char_start": chunk.char_start,
            "char_end": chunk.char_end,
            "token_count": chunk.token_count,
            "searchable": chunk.searchable,
        }

    async def add_chunk(self, chunk: ChunkRecord) -> str:
        await self._call(
            "upsert",
            collection_name=self._chunk_collection,
            data=[self._chunk_row(chunk)],
        )
        return chunk.id

    async def delete_by_document(self, document_id: str) -> int:
        result = await self._call(
            "delete",
            collection_name=self._chunk_collection,
            filter=f"document_id == {_quote(document_id)}",
        )
        if isinstance(result, dict):
            return int(result.get("delete_count", 0))
        return len(result or [])

    async def set_document_searchable(self, document_id: str, searchable: bool) -> None:
        rows = await self._call(
            "query",
            collection_name=self._chunk_collection,
            filter=f"document_id == {_quote(document_id)}",
            output_fields=CHUNK_FIELDS + ["vector"],
        )
        if not rows:
            return
        for row in rows:
            row["searchable"] = searchable
        await self._call("upsert", collection_name=self._chunk_collection, data=list(rows))
        logger.debug(
            "Updated chunk visibility",
            extra={"document_id": document_id, "searchable": searchable, "rows": len(rows)}
        )

    async def search(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ChunkMatch]:
        results = await self._call(
            "search",
            collection_name=self._chunk_collection,
            data=[query_embedding],
            filter="searchable == true",
            limit=limit,
            output_fields=CHUNK_FIELDS,
            search_params={"metric_type": "COSINE"},
        )

        matches = []
        for hit in (results[0] if results else []):
            entity = hit["entity"]
            # COSINE distance in Milvus is the similarity itself
            score = float(hit["distance"])
            if score <= threshold:
                continue
            matches.append(ChunkMatch(
                id=str(hit.get("id", entity.get("id"))),
                document_id=entity["document_id"],
                document_title=entity["document_title"],
                chunk_index=int(entity["chunk_index"]),
                content=entity["content"],
                similarity=score,
                page_number=entity.get("page_number"),
                section_title=entity.get("section_title"),
            ))

        matches.sort(key=lambda m: rank_key(m.similarity, m.id))
        return matches[:limit]

    async def add_article(self, article: ArticleRecord) -> str:
        await self._call(
            "upsert",
            collection_name=self._article_collection,
            data=[{
                "id": article.id,
                "vector": article.embedding,
                "title": article.title,
                "content": article.content,
                "published": article.published,
            }],
        )
        return article.id

    async def search_articles(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ArticleMatch]:
        results = await self._call(
            "search",
            collection_name=self._article_collection,
            data=[query_embedding],
            filter="published == true",
            limit=limit,
            output_fields=ARTICLE_FIELDS,
            search_params={"metric_type": "COSINE"},
        )

        matches = []
        for hit in (results[0] if results else []):
            score = float(hit["distance"])
            if score <= threshold:
                continue
            entity = hit["entity"]
            matches.append(ArticleMatch(
                id=str(hit.get("id", entity.get("id"))),
                title=entity["title"],
                content=entity["content"],
                similarity=score,
            ))

        matches.sort(key=lambda m: rank_key(m.similarity, m.id))
        return matches[:limit]

    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        flt = f"document_id == {_quote(document_id)}" if document_id else ""
        rows = await self._call(
            "query",
            collection_name=self._chunk_collection,
            filter=flt,
            output_fields=["count(*)"],
        )
        return int(rows[0]["count(*)"]) if rows else 0

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
