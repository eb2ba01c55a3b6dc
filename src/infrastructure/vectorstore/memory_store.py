"""
In-Memory Vector Store
======================

Process-local vector store for development, mock mode and tests.

Vectors are kept in dicts and scored with numpy cosine similarity.
"""

import asyncio
from typing import Dict, List, Optional

import numpy as np

from src.core import VectorStoreException
from src.infrastructure.vectorstore.base import (
    ArticleMatch,
    ArticleRecord,
    ChunkMatch,
    ChunkRecord,
    IVectorStore,
    rank_key,
)


def cosine_similarity(query_embedding: np.ndarray, embeddings: np.ndarray) -> np.ndarray:
    """
    Calculate cosine similarity between a query and a matrix of embeddings.

    Zero vectors score 0.0 instead of producing NaN.
    """
    query_norm = np.linalg.norm(query_embedding)
    doc_norms = np.linalg.norm(embeddings, axis=1)
    denominator = doc_norms * query_norm
    dots = embeddings @ query_embedding
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denominator > 0, dots / denominator, 0.0)
    return scores


class InMemoryVectorStore(IVectorStore):
    """Vector store backed by Python dicts."""

    def __init__(self) -> None:
        self._chunks: Dict[str, ChunkRecord] = {}
        self._articles: Dict[str, ArticleRecord] = {}
        self._searchable: Dict[str, bool] = {}
        self._lock = asyncio.Lock()

    async def add_chunk(self, chunk: ChunkRecord) -> str:
        async with self._lock:
            for existing in self._chunks.values():
                if (
                    existing.document_id == chunk.document_id
                    and existing.chunk_index == chunk.chunk_index
                ):
                    raise VectorStoreException(
                        f"Chunk {chunk.chunk_index} already stored for document {chunk.document_id}"
                    )
            self._chunks[chunk.id] = chunk
            self._searchable.setdefault(chunk.document_id, chunk.searchable)
        return chunk.id

    async def delete_by_document(self, document_id: str) -> int:
        async with self._lock:
            doomed = [cid for cid, c in self._chunks.items() if c.document_id == document_id]
            for cid in doomed:
                del self._chunks[cid]
        return len(doomed)

    async def set_document_searchable(self, document_id: str, searchable: bool) -> None:
        async with self._lock:
            self._searchable[document_id] = searchable

    async def search(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ChunkMatch]:
        candidates = [
            c for c in self._chunks.values() if self._searchable.get(c.document_id, False)
        ]
        if not candidates or limit <= 0:
            return []

        matrix = np.array([c.embedding for c in candidates], dtype=float)
        scores = cosine_similarity(np.asarray(query_embedding, dtype=float), matrix)

        matches = [
            ChunkMatch(
                id=c.id,
                document_id=c.document_id,
                document_title=c.document_title,
                chunk_index=c.chunk_index,
                content=c.content,
                similarity=float(score),
                page_number=c.page_number,
                section_title=c.section_title,
            )
            for c, score in zip(candidates, scores)
            if float(score) > threshold
        ]
        matches.sort(key=lambda m: rank_key(m.similarity, m.id))
        return matches[:limit]

    async def add_article(self, article: ArticleRecord) -> str:
        async with self._lock:
            self._articles[article.id] = article
        return article.id

    async def search_articles(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ArticleMatch]:
        published = [a for a in self._articles.values() if a.published]
        if not published or limit <= 0:
            return []

        matrix = np.array([a.embedding for a in published], dtype=float)
        scores = cosine_similarity(np.asarray(query_embedding, dtype=float), matrix)

        matches = [
            ArticleMatch(id=a.id, title=a.title, content=a.content, similarity=float(score))
            for a, score in zip(published, scores)
            if float(score) > threshold
        ]
        matches.sort(key=lambda m: rank_key(m.similarity, m.id))
        return matches[:limit]

    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        if document_id is None:
            return len(self._chunks)
        return sum(1 for c in self._chunks.values() if c.document_id == document_id)
