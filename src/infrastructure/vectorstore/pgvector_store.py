"""
pgvector Vector Store
=====================

Stores chunk and article vectors in PostgreSQL next to the relational rows.

Search joins chunks to their parent document, so document visibility
(active + completed) is enforced by the query itself and
set_document_searchable() has nothing to do.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from src.config import ProcessingStatus
from src.core import VectorStoreException
from src.infrastructure.database import get_session_context
from src.infrastructure.vectorstore.base import (
    ArticleMatch,
    ArticleRecord,
    ChunkMatch,
    ChunkRecord,
    IVectorStore,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class PgVectorStore(IVectorStore):
    """PostgreSQL + pgvector implementation of the vector store."""

    async def add_chunk(self, chunk: ChunkRecord) -> str:
        """
        Insert one chunk row with its embedding.

        Raises:
            VectorStoreException: If the insert fails
        """
        from src.ingestion.infrastructure.models import DocumentChunkModel

        try:
            async with get_session_context() as session:
                model = DocumentChunkModel(
                    id=UUID(chunk.id),
                    document_id=UUID(chunk.document_id),
                    chunk_index=chunk.chunk_index,
                    content=chunk.content,
                    embedding=chunk.embedding,
                    page_number=chunk.page_number,
                    section_title=chunk.section_title,
                    char_start=chunk.char_start,
                    char_end=chunk.char_end,
                    token_count=chunk.token_count,
                )
                session.add(model)
        except SQLAlchemyError as e:
            raise VectorStoreException(
                f"Failed to store chunk {chunk.chunk_index}: {str(e)}",
                {"document_id": chunk.document_id, "chunk_index": chunk.chunk_index}
            )
        return chunk.id

    async def delete_by_document(self, document_id: str) -> int:
        from src.ingestion.infrastructure.models import DocumentChunkModel

        try:
            async with get_session_context() as session:
                result = await session.execute(
                    delete(DocumentChunkModel).where(
                        DocumentChunkModel.document_id == UUID(document_id)
                    )
                )
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise VectorStoreException(f"Failed to delete chunks: {str(e)}")

    async def set_document_searchable(self, document_id: str, searchable: bool) -> None:
        # Visibility comes from the documents join in search()
        return None

    async def search(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ChunkMatch]:
        """
        Cosine similarity search restricted to active, completed documents.

        Raises:
            VectorStoreException: If the query fails
        """
        from src.ingestion.infrastructure.models import DocumentChunkModel, DocumentModel

        distance = DocumentChunkModel.embedding.cosine_distance(query_embedding)
        similarity = (1 - distance).label("similarity")

        stmt = (
            select(DocumentChunkModel, DocumentModel.title, similarity)
            .join(DocumentModel, DocumentModel.id == DocumentChunkModel.document_id)
            .where(
                DocumentModel.is_active.is_(True),
                DocumentModel.processing_status == ProcessingStatus.COMPLETED.value,
                DocumentChunkModel.embedding.is_not(None),
                (1 - distance) > threshold,
            )
            .order_by(distance.asc(), DocumentChunkModel.id.asc())
            .limit(limit)
        )

        try:
            async with get_session_context() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            raise VectorStoreException(f"Search failed: {str(e)}")

        return [
            ChunkMatch(
                id=str(chunk.id),
                document_id=str(chunk.document_id),
                document_title=title,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                similarity=float(score),
                page_number=chunk.page_number,
                section_title=chunk.section_title,
            )
            for chunk, title, score in rows
        ]

    async def add_article(self, article: ArticleRecord) -> str:
        from src.ingestion.infrastructure.models import KnowledgeBaseArticleModel

        try:
            async with get_session_context() as session:
                model = await session.get(KnowledgeBaseArticleModel, UUID(article.id))
                if model is None:
                    model = KnowledgeBaseArticleModel(id=UUID(article.id))
                    session.add(model)
                model.title = article.title
                model.content = article.content
                model.published = article.published
                model.embedding = article.embedding
        except SQLAlchemyError as e:
            raise VectorStoreException(f"Failed to store article: {str(e)}")
        return article.id

    async def search_articles(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ArticleMatch]:
        from src.ingestion.infrastructure.models import KnowledgeBaseArticleModel

        distance = KnowledgeBaseArticleModel.embedding.cosine_distance(query_embedding)
        similarity = (1 - distance).label("similarity")

        stmt = (
            select(KnowledgeBaseArticleModel, similarity)
            .where(
                KnowledgeBaseArticleModel.published.is_(True),
                KnowledgeBaseArticleModel.embedding.is_not(None),
                (1 - distance) > threshold,
            )
            .order_by(distance.asc(), KnowledgeBaseArticleModel.id.asc())
            .limit(limit)
        )

        try:
            async with get_session_context() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            raise VectorStoreException(f"Article search failed: {str(e)}")

        return [
            ArticleMatch(
                id=str(article.id),
                title=article.title,
                content=article.content,
                similarity=float(score),
            )
            for article, score in rows
        ]

    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        from src.ingestion.infrastructure.models import DocumentChunkModel

        stmt = select(func.count()).select_from(DocumentChunkModel)
        if document_id is not None:
            stmt = stmt.where(DocumentChunkModel.document_id == UUID(document_id))

        try:
            async with get_session_context() as session:
                result = await session.execute(stmt)
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise VectorStoreException(f"Failed to count chunks: {str(e)}")
