"""
Ingestion Infrastructure Repositories
=====================================

SQLAlchemy implementations of ingestion repositories.

Each call opens its own short-lived session so status transitions are
committed immediately and visible to concurrent status queries.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from src.config import DocumentCategory, FileKind, ProcessingStatus
from src.core import DuplicateDocumentException, RepositoryException
from src.infrastructure.database import get_session_context
from src.ingestion.application.services import IDocumentRepository
from src.ingestion.domain import Document


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _to_domain(model) -> Document:
    return Document(
        id=str(model.id),
        title=model.title,
        file_name=model.file_name,
        file_path=model.file_path,
        file_kind=FileKind(model.file_type),
        file_size=model.file_size,
        content_hash=model.content_hash,
        category=DocumentCategory(model.category),
        description=model.description,
        product_name=model.product_name,
        status=ProcessingStatus(model.processing_status),
        processing_error=model.processing_error,
        total_pages=model.total_pages,
        total_chunks=model.total_chunks,
        is_active=model.is_active,
        created_at=model.created_at,
        updated_at=model.updated_at,
        processed_at=model.processed_at,
    )


class SQLAlchemyDocumentRepository(IDocumentRepository):
    """SQLAlchemy implementation for documents."""

    async def get(self, document_id: str) -> Optional[Document]:
        """Get document by ID."""
        from src.ingestion.infrastructure.models import DocumentModel

        doc_uuid = _parse_uuid(document_id)
        if doc_uuid is None:
            return None

        async with get_session_context() as session:
            model = await session.get(DocumentModel, doc_uuid)
            return _to_domain(model) if model else None

    async def find_active_by_hash(self, content_hash: str) -> Optional[Document]:
        """Get the active document with this content hash."""
        from src.ingestion.infrastructure.models import DocumentModel

        stmt = select(DocumentModel).where(
            DocumentModel.content_hash == content_hash,
            DocumentModel.is_active.is_(True)
        )
        async with get_session_context() as session:
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _to_domain(model) if model else None

    async def create(self, document: Document) -> Document:
        """Insert a new document."""
        from src.ingestion.infrastructure.models import DocumentModel

        model = DocumentModel(
            id=uuid4(),
            title=document.title,
            description=document.description,
            category=document.category.value,
            product_name=document.product_name,
            file_name=document.file_name,
            file_path=document.file_path,
            file_type=document.file_kind.value,
            file_size=document.file_size,
            content_hash=document.content_hash,
            processing_status=document.status.value,
            is_active=document.is_active,
            created_at=document.created_at,
        )

        try:
            async with get_session_context() as session:
                session.add(model)
                await session.flush()
        except IntegrityError:
            # Partial unique index on active content hashes
            raise DuplicateDocumentException(document.content_hash)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create document: {e}")

        document.id = str(model.id)
        return document

    async def save(self, document: Document) -> Document:
        """Persist processing fields. is_active is left to deactivate()."""
        from src.ingestion.infrastructure.models import DocumentModel

        doc_uuid = _parse_uuid(str(document.id))
        if doc_uuid is None:
            raise RepositoryException(f"Invalid document ID: {document.id}")

        try:
            async with get_session_context() as session:
                model = await session.get(DocumentModel, doc_uuid)
                if model is None:
                    raise RepositoryException(f"Document {document.id} no longer exists")
                model.processing_status = document.status.value
                model.processing_error = document.processing_error
                model.total_pages = document.total_pages
                model.total_chunks = document.total_chunks
                model.updated_at = document.updated_at
                model.processed_at = document.processed_at
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save document: {e}")

        return document

    async def claim_for_processing(self, document: Document) -> bool:
        """Conditional update so concurrent runs and soft deletes cannot interleave."""
        from src.ingestion.infrastructure.models import DocumentModel

        doc_uuid = _parse_uuid(str(document.id))
        if doc_uuid is None:
            return False

        stmt = (
            update(DocumentModel)
            .where(
                DocumentModel.id == doc_uuid,
                DocumentModel.is_active.is_(True),
                DocumentModel.processing_status != ProcessingStatus.PROCESSING.value
            )
            .values(
                processing_status=ProcessingStatus.PROCESSING.value,
                processing_error=None,
                updated_at=document.updated_at
            )
        )
        try:
            async with get_session_context() as session:
                result = await session.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to claim document: {e}")

    async def deactivate(self, document_id: str) -> bool:
        """Soft delete. Only is_active and updated_at are written."""
        from src.ingestion.infrastructure.models import DocumentModel

        doc_uuid = _parse_uuid(document_id)
        if doc_uuid is None:
            return False

        stmt = (
            update(DocumentModel)
            .where(DocumentModel.id == doc_uuid)
            .values(is_active=False, updated_at=datetime.now(timezone.utc))
        )
        try:
            async with get_session_context() as session:
                result = await session.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to deactivate document: {e}")

    async def list_active(self, limit: int = 100, offset: int = 0) -> List[Document]:
        """Active documents, newest first."""
        from src.ingestion.infrastructure.models import DocumentModel

        stmt = (
            select(DocumentModel)
            .where(DocumentModel.is_active.is_(True))
            .order_by(DocumentModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        async with get_session_context() as session:
            result = await session.execute(stmt)
            return [_to_domain(model) for model in result.scalars().all()]
