"""
Ingestion Infrastructure Layer
==============================

Infrastructure implementations for the document ingestion module.

Contains:
- Models: SQLAlchemy ORM models (documents, chunks, articles)
- Repositories: Data access implementations
- Extractors: Text extraction per file kind
"""

from src.ingestion.infrastructure.models import (
    DocumentChunkModel,
    DocumentModel,
    KnowledgeBaseArticleModel,
)
from src.ingestion.infrastructure.repositories import SQLAlchemyDocumentRepository
from src.ingestion.infrastructure.extractors import TextExtractor

__all__ = [
    "DocumentChunkModel",
    "DocumentModel",
    "KnowledgeBaseArticleModel",
    "SQLAlchemyDocumentRepository",
    "TextExtractor",
]
