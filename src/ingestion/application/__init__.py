"""
Ingestion Application Layer
===========================

Application layer for the document ingestion module.

Contains:
- Services: DocumentService, IngestionPipeline, ArticleIndexService
- Interfaces: IDocumentRepository, ITextExtractor
- DTOs: Data transfer objects for API serialization
"""

from src.ingestion.application.dto import (
    ArticleCreateRequest,
    ArticleMatchInfo,
    ArticleResponse,
    ArticleSearchRequest,
    ArticleSearchResponse,
    DocumentListResponse,
    DocumentResponse,
    IngestRequest,
    IngestResponse,
)
from src.ingestion.application.services import (
    ArticleIndexService,
    DocumentService,
    IDocumentRepository,
    IngestionPipeline,
    ITextExtractor,
    build_storage_key,
    compute_content_hash,
    file_kind_from_name,
)

__all__ = [
    # DTOs
    "ArticleCreateRequest",
    "ArticleMatchInfo",
    "ArticleResponse",
    "ArticleSearchRequest",
    "ArticleSearchResponse",
    "DocumentListResponse",
    "DocumentResponse",
    "IngestRequest",
    "IngestResponse",
    # Services
    "ArticleIndexService",
    "DocumentService",
    "IngestionPipeline",
    # Interfaces
    "IDocumentRepository",
    "ITextExtractor",
    # Helpers
    "build_storage_key",
    "compute_content_hash",
    "file_kind_from_name",
]
