"""
Ingestion Application DTOs
==========================

Data Transfer Objects for the ingestion API layer.

Pydantic models for request/response validation. Wire names are camelCase
where the HTTP contract uses camelCase.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.ingestion.domain import Document, IngestionResult, KnowledgeArticle
from src.infrastructure.vectorstore import ArticleMatch


class CamelModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""
    model_config = ConfigDict(populate_by_name=True)


# ========== Request DTOs ==========

class IngestRequest(CamelModel):
    """Request model for triggering ingestion of a registered document."""
    document_id: str = Field(..., alias="documentId", min_length=1, description="Document UUID")


class ArticleCreateRequest(BaseModel):
    """Request model for indexing a knowledge base article."""
    id: Optional[str] = Field(None, description="Existing article ID to re-index")
    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    published: bool = Field(default=True)


class ArticleSearchRequest(BaseModel):
    """Request model for article similarity search."""
    query: str = Field(..., min_length=1, description="Search text")
    threshold: Optional[float] = Field(None, ge=0.0, lt=1.0)
    limit: Optional[int] = Field(None, ge=1, le=50)

    @field_validator("query")
    @classmethod
    def validate_query_length(cls, v: str) -> str:
        """Ensure query is not too long."""
        if len(v) > 2000:
            raise ValueError("Query too long (max 2000 characters)")
        return v


# ========== Response DTOs ==========

class DocumentResponse(BaseModel):
    """Document status and metadata."""
    id: str
    title: str
    description: Optional[str] = None
    file_name: str
    file_type: str
    file_size: int
    category: str
    product_name: Optional[str] = None
    processing_status: str
    processing_error: Optional[str] = None
    total_pages: Optional[int] = None
    total_chunks: int
    is_active: bool
    created_at: datetime
    processed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=str(document.id),
            title=document.title,
            description=document.description,
            file_name=document.file_name,
            file_type=document.file_kind.value,
            file_size=document.file_size,
            category=document.category.value,
            product_name=document.product_name,
            processing_status=document.status.value,
            processing_error=document.processing_error,
            total_pages=document.total_pages,
            total_chunks=document.total_chunks,
            is_active=document.is_active,
            created_at=document.created_at,
            processed_at=document.processed_at
        )


class DocumentListResponse(BaseModel):
    """Active documents, newest first."""
    documents: List[DocumentResponse]
    total: int


class IngestResponse(CamelModel):
    """Response model for a successful ingestion run."""
    success: bool = True
    document_id: str = Field(..., serialization_alias="documentId")
    chunks: int
    message: str

    @classmethod
    def from_result(cls, result: IngestionResult) -> "IngestResponse":
        message = f"Successfully processed document into {result.chunks_stored} chunks"
        if result.chunks_skipped:
            message += f" ({result.chunks_skipped} chunks could not be stored)"
        return cls(
            document_id=result.document_id,
            chunks=result.chunks_stored,
            message=message
        )


class ArticleResponse(BaseModel):
    """Indexed article."""
    id: str
    title: str
    published: bool

    @classmethod
    def from_domain(cls, article: KnowledgeArticle) -> "ArticleResponse":
        return cls(id=str(article.id), title=article.title, published=article.published)


class ArticleMatchInfo(BaseModel):
    """Article search hit."""
    id: str
    title: str
    content: str
    similarity: float

    @classmethod
    def from_match(cls, match: ArticleMatch) -> "ArticleMatchInfo":
        return cls(
            id=match.id,
            title=match.title,
            content=match.content,
            similarity=round(match.similarity, 4)
        )


class ArticleSearchResponse(BaseModel):
    """Article search results ordered by similarity."""
    results: List[ArticleMatchInfo]
