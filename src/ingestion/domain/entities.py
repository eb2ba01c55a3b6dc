"""
Ingestion Domain Entities
=========================

Domain entities for the document ingestion module.

The Document entity owns its processing-status state machine:

    pending ──► processing ──► completed
                    │   ▲           │
                    ▼   └───────────┤ (reprocess)
                  failed ───────────┘

Soft deletion (is_active = False) is allowed from any state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from src.config import DocumentCategory, FileKind, ProcessingStatus
from src.core import DocumentStateException, ValidationException


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Document:
    """
    A source file registered for retrieval.

    Content hash is unique among active documents.
    """
    id: Optional[str]  # UUID, None for new documents
    title: str
    file_name: str
    file_path: str  # blob storage key
    file_kind: FileKind
    file_size: int
    content_hash: str
    category: DocumentCategory = DocumentCategory.OTHER
    description: Optional[str] = None
    product_name: Optional[str] = None
    status: ProcessingStatus = ProcessingStatus.PENDING
    processing_error: Optional[str] = None
    total_pages: Optional[int] = None
    total_chunks: int = 0
    is_active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate document fields."""
        if not self.title or not self.title.strip():
            raise ValidationException("Document title must not be empty")
        if self.file_size < 0:
            raise ValidationException("File size must not be negative")
        if len(self.content_hash) != 64:
            raise ValidationException("Content hash must be a SHA-256 hex digest")

    @property
    def needs_chunk_cleanup(self) -> bool:
        """A previous run may have left chunks behind."""
        return self.status in (ProcessingStatus.FAILED, ProcessingStatus.COMPLETED)

    def start_processing(self) -> None:
        """Move to processing. Inactive documents and running ones are rejected."""
        if not self.is_active:
            raise DocumentStateException(str(self.id), "inactive", "process")
        if self.status == ProcessingStatus.PROCESSING:
            raise DocumentStateException(str(self.id), self.status.value, "process")
        self.status = ProcessingStatus.PROCESSING
        self.processing_error = None
        self.updated_at = _utcnow()

    def complete(self, total_chunks: int, total_pages: int) -> None:
        """Mark processing as finished with the stored chunk and page counts."""
        if self.status != ProcessingStatus.PROCESSING:
            raise DocumentStateException(str(self.id), self.status.value, "complete")
        self.status = ProcessingStatus.COMPLETED
        self.total_chunks = total_chunks
        self.total_pages = total_pages
        self.processing_error = None
        self.processed_at = _utcnow()
        self.updated_at = self.processed_at

    def fail(self, error: str) -> None:
        """Mark processing as failed, keeping the error message verbatim."""
        self.status = ProcessingStatus.FAILED
        self.processing_error = error
        self.total_chunks = 0
        self.updated_at = _utcnow()

    def deactivate(self) -> None:
        """Soft delete: keep the row, drop it from retrieval."""
        self.is_active = False
        self.updated_at = _utcnow()


@dataclass
class ExtractedText:
    """Plain text pulled from a file, with its page count."""
    text: str
    page_count: int


@dataclass
class IngestionResult:
    """Outcome of one successful ingestion run."""
    document_id: str
    chunks_stored: int
    chunks_total: int
    page_count: int

    @property
    def chunks_skipped(self) -> int:
        return self.chunks_total - self.chunks_stored


@dataclass
class KnowledgeArticle:
    """A knowledge base article indexed for retrieval."""
    id: Optional[str]
    title: str
    content: str
    published: bool = True

    def __post_init__(self):
        if not self.title.strip() or not self.content.strip():
            raise ValidationException("Article title and content must not be empty")

    @property
    def embedding_text(self) -> str:
        return f"{self.title}\n\n{self.content}"
