"""
Ingestion Application Services
==============================

Application services for document registration, ingestion and article
indexing.

Orchestrates domain entities, blob storage, text extraction, the embedding
client and the vector store.
"""

import hashlib
import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from src.config import DocumentCategory, FileKind, SUPPORTED_FILE_KINDS, settings
from src.core import (
    DocumentStateException,
    ExtractionException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
    VectorStoreException,
    DuplicateDocumentException,
)
from src.infrastructure.llm import IEmbeddingClient
from src.infrastructure.storage import IBlobStorage
from src.infrastructure.vectorstore import (
    ArticleMatch,
    ArticleRecord,
    ChunkRecord,
    IVectorStore,
)
from src.ingestion.domain import (
    ChunkingOptions,
    Document,
    ExtractedText,
    IngestionResult,
    KnowledgeArticle,
    TextChunk,
    chunk_text,
)
from src.shared.infrastructure.grafana import get_grafana_exporter
from src.shared.infrastructure.logging import get_logger, log_latency
from src.shared.infrastructure.rate_limit import RateLimiter

logger = get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


# ========== Repository Interfaces ==========

class IDocumentRepository(ABC):
    """Interface for document data access."""

    @abstractmethod
    async def get(self, document_id: str) -> Optional[Document]:
        """Get document by ID."""

    @abstractmethod
    async def find_active_by_hash(self, content_hash: str) -> Optional[Document]:
        """Get the active document with this content hash, if any."""

    @abstractmethod
    async def create(self, document: Document) -> Document:
        """Insert a new document and return it with its ID set."""

    @abstractmethod
    async def save(self, document: Document) -> Document:
        """Persist processing status, counts and timestamps. Never writes is_active."""

    @abstractmethod
    async def claim_for_processing(self, document: Document) -> bool:
        """
        Atomically move an active document that is not already processing to
        processing. False when another run holds it or it was deactivated.
        """

    @abstractmethod
    async def deactivate(self, document_id: str) -> bool:
        """Set is_active to False without touching processing fields."""

    @abstractmethod
    async def list_active(self, limit: int = 100, offset: int = 0) -> List[Document]:
        """Active documents, newest first."""


class ITextExtractor(ABC):
    """Interface for turning raw file bytes into plain text."""

    @abstractmethod
    async def extract(self, data: bytes, file_kind: FileKind) -> ExtractedText:
        """Extract text or raise ExtractionException."""


# ========== Helpers ==========

def compute_content_hash(data: bytes) -> str:
    """SHA-256 hex digest used for deduplication."""
    return hashlib.sha256(data).hexdigest()


def file_kind_from_name(file_name: str) -> FileKind:
    """Map a file extension to a supported FileKind."""
    extension = Path(file_name).suffix.lower().lstrip(".")
    if extension not in SUPPORTED_FILE_KINDS:
        raise ValidationException(
            f"Unsupported file type '{extension or file_name}'",
            {"supported": SUPPORTED_FILE_KINDS}
        )
    return FileKind(extension)


def build_storage_key(file_name: str) -> str:
    """Storage key of the form <epoch millis>_<sanitised name>."""
    safe_name = _UNSAFE_NAME_CHARS.sub("_", Path(file_name).name).strip("._") or "upload"
    return f"{int(time.time() * 1000)}_{safe_name}"


# ========== Application Services ==========

class DocumentService:
    """
    Service for registering uploads and managing the document library.

    Duplicate content is rejected before anything is stored or processed.
    """

    def __init__(
        self,
        repository: IDocumentRepository,
        storage: IBlobStorage,
        vector_store: IVectorStore,
        max_upload_bytes: Optional[int] = None
    ):
        self._repository = repository
        self._storage = storage
        self._vector_store = vector_store
        self._max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    async def register_upload(
        self,
        file_name: str,
        data: bytes,
        title: Optional[str] = None,
        category: Optional[DocumentCategory] = None,
        description: Optional[str] = None,
        product_name: Optional[str] = None
    ) -> Document:
        """
        Validate, deduplicate and store an uploaded file as a pending document.

        Raises:
            ValidationException: Empty, oversized or unsupported file
            DuplicateDocumentException: An active document has the same content
            StorageException: The blob could not be written
        """
        if not data:
            raise ValidationException("Uploaded file is empty")
        if len(data) > self._max_upload_bytes:
            raise ValidationException(
                f"File exceeds maximum size of {self._max_upload_bytes} bytes",
                {"file_size": len(data)}
            )
        file_kind = file_kind_from_name(file_name)

        content_hash = compute_content_hash(data)
        existing = await self._repository.find_active_by_hash(content_hash)
        if existing is not None:
            logger.info(
                "Duplicate upload rejected",
                extra={"content_hash": content_hash, "existing_document_id": existing.id}
            )
            raise DuplicateDocumentException(content_hash, existing.id)

        storage_key = build_storage_key(file_name)
        await self._storage.put(storage_key, data)

        document = Document(
            id=None,
            title=(title or Path(file_name).stem).strip() or file_name,
            file_name=file_name,
            file_path=storage_key,
            file_kind=file_kind,
            file_size=len(data),
            content_hash=content_hash,
            category=category or DocumentCategory.OTHER,
            description=description,
            product_name=product_name,
        )

        try:
            document = await self._repository.create(document)
        except DuplicateDocumentException:
            # Lost a race against a concurrent upload of the same content
            await self._storage.delete(storage_key)
            raise

        logger.info(
            "Document registered",
            extra={
                "document_id": document.id,
                "file_kind": file_kind.value,
                "file_size": len(data)
            }
        )
        return document

    async def get(self, document_id: str) -> Document:
        """Get document or raise ResourceNotFoundException."""
        document = await self._repository.get(document_id)
        if document is None:
            raise ResourceNotFoundException("Document", document_id)
        return document

    async def list_active(self, limit: int = 100, offset: int = 0) -> List[Document]:
        return await self._repository.list_active(limit=limit, offset=offset)

    async def soft_delete(self, document_id: str) -> Document:
        """Deactivate a document; its chunks stay stored but leave retrieval."""
        document = await self.get(document_id)
        document.deactivate()
        if not await self._repository.deactivate(document_id):
            raise ResourceNotFoundException("Document", document_id)
        await self._vector_store.set_document_searchable(document_id, False)
        logger.info("Document deactivated", extra={"document_id": document_id})
        return document


class IngestionPipeline:
    """
    Turns a stored file into searchable chunks.

    Steps: load document, mark processing, fetch bytes, extract text,
    chunk, embed and store every chunk, mark completed. Any failure
    before completion marks the document failed with the error message
    and is re-raised to the caller.
    """

    def __init__(
        self,
        repository: IDocumentRepository,
        storage: IBlobStorage,
        extractor: ITextExtractor,
        embedding_client: IEmbeddingClient,
        vector_store: IVectorStore,
        rate_limiter: Optional[RateLimiter] = None,
        options: Optional[ChunkingOptions] = None,
        min_extracted_chars: Optional[int] = None
    ):
        self._repository = repository
        self._storage = storage
        self._extractor = extractor
        self._embedding = embedding_client
        self._vector_store = vector_store
        self._rate_limiter = rate_limiter or RateLimiter(
            rate=settings.embedding_rate_per_second,
            burst=settings.embedding_burst
        )
        self._options = options or ChunkingOptions(
            max_chars=settings.chunk_max_chars,
            overlap_chars=settings.chunk_overlap_chars,
            chars_per_page=settings.chars_per_page
        )
        self._min_extracted_chars = min_extracted_chars or settings.min_extracted_chars

    async def process(self, document_id: str) -> IngestionResult:
        """
        Run ingestion for one document.

        Raises:
            ResourceNotFoundException: Document does not exist
            DocumentStateException: Document is inactive or already being processed
            StorageException, ExtractionException, ExternalServiceException:
                after the document has been marked failed
        """
        document = await self._repository.get(document_id)
        if document is None:
            raise ResourceNotFoundException("Document", document_id)

        reprocessing = document.needs_chunk_cleanup
        document.start_processing()
        if not await self._repository.claim_for_processing(document):
            current = await self._repository.get(document_id)
            state = "inactive" if current is None or not current.is_active else current.status.value
            raise DocumentStateException(document_id, state, "process")

        start_time = time.perf_counter()
        logger.info(
            "Document processing started",
            extra={"document_id": document_id, "reprocessing": reprocessing}
        )

        try:
            await self._vector_store.set_document_searchable(document_id, False)
            if reprocessing:
                removed = await self._vector_store.delete_by_document(document_id)
                logger.info(
                    "Removed chunks from previous run",
                    extra={"document_id": document_id, "chunks_removed": removed}
                )

            data = await self._storage.get(document.file_path)
            extracted = await self._extractor.extract(data, document.file_kind)
            if len(extracted.text.strip()) < self._min_extracted_chars:
                raise ExtractionException(
                    "Could not extract sufficient text from document"
                )

            chunks = chunk_text(extracted.text, self._options)
            if not chunks:
                raise ExtractionException("Document produced no text chunks")

            stored = await self._embed_and_store(document, chunks)
            if stored == 0:
                raise VectorStoreException("No chunks could be stored")

        except Exception as e:
            await self._record_failure(document, e, start_time)
            raise

        document.complete(total_chunks=stored, total_pages=extracted.page_count)
        await self._repository.save(document)
        await self._publish_if_active(document_id)

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Document processing completed",
            extra={
                "document_id": document_id,
                "chunks_stored": stored,
                "chunks_total": len(chunks),
                "total_pages": extracted.page_count,
                "latency_ms": latency_ms
            }
        )
        await get_grafana_exporter().export_ingestion_result(
            status=document.status.value,
            chunks_stored=stored,
            chunks_failed=len(chunks) - stored,
            latency_ms=latency_ms
        )

        return IngestionResult(
            document_id=document_id,
            chunks_stored=stored,
            chunks_total=len(chunks),
            page_count=extracted.page_count
        )

    async def _is_active(self, document_id: str) -> bool:
        current = await self._repository.get(document_id)
        return current is not None and current.is_active

    async def _publish_if_active(self, document_id: str) -> None:
        """Make chunks searchable unless the document was deactivated meanwhile."""
        if not await self._is_active(document_id):
            logger.info("Document deactivated during processing, chunks stay hidden",
                        extra={"document_id": document_id})
            return
        await self._vector_store.set_document_searchable(document_id, True)
        # A soft delete may have landed between the check and the flag write
        if not await self._is_active(document_id):
            await self._vector_store.set_document_searchable(document_id, False)

    async def _embed_and_store(self, document: Document, chunks: List[TextChunk]) -> int:
        """Embed and store chunks in order; storage failures skip the chunk."""
        stored = 0
        for chunk in chunks:
            async with self._rate_limiter:
                embedding = await self._embedding.generate_embedding(chunk.content)

            record = ChunkRecord(
                id=str(uuid4()),
                document_id=str(document.id),
                document_title=document.title,
                chunk_index=chunk.sequence_index,
                content=chunk.content,
                embedding=embedding.embedding,
                char_start=chunk.char_start,
                char_end=chunk.char_end,
                token_count=chunk.token_count,
                page_number=chunk.page_number,
                section_title=chunk.section_title,
            )
            try:
                with log_latency(logger, "store_chunk", document_id=str(document.id),
                                 chunk_index=chunk.sequence_index):
                    await self._vector_store.add_chunk(record)
            except (VectorStoreException, RepositoryException) as e:
                logger.warning(
                    "Chunk insert failed, skipping",
                    extra={
                        "document_id": str(document.id),
                        "chunk_index": chunk.sequence_index,
                        "error": str(e)
                    }
                )
                continue
            stored += 1
        return stored

    async def _record_failure(
        self,
        document: Document,
        error: Exception,
        start_time: float
    ) -> None:
        message = str(error)
        logger.error(
            "Document processing failed",
            extra={
                "document_id": str(document.id),
                "error_type": type(error).__name__,
                "error": message
            }
        )
        document.fail(message)
        await self._repository.save(document)

        try:
            await self._vector_store.delete_by_document(str(document.id))
        except VectorStoreException as cleanup_error:
            # The next reprocess deletes them before storing anything
            logger.warning(
                "Could not remove partial chunks",
                extra={"document_id": str(document.id), "error": str(cleanup_error)}
            )

        await get_grafana_exporter().export_ingestion_result(
            status=document.status.value,
            chunks_stored=0,
            chunks_failed=0,
            latency_ms=int((time.perf_counter() - start_time) * 1000)
        )


class ArticleIndexService:
    """Embeds knowledge base articles and searches them."""

    def __init__(self, embedding_client: IEmbeddingClient, vector_store: IVectorStore):
        self._embedding = embedding_client
        self._vector_store = vector_store

    async def index_article(
        self,
        title: str,
        content: str,
        published: bool = True,
        article_id: Optional[str] = None
    ) -> KnowledgeArticle:
        article = KnowledgeArticle(
            id=article_id or str(uuid4()),
            title=title,
            content=content,
            published=published
        )
        embedding = await self._embedding.generate_embedding(article.embedding_text)
        await self._vector_store.add_article(ArticleRecord(
            id=article.id,
            title=article.title,
            content=article.content,
            embedding=embedding.embedding,
            published=article.published
        ))
        logger.info("Article indexed", extra={"article_id": article.id})
        return article

    async def search(
        self,
        query: str,
        threshold: Optional[float] = None,
        limit: Optional[int] = None
    ) -> List[ArticleMatch]:
        if not query.strip():
            raise ValidationException("Query must not be empty")
        embedding = await self._embedding.generate_embedding(query)
        return await self._vector_store.search_articles(
            embedding.embedding,
            threshold=settings.retrieval_match_threshold if threshold is None else threshold,
            limit=settings.retrieval_match_count if limit is None else limit
        )
