"""Shared fixtures and fakes for the test suite.

Fakes replace every external collaborator so tests run without a database,
an embedding API or a model:
- deterministic embedding client (keyword vectors or hash-seeded vectors)
- scripted completion client that records every call
- in-memory repositories and blob storage
- a vector store returning fixed matches
"""

import copy
import hashlib
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

import numpy as np
import pytest

from src.config import ProcessingStatus
from src.core import RepositoryException, StorageException
from src.guardrails.application import (
    DocumentAccessRecorder,
    GuardrailConfigProvider,
    GuardrailEngine,
    IDocumentAccessLogRepository,
    IGuardrailRuleRepository,
    IInteractionLogRepository,
    InteractionLogger,
    Retriever,
)
from src.guardrails.domain import DocumentAccess, GuardrailConfig, GuardrailRule, InteractionLogEntry
from src.infrastructure.llm import (
    ChatCompletionResult,
    EmbeddingResult,
    ICompletionClient,
    IEmbeddingClient,
)
from src.infrastructure.storage import IBlobStorage
from src.infrastructure.vectorstore import (
    ArticleMatch,
    ArticleRecord,
    ChunkMatch,
    ChunkRecord,
    InMemoryVectorStore,
    IVectorStore,
)
from src.ingestion.application import (
    DocumentService,
    IDocumentRepository,
    IngestionPipeline,
)
from src.ingestion.domain import ChunkingOptions, Document
from src.ingestion.infrastructure import TextExtractor
from src.shared.infrastructure.rate_limit import RateLimiter


class TestConstants:
    """Values shared across test modules."""

    EMBEDDING_DIMENSION = 8
    SESSION_ID = "session-1"
    USER_ID = "user-1"
    QUERY = "How do I reset the device?"

    # Cites all three sources and is between 50 and 3000 characters
    CITED_ANSWER = (
        "Hold the reset button for ten seconds [Source 1]. The LED blinks "
        "amber while resetting [Source 2] and the device restarts [Source 3]."
    )
    UNCITED_ANSWER = (
        "Hold the reset button for ten seconds and the device restarts "
        "with factory settings."
    )

    MANUAL_TEXT = (
        "GETTING STARTED\n\n"
        + "Plug the router into a power outlet and wait for the light. " * 20
        + "\n\nFACTORY RESET\n\n"
        + "Hold the reset button on the back panel for ten seconds. " * 20
    )


def hashed_vector(text: str, dimension: int = TestConstants.EMBEDDING_DIMENSION) -> List[float]:
    """Deterministic unit vector seeded from the text hash."""
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
    rng = np.random.default_rng(seed)
    vector = rng.normal(0, 1, dimension)
    return (vector / np.linalg.norm(vector)).tolist()


# ========== LLM fakes ==========

class FakeEmbeddingClient(IEmbeddingClient):
    """Embedding client returning hash-seeded vectors, or a fixed vector per keyword."""

    def __init__(
        self,
        keyword_vectors: Optional[Dict[str, List[float]]] = None,
        error: Optional[Exception] = None
    ):
        self.keyword_vectors = keyword_vectors or {}
        self.error = error
        self.calls: List[str] = []

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        for keyword, vector in self.keyword_vectors.items():
            if keyword in text:
                return EmbeddingResult(embedding=list(vector), model="fake")
        return EmbeddingResult(embedding=hashed_vector(text), model="fake")


class ScriptedCompletionClient(ICompletionClient):
    """Completion client returning a fixed answer and recording calls."""

    def __init__(self, content: str = TestConstants.CITED_ANSWER, error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[dict] = []

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.error is not None:
            raise self.error
        return ChatCompletionResult(
            content=self.content,
            model="scripted",
            prompt_tokens=100,
            completion_tokens=len(self.content) // 4,
            latency_ms=1
        )


# ========== Storage fakes ==========

class StaticVectorStore(IVectorStore):
    """Vector store whose search always returns the configured matches."""

    def __init__(self, matches: Optional[Sequence[ChunkMatch]] = None):
        self.matches = list(matches or [])
        self.searches: List[dict] = []

    async def add_chunk(self, chunk: ChunkRecord) -> str:
        return chunk.id

    async def delete_by_document(self, document_id: str) -> int:
        return 0

    async def set_document_searchable(self, document_id: str, searchable: bool) -> None:
        return None

    async def search(self, query_embedding: List[float], threshold: float, limit: int) -> List[ChunkMatch]:
        self.searches.append({"threshold": threshold, "limit": limit})
        return self.matches[:limit]

    async def add_article(self, article: ArticleRecord) -> str:
        return article.id

    async def search_articles(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ArticleMatch]:
        return []

    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        return len(self.matches)


class InMemoryDocumentRepository(IDocumentRepository):
    """Document repository keeping copies in a dict, with the same write rules as the SQL one."""

    def __init__(self):
        self.documents: Dict[str, Document] = {}

    async def get(self, document_id: str) -> Optional[Document]:
        document = self.documents.get(document_id)
        return copy.deepcopy(document) if document else None

    async def find_active_by_hash(self, content_hash: str) -> Optional[Document]:
        for document in self.documents.values():
            if document.is_active and document.content_hash == content_hash:
                return copy.deepcopy(document)
        return None

    async def create(self, document: Document) -> Document:
        document.id = str(uuid4())
        self.documents[document.id] = copy.deepcopy(document)
        return document

    async def save(self, document: Document) -> Document:
        stored = self.documents.get(document.id)
        if stored is None:
            raise RepositoryException(f"Document {document.id} no longer exists")
        saved = copy.deepcopy(document)
        saved.is_active = stored.is_active
        self.documents[document.id] = saved
        return document

    async def claim_for_processing(self, document: Document) -> bool:
        stored = self.documents.get(document.id)
        if stored is None or not stored.is_active or stored.status == ProcessingStatus.PROCESSING:
            return False
        stored.status = ProcessingStatus.PROCESSING
        stored.processing_error = None
        stored.updated_at = document.updated_at
        return True

    async def deactivate(self, document_id: str) -> bool:
        stored = self.documents.get(document_id)
        if stored is None:
            return False
        stored.is_active = False
        return True

    async def list_active(self, limit: int = 100, offset: int = 0) -> List[Document]:
        active = [d for d in self.documents.values() if d.is_active]
        active.sort(key=lambda d: d.created_at, reverse=True)
        return [copy.deepcopy(d) for d in active[offset:offset + limit]]


class InMemoryBlobStorage(IBlobStorage):
    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> None:
        self.blobs[key] = data

    async def get(self, key: str) -> bytes:
        if key not in self.blobs:
            raise StorageException(f"File not found in storage: {key}")
        return self.blobs[key]

    async def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


class InMemoryRuleRepository(IGuardrailRuleRepository):
    def __init__(self, rules: Optional[List[GuardrailRule]] = None, error: Optional[Exception] = None):
        self.rules = rules or []
        self.error = error

    async def list_rules(self) -> List[GuardrailRule]:
        if self.error is not None:
            raise self.error
        return list(self.rules)


class InMemoryLogRepository(IInteractionLogRepository):
    def __init__(self):
        self.entries: List[InteractionLogEntry] = []

    async def create(self, entry: InteractionLogEntry) -> InteractionLogEntry:
        entry.id = str(uuid4())
        self.entries.append(entry)
        return entry


class FailingLogRepository(IInteractionLogRepository):
    async def create(self, entry: InteractionLogEntry) -> InteractionLogEntry:
        raise RepositoryException("log table unavailable")


class InMemoryAccessLogRepository(IDocumentAccessLogRepository):
    def __init__(self, error: Optional[Exception] = None):
        self.accesses: List[DocumentAccess] = []
        self.error = error

    async def create_many(self, accesses: List[DocumentAccess]) -> int:
        if self.error is not None:
            raise self.error
        self.accesses.extend(accesses)
        return len(accesses)


def make_match(
    index: int,
    similarity: float,
    document_title: str = "Router X200 Manual",
    section_title: Optional[str] = "FACTORY RESET",
    content: Optional[str] = None
) -> ChunkMatch:
    return ChunkMatch(
        id=f"chunk-{index}",
        document_id=f"doc-{index}",
        document_title=document_title,
        chunk_index=index,
        content=content or f"Reset instructions part {index}. Hold the button for ten seconds.",
        similarity=similarity,
        section_title=section_title,
    )


def rule(name: str, value: dict, enabled: bool = True, rule_type: str = "source_requirement") -> GuardrailRule:
    return GuardrailRule(rule_name=name, rule_type=rule_type, rule_value=value, is_enabled=enabled)


# ========== Fixtures ==========

@pytest.fixture
def log_repository():
    return InMemoryLogRepository()


@pytest.fixture
def access_repository():
    return InMemoryAccessLogRepository()


@pytest.fixture
def engine_factory(log_repository, access_repository):
    """Build a GuardrailEngine around fixed matches and a scripted answer."""

    def _create(
        matches: Sequence[ChunkMatch] = (),
        answer: str = TestConstants.CITED_ANSWER,
        rules: Optional[List[GuardrailRule]] = None,
        embedding_client: Optional[FakeEmbeddingClient] = None,
        completion_client: Optional[ScriptedCompletionClient] = None,
        log_repo: Optional[IInteractionLogRepository] = None,
        access_repo: Optional[IDocumentAccessLogRepository] = None,
    ):
        completion = completion_client or ScriptedCompletionClient(answer)
        engine = GuardrailEngine(
            retriever=Retriever(
                embedding_client or FakeEmbeddingClient(),
                StaticVectorStore(matches),
                match_threshold=0.6,
                match_count=5
            ),
            completion_client=completion,
            config_provider=GuardrailConfigProvider(
                InMemoryRuleRepository(rules), defaults=GuardrailConfig()
            ),
            interaction_logger=InteractionLogger(log_repo or log_repository),
            temperature=0.3,
            source_preview_chars=200,
            access_recorder=DocumentAccessRecorder(access_repo or access_repository)
        )
        return engine, completion

    return _create


@pytest.fixture
def document_repository():
    return InMemoryDocumentRepository()


@pytest.fixture
def blob_storage():
    return InMemoryBlobStorage()


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient()


@pytest.fixture
def document_service(document_repository, blob_storage, vector_store):
    return DocumentService(document_repository, blob_storage, vector_store, max_upload_bytes=1024 * 1024)


@pytest.fixture
def pipeline(document_repository, blob_storage, vector_store, embedding_client):
    return IngestionPipeline(
        repository=document_repository,
        storage=blob_storage,
        extractor=TextExtractor(chars_per_page=3000),
        embedding_client=embedding_client,
        vector_store=vector_store,
        rate_limiter=RateLimiter(rate=1000.0, burst=1000),
        options=ChunkingOptions(max_chars=500, overlap_chars=50, chars_per_page=3000),
        min_extracted_chars=10
    )

