"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="guardrail-rag", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/guardrail_rag",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== OpenAI ==========
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Override for OpenAI-compatible endpoints"
    )
    mock_llm: bool = Field(
        default=False,
        description="Use deterministic offline embedding/completion clients (no API calls)"
    )

    # ========== LLM Settings ==========
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model used for chunks, articles and queries"
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Embedding vector dimension",
        ge=8
    )
    llm_model: str = Field(
        default="gpt-4-turbo-preview",
        description="Chat model used for grounded generation"
    )
    llm_temperature: float = Field(
        default=0.3,
        description="Generation temperature, kept low for factual answers",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=1000,
        description="Token budget when no max_response_length rule applies",
        ge=1,
        le=8000
    )
    embedding_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for a single embedding request",
        gt=0
    )
    completion_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for a single completion request",
        gt=0
    )
    llm_max_retries: int = Field(
        default=2,
        description="SDK-level retries for transient LLM failures",
        ge=0,
        le=10
    )

    # ========== Rate Limiting ==========
    embedding_rate_per_second: float = Field(
        default=10.0,
        description="Sustained embedding requests per second",
        gt=0
    )
    embedding_burst: int = Field(
        default=10,
        description="Embedding requests allowed in a burst",
        ge=1
    )

    # ========== Vector Store ==========
    vector_backend: str = Field(
        default="pgvector",
        description="Vector store backend: pgvector, milvus or memory"
    )
    milvus_uri: str = Field(default="", description="Milvus / Zilliz Cloud URI")
    milvus_token: str = Field(default="", description="Milvus / Zilliz Cloud API token")
    milvus_chunk_collection: str = Field(
        default="document_chunks",
        description="Milvus collection for document chunk vectors"
    )
    milvus_article_collection: str = Field(
        default="knowledge_base_articles",
        description="Milvus collection for knowledge base article vectors"
    )

    # ========== Blob Storage ==========
    blob_storage_dir: Path = Field(
        default=Path("data/blobs"),
        description="Directory holding raw uploaded files"
    )
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="Maximum accepted upload size in bytes",
        ge=1
    )

    # ========== Chunking ==========
    chunk_max_chars: int = Field(default=2000, description="Maximum characters per chunk", ge=100)
    chunk_overlap_chars: int = Field(
        default=200,
        description="Characters copied from the tail of the previous chunk",
        ge=0
    )
    chars_per_page: int = Field(
        default=3000,
        description="Characters per page for the page-number display hint",
        ge=1
    )
    min_extracted_chars: int = Field(
        default=10,
        description="Extraction results shorter than this are treated as failures",
        ge=1
    )

    # ========== Retrieval ==========
    retrieval_match_threshold: float = Field(
        default=0.6,
        description="Similarity must be strictly greater than this to be retrieved",
        ge=0.0,
        lt=1.0
    )
    retrieval_match_count: int = Field(
        default=5,
        description="Maximum number of chunks retrieved per query",
        ge=1,
        le=50
    )
    source_preview_chars: int = Field(
        default=200,
        description="Length of the chunk preview returned with each source",
        ge=10
    )

    # ========== Confidence Formula ==========
    confidence_similarity_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence_citation_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    confidence_quality_weight: float = Field(default=0.2, ge=0.0, le=1.0)
    quality_min_chars: int = Field(
        default=50,
        description="Responses must be longer than this to count as full quality",
        ge=0
    )
    quality_max_chars: int = Field(
        default=3000,
        description="Responses must be shorter than this to count as full quality",
        ge=1
    )
    quality_degraded_factor: float = Field(
        default=0.7,
        description="Quality factor for too-short or too-long responses",
        ge=0.0,
        le=1.0
    )

    # ========== Guardrail Defaults ==========
    default_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    default_min_sources: int = Field(default=1, ge=0)
    default_block_unsupported: bool = Field(default=True)
    default_citation_required: bool = Field(default=True)

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("vector_backend")
    @classmethod
    def validate_vector_backend(cls, v: str) -> str:
        """Ensure the vector backend is supported."""
        v = v.lower()
        allowed = {backend.value for backend in VectorBackend}
        if v not in allowed:
            raise ValueError(f"vector_backend must be one of {allowed}")
        return v


# ========== Constants ==========

class VectorBackend(str, Enum):
    """Supported vector store backends."""
    PGVECTOR = "pgvector"
    MILVUS = "milvus"
    MEMORY = "memory"


class ProcessingStatus(str, Enum):
    """Document processing lifecycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileKind(str, Enum):
    """Declared file kinds accepted for ingestion."""
    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    MD = "md"


class DocumentCategory(str, Enum):
    """Document library categories."""
    USER_MANUAL = "user_manual"
    SERVICE_MANUAL = "service_manual"
    TECHNICAL_DOC = "technical_doc"
    POLICY = "policy"
    OTHER = "other"


class GuardrailRuleName(str, Enum):
    """Known guardrail rules (unique rule_name keys)."""
    MIN_CONFIDENCE = "min_confidence"
    REQUIRE_SOURCES = "require_sources"
    MAX_RESPONSE_LENGTH = "max_response_length"
    BLOCK_UNSUPPORTED = "block_unsupported"
    CITATION_REQUIRED = "citation_required"


class GuardrailRuleType(str, Enum):
    """Rule families used to group guardrail rules."""
    CONFIDENCE_THRESHOLD = "confidence_threshold"
    SOURCE_REQUIREMENT = "source_requirement"
    CONTENT_FILTER = "content_filter"
    RESPONSE_LENGTH = "response_length"


class DecisionOutcome(str, Enum):
    """Terminal outcome of a guarded query."""
    ACCEPTED = "accepted"
    WARNED = "warned"
    BLOCKED = "blocked"


class BlockReason(str, Enum):
    """Reason codes attached to blocked answers."""
    INSUFFICIENT_SOURCES = "insufficient_sources"
    NO_CITATIONS = "no_citations"
    LOW_CONFIDENCE = "low_confidence"
    ERROR = "error"


class AccessType(str, Enum):
    """Kinds of document access recorded in the access log."""
    VIEW = "view"
    DOWNLOAD = "download"
    SEARCH_RESULT = "search_result"
    AI_REFERENCE = "ai_reference"


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Lists for validation ==========

SUPPORTED_FILE_KINDS = [kind.value for kind in FileKind]
