"""
Vector Store Infrastructure
============================

Vector store backends for chunk and article embeddings.

Backends:
- pgvector: vectors live in PostgreSQL beside the documents table (default)
- milvus: Zilliz Cloud / Milvus collections
- memory: process-local numpy store for development and tests
"""

from typing import Optional

from src.config import VectorBackend, settings
from src.infrastructure.vectorstore.base import (
    ArticleMatch,
    ArticleRecord,
    ChunkMatch,
    ChunkRecord,
    IVectorStore,
)
from src.infrastructure.vectorstore.memory_store import InMemoryVectorStore
from src.infrastructure.vectorstore.milvus_store import MilvusVectorStore
from src.infrastructure.vectorstore.pgvector_store import PgVectorStore


def get_vector_store(backend: Optional[str] = None) -> IVectorStore:
    """Return a vector store instance for the configured backend.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    value = (backend or settings.vector_backend).lower()

    if value == VectorBackend.PGVECTOR.value:
        return PgVectorStore()
    if value == VectorBackend.MILVUS.value:
        return MilvusVectorStore()
    if value == VectorBackend.MEMORY.value:
        return InMemoryVectorStore()

    raise ValueError(f"Unsupported vector store backend: {backend}")


__all__ = [
    "ArticleMatch",
    "ArticleRecord",
    "ChunkMatch",
    "ChunkRecord",
    "IVectorStore",
    "InMemoryVectorStore",
    "MilvusVectorStore",
    "PgVectorStore",
    "get_vector_store",
]
