"""
Vector Store Contracts
======================

Records exchanged with the vector store and the interface every backend
implements.

Visibility rule shared by all backends: a chunk is returned by search()
only while its parent document is active and completed. Similarity is
``1 - cosine_distance`` and must be strictly greater than the threshold;
results are ordered by similarity descending, then chunk id ascending.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class ChunkRecord:
    """A chunk ready to be stored, with its embedding and metadata."""
    id: str
    document_id: str
    document_title: str
    chunk_index: int
    content: str
    embedding: List[float]
    char_start: int
    char_end: int
    token_count: int
    page_number: Optional[int] = None
    section_title: Optional[str] = None
    # Used by backends without a documents table to join against
    searchable: bool = False


@dataclass
class ChunkMatch:
    """Result from chunk similarity search."""
    id: str
    document_id: str
    document_title: str
    chunk_index: int
    content: str
    similarity: float
    page_number: Optional[int] = None
    section_title: Optional[str] = None


@dataclass
class ArticleRecord:
    """A knowledge base article with its embedding."""
    id: str
    title: str
    content: str
    embedding: List[float]
    published: bool = True


@dataclass
class ArticleMatch:
    """Result from article similarity search."""
    id: str
    title: str
    content: str
    similarity: float


def rank_key(similarity: float, item_id: str) -> tuple:
    """Sort key giving similarity descending with id ascending as tie-break."""
    return (-similarity, item_id)


class IVectorStore(ABC):
    """
    Interface for vector store operations.

    Following Interface Segregation and Dependency Inversion principles.
    """

    async def initialize(self) -> None:
        """Prepare collections/connections. Default is a no-op."""

    async def close(self) -> None:
        """Release resources. Default is a no-op."""

    @abstractmethod
    async def add_chunk(self, chunk: ChunkRecord) -> str:
        """Store one chunk vector; returns the stored chunk id."""

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete every chunk of a document; returns the number removed."""

    @abstractmethod
    async def set_document_searchable(self, document_id: str, searchable: bool) -> None:
        """Include or exclude a document's chunks from search results."""

    @abstractmethod
    async def search(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ChunkMatch]:
        """Nearest-neighbour search over searchable chunks."""

    @abstractmethod
    async def add_article(self, article: ArticleRecord) -> str:
        """Store or replace an article vector; returns the article id."""

    @abstractmethod
    async def search_articles(
        self,
        query_embedding: List[float],
        threshold: float,
        limit: int
    ) -> List[ArticleMatch]:
        """Nearest-neighbour search over published articles."""

    @abstractmethod
    async def count_chunks(self, document_id: Optional[str] = None) -> int:
        """Count stored chunks, optionally for one document."""
