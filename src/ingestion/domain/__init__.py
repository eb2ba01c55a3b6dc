"""
Ingestion Domain Layer
======================

Domain layer for the document ingestion module.

Contains:
- Entities: Document (with its status state machine), ExtractedText,
  IngestionResult, KnowledgeArticle
- Chunker: pure text chunking with overlap

This layer is framework-agnostic and contains pure business logic.
"""

from src.ingestion.domain.chunker import (
    ChunkingOptions,
    TextChunk,
    chunk_text,
    detect_section_title,
    estimate_pages,
    estimate_tokens,
)
from src.ingestion.domain.entities import (
    Document,
    ExtractedText,
    IngestionResult,
    KnowledgeArticle,
)

__all__ = [
    "ChunkingOptions",
    "TextChunk",
    "chunk_text",
    "detect_section_title",
    "estimate_pages",
    "estimate_tokens",
    "Document",
    "ExtractedText",
    "IngestionResult",
    "KnowledgeArticle",
]
