"""
Ingestion Module
================

Bounded Context for turning uploaded files into searchable chunks.

Responsibilities:
- Register uploads with content-hash deduplication
- Extract text, chunk it with overlap and embed every chunk
- Track the per-document processing-status state machine
- Index knowledge base articles
"""

__version__ = "1.0.0"
