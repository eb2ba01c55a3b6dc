"""
Ingestion Interfaces Layer
==========================

Interface adapters (controllers) for the ingestion module.

Contains:
- Controllers: FastAPI route handlers
"""

from src.ingestion.interfaces.controllers import ingestion_router

__all__ = ["ingestion_router"]
