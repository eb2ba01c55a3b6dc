"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(Document Ingestion and Guardrails).

Architecture Pattern: Modular Monolith
- Each module (ingestion, guardrails) is a bounded context
- Shared kernel contains only generic infrastructure
- Domain models are extended within each module

DO NOT add business logic from Ingestion or Guardrails to shared kernel.
"""

__version__ = "1.0.0"
