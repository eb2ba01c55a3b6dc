"""
Guardrails Interfaces Layer
===========================

Contains:
- Controllers: FastAPI route handlers for chat and configuration
"""

from src.guardrails.interfaces.controllers import guardrails_router

__all__ = ["guardrails_router"]
