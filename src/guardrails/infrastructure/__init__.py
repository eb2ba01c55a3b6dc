"""
Guardrails Infrastructure Layer
===============================

Contains:
- Models: guardrail rules, the interaction log and the document access log
- Repositories: SQLAlchemy data access and default rule seeding
"""

from src.guardrails.infrastructure.models import (
    DocumentAccessLogModel,
    GuardrailRuleModel,
    InteractionLogModel,
)
from src.guardrails.infrastructure.repositories import (
    SQLAlchemyDocumentAccessLogRepository,
    SQLAlchemyGuardrailRuleRepository,
    SQLAlchemyInteractionLogRepository,
)

__all__ = [
    "DocumentAccessLogModel",
    "GuardrailRuleModel",
    "InteractionLogModel",
    "SQLAlchemyDocumentAccessLogRepository",
    "SQLAlchemyGuardrailRuleRepository",
    "SQLAlchemyInteractionLogRepository",
]
