"""
Guardrails Application Layer
============================

Retrieval, configuration resolution, gating and audit logging.
"""

from src.guardrails.application.dto import (
    ChatRequest,
    ChatResponse,
    GuardrailConfigResponse,
    SourceInfo,
)
from src.guardrails.application.services import (
    DocumentAccessRecorder,
    GuardrailConfigProvider,
    GuardrailEngine,
    IDocumentAccessLogRepository,
    IGuardrailRuleRepository,
    IInteractionLogRepository,
    InteractionLogger,
    Retriever,
    default_guardrail_config,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "GuardrailConfigResponse",
    "SourceInfo",
    "DocumentAccessRecorder",
    "GuardrailConfigProvider",
    "GuardrailEngine",
    "IDocumentAccessLogRepository",
    "IGuardrailRuleRepository",
    "IInteractionLogRepository",
    "InteractionLogger",
    "Retriever",
    "default_guardrail_config",
]
