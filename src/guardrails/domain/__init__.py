"""
Guardrails Domain Layer
=======================

Entities, rule schemas and pure policies for guardrail-gated answers.
"""

from src.guardrails.domain.entities import (
    ConfidenceWeights,
    DocumentAccess,
    GuardrailBlock,
    GuardrailConfig,
    GuardrailDecision,
    InteractionLogEntry,
    RetrievedSource,
    SourceAttribution,
)
from src.guardrails.domain.policies import (
    CitationCheck,
    ConfidenceScore,
    FallbackMessages,
    PromptBuilder,
    compute_confidence,
    extract_citations,
    response_quality,
)
from src.guardrails.domain.rules import (
    DEFAULT_RULES,
    DefaultRule,
    GuardrailRule,
    parse_rule_value,
)

__all__ = [
    "ConfidenceWeights",
    "DocumentAccess",
    "GuardrailBlock",
    "GuardrailConfig",
    "GuardrailDecision",
    "InteractionLogEntry",
    "RetrievedSource",
    "SourceAttribution",
    "CitationCheck",
    "ConfidenceScore",
    "FallbackMessages",
    "PromptBuilder",
    "compute_confidence",
    "extract_citations",
    "response_quality",
    "DEFAULT_RULES",
    "DefaultRule",
    "GuardrailRule",
    "parse_rule_value",
]
