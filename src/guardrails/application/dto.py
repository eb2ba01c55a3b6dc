"""
Guardrails Application DTOs
===========================

Request/response models for the chat and guardrail configuration API.
Wire names are camelCase.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.guardrails.domain import GuardrailConfig, GuardrailDecision, SourceAttribution


class CamelModel(BaseModel):
    """Base model with camelCase aliases accepting field names too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========== Request DTOs ==========

class ChatRequest(CamelModel):
    """Request model for a guarded question."""
    query: str = Field(..., min_length=1, max_length=2000, description="User question")
    session_id: str = Field(..., min_length=1, max_length=255, description="Chat session ID")
    user_id: Optional[str] = Field(None, max_length=255, description="Optional user ID")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        """Reject whitespace-only questions."""
        if not v.strip():
            raise ValueError("Query must not be blank")
        return v.strip()


# ========== Response DTOs ==========

class SourceInfo(CamelModel):
    """A retrieved source with its cited flag."""
    index: int
    document_id: str
    document_title: str
    section_title: Optional[str] = None
    content: str
    similarity: float
    cited: bool

    @classmethod
    def from_domain(cls, source: SourceAttribution) -> "SourceInfo":
        return cls(
            index=source.index,
            document_id=source.document_id,
            document_title=source.document_title,
            section_title=source.section_title,
            content=source.content,
            similarity=source.similarity,
            cited=source.cited
        )


class ChatResponse(CamelModel):
    """Guarded answer, or a fallback message when blocked."""
    response: str
    blocked: bool
    confidence: float
    sources: List[SourceInfo] = Field(default_factory=list)
    reason: Optional[str] = None
    guardrail_triggered: Optional[str] = None
    suggest_agent: Optional[bool] = None

    @classmethod
    def from_decision(cls, decision: GuardrailDecision) -> "ChatResponse":
        return cls(
            response=decision.response,
            blocked=decision.blocked,
            confidence=decision.confidence,
            sources=[SourceInfo.from_domain(s) for s in decision.sources],
            reason=decision.reason,
            guardrail_triggered=decision.guardrail_triggered,
            suggest_agent=True if decision.suggest_agent else None
        )


class ConfidenceWeightsInfo(CamelModel):
    similarity: float
    citation: float
    quality: float
    quality_min_chars: int
    quality_max_chars: int
    degraded_factor: float


class GuardrailConfigResponse(CamelModel):
    """Guardrail configuration as resolved for a new request."""
    confidence_threshold: float
    min_sources: int
    max_tokens: int
    block_unsupported: bool
    citation_required: bool
    weights: ConfidenceWeightsInfo

    @classmethod
    def from_domain(cls, config: GuardrailConfig) -> "GuardrailConfigResponse":
        return cls.model_validate(config.to_dict())
