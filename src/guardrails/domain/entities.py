"""
Guardrail Domain Entities
=========================

Domain entities for the guardrail-gated answer pipeline.

A query moves through received -> sourced -> generated -> verified ->
scored and ends in exactly one outcome: accepted, warned or blocked.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.config import AccessType, BlockReason, DecisionOutcome
from src.core import ValidationException


@dataclass(frozen=True)
class ConfidenceWeights:
    """
    Parameters of the confidence formula.

    confidence = similarity * avg_similarity
               + citation * citation_coverage
               + quality * quality_factor
    """
    similarity: float = 0.5
    citation: float = 0.3
    quality: float = 0.2
    quality_min_chars: int = 50
    quality_max_chars: int = 3000
    degraded_factor: float = 0.7

    def __post_init__(self):
        for name in ("similarity", "citation", "quality", "degraded_factor"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValidationException(f"Confidence weight '{name}' must be in [0, 1]")
        if self.quality_min_chars >= self.quality_max_chars:
            raise ValidationException("quality_min_chars must be below quality_max_chars")


@dataclass(frozen=True)
class GuardrailConfig:
    """
    Guardrail settings resolved once at the start of a request.

    Immutable: rule changes only affect requests that start afterwards.
    """
    confidence_threshold: float = 0.7
    min_sources: int = 1
    max_tokens: int = 1000
    block_unsupported: bool = True
    citation_required: bool = True
    weights: ConfidenceWeights = field(default_factory=ConfidenceWeights)

    def __post_init__(self):
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValidationException("confidence_threshold must be in [0, 1]")
        if self.min_sources < 0:
            raise ValidationException("min_sources must not be negative")
        if self.max_tokens < 1:
            raise ValidationException("max_tokens must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence_threshold": self.confidence_threshold,
            "min_sources": self.min_sources,
            "max_tokens": self.max_tokens,
            "block_unsupported": self.block_unsupported,
            "citation_required": self.citation_required,
            "weights": {
                "similarity": self.weights.similarity,
                "citation": self.weights.citation,
                "quality": self.weights.quality,
                "quality_min_chars": self.weights.quality_min_chars,
                "quality_max_chars": self.weights.quality_max_chars,
                "degraded_factor": self.weights.degraded_factor,
            },
        }


@dataclass(frozen=True)
class RetrievedSource:
    """A retrieved chunk numbered for citation (index starts at 1)."""
    index: int
    chunk_id: str
    document_id: str
    document_title: str
    content: str
    similarity: float
    section_title: Optional[str] = None
    page_number: Optional[int] = None

    def preview(self, max_chars: int = 200) -> str:
        """Truncated content for API responses."""
        if len(self.content) <= max_chars:
            return self.content
        return self.content[:max_chars] + "..."


@dataclass(frozen=True)
class SourceAttribution:
    """A source as returned to the caller, with its cited flag."""
    index: int
    document_id: str
    document_title: str
    content: str
    similarity: float
    cited: bool
    section_title: Optional[str] = None


@dataclass(frozen=True)
class GuardrailBlock:
    """
    A deliberate policy decision to withhold the model output.

    Not an error: always carries a reason and a pre-approved message.
    """
    reason: BlockReason
    fallback_message: str
    suggest_agent: bool = False


@dataclass
class GuardrailDecision:
    """Terminal result of one guarded query."""
    outcome: DecisionOutcome
    response: str
    confidence: float
    sources: List[SourceAttribution] = field(default_factory=list)
    block: Optional[GuardrailBlock] = None
    guardrail_triggered: Optional[str] = None
    hallucination_detected: bool = False
    checks: Dict[str, Any] = field(default_factory=dict)
    model_response: Optional[str] = None
    processing_time_ms: int = 0

    @property
    def blocked(self) -> bool:
        return self.outcome == DecisionOutcome.BLOCKED

    @property
    def reason(self) -> Optional[str]:
        return self.block.reason.value if self.block else None

    @property
    def suggest_agent(self) -> bool:
        return bool(self.block and self.block.suggest_agent)


@dataclass
class InteractionLogEntry:
    """
    Append-only audit record of one query.

    ai_response is the model output that reached the checks (None when no
    model call was made); the user-visible text on a block is fallback_message.
    """
    session_id: str
    user_query: str
    ai_response: Optional[str]
    guardrail_checks: Dict[str, Any]
    sources_used: List[Dict[str, Any]]
    confidence_score: float
    blocked_response: bool
    user_id: Optional[str] = None
    hallucination_detected: bool = False
    fallback_message: Optional[str] = None
    processing_time_ms: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None

    def __post_init__(self):
        """Validate log entry."""
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValidationException("confidence_score must be between 0 and 1")


@dataclass
class DocumentAccess:
    """One read of a document, e.g. a chunk used to ground a delivered answer."""
    document_id: str
    access_type: AccessType = AccessType.AI_REFERENCE
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None
