"""
Guardrail Rule Schemas
======================

Typed schemas for the JSON ``rule_value`` stored with each guardrail rule.

Rows are keyed by ``rule_name``; each name has exactly one schema. Unknown
keys inside a value are rejected so a typo does not silently fall back to
a default.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.config import GuardrailRuleName, GuardrailRuleType
from src.core import ValidationException


class RuleValue(BaseModel):
    """Base for rule value schemas."""
    model_config = ConfigDict(extra="forbid", frozen=True)


class MinConfidenceValue(RuleValue):
    threshold: float = Field(..., ge=0.0, le=1.0)


class RequireSourcesValue(RuleValue):
    min_sources: int = Field(..., ge=0, le=50)


class MaxResponseLengthValue(RuleValue):
    max_tokens: int = Field(..., ge=1, le=8000)


class BlockUnsupportedValue(RuleValue):
    enabled: bool


class CitationRequiredValue(RuleValue):
    required: bool


AnyRuleValue = Union[
    MinConfidenceValue,
    RequireSourcesValue,
    MaxResponseLengthValue,
    BlockUnsupportedValue,
    CitationRequiredValue,
]

RULE_SCHEMAS: Dict[GuardrailRuleName, Type[RuleValue]] = {
    GuardrailRuleName.MIN_CONFIDENCE: MinConfidenceValue,
    GuardrailRuleName.REQUIRE_SOURCES: RequireSourcesValue,
    GuardrailRuleName.MAX_RESPONSE_LENGTH: MaxResponseLengthValue,
    GuardrailRuleName.BLOCK_UNSUPPORTED: BlockUnsupportedValue,
    GuardrailRuleName.CITATION_REQUIRED: CitationRequiredValue,
}


def parse_rule_value(rule_name: GuardrailRuleName, raw: Any) -> AnyRuleValue:
    """
    Validate a raw JSON value against the schema for rule_name.

    Raises:
        ValidationException: If the value does not match the schema
    """
    schema = RULE_SCHEMAS[rule_name]
    try:
        return schema.model_validate(raw)
    except ValidationError as e:
        raise ValidationException(
            f"Invalid value for guardrail rule '{rule_name.value}'",
            {"errors": e.errors(include_url=False)}
        )


@dataclass
class GuardrailRule:
    """One stored guardrail rule row."""
    rule_name: str
    rule_type: str
    rule_value: Dict[str, Any]
    is_enabled: bool = True
    description: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class DefaultRule:
    name: GuardrailRuleName
    rule_type: GuardrailRuleType
    value: Dict[str, Any] = field(default_factory=dict)
    description: str = ""


DEFAULT_RULES = (
    DefaultRule(
        GuardrailRuleName.MIN_CONFIDENCE,
        GuardrailRuleType.CONFIDENCE_THRESHOLD,
        {"threshold": 0.7},
        "Minimum confidence score to show AI response",
    ),
    DefaultRule(
        GuardrailRuleName.REQUIRE_SOURCES,
        GuardrailRuleType.SOURCE_REQUIREMENT,
        {"min_sources": 1},
        "Require at least 1 document source",
    ),
    DefaultRule(
        GuardrailRuleName.MAX_RESPONSE_LENGTH,
        GuardrailRuleType.RESPONSE_LENGTH,
        {"max_tokens": 1000},
        "Maximum AI response length",
    ),
    DefaultRule(
        GuardrailRuleName.BLOCK_UNSUPPORTED,
        GuardrailRuleType.CONTENT_FILTER,
        {"enabled": True},
        "Block responses without document support",
    ),
    DefaultRule(
        GuardrailRuleName.CITATION_REQUIRED,
        GuardrailRuleType.SOURCE_REQUIREMENT,
        {"required": True},
        "Always show source citations",
    ),
)
