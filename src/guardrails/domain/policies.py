"""
Guardrail Policies
==================

Pure functions behind the guardrail gates:

- prompt construction from numbered sources
- citation extraction from the model output
- confidence scoring
"""

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List

from src.guardrails.domain.entities import ConfidenceWeights, RetrievedSource


CITATION_PATTERN = re.compile(r"\[Source (\d+)\]")

CONTEXT_SEPARATOR = "\n\n---\n\n"

SYSTEM_PROMPT_TEMPLATE = """You are a helpful technical support assistant. Your role is to answer questions using ONLY the information from the provided documentation sources.

CRITICAL RULES:
1. ONLY use information from the provided sources below - do not make up or infer information
2. ALWAYS cite your sources using [Source N] notation for every fact or statement
3. If the sources don't contain the answer, say "The documentation doesn't cover this specific topic"
4. Be concise, accurate, and helpful
5. If you're uncertain, express that uncertainty clearly
6. Never provide medical, legal, or financial advice

DOCUMENTATION SOURCES:
{context}

Remember: Every factual statement must have a citation like [Source 1] or [Source 2]."""


class FallbackMessages:
    """Pre-approved texts shown in place of a withheld answer."""

    INSUFFICIENT_SOURCES = (
        "I don't have enough information in the documentation to answer that "
        "question accurately. Could you please rephrase your question or ask "
        "about a different topic?"
    )
    NO_CITATIONS = (
        "I couldn't provide a properly sourced answer to your question. "
        "Please try rephrasing or ask about a different topic."
    )
    LOW_CONFIDENCE = (
        "I'm not confident enough in my answer based on the available "
        "documentation. Would you like me to connect you with a human support agent?"
    )
    LOW_CONFIDENCE_WARNING = (
        "\n\n⚠️ *Note: This response has lower confidence. Please verify with "
        "official documentation or contact support if needed.*"
    )
    ERROR = "I'm sorry, I encountered an error processing your request. Please try again."


class PromptBuilder:
    """Builds the grounded prompt from numbered sources."""

    @staticmethod
    def source_header(source: RetrievedSource) -> str:
        label = source.document_title
        if source.section_title:
            label = f"{label} - {source.section_title}"
        return f"[Source {source.index}: {label}]"

    @classmethod
    def build_context(cls, sources: List[RetrievedSource]) -> str:
        return CONTEXT_SEPARATOR.join(
            f"{cls.source_header(source)}\n{source.content}" for source in sources
        )

    @classmethod
    def build_messages(cls, query: str, sources: List[RetrievedSource]) -> List[Dict[str, str]]:
        """
        Chat messages for the completion call.

        The numbered sources go into the system prompt; the user message is
        the raw query.
        """
        return [
            {
                "role": "system",
                "content": SYSTEM_PROMPT_TEMPLATE.format(context=cls.build_context(sources)),
            },
            {"role": "user", "content": query},
        ]


@dataclass(frozen=True)
class CitationCheck:
    """Citation markers found in a response."""
    markers_found: int
    cited_indices: FrozenSet[int]
    invalid_indices: FrozenSet[int]

    @property
    def has_citations(self) -> bool:
        return self.markers_found > 0


def extract_citations(response: str, source_count: int) -> CitationCheck:
    """
    Find ``[Source N]`` markers in a response.

    Markers whose N falls outside 1..source_count are counted as markers
    but never mark a source as cited.
    """
    numbers = [int(n) for n in CITATION_PATTERN.findall(response)]
    valid = frozenset(n for n in numbers if 1 <= n <= source_count)
    invalid = frozenset(n for n in numbers if not 1 <= n <= source_count)
    return CitationCheck(markers_found=len(numbers), cited_indices=valid, invalid_indices=invalid)


def response_quality(response: str, weights: ConfidenceWeights) -> float:
    """1.0 for a response of reasonable length, the degraded factor otherwise."""
    if weights.quality_min_chars < len(response) < weights.quality_max_chars:
        return 1.0
    return weights.degraded_factor


@dataclass(frozen=True)
class ConfidenceScore:
    """Confidence and the components it was computed from."""
    average_similarity: float
    citation_coverage: float
    quality_factor: float
    value: float


def compute_confidence(
    sources: List[RetrievedSource],
    citations: CitationCheck,
    response: str,
    weights: ConfidenceWeights,
) -> ConfidenceScore:
    """
    Score how well a response is supported by its sources.

    Similarity is used as reported by the vector store.
    """
    if not sources:
        return ConfidenceScore(0.0, 0.0, 0.0, 0.0)

    average_similarity = sum(s.similarity for s in sources) / len(sources)
    citation_coverage = len(citations.cited_indices) / len(sources)
    quality_factor = response_quality(response, weights)

    value = (
        average_similarity * weights.similarity
        + citation_coverage * weights.citation
        + quality_factor * weights.quality
    )
    return ConfidenceScore(
        average_similarity=average_similarity,
        citation_coverage=citation_coverage,
        quality_factor=quality_factor,
        value=min(1.0, max(0.0, value)),
    )
