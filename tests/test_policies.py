"""Tests for citation extraction, confidence scoring and prompt building."""

import pytest

from src.config import GuardrailRuleName
from src.core import ValidationException
from src.guardrails.domain import (
    ConfidenceWeights,
    GuardrailConfig,
    PromptBuilder,
    RetrievedSource,
    compute_confidence,
    extract_citations,
    parse_rule_value,
    response_quality,
)
from src.guardrails.domain.rules import MinConfidenceValue


def source(index: int, similarity: float, section: str = None, content: str = "Hold the button.") -> RetrievedSource:
    return RetrievedSource(
        index=index,
        chunk_id=f"chunk-{index}",
        document_id=f"doc-{index}",
        document_title=f"Manual {index}",
        content=content,
        similarity=similarity,
        section_title=section,
    )


class TestExtractCitations:

    def test_collects_distinct_valid_indices(self):
        check = extract_citations("A [Source 1]. B [Source 2]. C [Source 1].", source_count=3)

        assert check.markers_found == 3
        assert check.cited_indices == frozenset({1, 2})
        assert check.has_citations

    def test_out_of_range_markers_count_but_are_not_cited(self):
        check = extract_citations("See [Source 0] and [Source 7].", source_count=3)

        assert check.markers_found == 2
        assert check.cited_indices == frozenset()
        assert check.invalid_indices == frozenset({0, 7})
        assert check.has_citations

    @pytest.mark.parametrize("response", [
        "No markers at all.",
        "Almost [Source one] and [source 1] and [Source 1: Manual].",
        "",
    ])
    def test_no_markers(self, response):
        check = extract_citations(response, source_count=3)

        assert check.markers_found == 0
        assert not check.has_citations


class TestConfidence:

    def test_formula_with_full_coverage(self):
        sources = [source(1, 0.9), source(2, 0.9)]
        citations = extract_citations("[Source 1] [Source 2]", 2)
        response = "x" * 100

        score = compute_confidence(sources, citations, response, ConfidenceWeights())

        assert score.average_similarity == pytest.approx(0.9)
        assert score.citation_coverage == pytest.approx(1.0)
        assert score.quality_factor == 1.0
        assert score.value == pytest.approx(0.95)

    def test_average_uses_all_candidates_not_only_cited(self):
        sources = [source(1, 0.9), source(2, 0.7)]
        citations = extract_citations("[Source 1]", 2)

        score = compute_confidence(sources, citations, "x" * 100, ConfidenceWeights())

        assert score.average_similarity == pytest.approx(0.8)
        assert score.citation_coverage == pytest.approx(0.5)
        assert score.value == pytest.approx(0.5 * 0.8 + 0.3 * 0.5 + 0.2)

    def test_no_sources_scores_zero(self):
        score = compute_confidence([], extract_citations("", 0), "text", ConfidenceWeights())

        assert score.value == 0.0

    @pytest.mark.parametrize("length,expected", [
        (50, 0.7),
        (51, 1.0),
        (2999, 1.0),
        (3000, 0.7),
        (0, 0.7),
    ])
    def test_quality_factor_bounds(self, length, expected):
        assert response_quality("x" * length, ConfidenceWeights()) == expected

    def test_custom_weights(self):
        weights = ConfidenceWeights(similarity=1.0, citation=0.0, quality=0.0)
        sources = [source(1, 0.42)]

        score = compute_confidence(sources, extract_citations("", 1), "x" * 100, weights)

        assert score.value == pytest.approx(0.42)

    def test_invalid_weights_rejected(self):
        with pytest.raises(ValidationException):
            ConfidenceWeights(similarity=1.5)
        with pytest.raises(ValidationException):
            ConfidenceWeights(quality_min_chars=3000, quality_max_chars=50)


class TestPromptBuilder:

    def test_context_blocks_are_numbered_and_separated(self):
        sources = [source(1, 0.9, section="FACTORY RESET"), source(2, 0.8)]

        context = PromptBuilder.build_context(sources)

        assert context == (
            "[Source 1: Manual 1 - FACTORY RESET]\nHold the button."
            "\n\n---\n\n"
            "[Source 2: Manual 2]\nHold the button."
        )

    def test_sources_go_to_system_prompt_and_query_to_user(self):
        messages = PromptBuilder.build_messages("How do I reset?", [source(1, 0.9)])

        assert [m["role"] for m in messages] == ["system", "user"]
        assert "[Source 1: Manual 1]\nHold the button." in messages[0]["content"]
        assert "ONLY use information from the provided sources" in messages[0]["content"]
        assert "Never provide medical, legal, or financial advice" in messages[0]["content"]
        assert messages[1]["content"] == "How do I reset?"

    def test_preview_truncates_long_content(self):
        long_source = source(1, 0.9, content="y" * 250)

        assert long_source.preview(200) == "y" * 200 + "..."
        assert source(1, 0.9).preview(200) == "Hold the button."


class TestRuleValues:

    def test_valid_value(self):
        value = parse_rule_value(GuardrailRuleName.MIN_CONFIDENCE, {"threshold": 0.8})

        assert isinstance(value, MinConfidenceValue)
        assert value.threshold == 0.8

    @pytest.mark.parametrize("name,raw", [
        (GuardrailRuleName.MIN_CONFIDENCE, {"threshold": 1.5}),
        (GuardrailRuleName.MIN_CONFIDENCE, {"threshold": "high"}),
        (GuardrailRuleName.REQUIRE_SOURCES, {"min_sources": 1, "extra": True}),
        (GuardrailRuleName.MAX_RESPONSE_LENGTH, {}),
        (GuardrailRuleName.CITATION_REQUIRED, "yes please"),
    ])
    def test_malformed_values_rejected(self, name, raw):
        with pytest.raises(ValidationException):
            parse_rule_value(name, raw)

    def test_config_validation(self):
        with pytest.raises(ValidationException):
            GuardrailConfig(confidence_threshold=1.2)
        with pytest.raises(ValidationException):
            GuardrailConfig(min_sources=-1)
