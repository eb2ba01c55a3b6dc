"""Tests for the guardrail engine gates and their audit log entries."""

import pytest

from src.config import AccessType, DecisionOutcome
from src.core import CompletionServiceException, EmbeddingServiceException, RepositoryException
from src.guardrails.application import Retriever
from src.guardrails.domain import FallbackMessages

from tests.conftest import (
    FailingLogRepository,
    FakeEmbeddingClient,
    InMemoryAccessLogRepository,
    ScriptedCompletionClient,
    StaticVectorStore,
    TestConstants,
    make_match,
    rule,
)


THREE_MATCHES = [make_match(1, 0.85), make_match(2, 0.85), make_match(3, 0.85)]


async def ask(engine):
    return await engine.answer(TestConstants.QUERY, TestConstants.SESSION_ID, TestConstants.USER_ID)


class TestSourceSufficiency:

    @pytest.mark.asyncio
    async def test_no_candidates_blocks_without_model_call(self, engine_factory, log_repository):
        engine, completion = engine_factory(matches=[])

        decision = await ask(engine)

        assert decision.outcome == DecisionOutcome.BLOCKED
        assert decision.reason == "insufficient_sources"
        assert decision.response == FallbackMessages.INSUFFICIENT_SOURCES
        assert decision.confidence == 0.0
        assert decision.sources == []
        assert completion.calls == []

        assert len(log_repository.entries) == 1
        entry = log_repository.entries[0]
        assert entry.ai_response is None
        assert entry.blocked_response is True
        assert entry.fallback_message == FallbackMessages.INSUFFICIENT_SOURCES
        assert entry.guardrail_checks["sources_found"] == 0
        assert entry.guardrail_checks["min_sources_required"] == 1
        assert entry.guardrail_checks["check_passed"] is False

    @pytest.mark.asyncio
    async def test_candidates_below_configured_minimum_block(self, engine_factory):
        engine, completion = engine_factory(
            matches=THREE_MATCHES,
            rules=[rule("require_sources", {"min_sources": 4})]
        )

        decision = await ask(engine)

        assert decision.reason == "insufficient_sources"
        assert completion.calls == []


class TestCitationVerification:

    @pytest.mark.asyncio
    async def test_uncited_answer_blocks_as_hallucination(self, engine_factory, log_repository):
        engine, completion = engine_factory(matches=THREE_MATCHES, answer=TestConstants.UNCITED_ANSWER)

        decision = await ask(engine)

        assert decision.blocked
        assert decision.reason == "no_citations"
        assert decision.hallucination_detected is True
        assert decision.response == FallbackMessages.NO_CITATIONS
        assert len(completion.calls) == 1

        entry = log_repository.entries[0]
        assert entry.ai_response == TestConstants.UNCITED_ANSWER
        assert entry.hallucination_detected is True
        assert entry.guardrail_checks["citations_in_response"] == 0
        assert entry.guardrail_checks["citation_required"] is True

    @pytest.mark.asyncio
    async def test_uncited_answer_allowed_when_citations_not_required(self, engine_factory):
        engine, _ = engine_factory(
            matches=THREE_MATCHES,
            answer=TestConstants.UNCITED_ANSWER,
            rules=[
                rule("citation_required", {"required": False}),
                rule("block_unsupported", {"enabled": False}, rule_type="content_filter"),
            ]
        )

        decision = await ask(engine)

        # 0.5 * 0.85 + 0 + 0.2 = 0.625, below 0.7 and not blocking
        assert decision.outcome == DecisionOutcome.WARNED
        assert decision.confidence == pytest.approx(0.625)
        assert all(not s.cited for s in decision.sources)

    @pytest.mark.asyncio
    async def test_out_of_range_citation_passes_gate_but_scores_zero_coverage(self, engine_factory):
        engine, _ = engine_factory(
            matches=THREE_MATCHES,
            answer="Hold the reset button for ten seconds to restore defaults [Source 7]."
        )

        decision = await ask(engine)

        assert decision.reason == "low_confidence"
        assert decision.confidence == pytest.approx(0.625)


class TestConfidenceGate:

    @pytest.mark.asyncio
    async def test_well_supported_answer_is_accepted(self, engine_factory, log_repository):
        engine, completion = engine_factory(matches=THREE_MATCHES)

        decision = await ask(engine)

        # 0.5 * 0.85 + 0.3 * 1.0 + 0.2 * 1.0
        assert decision.confidence == pytest.approx(0.925)
        assert decision.outcome == DecisionOutcome.ACCEPTED
        assert not decision.blocked
        assert decision.response == TestConstants.CITED_ANSWER
        assert decision.guardrail_triggered is None
        assert [s.cited for s in decision.sources] == [True, True, True]
        assert [s.index for s in decision.sources] == [1, 2, 3]

        call = completion.calls[0]
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 1000

        entry = log_repository.entries[0]
        assert entry.blocked_response is False
        assert entry.ai_response == TestConstants.CITED_ANSWER
        assert entry.guardrail_checks["all_checks_passed"] is True
        assert entry.guardrail_checks["citations_in_response"] == 3
        assert entry.confidence_score == pytest.approx(0.925)

    @pytest.mark.asyncio
    async def test_low_confidence_blocks_and_suggests_agent(self, engine_factory, log_repository):
        matches = [make_match(1, 0.61), make_match(2, 0.61), make_match(3, 0.61)]
        engine, _ = engine_factory(
            matches=matches,
            answer="Hold the reset button for ten seconds to restore defaults [Source 1]."
        )

        decision = await ask(engine)

        # 0.5 * 0.61 + 0.3 / 3 + 0.2 = 0.605
        assert decision.reason == "low_confidence"
        assert decision.suggest_agent is True
        assert decision.response == FallbackMessages.LOW_CONFIDENCE
        assert decision.confidence == pytest.approx(0.605)

        entry = log_repository.entries[0]
        assert entry.guardrail_checks["min_confidence"] == 0.7
        assert entry.sources_used[0]["cited"] is True
        assert entry.sources_used[1]["cited"] is False

    @pytest.mark.asyncio
    async def test_low_confidence_warns_when_blocking_disabled(self, engine_factory, log_repository):
        matches = [make_match(1, 0.61), make_match(2, 0.61), make_match(3, 0.61)]
        answer = "Hold the reset button for ten seconds to restore defaults [Source 1]."
        engine, _ = engine_factory(
            matches=matches,
            answer=answer,
            rules=[rule("block_unsupported", {"enabled": False}, rule_type="content_filter")]
        )

        decision = await ask(engine)

        assert decision.outcome == DecisionOutcome.WARNED
        assert not decision.blocked
        assert decision.guardrail_triggered == "low_confidence_warning"
        assert decision.response == answer + FallbackMessages.LOW_CONFIDENCE_WARNING
        assert [s.cited for s in decision.sources] == [True, False, False]
        assert log_repository.entries[0].guardrail_checks["guardrail_triggered"] == "low_confidence_warning"

    @pytest.mark.asyncio
    async def test_threshold_comes_from_rules(self, engine_factory):
        engine, _ = engine_factory(
            matches=THREE_MATCHES,
            rules=[rule("min_confidence", {"threshold": 0.95}, rule_type="confidence_threshold")]
        )

        decision = await ask(engine)

        assert decision.reason == "low_confidence"

    @pytest.mark.asyncio
    async def test_max_tokens_from_rules(self, engine_factory):
        engine, completion = engine_factory(
            matches=THREE_MATCHES,
            rules=[rule("max_response_length", {"max_tokens": 250}, rule_type="response_length")]
        )

        await ask(engine)

        assert completion.calls[0]["max_tokens"] == 250

    @pytest.mark.asyncio
    async def test_source_preview_is_truncated(self, engine_factory):
        engine, _ = engine_factory(
            matches=[make_match(1, 0.9, content="z" * 300)],
            answer="Hold the reset button for ten seconds to restore defaults [Source 1]."
        )

        decision = await ask(engine)

        assert decision.sources[0].content == "z" * 200 + "..."


class TestFailures:

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates_without_log(self, engine_factory, log_repository):
        engine, completion = engine_factory(
            matches=THREE_MATCHES,
            embedding_client=FakeEmbeddingClient(error=EmbeddingServiceException("timed out"))
        )

        with pytest.raises(EmbeddingServiceException):
            await ask(engine)

        assert completion.calls == []
        assert log_repository.entries == []

    @pytest.mark.asyncio
    async def test_completion_failure_propagates(self, engine_factory, log_repository):
        engine, _ = engine_factory(
            matches=THREE_MATCHES,
            completion_client=ScriptedCompletionClient(error=CompletionServiceException("rate limited"))
        )

        with pytest.raises(CompletionServiceException):
            await ask(engine)

        assert log_repository.entries == []

    @pytest.mark.asyncio
    async def test_log_failure_does_not_block_answer(self, engine_factory):
        engine, _ = engine_factory(matches=THREE_MATCHES, log_repo=FailingLogRepository())

        decision = await ask(engine)

        assert decision.outcome == DecisionOutcome.ACCEPTED


class TestRetriever:

    @pytest.mark.asyncio
    async def test_explicit_zero_match_count_is_kept(self):
        vector_store = StaticVectorStore(THREE_MATCHES)
        retriever = Retriever(FakeEmbeddingClient(), vector_store, match_threshold=0.6, match_count=0)

        sources = await retriever.retrieve(TestConstants.QUERY)

        assert sources == []
        assert vector_store.searches == [{"threshold": 0.6, "limit": 0}]


class TestDocumentAccessLog:

    @pytest.mark.asyncio
    async def test_accepted_answer_records_each_retrieved_chunk(self, engine_factory, access_repository):
        engine, _ = engine_factory(matches=THREE_MATCHES)

        await ask(engine)

        assert [a.document_id for a in access_repository.accesses] == ["doc-1", "doc-2", "doc-3"]
        assert {a.access_type for a in access_repository.accesses} == {AccessType.AI_REFERENCE}
        assert {a.user_id for a in access_repository.accesses} == {TestConstants.USER_ID}

    @pytest.mark.asyncio
    async def test_warned_answer_records_accesses(self, engine_factory, access_repository):
        matches = [make_match(1, 0.61), make_match(2, 0.61), make_match(3, 0.61)]
        engine, _ = engine_factory(
            matches=matches,
            answer="Hold the reset button for ten seconds to restore defaults [Source 1].",
            rules=[rule("block_unsupported", {"enabled": False}, rule_type="content_filter")]
        )

        decision = await ask(engine)

        assert decision.outcome == DecisionOutcome.WARNED
        assert len(access_repository.accesses) == 3

    @pytest.mark.asyncio
    async def test_blocked_answer_records_nothing(self, engine_factory, access_repository):
        engine, _ = engine_factory(matches=THREE_MATCHES, answer=TestConstants.UNCITED_ANSWER)

        decision = await ask(engine)

        assert decision.blocked
        assert access_repository.accesses == []

    @pytest.mark.asyncio
    async def test_access_log_failure_does_not_block_answer(self, engine_factory, log_repository):
        failing = InMemoryAccessLogRepository(error=RepositoryException("access log unavailable"))
        engine, _ = engine_factory(matches=THREE_MATCHES, access_repo=failing)

        decision = await ask(engine)

        assert decision.outcome == DecisionOutcome.ACCEPTED
        assert len(log_repository.entries) == 1
