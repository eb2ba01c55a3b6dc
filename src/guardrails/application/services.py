"""
Guardrails Application Services
===============================

Application services for guardrail-gated question answering.

The engine runs the gates in order and the first failing gate decides the
outcome:

1. source sufficiency (no model call when it fails)
2. generation from numbered sources
3. citation verification
4. confidence scoring

Every terminal outcome writes exactly one interaction log entry. Delivered
answers also record one document access per retrieved chunk.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from src.config import (
    BlockReason,
    DecisionOutcome,
    GuardrailRuleName,
    settings,
)
from src.core import RepositoryException, ValidationException
from src.guardrails.domain import (
    CitationCheck,
    ConfidenceWeights,
    DocumentAccess,
    FallbackMessages,
    GuardrailBlock,
    GuardrailConfig,
    GuardrailDecision,
    GuardrailRule,
    InteractionLogEntry,
    PromptBuilder,
    RetrievedSource,
    SourceAttribution,
    compute_confidence,
    extract_citations,
    parse_rule_value,
)
from src.infrastructure.llm import ICompletionClient, IEmbeddingClient
from src.infrastructure.vectorstore import IVectorStore
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

LOW_CONFIDENCE_WARNING = "low_confidence_warning"


# ========== Repository Interfaces ==========

class IGuardrailRuleRepository(ABC):
    """Interface for guardrail rule storage."""

    @abstractmethod
    async def list_rules(self) -> List[GuardrailRule]:
        """Return every stored rule."""


class IInteractionLogRepository(ABC):
    """Interface for the append-only interaction log."""

    @abstractmethod
    async def create(self, entry: InteractionLogEntry) -> InteractionLogEntry:
        """Persist one entry."""


class IDocumentAccessLogRepository(ABC):
    """Interface for the document access log."""

    @abstractmethod
    async def create_many(self, accesses: List[DocumentAccess]) -> int:
        """Persist all rows in one transaction and return how many were written."""


# ========== Configuration ==========

def default_guardrail_config() -> GuardrailConfig:
    """Guardrail configuration built from settings alone."""
    return GuardrailConfig(
        confidence_threshold=settings.default_confidence_threshold,
        min_sources=settings.default_min_sources,
        max_tokens=settings.llm_max_tokens,
        block_unsupported=settings.default_block_unsupported,
        citation_required=settings.default_citation_required,
        weights=ConfidenceWeights(
            similarity=settings.confidence_similarity_weight,
            citation=settings.confidence_citation_weight,
            quality=settings.confidence_quality_weight,
            quality_min_chars=settings.quality_min_chars,
            quality_max_chars=settings.quality_max_chars,
            degraded_factor=settings.quality_degraded_factor,
        ),
    )


class GuardrailConfigProvider:
    """
    Resolves the guardrail configuration once per request.

    - missing rule: default value
    - disabled rule: the check is switched off
    - malformed rule value: warning and default value
    """

    def __init__(
        self,
        repository: IGuardrailRuleRepository,
        defaults: Optional[GuardrailConfig] = None
    ):
        self._repository = repository
        self._defaults = defaults or default_guardrail_config()

    async def resolve(self) -> GuardrailConfig:
        defaults = self._defaults
        try:
            rules = await self._repository.list_rules()
        except RepositoryException as e:
            logger.warning(
                "Guardrail rules unavailable, using defaults",
                extra={"error": str(e)}
            )
            return defaults

        values: Dict[str, Any] = {
            "confidence_threshold": defaults.confidence_threshold,
            "min_sources": defaults.min_sources,
            "max_tokens": defaults.max_tokens,
            "block_unsupported": defaults.block_unsupported,
            "citation_required": defaults.citation_required,
        }

        for rule in rules:
            try:
                name = GuardrailRuleName(rule.rule_name)
            except ValueError:
                logger.debug("Ignoring unknown guardrail rule", extra={"rule_name": rule.rule_name})
                continue

            if not rule.is_enabled:
                values.update(self._disabled_values(name))
                continue

            try:
                parsed = parse_rule_value(name, rule.rule_value)
            except ValidationException as e:
                logger.warning(
                    "Malformed guardrail rule, using default",
                    extra={"rule_name": name.value, "error": e.message}
                )
                continue

            if name == GuardrailRuleName.MIN_CONFIDENCE:
                values["confidence_threshold"] = parsed.threshold
            elif name == GuardrailRuleName.REQUIRE_SOURCES:
                values["min_sources"] = parsed.min_sources
            elif name == GuardrailRuleName.MAX_RESPONSE_LENGTH:
                values["max_tokens"] = parsed.max_tokens
            elif name == GuardrailRuleName.BLOCK_UNSUPPORTED:
                values["block_unsupported"] = parsed.enabled
            elif name == GuardrailRuleName.CITATION_REQUIRED:
                values["citation_required"] = parsed.required

        return GuardrailConfig(weights=defaults.weights, **values)

    def _disabled_values(self, name: GuardrailRuleName) -> Dict[str, Any]:
        if name == GuardrailRuleName.MIN_CONFIDENCE:
            return {"confidence_threshold": 0.0}
        if name == GuardrailRuleName.REQUIRE_SOURCES:
            return {"min_sources": 0}
        if name == GuardrailRuleName.MAX_RESPONSE_LENGTH:
            return {"max_tokens": self._defaults.max_tokens}
        if name == GuardrailRuleName.BLOCK_UNSUPPORTED:
            return {"block_unsupported": False}
        return {"citation_required": False}


# ========== Application Services ==========

class Retriever:
    """Embeds a query and returns numbered candidate sources."""

    def __init__(
        self,
        embedding_client: IEmbeddingClient,
        vector_store: IVectorStore,
        match_threshold: Optional[float] = None,
        match_count: Optional[int] = None
    ):
        self._embeddings = embedding_client
        self._vector_store = vector_store
        self._threshold = (
            settings.retrieval_match_threshold if match_threshold is None else match_threshold
        )
        self._count = settings.retrieval_match_count if match_count is None else match_count

    async def retrieve(self, query: str) -> List[RetrievedSource]:
        """
        Return up to match_count sources above the match threshold.

        Raises:
            ExternalServiceException: If embedding or search fails
        """
        embedding = await self._embeddings.generate_embedding(query)
        matches = await self._vector_store.search(
            embedding.embedding,
            threshold=self._threshold,
            limit=self._count
        )
        return [
            RetrievedSource(
                index=position,
                chunk_id=match.id,
                document_id=match.document_id,
                document_title=match.document_title,
                content=match.content,
                similarity=match.similarity,
                section_title=match.section_title,
                page_number=match.page_number,
            )
            for position, match in enumerate(matches, start=1)
        ]


class InteractionLogger:
    """
    Writes interaction log entries.

    Never raises: persistence failures go to the operational log only.
    """

    def __init__(self, repository: IInteractionLogRepository):
        self._repository = repository

    async def record(self, entry: InteractionLogEntry) -> bool:
        try:
            await self._repository.create(entry)
            return True
        except Exception:
            logger.exception(
                "Failed to write interaction log",
                extra={"session_id": entry.session_id}
            )
            return False


class DocumentAccessRecorder:
    """
    Records which documents grounded a delivered answer.

    One ai_reference row per retrieved chunk. Never raises.
    """

    def __init__(self, repository: IDocumentAccessLogRepository):
        self._repository = repository

    async def record_references(
        self,
        sources: List[RetrievedSource],
        user_id: Optional[str] = None
    ) -> int:
        accesses = [
            DocumentAccess(document_id=source.document_id, user_id=user_id)
            for source in sources
        ]
        if not accesses:
            return 0
        try:
            return await self._repository.create_many(accesses)
        except Exception:
            logger.exception(
                "Failed to write document access log",
                extra={"documents": sorted({a.document_id for a in accesses})}
            )
            return 0


class GuardrailEngine:
    """
    Answers a query from retrieved documentation, or withholds the answer.

    Service errors (embedding, search, completion) propagate to the caller
    and produce no interaction log entry.
    """

    def __init__(
        self,
        retriever: Retriever,
        completion_client: ICompletionClient,
        config_provider: GuardrailConfigProvider,
        interaction_logger: InteractionLogger,
        temperature: Optional[float] = None,
        source_preview_chars: Optional[int] = None,
        access_recorder: Optional[DocumentAccessRecorder] = None
    ):
        self._retriever = retriever
        self._llm = completion_client
        self._config_provider = config_provider
        self._interaction_logger = interaction_logger
        self._temperature = settings.llm_temperature if temperature is None else temperature
        self._preview_chars = source_preview_chars or settings.source_preview_chars
        self._access_recorder = access_recorder

    async def answer(
        self,
        query: str,
        session_id: str,
        user_id: Optional[str] = None
    ) -> GuardrailDecision:
        """
        Run the gates for one query.

        Args:
            query: User question
            session_id: Chat session ID
            user_id: Optional user ID

        Returns:
            GuardrailDecision with outcome accepted, warned or blocked

        Raises:
            ExternalServiceException: If a collaborator service fails
        """
        start_time = time.perf_counter()
        config = await self._config_provider.resolve()

        # Gate 1: source sufficiency
        sources = await self._retriever.retrieve(query)
        if len(sources) < config.min_sources:
            block = GuardrailBlock(
                reason=BlockReason.INSUFFICIENT_SOURCES,
                fallback_message=FallbackMessages.INSUFFICIENT_SOURCES,
            )
            checks = {
                "sources_found": len(sources),
                "min_sources_required": config.min_sources,
                "check_passed": False,
                "reason": block.reason.value,
            }
            return await self._blocked(
                query, session_id, user_id, start_time, block, checks,
                confidence=0.0, model_response=None, sources_used=[]
            )

        # Gate 2: generation
        completion = await self._llm.chat_completion(
            messages=PromptBuilder.build_messages(query, sources),
            temperature=self._temperature,
            max_tokens=config.max_tokens,
            operation="guarded_answer"
        )
        response = completion.content

        # Gate 3: citation verification
        citations = extract_citations(response, len(sources))
        if config.citation_required and not citations.has_citations:
            block = GuardrailBlock(
                reason=BlockReason.NO_CITATIONS,
                fallback_message=FallbackMessages.NO_CITATIONS,
            )
            checks = {
                "sources_found": len(sources),
                "citations_in_response": 0,
                "citation_required": True,
                "check_passed": False,
                "reason": block.reason.value,
            }
            return await self._blocked(
                query, session_id, user_id, start_time, block, checks,
                confidence=0.0, model_response=response,
                sources_used=self._sources_used(sources, citations),
                hallucination_detected=True
            )

        # Gate 4: confidence
        score = compute_confidence(sources, citations, response, config.weights)
        guardrail_triggered = None
        outcome = DecisionOutcome.ACCEPTED

        if score.value < config.confidence_threshold:
            if config.block_unsupported:
                block = GuardrailBlock(
                    reason=BlockReason.LOW_CONFIDENCE,
                    fallback_message=FallbackMessages.LOW_CONFIDENCE,
                    suggest_agent=True,
                )
                checks = {
                    "confidence_score": score.value,
                    "min_confidence": config.confidence_threshold,
                    "average_similarity": score.average_similarity,
                    "citation_coverage": score.citation_coverage,
                    "quality_factor": score.quality_factor,
                    "check_passed": False,
                    "reason": block.reason.value,
                }
                return await self._blocked(
                    query, session_id, user_id, start_time, block, checks,
                    confidence=score.value, model_response=response,
                    sources_used=self._sources_used(sources, citations)
                )

            outcome = DecisionOutcome.WARNED
            guardrail_triggered = LOW_CONFIDENCE_WARNING
            final_response = response + FallbackMessages.LOW_CONFIDENCE_WARNING
        else:
            final_response = response

        # Acceptance
        attributions = [
            SourceAttribution(
                index=source.index,
                document_id=source.document_id,
                document_title=source.document_title,
                content=source.preview(self._preview_chars),
                similarity=source.similarity,
                cited=source.index in citations.cited_indices,
                section_title=source.section_title,
            )
            for source in sources
        ]
        checks = {
            "confidence_score": score.value,
            "min_confidence": config.confidence_threshold,
            "sources_found": len(sources),
            "citations_in_response": citations.markers_found,
            "cited_sources": sorted(citations.cited_indices),
            "all_checks_passed": True,
            "guardrail_triggered": guardrail_triggered,
        }
        elapsed_ms = self._elapsed_ms(start_time)

        await self._interaction_logger.record(InteractionLogEntry(
            session_id=session_id,
            user_id=user_id,
            user_query=query,
            ai_response=final_response,
            guardrail_checks=checks,
            sources_used=self._sources_used(sources, citations),
            confidence_score=score.value,
            blocked_response=False,
            processing_time_ms=elapsed_ms,
        ))
        if self._access_recorder is not None:
            await self._access_recorder.record_references(sources, user_id)

        logger.info(
            "Answer delivered",
            extra={
                "session_id": session_id,
                "outcome": outcome.value,
                "confidence": round(score.value, 4),
                "sources": len(sources),
                "cited": len(citations.cited_indices),
                "latency_ms": elapsed_ms
            }
        )

        return GuardrailDecision(
            outcome=outcome,
            response=final_response,
            confidence=score.value,
            sources=attributions,
            guardrail_triggered=guardrail_triggered,
            checks=checks,
            model_response=response,
            processing_time_ms=elapsed_ms,
        )

    async def _blocked(
        self,
        query: str,
        session_id: str,
        user_id: Optional[str],
        start_time: float,
        block: GuardrailBlock,
        checks: Dict[str, Any],
        confidence: float,
        model_response: Optional[str],
        sources_used: List[Dict[str, Any]],
        hallucination_detected: bool = False
    ) -> GuardrailDecision:
        elapsed_ms = self._elapsed_ms(start_time)

        await self._interaction_logger.record(InteractionLogEntry(
            session_id=session_id,
            user_id=user_id,
            user_query=query,
            ai_response=model_response,
            guardrail_checks=checks,
            sources_used=sources_used,
            confidence_score=confidence,
            blocked_response=True,
            hallucination_detected=hallucination_detected,
            fallback_message=block.fallback_message,
            processing_time_ms=elapsed_ms,
        ))

        logger.info(
            "Answer blocked",
            extra={
                "session_id": session_id,
                "reason": block.reason.value,
                "confidence": round(confidence, 4),
                "latency_ms": elapsed_ms
            }
        )

        return GuardrailDecision(
            outcome=DecisionOutcome.BLOCKED,
            response=block.fallback_message,
            confidence=confidence,
            block=block,
            guardrail_triggered=block.reason.value,
            hallucination_detected=hallucination_detected,
            checks=checks,
            model_response=model_response,
            processing_time_ms=elapsed_ms,
        )

    @staticmethod
    def _sources_used(
        sources: List[RetrievedSource],
        citations: CitationCheck
    ) -> List[Dict[str, Any]]:
        return [
            {
                "index": source.index,
                "chunk_id": source.chunk_id,
                "document_id": source.document_id,
                "similarity": source.similarity,
                "cited": source.index in citations.cited_indices,
            }
            for source in sources
        ]

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.perf_counter() - start_time) * 1000)
