"""
Guardrails Infrastructure Repositories
======================================

SQLAlchemy implementations of guardrail rule, interaction log and document
access log storage.
"""

from typing import List
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from src.core import RepositoryException
from src.guardrails.application.services import (
    IDocumentAccessLogRepository,
    IGuardrailRuleRepository,
    IInteractionLogRepository,
)
from src.guardrails.domain import (
    DEFAULT_RULES,
    DocumentAccess,
    GuardrailRule,
    InteractionLogEntry,
)
from src.infrastructure.database import get_session_context
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SQLAlchemyGuardrailRuleRepository(IGuardrailRuleRepository):
    """SQLAlchemy implementation for guardrail rules."""

    async def list_rules(self) -> List[GuardrailRule]:
        """Return every stored rule."""
        from src.guardrails.infrastructure.models import GuardrailRuleModel

        try:
            async with get_session_context() as session:
                result = await session.execute(
                    select(GuardrailRuleModel).order_by(GuardrailRuleModel.rule_name)
                )
                return [
                    GuardrailRule(
                        id=str(model.id),
                        rule_name=model.rule_name,
                        rule_type=model.rule_type,
                        rule_value=model.rule_value,
                        is_enabled=model.is_enabled,
                        description=model.description,
                    )
                    for model in result.scalars().all()
                ]
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load guardrail rules: {e}")

    async def seed_defaults(self) -> int:
        """
        Insert default rules that are not stored yet.

        Existing rows are left untouched.

        Returns:
            Number of rules inserted
        """
        from src.guardrails.infrastructure.models import GuardrailRuleModel

        try:
            async with get_session_context() as session:
                result = await session.execute(select(GuardrailRuleModel.rule_name))
                existing = set(result.scalars().all())

                inserted = 0
                for rule in DEFAULT_RULES:
                    if rule.name.value in existing:
                        continue
                    session.add(GuardrailRuleModel(
                        id=uuid4(),
                        rule_name=rule.name.value,
                        rule_type=rule.rule_type.value,
                        rule_value=dict(rule.value),
                        is_enabled=True,
                        description=rule.description,
                    ))
                    inserted += 1
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to seed guardrail rules: {e}")

        if inserted:
            logger.info("Seeded default guardrail rules", extra={"inserted": inserted})
        return inserted


class SQLAlchemyInteractionLogRepository(IInteractionLogRepository):
    """SQLAlchemy implementation for the interaction log."""

    async def create(self, entry: InteractionLogEntry) -> InteractionLogEntry:
        """Insert one log entry."""
        from src.guardrails.infrastructure.models import InteractionLogModel

        model = InteractionLogModel(
            id=uuid4(),
            session_id=entry.session_id,
            user_id=entry.user_id,
            user_query=entry.user_query,
            ai_response=entry.ai_response,
            guardrail_checks=entry.guardrail_checks,
            sources_used=entry.sources_used,
            confidence_score=entry.confidence_score,
            hallucination_detected=entry.hallucination_detected,
            blocked_response=entry.blocked_response,
            fallback_message=entry.fallback_message,
            processing_time_ms=entry.processing_time_ms,
            created_at=entry.created_at,
        )

        try:
            async with get_session_context() as session:
                session.add(model)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to write interaction log: {e}")

        entry.id = str(model.id)
        return entry

    async def list_by_session(self, session_id: str, limit: int = 50) -> List[InteractionLogEntry]:
        """Entries for one chat session, oldest first."""
        from src.guardrails.infrastructure.models import InteractionLogModel

        stmt = (
            select(InteractionLogModel)
            .where(InteractionLogModel.session_id == session_id)
            .order_by(InteractionLogModel.created_at)
            .limit(limit)
        )
        async with get_session_context() as session:
            result = await session.execute(stmt)
            return [
                InteractionLogEntry(
                    id=str(model.id),
                    session_id=model.session_id,
                    user_id=model.user_id,
                    user_query=model.user_query,
                    ai_response=model.ai_response,
                    guardrail_checks=model.guardrail_checks,
                    sources_used=model.sources_used,
                    confidence_score=model.confidence_score,
                    hallucination_detected=model.hallucination_detected,
                    blocked_response=model.blocked_response,
                    fallback_message=model.fallback_message,
                    processing_time_ms=model.processing_time_ms,
                    created_at=model.created_at,
                )
                for model in result.scalars().all()
            ]


class SQLAlchemyDocumentAccessLogRepository(IDocumentAccessLogRepository):
    """SQLAlchemy implementation for the document access log."""

    async def create_many(self, accesses: List[DocumentAccess]) -> int:
        """Insert all rows in one transaction."""
        from src.guardrails.infrastructure.models import DocumentAccessLogModel

        try:
            models = [
                DocumentAccessLogModel(
                    id=uuid4(),
                    document_id=UUID(access.document_id),
                    user_id=access.user_id,
                    access_type=access.access_type.value,
                    created_at=access.created_at,
                )
                for access in accesses
            ]
        except ValueError as e:
            raise RepositoryException(f"Invalid document ID in access log: {e}")

        try:
            async with get_session_context() as session:
                session.add_all(models)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to write document access log: {e}")

        for access, model in zip(accesses, models):
            access.id = str(model.id)
        return len(models)

    async def count_by_document(self, document_id: str) -> int:
        """Number of recorded accesses for one document."""
        from src.guardrails.infrastructure.models import DocumentAccessLogModel

        stmt = (
            select(func.count())
            .select_from(DocumentAccessLogModel)
            .where(DocumentAccessLogModel.document_id == UUID(document_id))
        )
        async with get_session_context() as session:
            result = await session.execute(stmt)
            return result.scalar_one()
