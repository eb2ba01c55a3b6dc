"""
Guardrails Infrastructure Models
================================

SQLAlchemy ORM models for guardrail rules, the interaction log and the
document access log.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GuardrailRuleModel(Base):
    """Database model for a guardrail rule (one row per rule name)."""
    __tablename__ = "ai_guardrails_config"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    rule_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False)
    rule_value: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class InteractionLogModel(Base):
    """
    Database model for the append-only interaction log.

    Rows are only ever inserted.
    """
    __tablename__ = "ai_guardrails_logs"
    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_ai_guardrails_logs_confidence"
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    user_query: Mapped[str] = mapped_column(Text, nullable=False)
    ai_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    guardrail_checks: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    sources_used: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    hallucination_detected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inappropriate_content: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blocked_response: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    fallback_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )


class DocumentAccessLogModel(Base):
    """Database model for document accesses. Rows are only ever inserted."""
    __tablename__ = "document_access_logs"
    __table_args__ = (
        CheckConstraint(
            "access_type IN ('view', 'download', 'search_result', 'ai_reference')",
            name="ck_document_access_logs_type"
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    document_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    access_type: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
