"""
Guardrails Controllers (API Routes)
===================================

FastAPI routes for guarded chat and the resolved guardrail configuration.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from src.config import BlockReason
from src.core import ExternalServiceException
from src.guardrails.application import (
    ChatRequest,
    ChatResponse,
    GuardrailConfigProvider,
    GuardrailConfigResponse,
    GuardrailEngine,
)
from src.guardrails.domain import FallbackMessages
from src.shared.infrastructure.grafana import get_grafana_exporter
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Guarded Chat"])


# ========== Example payloads for Swagger ==========

CHAT_REQUEST_EXAMPLE = {
    "query": "How do I reset the device?",
    "sessionId": "c1d2e3f4-0000-4000-8000-000000000001",
    "userId": "user-42"
}

CHAT_RESPONSE_EXAMPLE = {
    "response": "Hold the reset button for 10 seconds until the LED blinks [Source 1]. "
                "The device then restarts with factory settings [Source 2].",
    "blocked": False,
    "confidence": 0.925,
    "sources": [
        {
            "index": 1,
            "documentId": "0b6c1f0e-6a51-4d0e-9d55-0f1f3c1e2a10",
            "documentTitle": "Router X200 User Manual",
            "sectionTitle": "FACTORY RESET",
            "content": "To reset the device, hold the reset button on the back panel...",
            "similarity": 0.87,
            "cited": True
        }
    ],
    "reason": None,
    "guardrailTriggered": None,
    "suggestAgent": None
}

CHAT_BLOCKED_EXAMPLE = {
    "response": FallbackMessages.LOW_CONFIDENCE,
    "blocked": True,
    "confidence": 0.61,
    "sources": [],
    "reason": "low_confidence",
    "guardrailTriggered": "low_confidence",
    "suggestAgent": True
}


# ========== Dependencies ==========

def get_guardrail_engine(request: Request) -> GuardrailEngine:
    engine = getattr(request.app.state, "guardrail_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Guardrail engine not initialized"
        )
    return engine


def get_config_provider(request: Request) -> GuardrailConfigProvider:
    provider = getattr(request.app.state, "guardrail_config_provider", None)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Guardrail configuration not initialized"
        )
    return provider


def _error_response(status_code: int) -> JSONResponse:
    payload = ChatResponse(
        response=FallbackMessages.ERROR,
        blocked=True,
        confidence=0.0,
        reason=BlockReason.ERROR.value
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump(by_alias=True))


# ========== Route Handlers ==========

@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask a guarded question",
    description="""
    Answer a question from the document library, or withhold the answer.

    Gates, in order (the first failing gate blocks):
    1. **Sources**: fewer matching chunks than `min_sources` blocks with
       `insufficient_sources` without calling the model
    2. **Generation**: the model answers from numbered sources only
    3. **Citations**: no `[Source N]` marker blocks with `no_citations`
    4. **Confidence**: below `min_confidence` blocks with `low_confidence`
       (and suggests a human agent), or appends a warning when
       `block_unsupported` is off

    Blocked answers carry a fixed fallback message. Service failures
    return the generic apology with `reason: "error"` and status 503.
    """,
    responses={
        200: {
            "description": "Answer or fallback",
            "content": {"application/json": {"examples": {
                "accepted": {"value": CHAT_RESPONSE_EXAMPLE},
                "blocked": {"value": CHAT_BLOCKED_EXAMPLE}
            }}}
        },
        503: {"description": "Embedding, vector store or model unavailable"}
    }
)
async def chat(
    request: Request,
    payload: ChatRequest,
    engine: GuardrailEngine = Depends(get_guardrail_engine)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.info(
        "Guarded query received",
        extra={
            "correlation_id": correlation_id,
            "session_id": payload.session_id,
            "query_preview": payload.query[:100]
        }
    )

    try:
        # Shielded so a client disconnect does not cut off the audit log write
        decision = await asyncio.shield(
            engine.answer(payload.query, payload.session_id, payload.user_id)
        )
    except ExternalServiceException as e:
        logger.error(
            "Guarded query failed",
            extra={
                "correlation_id": correlation_id,
                "service": e.service_name,
                "error": e.message
            }
        )
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE)
    except Exception:
        logger.exception(
            "Guarded query failed unexpectedly",
            extra={"correlation_id": correlation_id}
        )
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR)

    await get_grafana_exporter().export_guardrail_decision(
        outcome=decision.outcome.value,
        reason=decision.reason,
        confidence=decision.confidence,
        sources=len(decision.sources),
        latency_ms=decision.processing_time_ms
    )

    if await request.is_disconnected():
        logger.info(
            "Client disconnected, dropping answer",
            extra={"correlation_id": correlation_id, "session_id": payload.session_id}
        )

    return ChatResponse.from_decision(decision)


@router.get(
    "/guardrails/config",
    response_model=GuardrailConfigResponse,
    summary="Current guardrail configuration",
    description="Guardrail settings as a new request would resolve them right now."
)
async def get_guardrail_config(
    provider: GuardrailConfigProvider = Depends(get_config_provider)
):
    config = await provider.resolve()
    return GuardrailConfigResponse.from_domain(config)


guardrails_router = router
