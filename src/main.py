"""
Guardrail RAG - Main Application
================================

Document-grounded support answers with guardrails.

Modules:
- Ingestion: Upload documents, extract and chunk text, embed chunks
- Guardrails: Retrieve sources, generate cited answers, block unsupported ones

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and policies
- Infrastructure: Database, LLM, vector store, blob storage
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from src.config import settings
from src.core import ApplicationException

# Infrastructure
from src.infrastructure.database import close_database, create_tables, init_database
from src.infrastructure.llm import create_llm_client
from src.infrastructure.storage import LocalBlobStorage
from src.infrastructure.vectorstore import get_vector_store

# Ingestion Module
from src.ingestion.application import ArticleIndexService, DocumentService, IngestionPipeline
from src.ingestion.infrastructure import SQLAlchemyDocumentRepository, TextExtractor
from src.ingestion.interfaces import ingestion_router

# Guardrails Module
from src.guardrails.application import (
    DocumentAccessRecorder,
    GuardrailConfigProvider,
    GuardrailEngine,
    InteractionLogger,
    Retriever,
)
from src.guardrails.infrastructure import (
    SQLAlchemyDocumentAccessLogRepository,
    SQLAlchemyGuardrailRuleRepository,
    SQLAlchemyInteractionLogRepository,
)
from src.guardrails.interfaces import guardrails_router

# Shared
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from src.shared.infrastructure.grafana import init_grafana_exporter
from src.shared.infrastructure.logging import get_logger, setup_logging
from src.shared.infrastructure.rate_limit import RateLimiter

logger = get_logger(__name__)


def wire_services(app: FastAPI, llm_client, vector_store, storage) -> None:
    """Build application services and store them in app state."""
    document_repository = SQLAlchemyDocumentRepository()
    rule_repository = SQLAlchemyGuardrailRuleRepository()

    app.state.llm_client = llm_client
    app.state.vector_store = vector_store
    app.state.document_service = DocumentService(document_repository, storage, vector_store)
    app.state.ingestion_pipeline = IngestionPipeline(
        repository=document_repository,
        storage=storage,
        extractor=TextExtractor(),
        embedding_client=llm_client,
        vector_store=vector_store,
        rate_limiter=RateLimiter(
            rate=settings.embedding_rate_per_second,
            burst=settings.embedding_burst
        )
    )
    app.state.article_service = ArticleIndexService(llm_client, vector_store)

    config_provider = GuardrailConfigProvider(rule_repository)
    app.state.guardrail_config_provider = config_provider
    app.state.guardrail_engine = GuardrailEngine(
        retriever=Retriever(llm_client, vector_store),
        completion_client=llm_client,
        config_provider=config_provider,
        interaction_logger=InteractionLogger(SQLAlchemyInteractionLogRepository()),
        access_recorder=DocumentAccessRecorder(SQLAlchemyDocumentAccessLogRepository())
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Seed default guardrail rules
    4. Initialize Grafana exporter
    5. Initialize LLM client, vector store and blob storage
    6. Wire services

    SHUTDOWN:
    1. Close vector store and LLM client
    2. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Guardrail RAG service", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "vector_backend": settings.vector_backend
    })

    logger.info("Initializing database")
    init_database()
    await create_tables()

    seeded = await SQLAlchemyGuardrailRuleRepository().seed_defaults()
    logger.info("Guardrail rules ready", extra={"seeded": seeded})

    if settings.grafana_host and settings.grafana_api_key and settings.grafana_instance_id:
        init_grafana_exporter(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id
        )
        logger.info("Grafana OTLP exporter initialized")
    else:
        logger.info("Grafana OTLP exporter not configured - metrics will not be exported")

    logger.info("Initializing LLM client")
    llm_client = create_llm_client()

    logger.info("Initializing vector store", extra={"backend": settings.vector_backend})
    vector_store = get_vector_store()
    await vector_store.initialize()

    storage = LocalBlobStorage()
    wire_services(app, llm_client, vector_store, storage)

    logger.info("Guardrail RAG service started")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Guardrail RAG service")

    await vector_store.close()
    close_client = getattr(llm_client, "close", None)
    if close_client is not None:
        await close_client()

    await close_database()

    logger.info("Guardrail RAG service shutdown complete")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="Guardrail RAG API",
        description="""
    ## Document-Grounded Support Answers

    Answers support questions only from the uploaded documentation, with
    every statement cited, and withholds answers that are not well supported.

    ---

    ### 📄 Ingestion Module

    **Endpoints:**
    - `POST /documents` - Upload a PDF, DOCX, TXT or Markdown file
    - `GET /documents` - List active documents
    - `GET /documents/{id}` - Document processing status
    - `DELETE /documents/{id}` - Deactivate a document
    - `POST /ingest` - Extract, chunk and embed a document
    - `POST /knowledge/articles` - Index a knowledge base article
    - `POST /knowledge/search` - Search published articles

    ---

    ### 🛡️ Guardrails Module

    **Endpoints:**
    - `POST /chat` - Ask a question
    - `GET /guardrails/config` - Current guardrail configuration

    **Gates:**
    1. Source sufficiency (`insufficient_sources`)
    2. Generation from numbered sources
    3. Citation verification (`no_citations`)
    4. Confidence scoring (`low_confidence`, or a warning)

    Every answered or blocked query is written to the interaction log.

    ---
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(ingestion_router)
    app.include_router(guardrails_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "llm_client": "available",
                            "vector_store": "available (120 chunks)"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports LLM client availability and the stored chunk count.
        """
        checks = {
            "llm_client": "available" if getattr(request.app.state, "llm_client", None) else "not_configured",
            "vector_store": "initializing"
        }

        vector_store = getattr(request.app.state, "vector_store", None)
        if vector_store is not None:
            try:
                count = await vector_store.count_chunks()
                checks["vector_store"] = f"available ({count} chunks)"
            except ApplicationException as e:
                checks["vector_store"] = f"error: {e.message}"

        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Guardrail RAG",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
