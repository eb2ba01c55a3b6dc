"""
Ingestion Controllers (API Routes)
==================================

FastAPI routes for the document library, ingestion and knowledge base
articles.

Controllers delegate to application services held on app.state.
Application errors are turned into `{error, detail}` payloads by the
exception handlers registered in main.
"""

from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)

from src.config import DocumentCategory
from src.core import ApplicationException
from src.ingestion.application import (
    ArticleCreateRequest,
    ArticleIndexService,
    ArticleMatchInfo,
    ArticleResponse,
    ArticleSearchRequest,
    ArticleSearchResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentService,
    IngestionPipeline,
    IngestRequest,
    IngestResponse,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Documents"])


# ========== Example payloads for Swagger ==========

DOCUMENT_RESPONSE_EXAMPLE = {
    "id": "0b6c1f0e-6a51-4d0e-9d55-0f1f3c1e2a10",
    "title": "Router X200 User Manual",
    "description": "Setup and troubleshooting guide",
    "file_name": "x200-manual.pdf",
    "file_type": "pdf",
    "file_size": 482113,
    "category": "user_manual",
    "product_name": "Router X200",
    "processing_status": "completed",
    "processing_error": None,
    "total_pages": 24,
    "total_chunks": 57,
    "is_active": True,
    "created_at": "2026-01-15T10:30:00Z",
    "processed_at": "2026-01-15T10:31:12Z"
}

INGEST_RESPONSE_EXAMPLE = {
    "success": True,
    "documentId": "0b6c1f0e-6a51-4d0e-9d55-0f1f3c1e2a10",
    "chunks": 57,
    "message": "Successfully processed document into 57 chunks"
}

INGEST_ERROR_EXAMPLE = {
    "error": "Could not extract sufficient text from document",
    "detail": {},
    "error_type": "ExtractionException",
    "correlation_id": "5f0c2a6e-3d3b-4f5e-8b7a-1c2d3e4f5a6b"
}


# ========== Dependencies ==========

def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialized"
        )
    return service


def get_document_service(request: Request) -> DocumentService:
    return _from_state(request, "document_service")


def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return _from_state(request, "ingestion_pipeline")


def get_article_service(request: Request) -> ArticleIndexService:
    return _from_state(request, "article_service")


async def run_ingestion(pipeline: IngestionPipeline, document_id: str) -> None:
    """Background ingestion; failures are already recorded on the document."""
    try:
        await pipeline.process(document_id)
    except ApplicationException as e:
        logger.warning(
            "Background ingestion failed",
            extra={"document_id": document_id, "error": e.message}
        )


# ========== Document Routes ==========

@router.post(
    "/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document",
    description="""
    Upload a PDF, DOCX, TXT or Markdown file to the document library.

    The file is hashed (SHA-256) and rejected with **409** when an active
    document has the same content. Accepted files are stored and registered
    with status `pending`.

    Set `process=true` to start ingestion in the background right away;
    otherwise call `POST /ingest` with the returned ID.
    """,
    responses={
        201: {
            "description": "Document registered",
            "content": {"application/json": {"example": {**DOCUMENT_RESPONSE_EXAMPLE,
                                                         "processing_status": "pending",
                                                         "total_pages": None,
                                                         "total_chunks": 0,
                                                         "processed_at": None}}}
        },
        409: {"description": "Duplicate content"},
        422: {"description": "Empty, oversized or unsupported file"}
    }
)
async def upload_document(
    request: Request,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="Document file"),
    title: Optional[str] = Form(None, max_length=500),
    category: DocumentCategory = Form(DocumentCategory.OTHER),
    description: Optional[str] = Form(None),
    product_name: Optional[str] = Form(None, max_length=255),
    process: bool = Form(False, description="Start ingestion immediately"),
    service: DocumentService = Depends(get_document_service),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    # One byte past the limit is enough to reject an oversized upload
    data = await file.read(service.max_upload_bytes + 1)

    document = await service.register_upload(
        file_name=file.filename or "upload",
        data=data,
        title=title,
        category=category,
        description=description,
        product_name=product_name
    )

    if process:
        background_tasks.add_task(run_ingestion, pipeline, str(document.id))

    logger.info(
        "Upload accepted",
        extra={
            "correlation_id": correlation_id,
            "document_id": document.id,
            "process": process
        }
    )
    return DocumentResponse.from_domain(document)


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List active documents",
    description="Active documents with their processing status, newest first."
)
async def list_documents(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: DocumentService = Depends(get_document_service)
):
    documents = await service.list_active(limit=limit, offset=offset)
    return DocumentListResponse(
        documents=[DocumentResponse.from_domain(d) for d in documents],
        total=len(documents)
    )


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    summary="Get document status",
    responses={
        200: {"content": {"application/json": {"example": DOCUMENT_RESPONSE_EXAMPLE}}},
        404: {"description": "Document not found"}
    }
)
async def get_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service)
):
    document = await service.get(document_id)
    return DocumentResponse.from_domain(document)


@router.delete(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    summary="Deactivate a document",
    description="""
    Soft-delete: the document is marked inactive and its chunks stop
    appearing in retrieval. The same content may then be uploaded again.
    """
)
async def delete_document(
    document_id: str,
    service: DocumentService = Depends(get_document_service)
):
    document = await service.soft_delete(document_id)
    return DocumentResponse.from_domain(document)


@router.post(
    "/ingest",
    response_model=IngestResponse,
    summary="Process a registered document",
    description="""
    Extract, chunk and embed a registered document.

    Runs synchronously and returns the number of stored chunks. On failure
    the document is marked `failed` with the error message and an
    `{error}` payload is returned with a non-2xx status:

    - **404**: unknown document
    - **409**: document is deactivated or already being processed
    - **422**: no usable text could be extracted
    - **502**: the stored file could not be read
    - **503**: embedding service or vector store unavailable
    """,
    responses={
        200: {"content": {"application/json": {"example": INGEST_RESPONSE_EXAMPLE}}},
        422: {"content": {"application/json": {"example": INGEST_ERROR_EXAMPLE}}}
    }
)
async def ingest_document(
    request: Request,
    payload: IngestRequest,
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.info(
        "Ingestion requested",
        extra={"correlation_id": correlation_id, "document_id": payload.document_id}
    )

    result = await pipeline.process(payload.document_id)
    return IngestResponse.from_result(result)


# ========== Knowledge Base Routes ==========

@router.post(
    "/knowledge/articles",
    response_model=ArticleResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Knowledge Base"],
    summary="Index a knowledge base article"
)
async def create_article(
    payload: ArticleCreateRequest,
    service: ArticleIndexService = Depends(get_article_service)
):
    article = await service.index_article(
        title=payload.title,
        content=payload.content,
        published=payload.published,
        article_id=payload.id
    )
    return ArticleResponse.from_domain(article)


@router.post(
    "/knowledge/search",
    response_model=ArticleSearchResponse,
    tags=["Knowledge Base"],
    summary="Search published articles",
    description="Published articles with similarity above the threshold, most similar first."
)
async def search_articles(
    payload: ArticleSearchRequest,
    service: ArticleIndexService = Depends(get_article_service)
):
    matches = await service.search(payload.query, threshold=payload.threshold, limit=payload.limit)
    return ArticleSearchResponse(results=[ArticleMatchInfo.from_match(m) for m in matches])


ingestion_router = router
