"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Ingestion errors (storage, extraction, duplicates, state conflicts) and
external service errors (embedding, completion, vector store) are kept apart:
the former are turned into a `failed` document status by the ingestion
pipeline, the latter surface to the API layer as 503 responses.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class DuplicateDocumentException(ValidationException):
    """Raised when an active document with the same content hash exists."""

    def __init__(self, content_hash: str, existing_id: Optional[str] = None):
        self.content_hash = content_hash
        self.existing_id = existing_id
        super().__init__(
            "A document with identical content already exists",
            {"content_hash": content_hash, "existing_document_id": existing_id}
        )


class DocumentStateException(DomainException):
    """Raised when a document is not in a state that allows the operation."""

    def __init__(self, document_id: str, status: str, operation: str):
        self.document_id = document_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} document '{document_id}' while it is {status}",
            {"document_id": document_id, "status": status}
        )


class StorageException(ApplicationException):
    """Raised when a stored blob cannot be read or written."""


class ExtractionException(ApplicationException):
    """Raised when text cannot be extracted from a file."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class EmbeddingServiceException(ExternalServiceException):
    """Exception for embedding API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Embedding Service", message, details)


class CompletionServiceException(ExternalServiceException):
    """Exception for chat completion API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Completion Service", message, details)


class VectorStoreException(ExternalServiceException):
    """Exception for vector store failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Vector Store", message, details)
