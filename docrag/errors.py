"""
Error taxonomy.
Every error is tagged with an ErrorKind where it is raised; the HTTP layer maps
kinds to status codes once (ERROR_STATUS_CODES) instead of inspecting messages.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    DOWNLOAD = "download"
    EXTRACTION = "extraction"
    EMBEDDING_PROVIDER = "embedding_provider"
    STORAGE = "storage"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    LIMIT_EXCEEDED = "limit_exceeded"
    INVALID_UPLOAD = "invalid_upload"
    INVALID_TRANSITION = "invalid_transition"


ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.DOWNLOAD: 502,
    ErrorKind.EXTRACTION: 422,
    ErrorKind.EMBEDDING_PROVIDER: 502,
    ErrorKind.STORAGE: 503,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.LIMIT_EXCEEDED: 400,
    ErrorKind.INVALID_UPLOAD: 400,
    ErrorKind.INVALID_TRANSITION: 409,
}


class DocRagError(Exception):
    """Base exception carrying an error kind and optional debugging context."""

    kind: ErrorKind = ErrorKind.STORAGE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self.kind]

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ---- ingestion pipeline (all retryable per job attempt) ----

class DownloadError(DocRagError):
    """Source blob missing or unreadable."""
    kind = ErrorKind.DOWNLOAD


class ExtractionError(DocRagError):
    """Buffer is not a readable PDF, or it has no text layer."""
    kind = ErrorKind.EXTRACTION


class EmbeddingProviderError(DocRagError):
    """External embedding call failed or returned a malformed payload."""
    kind = ErrorKind.EMBEDDING_PROVIDER

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if status_code is not None:
            details["provider_status"] = status_code
        self.provider_status = status_code
        super().__init__(message, details)


class StorageError(DocRagError):
    """Vector or metadata write/read failed."""
    kind = ErrorKind.STORAGE

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


# ---- blob storage collaborator ----

class BlobStorageError(DocRagError):
    kind = ErrorKind.DOWNLOAD


class BlobNotFoundError(BlobStorageError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Object not found: {path}", {"path": path})
        self.path = path


# ---- service layer ----

class DocumentNotFoundError(DocRagError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, document_id: str) -> None:
        super().__init__("Document not found or access denied", {"document_id": document_id})
        self.document_id = document_id


class DocumentLimitError(DocRagError):
    kind = ErrorKind.LIMIT_EXCEEDED


class InvalidUploadError(DocRagError):
    kind = ErrorKind.INVALID_UPLOAD


class InvalidStatusTransition(DocRagError):
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, document_id: str, current: Optional[str], target: str) -> None:
        super().__init__(
            f"Cannot move document from {current} to {target}",
            {"document_id": document_id, "current": current, "target": target},
        )
        self.current = current
        self.target = target


class ChunkingConfigError(ValueError):
    """Chunk size/overlap combination that would never advance."""
