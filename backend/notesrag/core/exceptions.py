"""
Custom exception classes for unified error handling.

Every error carries a ``retryable`` flag: the ingestion worker turns retryable
errors into queue retries, the chat route turns them into 503 responses.
"""

from fastapi import HTTPException, status


class AppBaseError(Exception):
    """Base exception for all application errors."""
    retryable: bool = False
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class DocumentNotFoundError(AppBaseError):
    """Raised when a file record no longer exists (stale job or bad id)."""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(
            message=f"File {file_id} not found",
            detail="The document may have been deleted.",
        )


class DownloadError(AppBaseError):
    """Raised when the object store cannot return a blob."""
    retryable = True
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, path: str, original_error: str = ""):
        super().__init__(
            message=f"Failed to download file from storage: {path}",
            detail=original_error or None,
        )


class EmbeddingMismatchError(AppBaseError):
    """Raised when the embedding provider returns the wrong number or shape of vectors."""
    retryable = True
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str):
        super().__init__(message=message, detail="Embedding provider returned an inconsistent batch.")


class EmbeddingUnavailableError(AppBaseError):
    """Raised when the embedding provider cannot be reached."""
    retryable = True
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, original_error: str = ""):
        super().__init__(
            message="Embedding service unavailable",
            detail=original_error or None,
        )


class VectorIndexUnavailableError(AppBaseError):
    """Raised when the vector index rejects or fails a request."""
    retryable = True
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, operation: str, original_error: str = ""):
        super().__init__(
            message=f"Vector index {operation} failed",
            detail=original_error or None,
        )


class VectorIndexConfigError(AppBaseError):
    """Raised when the existing collection does not match the embedding model."""

    def __init__(self, collection: str, expected: int, actual: int | None):
        super().__init__(
            message=f"Collection '{collection}' has vector size {actual}, expected {expected}",
            detail="Recreate the collection or change EMBEDDING_DIMENSIONS.",
        )


class EmptyScopeError(AppBaseError):
    """Raised when a query selects no usable files."""

    def __init__(self):
        super().__init__(
            message="No documents selected",
            detail="Select at least one of your notes to ask a question.",
        )


class GenerationError(AppBaseError):
    """Raised when the chat model fails while generating an answer."""
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, original_error: str = ""):
        super().__init__(
            message="Answer generation failed",
            detail=original_error or "Please resubmit your question.",
        )


class GenerationFormatError(AppBaseError):
    """Raised when structured model output cannot be parsed."""
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, raw_output: str, reason: str):
        self.raw_output = raw_output
        super().__init__(message="Model returned malformed output", detail=reason)


class QueryTimeoutError(AppBaseError):
    """Raised when a query exceeds its end-to-end deadline."""
    status_code = status.HTTP_504_GATEWAY_TIMEOUT

    def __init__(self, timeout: float):
        super().__init__(
            message=f"Query exceeded {timeout:g}s",
            detail="Please try again.",
        )


class UnsupportedFileError(AppBaseError):
    """Raised when an uploaded file type cannot be extracted."""
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE

    def __init__(self, filename: str):
        super().__init__(
            message=f"Unsupported file type: {filename}",
            detail="Only PDF, TXT and MD files are allowed.",
        )


# ── Utility: convert to HTTPException ────────────────────

def app_error_to_http(error: AppBaseError, status_code: int | None = None) -> HTTPException:
    """Convert an AppBaseError to an HTTPException with consistent JSON body."""
    return HTTPException(
        status_code=status_code or error.status_code,
        detail={
            "error": error.message,
            "detail": error.detail,
            "type": type(error).__name__,
        },
    )
