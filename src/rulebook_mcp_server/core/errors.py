"""
Error Taxonomy and Global Error Handling

This module defines the typed failures raised by the indexing and search
layers, and the application-wide exception handlers that turn them into
HTTP responses.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Keep "not found" distinct from infrastructure failure
- Mark infrastructure failures as retryable
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any, List, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("rulebook.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class RulebookError(Exception):
    """Base class for all typed failures raised by this package."""

    error_code: str = "rulebook_error"
    status_code: int = 500
    retryable: bool = False


class ConfigurationError(RulebookError):
    """Raised when required configuration is missing or points nowhere."""

    error_code = "configuration_error"


class VersionControlError(RulebookError):
    """Raised when the corpus revision cannot be determined."""

    error_code = "version_control_unavailable"
    status_code = 503
    retryable = True


class CorpusReadError(RulebookError):
    """Raised when the corpus source files cannot be read."""

    error_code = "corpus_unreadable"
    status_code = 503
    retryable = True


class EmbeddingError(RulebookError):
    """Raised when embedding generation fails."""

    error_code = "embedding_unavailable"
    status_code = 503
    retryable = True


class IndexStoreError(RulebookError):
    """Raised when the vector index cannot be read or written."""

    error_code = "index_unavailable"
    status_code = 503
    retryable = True


class IndexTableMissingError(IndexStoreError):
    """Raised when a vector table has never been created."""


class ReindexError(RulebookError):
    """Raised when a re-index is aborted before the cut-over."""

    error_code = "reindex_failed"


class EmbeddingCountMismatchError(ReindexError):
    """Raised when the embedding runtime returns the wrong number of vectors."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"embedding count mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class InvalidQueryError(RulebookError, ValueError):
    """Raised when a caller supplies an empty or malformed argument."""

    error_code = "invalid_request"
    status_code = 400


class NotFoundError(RulebookError):
    """Expected outcome: the requested entity does not exist."""

    error_code = "not_found"
    status_code = 404


class DocumentNotFoundError(NotFoundError):
    def __init__(self, document_id: str) -> None:
        super().__init__(f"document not found: {document_id}")
        self.document_id = document_id


class UnknownCategoryError(NotFoundError):
    def __init__(self, category: str, available: Sequence[str]) -> None:
        self.category = category
        self.available: List[str] = list(available)
        super().__init__(
            f"unknown category: '{category}'. "
            f"Available categories: {', '.join(self.available)}"
        )


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def rulebook_exception_handler(
    request: Request,
    exc: RulebookError,
) -> JSONResponse:
    """
    Render a typed failure as a deterministic JSON error.

    Not-found and invalid-request outcomes are expected and logged at INFO.
    Infrastructure failures are logged with their traceback and reported as
    retryable so tool callers know to try again later.
    """
    if exc.status_code >= 500:
        logger.error(
            "Request failed: %s %s (%s)",
            request.method,
            request.url.path,
            exc.error_code,
            exc_info=exc,
        )
    else:
        logger.info(
            "Request rejected: %s %s (%s): %s",
            request.method,
            request.url.path,
            exc.error_code,
            exc,
        )

    payload: Dict[str, Any] = {
        "error": exc.error_code,
        "detail": str(exc) if exc.status_code < 500 else _public_detail(exc),
    }

    if exc.retryable:
        payload["retryable"] = True

    available: Optional[List[str]] = getattr(exc, "available", None)
    if available is not None:
        payload["available_categories"] = available

    return JSONResponse(status_code=exc.status_code, content=payload)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full exception stack trace for internal diagnostics and returns
    a generic 500 error to the client with no internal details.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RulebookError, rulebook_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


# ---------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------

_PUBLIC_DETAILS: Dict[str, str] = {
    "version_control_unavailable": "Corpus revision could not be determined",
    "corpus_unreadable": "Corpus source could not be read",
    "embedding_unavailable": "Embedding service unavailable",
    "index_unavailable": "Vector index unavailable",
    "reindex_failed": "Re-index aborted; previous index is still serving",
}


def _public_detail(exc: RulebookError) -> str:
    return _PUBLIC_DETAILS.get(exc.error_code, "Internal server error")
