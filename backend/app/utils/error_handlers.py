"""
Centralized error handling and user-friendly error messages.
"""
import logging
from typing import Any
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# User-friendly error messages
ERROR_MESSAGES = {
    "embedding_unavailable": "Could not analyze the text right now. Please try again in a few moments.",
    "index_unavailable": "Search is temporarily unavailable. Please try again later.",
    "job_not_found": "Job posting not found or has been removed.",
    "candidate_not_found": "Candidate not found.",
    "match_not_found": "No match found for this candidate and job.",
    "not_found": "The requested resource was not found.",
    "server_error": "Something went wrong on our end. Please try again later.",
    "validation_error": "Please check your input and try again.",
}


def get_error_message(error_key: str, default: str | None = None) -> str:
    """Get a user-friendly error message."""
    return ERROR_MESSAGES.get(error_key, default or ERROR_MESSAGES["server_error"])


class AppError(Exception):
    """Base application error."""
    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Validation error."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=400, details=details)


class MatchPipelineError(AppError):
    """A fatal error that aborts a whole find-matches request."""


class EmbeddingUnavailable(MatchPipelineError):
    """The embedding provider call failed."""
    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or get_error_message("embedding_unavailable"), status_code=503, details=details)


class IndexUnavailable(MatchPipelineError):
    """Vector index connection or configuration error."""
    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or get_error_message("index_unavailable"), status_code=503, details=details)


class EntityNotFound(MatchPipelineError):
    """An id-based lookup found no stored vector."""
    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or get_error_message("not_found"), status_code=404, details=details)


class VectorDimensionError(MatchPipelineError):
    """Vector length does not match the index dimension."""
    def __init__(self, *, expected: int, actual: int, index_name: str = ""):
        super().__init__(
            f"Vector dimension {actual} does not match index dimension {expected}",
            status_code=500,
            details={"expected": expected, "actual": actual, "index": index_name},
        )


class ParseFailure(ValueError):
    """Model output did not contain the expected structured payload. Always recovered via fallback."""


class ScoringDegraded(Exception):
    """
    Marker for a match that used the deterministic fallback.
    Never raised to callers; carried on the outcome for logging.
    """
    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} degraded: {reason}")


def create_error_response(
    status_code: int,
    message: str,
    details: dict | None = None,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    content: dict[str, Any] = {
        "success": False,
        "error": message,
    }

    if details:
        content["details"] = details
    if extra:
        content.update(extra)

    return JSONResponse(
        status_code=status_code,
        content=content
    )


def app_error_response(exc: AppError) -> JSONResponse:
    """
    Map an AppError to its JSON response.
    Failed match requests carry an explicit empty result set.
    """
    if exc.status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc.message)
    else:
        logger.info("%s: %s", type(exc).__name__, exc.message)
    extra = {"matches": []} if isinstance(exc, MatchPipelineError) else None
    return create_error_response(exc.status_code, exc.message, exc.details, extra=extra)
