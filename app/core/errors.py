"""
Domain-specific exceptions for the clinical rules API.

These exceptions represent request, collaborator and storage failures and
are mapped to HTTP status codes in the API layer. Malformed rule *sources*
never raise: lexical, syntax and semantic problems are reported as
diagnostics inside a CompileResult.
"""

from typing import Any


class RuleServiceError(Exception):
    """Base exception for all rule service domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(RuleServiceError):
    """
    Raised when a request is malformed before compilation can start.

    Examples:
    - Empty rule source
    - Rule source larger than the configured limit

    HTTP Status: 400 Bad Request
    """

    pass


class NotFoundError(RuleServiceError):
    """
    Raised when a stored rule does not exist.

    HTTP Status: 404 Not Found
    """

    pass


class ConflictError(RuleServiceError):
    """
    Raised when a save conflicts with the current store state.

    Examples:
    - Replacing a rule with source text already stored under another id
    - Two concurrent first saves of the same source

    HTTP Status: 409 Conflict
    """

    pass


class RenderError(RuleServiceError):
    """
    Raised when the AST diagram cannot be produced (RENDER_ERROR).

    Only blocks the optional preview, never the compile result.

    HTTP Status: 422 Unprocessable Entity
    """

    pass


class StorageError(RuleServiceError):
    """
    Raised when persisting or reading a rule fails (STORAGE_ERROR).

    Surfaced as-is; the caller decides whether to retry the whole save.

    HTTP Status: 503 Service Unavailable
    """

    pass


class CatalogUnavailableError(RuleServiceError):
    """
    Raised when the medication/condition catalogs cannot be loaded.

    HTTP Status: 503 Service Unavailable
    """

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    RenderError: 422,
    StorageError: 503,
    CatalogUnavailableError: 503,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
