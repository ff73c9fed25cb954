"""errors.py — Error taxonomy raised by the run lifecycle engine.

Each error carries the HTTP status and envelope code the routing layer
answers with. None of them is retried by the engine.
"""
from __future__ import annotations

__all__ = [
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "RunsApiError",
    "ValidationError",
]


class RunsApiError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RunsApiError):
    """Input was malformed, carried disallowed fields, or changed nothing."""

    status_code = 400
    code = "INVALID_INPUT"


class ForbiddenError(RunsApiError):
    """The run exists but the edit token is missing or wrong."""

    status_code = 403
    code = "PERMISSION_DENIED"


class NotFoundError(RunsApiError):
    """No run is visible at the identifier."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(RunsApiError):
    """A run already exists under the generated identifier."""

    status_code = 409
    code = "CONFLICT"
