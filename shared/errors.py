"""
Shared error handling for the tasks access service.

Every error kind maps to exactly one HTTP status code and renders as
``{"error": "<message>"}``.
"""

from typing import Dict, Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str


class TasksServiceError(Exception):
    """Base exception for the tasks service."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(error=self.message)

    def to_json_response(self, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
        """Render as a JSON response carrying the kind's status code."""
        return JSONResponse(
            status_code=self.status_code,
            content=self.to_response().model_dump(),
            headers=headers,
        )


class Unauthorized(TasksServiceError):
    """Credential missing."""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Falta la clave x-api-key en los headers", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class Forbidden(TasksServiceError):
    """Origin not allowed or credential mismatch."""

    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Acceso denegado", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class TooManyRequests(TasksServiceError):
    """Rate window exceeded."""

    status_code = 429
    code = "TOO_MANY_REQUESTS"

    def __init__(self, message: str = "Demasiadas peticiones, intente más tarde", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InvalidArgument(TasksServiceError):
    """Malformed body or title too short."""

    status_code = 400
    code = "INVALID_ARGUMENT"

    def __init__(self, message: str = "Petición inválida", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFound(TasksServiceError):
    """Unknown or malformed task id."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Tarea no encontrada", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class Conflict(TasksServiceError):
    """Duplicate title."""

    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str = "Ya existe una tarea con ese título", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class MethodNotAllowed(TasksServiceError):
    """Blocked HTTP verb."""

    status_code = 405
    code = "METHOD_NOT_ALLOWED"

    def __init__(self, message: str = "Método no permitido", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
