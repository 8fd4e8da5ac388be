"""
Custom exceptions and error handlers for consistent error responses.

Every failure leaves the API in the same envelope:

    {"success": false, "error_code": ..., "message": ..., "errors": {...}}
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import IntegrityError
from typing import Any, Dict, Optional

logger = logging.getLogger("school_backend.errors")


class AppException(Exception):
    """Base application exception."""
    
    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised for malformed or missing input."""
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ConflictError(AppException):
    """Raised when a write would duplicate a uniquely keyed record."""
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidStateError(AppException):
    """Raised when the subject of an operation is not in a state that allows it."""
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_INVALID_STATE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""
    
    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""
    
    def __init__(self, resource: str, resource_id: Any = None, message: Optional[str] = None):
        if message is None:
            message = f"{resource} not found"
            if resource_id:
                message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""
    
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class TooManyAttemptsError(AppException):
    """Raised while a login key is locked out."""
    
    def __init__(self, retry_after: int):
        minutes = max(1, (retry_after + 59) // 60)
        super().__init__(
            message=f"Too many failed login attempts. Try again in {minutes} minute(s).",
            error_code="ERR_AUTH_003",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"retry_after": retry_after}
        )


# Store constraint classification

UNIQUE_VIOLATION = "unique"
FOREIGN_KEY_VIOLATION = "foreign_key"
NOT_NULL_VIOLATION = "not_null"
CHECK_VIOLATION = "check"

_SQLSTATE_KINDS = {
    "23505": UNIQUE_VIOLATION,
    "23503": FOREIGN_KEY_VIOLATION,
    "23502": NOT_NULL_VIOLATION,
    "23514": CHECK_VIOLATION,
}

_MESSAGE_KINDS = (
    ("unique constraint", UNIQUE_VIOLATION),
    ("duplicate key", UNIQUE_VIOLATION),
    ("foreign key constraint", FOREIGN_KEY_VIOLATION),
    ("not null constraint", NOT_NULL_VIOLATION),
    ("null value in column", NOT_NULL_VIOLATION),
    ("check constraint", CHECK_VIOLATION),
)


def classify_integrity_error(exc: IntegrityError) -> Optional[str]:
    """
    Work out which kind of constraint an IntegrityError tripped.
    
    PostgreSQL drivers expose the SQLSTATE code; SQLite only has the message.
    """
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _SQLSTATE_KINDS:
        return _SQLSTATE_KINDS[sqlstate]
    
    text = str(orig).lower()
    for needle, kind in _MESSAGE_KINDS:
        if needle in text:
            return kind
    return None


def error_body(error_code: str, message: str, errors: Any = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error_code": error_code,
        "message": message,
        "errors": errors or {},
    }


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.error_code, exc.message, exc.details))
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        429: "ERR_TOO_MANY_REQUESTS",
        500: "ERR_INTERNAL_SERVER"
    }
    
    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")
    
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(error_code, exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors. Malformed input is a 400."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("ERR_VALIDATION", "Validation error", {"errors": errors})
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Map store constraint violations that escaped the services."""
    kind = classify_integrity_error(exc)
    logger.warning("Integrity violation (%s) on %s %s", kind, request.method, request.url.path)
    
    if kind == UNIQUE_VIOLATION:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=error_body("ERR_CONFLICT", "Duplicate entry. This record already exists.")
        )
    if kind == FOREIGN_KEY_VIOLATION:
        message = "Referenced record does not exist"
    elif kind == NOT_NULL_VIOLATION:
        message = "Required field is missing"
    elif kind == CHECK_VIOLATION:
        message = "Value violates a data constraint"
    else:
        message = "Invalid data"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("ERR_VALIDATION", message)
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("ERR_INTERNAL_SERVER", "An internal server error occurred")
    )
