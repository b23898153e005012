"""Error taxonomy shared by every service and the handlers that render it.

Services raise subclasses of :class:`LibraryServiceError`; the handlers
registered by :func:`register_exception_handlers` turn them into
``{"message", "code", "errors"?}`` JSON bodies.  Routes never build error
responses themselves.
"""
import logging
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class LibraryServiceError(Exception):
    """Base class for every failure surfaced to API clients."""
    kind = "INTERNAL"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[dict]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"message": self.message, "code": self.kind}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationFailed(LibraryServiceError):
    kind = "VALIDATION"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class ConstraintViolation(LibraryServiceError):
    """A payload that is well formed but breaks a data invariant (e.g. cross-library categories)."""
    kind = "CONSTRAINT_VIOLATION"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Constraint violation"


class Unauthenticated(LibraryServiceError):
    kind = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class Forbidden(LibraryServiceError):
    kind = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden: insufficient permissions"


class NotFound(LibraryServiceError):
    """Raised both for missing rows and for rows outside the caller's scope."""
    kind = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(LibraryServiceError):
    kind = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class DuplicateRequest(Conflict):
    # The SPA treats a repeated borrow request as a form error
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "You already requested this book"


class InvalidStateTransition(LibraryServiceError):
    kind = "INVALID_STATE_TRANSITION"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Transition not allowed from the current state"


class ExternalServiceError(LibraryServiceError):
    """Mail or summarizer failure. Callers with a fallback catch it and degrade."""
    kind = "EXTERNAL_FAILURE"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "External service failed"


def _error_response(status_code: int, body: dict, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def handle_service_error(request: Request, exc: LibraryServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return _error_response(exc.status_code, exc.to_dict(), headers)


async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"path": ".".join(location), "message": error.get("msg", "Invalid value")})
    body = ValidationFailed(errors=errors).to_dict()
    return _error_response(status.HTTP_400_BAD_REQUEST, body)


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    kinds = {
        status.HTTP_401_UNAUTHORIZED: "UNAUTHENTICATED",
        status.HTTP_403_FORBIDDEN: "FORBIDDEN",
        status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    }
    body = {"message": str(exc.detail), "code": kinds.get(exc.status_code, "HTTP_ERROR")}
    return _error_response(exc.status_code, body, getattr(exc, "headers", None))


async def handle_integrity_error(request: Request, exc: IntegrityError):
    logger.warning(f"{request.method} {request.url.path} hit an integrity error: {exc.orig}")
    return _error_response(status.HTTP_409_CONFLICT, Conflict("Conflicting data").to_dict())


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, LibraryServiceError().to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LibraryServiceError, handle_service_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
