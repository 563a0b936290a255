"""Application error taxonomy and HTTP exception handler registration."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from platform_core.core.config import get_settings
from platform_core.core.logging import get_logger
from platform_core.schemas.error import ErrorDetail
from platform_core.schemas.error import ErrorObject
from platform_core.schemas.error import ErrorResponse

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


class ApplicationError(Exception):
    """Base class for every client-visible failure."""

    default_message = "Internal server error"
    default_code = "INTERNAL_ERROR"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message if message is not None else self.default_message
        super().__init__(self.message)
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        self.context = dict(context) if context else {}

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used by log entries and response bodies."""
        return {
            "name": self.name,
            "message": self.message,
            "code": self.code,
            "status": self.status_code,
            "context": self.context,
        }


class NotFoundError(ApplicationError):
    default_message = "Resource not found"
    default_code = "NOT_FOUND"
    default_status = status.HTTP_404_NOT_FOUND


class BadRequestError(ApplicationError):
    default_message = "Bad request"
    default_code = "BAD_REQUEST"
    default_status = status.HTTP_400_BAD_REQUEST


class DuplicateEntryError(BadRequestError):
    default_message = "A record with this value already exists"
    default_code = "DUPLICATE_ENTRY"


class UnauthorizedError(ApplicationError):
    default_message = "Unauthorized"
    default_code = "UNAUTHORIZED"
    default_status = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(ApplicationError):
    default_message = "Forbidden"
    default_code = "FORBIDDEN"
    default_status = status.HTTP_403_FORBIDDEN


class ValidationError(ApplicationError):
    """Validation failure carrying every field-level violation."""

    default_message = "Validation failed"
    default_code = "VALIDATION_ERROR"
    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: Sequence[ErrorDetail] | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, context=context)
        self.errors = list(errors) if errors else []

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = [error.model_dump() for error in self.errors]
        return payload


class InternalError(ApplicationError):
    """Catch-all for unexpected failures."""


def _build_error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: Sequence[ErrorDetail] | None = None,
) -> JSONResponse:
    payload = ErrorResponse(
        error=ErrorObject(
            message=message,
            code=code,
            status=status_code,
            errors=list(details) if details else None,
        )
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))


def _http_error_code(status_code: int) -> str:
    if status_code == status.HTTP_404_NOT_FOUND:
        return "NOT_FOUND"
    if status_code == status.HTTP_401_UNAUTHORIZED:
        return "UNAUTHORIZED"
    if status_code == status.HTTP_403_FORBIDDEN:
        return "FORBIDDEN"
    if status_code == status.HTTP_409_CONFLICT:
        return "CONFLICT"
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return "INTERNAL_ERROR"
    return "BAD_REQUEST"


def _format_location(location: tuple[Any, ...] | list[Any] | Any) -> str:
    if not isinstance(location, (tuple, list)):
        return str(location)

    prefixes = {"body", "query", "path", "header", "cookie"}
    filtered = [str(part) for part in location if part not in prefixes]
    if filtered:
        return ".".join(filtered)

    if not location:
        return "request"

    return str(location[0])


def validation_details(issues: Sequence[dict[str, Any]]) -> list[ErrorDetail]:
    """Convert pydantic-style error dicts into field details."""
    details: list[ErrorDetail] = []
    for issue in issues:
        field = _format_location(issue.get("loc", ()))
        message = str(issue.get("msg", "Invalid value"))
        details.append(ErrorDetail(field=field, issue=message))
    return details


def public_message(exc: BaseException, fallback: str = INTERNAL_ERROR_MESSAGE) -> str:
    """Message safe to return for an unexpected error."""
    if get_settings().is_production:
        return fallback
    return str(exc) or fallback


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Normalize FastAPI validation errors to the shared envelope."""

    logger.warning("request_validation_failed", path=request.url.path, method=request.method)
    return _build_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        code="VALIDATION_ERROR",
        message="Validation failed",
        details=validation_details(exc.errors()),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Normalize HTTP exceptions to the shared envelope."""

    logger.warning(
        "http_error",
        status=exc.status_code,
        path=request.url.path,
        method=request.method,
    )
    if isinstance(exc.detail, dict) and "code" in exc.detail and "message" in exc.detail:
        return _build_error_response(
            status_code=exc.status_code,
            code=str(exc.detail["code"]),
            message=str(exc.detail["message"]),
        )

    message = str(exc.detail) if isinstance(exc.detail, str) and exc.detail else "Request failed"
    return _build_error_response(
        status_code=exc.status_code,
        code=_http_error_code(exc.status_code),
        message=message,
    )


async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    """Return taxonomy errors in the shared envelope."""

    log = logger.error if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR else logger.warning
    log(
        "application_error",
        error=exc.message,
        code=exc.code,
        status=exc.status_code,
        path=request.url.path,
        method=request.method,
    )
    payload = exc.to_dict()
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR and get_settings().is_production:
        payload["message"] = INTERNAL_ERROR_MESSAGE
        payload["context"] = {}
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder({"success": False, "error": payload}))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Avoid leaking internal exceptions while keeping response shape stable."""

    logger.exception(
        "unhandled_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return _build_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="INTERNAL_ERROR",
        message=public_message(exc),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach all error handlers to a FastAPI app instance."""

    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(ApplicationError, application_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
