"""Base classes whose public methods are wrapped at class creation.

Subclasses of ``BaseService`` get every public method wrapped with call
logging and third-party error translation. Subclasses of ``BaseController``
get every public method wrapped so that it never raises: results are
normalized into JSON responses and errors into the controller error
envelope. Methods named in the exclusion sets, private methods, and methods
decorated with ``@unwrapped`` are left as they are.
"""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Mapping
import functools
import inspect
from typing import Any
from typing import TypeVar

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker
from starlette.responses import Response

from platform_core.core.config import get_settings
from platform_core.core.context import RequestContext
from platform_core.core.context import get_current_context
from platform_core.core.error_adapters import translate_exception
from platform_core.core.errors import ApplicationError
from platform_core.core.errors import ValidationError
from platform_core.core.logging import get_logger
from platform_core.schemas.error import ErrorDetail

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

SERVICE_EXCLUDED_METHODS = frozenset(
    {
        "get_context",
        "get_current_user",
        "with_transaction",
        "middleware",
    }
)

CONTROLLER_EXCLUDED_METHODS = frozenset(
    {
        "get_context",
        "get_current_user",
        "get_validated_data",
        "success",
        "error",
        "not_found",
        "bad_request",
        "unauthorized",
        "forbidden",
        "handle_error",
    }
)

_UNWRAPPED_ATTR = "__platform_unwrapped__"
_WRAPPED_ATTR = "__platform_wrapped__"


def unwrapped(func: F) -> F:
    """Mark a method so the base class leaves it unwrapped."""
    setattr(func, _UNWRAPPED_ATTR, True)
    return func


def _should_wrap(name: str, value: Any, excluded: frozenset[str]) -> bool:
    if name.startswith("_") or name in excluded:
        return False
    if not inspect.isfunction(value):
        return False
    if getattr(value, _UNWRAPPED_ATTR, False) or getattr(value, _WRAPPED_ATTR, False):
        return False
    return True


def _wrap_methods(cls: type, excluded: frozenset[str], wrap: Callable[[str, Callable[..., Any]], Callable[..., Any]]) -> None:
    for name, value in list(vars(cls).items()):
        if _should_wrap(name, value, excluded):
            wrapped = wrap(name, value)
            setattr(wrapped, _WRAPPED_ATTR, True)
            setattr(cls, name, wrapped)


class _ContextAccess:
    logger: Any

    @property
    def class_name(self) -> str:
        return type(self).__name__

    def get_context(self) -> RequestContext | None:
        """Return the current request context."""
        return get_current_context()

    def get_current_user(self) -> dict[str, Any] | None:
        context = self.get_context()
        if context is None:
            return None
        return context.get("user")


class BaseService(_ContextAccess):
    """Service base class with logged, error-translating methods."""

    excluded_methods: frozenset[str] = SERVICE_EXCLUDED_METHODS

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.logger = get_logger(f"{cls.__module__}.{cls.__name__}")
        _wrap_methods(cls, cls.excluded_methods, _wrap_service_method)

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            from platform_core.db.base import SessionLocal

            self._session_factory = SessionLocal
        return self._session_factory

    def with_transaction(self, callback: Callable[[Session], T]) -> T:
        """Run ``callback`` in a session committed on success."""
        session = self.session_factory()
        try:
            result = callback(session)
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _log_service_failure(service: BaseService, method: str, exc: Exception, args: tuple[Any, ...]) -> None:
    service.logger.error(
        "service_method_failed",
        service=service.class_name,
        method=method,
        error=str(exc),
        error_type=type(exc).__name__,
        arg_count=len(args),
        exc_info=exc,
    )


def _service_error(exc: Exception) -> Exception:
    translated = translate_exception(exc)
    return translated if translated is not None else exc


def _wrap_service_method(name: str, func: Callable[..., Any]) -> Callable[..., Any]:
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
            self.logger.info("service_method_called", service=self.class_name, method=name)
            try:
                return await func(self, *args, **kwargs)
            except Exception as exc:
                _log_service_failure(self, name, exc, args)
                error = _service_error(exc)
                if error is exc:
                    raise
                raise error from exc

        return async_wrapper

    @functools.wraps(func)
    def sync_wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        self.logger.info("service_method_called", service=self.class_name, method=name)
        try:
            return func(self, *args, **kwargs)
        except Exception as exc:
            _log_service_failure(self, name, exc, args)
            error = _service_error(exc)
            if error is exc:
                raise
            raise error from exc

    return sync_wrapper


class BaseController(_ContextAccess):
    """Controller base class whose public methods always return a response."""

    excluded_methods: frozenset[str] = CONTROLLER_EXCLUDED_METHODS

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.logger = get_logger(f"{cls.__module__}.{cls.__name__}")
        _wrap_methods(cls, cls.excluded_methods, _wrap_controller_method)

    def get_validated_data(self, payload: Any, model: type[BaseModel]) -> BaseModel:
        """Validate a raw payload; failures surface as ``ValidationError``."""
        return model.model_validate(payload)

    def success(self, data: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
        self.logger.debug("controller_success", controller=self.class_name, status=status_code)
        return JSONResponse(status_code=status_code, content=jsonable_encoder(data))

    def error(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        errors: list[ErrorDetail] | None = None,
    ) -> JSONResponse:
        self.logger.error("controller_error_response", controller=self.class_name, code=code, message=message)
        body: dict[str, Any] = {"message": message, "code": code}
        if errors:
            body["errors"] = [detail.model_dump() for detail in errors]
        return JSONResponse(
            status_code=status_code,
            content={"status": status_code, "data": None, "error": body},
        )

    def not_found(self, message: str = "Resource not found") -> JSONResponse:
        self.logger.warning("controller_not_found", controller=self.class_name, message=message)
        return self.error(message, "NOT_FOUND", status.HTTP_404_NOT_FOUND)

    def bad_request(
        self,
        message: str = "Bad request",
        code: str = "BAD_REQUEST",
        errors: list[ErrorDetail] | None = None,
    ) -> JSONResponse:
        self.logger.warning("controller_bad_request", controller=self.class_name, message=message)
        return self.error(message, code, status.HTTP_400_BAD_REQUEST, errors)

    def unauthorized(self, message: str = "Unauthorized", code: str = "UNAUTHORIZED") -> JSONResponse:
        self.logger.warning("controller_unauthorized", controller=self.class_name, message=message)
        return self.error(message, code, status.HTTP_401_UNAUTHORIZED)

    def forbidden(self, message: str = "Forbidden", code: str = "FORBIDDEN") -> JSONResponse:
        self.logger.warning("controller_forbidden", controller=self.class_name, message=message)
        return self.error(message, code, status.HTTP_403_FORBIDDEN)

    def handle_error(self, error: Any, default_message: str) -> JSONResponse:
        """Map any failure onto the controller error envelope."""
        if isinstance(error, BaseException):
            self.logger.error(
                "controller_method_failed",
                controller=self.class_name,
                error=str(error),
                error_type=type(error).__name__,
                code=getattr(error, "code", None),
                exc_info=error,
            )
            translated = translate_exception(error)
        elif isinstance(error, Mapping):
            self.logger.error("controller_method_failed", controller=self.class_name, error=dict(error))
            translated = ApplicationError(
                str(error.get("message") or default_message),
                code=error.get("code"),
                status_code=error.get("status") or error.get("status_code"),
            )
        else:
            self.logger.error("controller_method_failed", controller=self.class_name, error=repr(error))
            translated = None

        if translated is None:
            message = default_message
            if not get_settings().is_production and isinstance(error, BaseException) and str(error):
                message = f"{default_message}: {error}"
            return self.error(message, "INTERNAL_ERROR", status.HTTP_500_INTERNAL_SERVER_ERROR)

        return self._application_error_response(translated, default_message)

    def _application_error_response(self, error: ApplicationError, default_message: str) -> JSONResponse:
        if error.status_code == status.HTTP_400_BAD_REQUEST or error.code == "BAD_REQUEST":
            details = error.errors if isinstance(error, ValidationError) else None
            return self.bad_request(error.message, error.code or "BAD_REQUEST", details)
        if error.status_code == status.HTTP_404_NOT_FOUND or error.code == "NOT_FOUND":
            return self.not_found(error.message)
        if error.status_code == status.HTTP_401_UNAUTHORIZED or error.code == "UNAUTHORIZED":
            return self.unauthorized(error.message, error.code or "UNAUTHORIZED")
        if error.status_code == status.HTTP_403_FORBIDDEN or error.code == "FORBIDDEN":
            return self.forbidden(error.message, error.code or "FORBIDDEN")
        if error.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR and get_settings().is_production:
            return self.error(default_message, error.code, error.status_code)
        return self.error(error.message, error.code, error.status_code)

    def _normalize_result(self, method: str, result: Any) -> Any:
        if isinstance(result, Response):
            return result
        if isinstance(result, Mapping):
            if result.get("data") is not None:
                return self.success(result["data"])
            if result.get("error") is not None:
                return self.handle_error(result["error"], f"Failed in {method}")
            return self.success(result)
        if result is None:
            return None
        return self.success(result)


def _wrap_controller_method(name: str, func: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(func)
    async def wrapper(self: BaseController, *args: Any, **kwargs: Any) -> Any:
        user = self.get_current_user() or {}
        self.logger.debug(
            "controller_method_called",
            controller=self.class_name,
            method=name,
            context_user_id=user.get("id"),
        )
        try:
            result = func(self, *args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return self._normalize_result(name, result)
        except Exception as exc:
            return self.handle_error(exc, f"Failed in {name}")

    return wrapper
