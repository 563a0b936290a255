"""Translate third-party exceptions into the application error taxonomy.

Each adapter knows exactly one external error source and returns ``None``
for anything it does not recognize. The mapping covers SQLAlchemy and
pydantic only; other sources fall through to the internal-error path.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi.exceptions import RequestValidationError
import pydantic
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import NoResultFound

from platform_core.core.errors import ApplicationError
from platform_core.core.errors import DuplicateEntryError
from platform_core.core.errors import NotFoundError
from platform_core.core.errors import ValidationError
from platform_core.core.errors import validation_details

ErrorAdapter = Callable[[BaseException], ApplicationError | None]


def _first_line(message: str) -> str:
    return message.split("\n", 1)[0].strip()


def from_sqlalchemy(exc: BaseException) -> ApplicationError | None:
    """Map ORM integrity and lookup failures."""
    if isinstance(exc, IntegrityError):
        return DuplicateEntryError(context={"orig": _first_line(str(exc.orig))})
    if isinstance(exc, NoResultFound):
        return NotFoundError("Record not found")
    return None


def from_pydantic(exc: BaseException) -> ApplicationError | None:
    """Map schema-validation library failures."""
    if isinstance(exc, (pydantic.ValidationError, RequestValidationError)):
        return ValidationError("Validation failed", errors=validation_details(exc.errors()))
    return None


ADAPTERS: tuple[ErrorAdapter, ...] = (
    from_sqlalchemy,
    from_pydantic,
)


def translate_exception(exc: BaseException) -> ApplicationError | None:
    """Return the taxonomy error for ``exc`` or ``None`` if unrecognized."""
    if isinstance(exc, ApplicationError):
        return exc
    for adapter in ADAPTERS:
        translated = adapter(exc)
        if translated is not None:
            return translated
    return None
