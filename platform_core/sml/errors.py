"""Registry error family."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Any

from fastapi import status

from platform_core.core.errors import ApplicationError
from platform_core.schemas.error import ErrorDetail


class SmlErrorCode(str, Enum):
    NOT_FOUND = "SML_NOT_FOUND"
    LOCKED = "SML_LOCKED"
    VALIDATION = "SML_VALIDATION"
    EXECUTION = "SML_EXECUTION"
    PERMISSION = "SML_PERMISSION"
    DUPLICATE = "SML_DUPLICATE"


SML_STATUS_CODES: dict[SmlErrorCode, int] = {
    SmlErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    SmlErrorCode.VALIDATION: status.HTTP_400_BAD_REQUEST,
    SmlErrorCode.PERMISSION: status.HTTP_403_FORBIDDEN,
    SmlErrorCode.EXECUTION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    SmlErrorCode.LOCKED: status.HTTP_503_SERVICE_UNAVAILABLE,
    SmlErrorCode.DUPLICATE: status.HTTP_409_CONFLICT,
}


class SmlError(ApplicationError):
    """Failure raised by registry registration, lookup or execution."""

    def __init__(
        self,
        message: str,
        code: SmlErrorCode,
        path: str | None = None,
        *,
        errors: Sequence[ErrorDetail] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code.value,
            status_code=SML_STATUS_CODES[code],
            context={"path": path} if path else None,
        )
        self.sml_code = code
        self.path = path
        self.errors = list(errors) if errors else []

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["path"] = self.path
        if self.errors:
            payload["errors"] = [error.model_dump() for error in self.errors]
        return payload
