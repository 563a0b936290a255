"""Parameter validation against operation schemas.

``validate_params`` is pure: it collects every violation instead of stopping
at the first one, and never raises.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
import math
import numbers
from typing import Any

from platform_core.sml.types import OperationSchema
from platform_core.sml.types import ParamSchema


@dataclass(frozen=True)
class ParamViolation:
    param: str
    message: str

    def __str__(self) -> str:
        return self.message


def type_name(value: Any) -> str:
    """Name of a runtime value in the vocabulary of schema type tags."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, numbers.Number):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, date):
        return "Date"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def check_type(name: str, value: Any, expected: str) -> str | None:
    """Return a violation message if ``value`` does not match ``expected``."""
    actual = type_name(value)

    if expected == "string":
        if not isinstance(value, str):
            return f"Parameter {name}: expected string, got {actual}"
    elif expected == "number":
        if not _is_number(value):
            if actual == "number":
                actual = "NaN"
            return f"Parameter {name}: expected number, got {actual}"
    elif expected == "boolean":
        if not isinstance(value, bool):
            return f"Parameter {name}: expected boolean, got {actual}"
    elif expected == "object":
        if not isinstance(value, Mapping):
            return f"Parameter {name}: expected object, got {actual}"
    elif expected == "array":
        if not isinstance(value, (list, tuple)):
            return f"Parameter {name}: expected array, got {actual}"
    elif expected == "Date":
        if not isinstance(value, (date, str)):
            return f"Parameter {name}: expected Date or date string, got {actual}"
    # complex tags such as ``User`` or ``User[]`` are not checked
    return None


def _check_param(name: str, value: Any, declared: ParamSchema) -> list[ParamViolation]:
    if value is None:
        if declared.required:
            return [ParamViolation(name, f"Missing required parameter: {name}")]
        return []

    violations: list[ParamViolation] = []
    type_error = check_type(name, value, declared.type)
    if type_error:
        violations.append(ParamViolation(name, type_error))

    if declared.enum is not None and value not in declared.enum:
        allowed = ", ".join(str(option) for option in declared.enum)
        violations.append(ParamViolation(name, f"Invalid value for {name}: must be one of [{allowed}]"))
    return violations


def validate_params(params: Mapping[str, Any] | None, schema: OperationSchema) -> list[ParamViolation]:
    """Validate ``params`` against every declared parameter of ``schema``."""
    if not schema.params:
        return []

    provided = params or {}
    violations: list[ParamViolation] = []
    for name, declared in schema.params.items():
        violations.extend(_check_param(name, provided.get(name), declared))
    return violations
