"""Schemas and value types of the system management layer registry."""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel


class Visibility(str, Enum):
    """Access tier of an operation."""

    PUBLIC = "public"
    INTERNAL = "internal"
    ADMIN = "admin"
    HIDDEN = "hidden"


class EventType(str, Enum):
    """Category of a declared event."""

    SYSTEM = "system"
    DOMAIN = "domain"
    INTEGRATION = "integration"
    UI = "ui"
    INTERNAL = "internal"


class SmlModel(BaseModel):
    """Base model serializing to camelCase for external clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParamSchema(SmlModel):
    """Declared parameter of an operation.

    ``type`` is one of string, number, boolean, object, array or Date; any
    other tag (for example ``User[]``) is accepted but not type-checked.
    """

    type: str
    required: bool = False
    nullable: bool = False
    description: str | None = None
    enum: list[Any] | None = None
    items: ParamSchema | None = None


class FieldSchema(SmlModel):
    type: str
    required: bool = False
    nullable: bool = False
    unique: bool = False
    primary: bool = False
    description: str | None = None


class ReturnSchema(SmlModel):
    type: str
    fields: dict[str, FieldSchema] | None = None


class OperationSchema(SmlModel):
    description: str
    params: dict[str, ParamSchema] | None = None
    returns: ReturnSchema | None = None


class EventSchema(SmlModel):
    description: str
    type: EventType
    payload: dict[str, FieldSchema] | None = None


class ContextUser(SmlModel):
    id: Any = None
    email: str | None = None
    roles: list[str] = Field(default_factory=list)


class WorkflowContext(SmlModel):
    id: str
    execution_id: str
    step_index: int = 0


class SessionContext(SmlModel):
    id: str | None = None
    locale: str | None = None
    timezone: str | None = None
    ip: str | None = None


class ExecutionContext(SmlModel):
    """Caller context passed to every operation handler."""

    trace_id: str | None = None
    request_id: str | None = None
    user: ContextUser | None = None
    session: SessionContext | None = None
    workflow: WorkflowContext | None = None
    tx: dict[str, Any] | None = None


Handler = Callable[[dict[str, Any], ExecutionContext], Union[Awaitable[Any], Any]]


@dataclass(frozen=True)
class Operation:
    """Executable registry entry: a handler and its declarative schema."""

    handler: Handler
    schema: OperationSchema


class RegisterOptions(SmlModel):
    owner: str | None = None
    visibility: Visibility = Visibility.PUBLIC


class ResolveResult(SmlModel):
    exists: bool
    path: list[str]
    domain: str
    owner: str | None = None
    operation_schema: OperationSchema | None = Field(default=None, alias="schema")
    visibility: Visibility = Visibility.PUBLIC
    type: str


class MetaInfo(SmlModel):
    """Introspection snapshot of the registry."""

    domains: list[str]
    tree: dict[str, Any]
    models: list[str]
    integrations: list[str]
    events: list[str]
    events_detailed: dict[str, EventSchema]
    owners: dict[str, str]
    visibility_map: dict[str, Visibility]
