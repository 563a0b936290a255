"""System management layer registry.

A process-wide map from dot-separated paths (``data.models.User.create``)
to executable operations, plus a separate map of declared events. The
registry accepts registrations while open; ``lock()`` closes it for good.
Lookups and execution are allowed in both states.

Usage::

    sml.register("math.add", Operation(handler=add, schema=schema), owner="core:math")
    sml.lock()

    sml.list("math")                    # ["add"]
    await sml.execute("math.add", {"a": 2, "b": 3}, ctx)
"""

from __future__ import annotations

from collections.abc import Iterable
from collections.abc import Mapping
import inspect
import secrets
import string
import time
from typing import Any

import pydantic

from platform_core.core.logging import get_logger
from platform_core.schemas.error import ErrorDetail
from platform_core.sml.errors import SmlError
from platform_core.sml.errors import SmlErrorCode
from platform_core.sml.types import EventSchema
from platform_core.sml.types import ExecutionContext
from platform_core.sml.types import MetaInfo
from platform_core.sml.types import Operation
from platform_core.sml.types import OperationSchema
from platform_core.sml.types import RegisterOptions
from platform_core.sml.types import ResolveResult
from platform_core.sml.types import Visibility
from platform_core.sml.validation import validate_params

logger = get_logger(__name__)

MODELS_PREFIX = "data.models."
INTEGRATIONS_PREFIX = "bridge.notify."
EVENT_OWNER_PREFIX = "event:"
OPS_KEY = "_ops"

_TRACE_ALPHABET = string.digits + string.ascii_lowercase


def generate_trace_id() -> str:
    suffix = "".join(secrets.choice(_TRACE_ALPHABET) for _ in range(7))
    return f"trace-{int(time.time() * 1000)}-{suffix}"


def _coerce_operation(op: Operation | Mapping[str, Any]) -> Operation:
    if isinstance(op, Operation):
        return op
    schema = op["schema"]
    if not isinstance(schema, OperationSchema):
        schema = OperationSchema.model_validate(schema)
    return Operation(handler=op["handler"], schema=schema)


def _coerce_options(options: RegisterOptions | Mapping[str, Any] | None) -> RegisterOptions:
    if options is None:
        return RegisterOptions()
    if isinstance(options, RegisterOptions):
        return options
    return RegisterOptions.model_validate(options)


def _coerce_visibility(value: Visibility | str, path: str) -> Visibility:
    try:
        return Visibility(value)
    except ValueError:
        allowed = ", ".join(member.value for member in Visibility)
        raise SmlError(
            f"Unknown visibility for {path}: {value}",
            SmlErrorCode.VALIDATION,
            path,
            errors=[ErrorDetail(field="visibility", issue=f"must be one of [{allowed}]")],
        ) from None


def _coerce_context(ctx: ExecutionContext | Mapping[str, Any] | None, path: str) -> ExecutionContext | None:
    if ctx is None or isinstance(ctx, ExecutionContext):
        return ctx
    try:
        return ExecutionContext.model_validate(ctx)
    except pydantic.ValidationError as exc:
        raise SmlError(
            "Validation failed: malformed execution context",
            SmlErrorCode.VALIDATION,
            path,
            errors=[
                ErrorDetail(field=".".join(str(part) for part in error["loc"]) or "ctx", issue=error["msg"])
                for error in exc.errors()
            ],
        ) from exc


def _collapse(node: dict[str, Any]) -> Any:
    if list(node) == [OPS_KEY]:
        return node[OPS_KEY]
    return {key: value if key == OPS_KEY else _collapse(value) for key, value in node.items()}


class SmlRegistry:
    """Write-once-then-read-many registry of operations and events."""

    def __init__(self) -> None:
        self._operations: dict[str, Operation] = {}
        self._events: dict[str, EventSchema] = {}
        self._owners: dict[str, str] = {}
        self._visibility: dict[str, Visibility] = {}
        self._locked = False

    # registration

    def register(
        self,
        path: str,
        op: Operation | Mapping[str, Any],
        options: RegisterOptions | Mapping[str, Any] | None = None,
        *,
        owner: str | None = None,
        visibility: Visibility | str | None = None,
    ) -> None:
        """Register an operation; fails once locked or on a duplicate path.

        ``owner`` and ``visibility`` may be given as keywords or as an
        options object; keywords win.
        """
        if self._locked:
            raise SmlError("Registry is locked", SmlErrorCode.LOCKED, path)
        if path in self._operations:
            raise SmlError(f"Operation already exists: {path}", SmlErrorCode.DUPLICATE, path)

        # resolve everything first so a rejected registration leaves no trace
        if isinstance(options, Mapping) and options.get("visibility") is not None:
            options = {**options, "visibility": _coerce_visibility(options["visibility"], path)}
        opts = _coerce_options(options)
        owner = owner or opts.owner
        resolved_visibility = _coerce_visibility(visibility or opts.visibility, path)
        operation = _coerce_operation(op)

        self._operations[path] = operation
        if owner:
            self._owners[path] = owner
        self._visibility[path] = resolved_visibility
        logger.debug("sml_operation_registered", path=path, owner=owner, visibility=resolved_visibility.value)

    def declare_event(
        self,
        path: str,
        schema: EventSchema | Mapping[str, Any],
        *,
        owner: str | None = None,
    ) -> None:
        """Declare an event; same write-once rules as ``register``."""
        if self._locked:
            raise SmlError("Registry is locked", SmlErrorCode.LOCKED, path)
        if path in self._events:
            raise SmlError(f"Event already exists: {path}", SmlErrorCode.DUPLICATE, path)

        if not isinstance(schema, EventSchema):
            schema = EventSchema.model_validate(schema)
        self._events[path] = schema
        if owner:
            self._owners[f"{EVENT_OWNER_PREFIX}{path}"] = owner

    def lock(self) -> None:
        """Close the registry for registrations. Idempotent."""
        if not self._locked:
            logger.info("sml_registry_locked", operations=self.size, events=self.event_count)
        self._locked = True

    def is_locked(self) -> bool:
        return self._locked

    # navigation

    def list(self, path: str | None = None) -> list[str]:
        """Immediate child segments under ``path``, or top-level domains."""
        if not path:
            return sorted({key.split(".", 1)[0] for key in self._operations})

        prefix = f"{path}."
        return sorted(
            {key[len(prefix):].split(".", 1)[0] for key in self._operations if key.startswith(prefix)}
        )

    def has(self, path: str) -> bool:
        """True for a registered operation or a namespace with children."""
        if path in self._operations:
            return True
        prefix = f"{path}."
        return any(key.startswith(prefix) for key in self._operations)

    def resolve(self, path: str) -> ResolveResult | None:
        """Describe what lives at ``path``; ``None`` when nothing does."""
        parts = path.split(".")
        domain = parts[0]

        operation = self._operations.get(path)
        if operation is not None:
            return ResolveResult(
                exists=True,
                path=parts,
                domain=domain,
                owner=self._owners.get(path),
                operation_schema=operation.schema,
                visibility=self.get_visibility(path),
                type="operation",
            )

        if path in self._events:
            return ResolveResult(
                exists=True,
                path=parts,
                domain="events",
                owner=self._owners.get(f"{EVENT_OWNER_PREFIX}{path}"),
                type="event",
            )

        if self.has(path):
            return ResolveResult(exists=True, path=parts, domain=domain, type="namespace")

        return None

    # introspection

    def describe(self, path: str) -> OperationSchema | None:
        operation = self._operations.get(path)
        return operation.schema if operation is not None else None

    def describe_event(self, path: str) -> EventSchema | None:
        return self._events.get(path)

    @property
    def meta(self) -> MetaInfo:
        """Full snapshot including internal operations, owners and visibility."""
        return MetaInfo(
            domains=self.list(),
            tree=self._build_tree(),
            models=self._extract_models(),
            integrations=self._extract_integrations(),
            events=list(self._events),
            events_detailed=dict(self._events),
            owners=dict(self._owners),
            visibility_map=dict(self._visibility),
        )

    def get_public_meta(self, include_admin: bool = False) -> MetaInfo:
        """Snapshot limited to public (and optionally admin) operations.

        Ownership and visibility maps are never included.
        """
        allowed = {Visibility.PUBLIC, Visibility.ADMIN} if include_admin else {Visibility.PUBLIC}
        paths = [path for path in self._operations if self.get_visibility(path) in allowed]

        return MetaInfo(
            domains=sorted({path.split(".", 1)[0] for path in paths}),
            tree=self._build_tree(paths),
            models=self._extract_models(paths),
            integrations=self._extract_integrations(),
            events=list(self._events),
            events_detailed=dict(self._events),
            owners={},
            visibility_map={},
        )

    # execution

    async def execute(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        ctx: ExecutionContext | Mapping[str, Any] | None = None,
    ) -> Any:
        """Check visibility, validate params and run the operation at ``path``."""
        operation = self._operations.get(path)
        if operation is None:
            raise SmlError(f"Operation not found: {path}", SmlErrorCode.NOT_FOUND, path)

        context = _coerce_context(ctx, path)
        if not self._check_visibility(self.get_visibility(path), context):
            raise SmlError(f"Permission denied: {path}", SmlErrorCode.PERMISSION, path)

        if params is not None and not isinstance(params, Mapping):
            raise SmlError(
                "Validation failed: parameters must be an object",
                SmlErrorCode.VALIDATION,
                path,
                errors=[ErrorDetail(field="params", issue="parameters must be an object")],
            )

        violations = validate_params(params, operation.schema)
        if violations:
            raise SmlError(
                f"Validation failed: {'; '.join(v.message for v in violations)}",
                SmlErrorCode.VALIDATION,
                path,
                errors=[ErrorDetail(field=v.param, issue=v.message) for v in violations],
            )

        if context is None:
            context = ExecutionContext(trace_id=generate_trace_id())
        elif not context.trace_id:
            context = context.model_copy(update={"trace_id": generate_trace_id()})

        logger.debug("sml_execute", path=path, trace_id=context.trace_id)
        try:
            result = operation.handler(dict(params or {}), context)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            logger.warning("sml_execution_failed", path=path, error=str(exc), error_type=type(exc).__name__)
            raise SmlError(
                f"Execution failed: {path} - {exc}",
                SmlErrorCode.EXECUTION,
                path,
            ) from exc

    # ownership

    def get_owner(self, path: str) -> str | None:
        return self._owners.get(path) or self._owners.get(f"{EVENT_OWNER_PREFIX}{path}")

    def get_by_owner(self, owner: str) -> list[str]:
        paths = [key.removeprefix(EVENT_OWNER_PREFIX) for key, value in self._owners.items() if value == owner]
        return sorted(paths)

    def get_visibility(self, path: str) -> Visibility:
        return self._visibility.get(path, Visibility.PUBLIC)

    # stats

    @property
    def size(self) -> int:
        return len(self._operations)

    @property
    def event_count(self) -> int:
        return len(self._events)

    def reset(self) -> None:
        """Clear everything and reopen the registry. For tests only."""
        self._operations.clear()
        self._events.clear()
        self._owners.clear()
        self._visibility.clear()
        self._locked = False

    # helpers

    def _build_tree(self, paths: Iterable[str] | None = None) -> dict[str, Any]:
        tree: dict[str, Any] = {}
        for path in self._operations if paths is None else paths:
            *namespaces, name = path.split(".")
            node = tree
            for part in namespaces:
                node = node.setdefault(part, {})
            node.setdefault(OPS_KEY, []).append(name)
        collapsed = _collapse(tree) if tree else {}
        return collapsed if isinstance(collapsed, dict) else {OPS_KEY: collapsed}

    def _extract_models(self, paths: Iterable[str] | None = None) -> list[str]:
        models = {
            path[len(MODELS_PREFIX):].split(".", 1)[0]
            for path in (self._operations if paths is None else paths)
            if path.startswith(MODELS_PREFIX)
        }
        return sorted(models)

    def _extract_integrations(self) -> list[str]:
        integrations = {
            path[len(INTEGRATIONS_PREFIX):].split(".", 1)[0]
            for path in self._operations
            if path.startswith(INTEGRATIONS_PREFIX)
        }
        return sorted(integrations)

    @staticmethod
    def _check_visibility(visibility: Visibility, ctx: ExecutionContext | None) -> bool:
        if visibility is Visibility.PUBLIC:
            return True
        if ctx is None:
            return False
        if visibility is Visibility.INTERNAL:
            return ctx.user is not None or ctx.workflow is not None
        if visibility is Visibility.ADMIN:
            return ctx.user is not None and "admin" in ctx.user.roles
        return False


sml = SmlRegistry()
