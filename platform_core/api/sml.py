"""Registry API routes.

Endpoints::

    GET  /api/sml/meta               registry metadata for discovery
    GET  /api/sml/list?path=         children at a path
    GET  /api/sml/describe?path=     schema of an operation or event
    GET  /api/sml/resolve?path=      full resolution of a path
    POST /api/sml/execute            run an operation
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.responses import Response

from platform_core.core.base import BaseController
from platform_core.core.base import unwrapped
from platform_core.core.config import get_settings
from platform_core.core.errors import BadRequestError
from platform_core.core.errors import NotFoundError
from platform_core.core.identity import is_anonymous
from platform_core.sml.errors import SmlError
from platform_core.sml.errors import SmlErrorCode
from platform_core.sml.registry import SmlRegistry
from platform_core.sml.registry import generate_trace_id
from platform_core.sml.registry import sml
from platform_core.sml.types import ContextUser
from platform_core.sml.types import ExecutionContext
from platform_core.sml.types import SessionContext

router = APIRouter(prefix="/api/sml", tags=["sml"])


class ExecuteRequest(BaseModel):
    """Payload to execute an operation."""

    path: str | None = None
    params: dict[str, Any] | None = None


def count_operations(tree: Any) -> int:
    """Number of operation leaves in a registry tree."""
    if isinstance(tree, list):
        return len(tree)
    if not isinstance(tree, dict):
        return 0
    return sum(count_operations(value) for value in tree.values())


def _require_path(path: str | None) -> str:
    if not path:
        raise BadRequestError("Missing required parameter: path", code="VALIDATION_ERROR")
    return path


class SmlController(BaseController):
    """HTTP adapter over the operation registry."""

    def __init__(self, registry: SmlRegistry = sml) -> None:
        self.registry = registry

    @unwrapped
    def ok(self, data: Any) -> JSONResponse:
        return self.success({"success": True, "data": data})

    def error(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        errors: list[Any] | None = None,
    ) -> JSONResponse:
        self.logger.warning("sml_request_failed", code=code, status=status_code, message=message)
        body: dict[str, Any] = {"message": message, "code": code}
        if errors:
            body["errors"] = [detail.model_dump() for detail in errors]
        return JSONResponse(status_code=status_code, content={"success": False, "error": body})

    def handle_error(self, error: Any, default_message: str) -> JSONResponse:
        if isinstance(error, SmlError):
            self.logger.warning("sml_error", code=error.code, path=error.path, error=error.message)
            message = error.message
            if error.sml_code is SmlErrorCode.EXECUTION and get_settings().is_production:
                message = f"Execution failed: {error.path}"
            body: dict[str, Any] = {"message": message, "code": error.code, "path": error.path}
            if error.errors:
                body["errors"] = [detail.model_dump() for detail in error.errors]
            return JSONResponse(status_code=error.status_code, content={"success": False, "error": body})
        return super().handle_error(error, default_message)

    async def get_meta(self, include_admin: bool = False, include_internal: bool = False) -> Response:
        user = self.get_current_user() or {}
        is_admin = "admin" in (user.get("roles") or [])

        meta = self.registry.meta if include_internal and is_admin else self.registry.get_public_meta(include_admin)
        public_operations = count_operations(self.registry.get_public_meta(True).tree)

        return self.ok(
            {
                "domains": meta.domains,
                "tree": meta.tree,
                "models": meta.models,
                "integrations": meta.integrations,
                "events": meta.events,
                "stats": {
                    "operations": self.registry.size,
                    "publicOperations": public_operations,
                    "events": self.registry.event_count,
                    "locked": self.registry.is_locked(),
                },
            }
        )

    async def list(self, path: str | None = None) -> Response:
        return self.ok({"path": path or "(root)", "children": self.registry.list(path)})

    async def describe(self, path: str | None = None) -> Response:
        path = _require_path(path)

        event_schema = self.registry.describe_event(path)
        if event_schema is not None:
            return self.ok({"path": path, "type": "event", "schema": jsonable_encoder(event_schema)})

        operation_schema = self.registry.describe(path)
        if operation_schema is not None:
            resolved = self.registry.resolve(path)
            return self.ok(
                {
                    "path": path,
                    "type": "operation",
                    "schema": jsonable_encoder(operation_schema),
                    "owner": resolved.owner if resolved else None,
                    "visibility": resolved.visibility.value if resolved else None,
                }
            )

        if self.registry.has(path):
            return self.ok({"path": path, "type": "namespace", "children": self.registry.list(path)})

        raise NotFoundError(f"Path not found: {path}")

    async def resolve(self, path: str | None = None) -> Response:
        path = _require_path(path)
        resolved = self.registry.resolve(path)
        if resolved is None:
            raise NotFoundError(f"Path not found: {path}")
        return self.ok(jsonable_encoder(resolved))

    async def execute(self, request: Request, payload: ExecuteRequest) -> Response:
        path = payload.path
        if not path:
            raise BadRequestError("Missing required field: path", code="VALIDATION_ERROR")

        result = await self.registry.execute(path, payload.params, self.build_execution_context(request))
        return self.ok(jsonable_encoder(result))

    @unwrapped
    def build_execution_context(self, request: Request) -> ExecutionContext:
        context = self.get_context()
        user = self.get_current_user()
        request_id = context.get("requestId") if context else request.headers.get("x-request-id")
        return ExecutionContext(
            trace_id=request.headers.get("x-trace-id") or generate_trace_id(),
            request_id=request_id,
            user=None if is_anonymous(user) else ContextUser.model_validate(user),
            session=SessionContext(
                id=context.id if context else None,
                ip=context.get("ipAddress") if context else None,
            ),
        )


def get_sml_controller(request: Request) -> SmlController:
    """Controller bound to the application's registry."""
    controller = getattr(request.app.state, "sml_controller", None)
    if controller is None:
        controller = SmlController()
        request.app.state.sml_controller = controller
    return controller


@router.get("/meta")
async def get_meta_endpoint(
    includeAdmin: bool = False,
    includeInternal: bool = False,
    controller: SmlController = Depends(get_sml_controller),
) -> Response:
    """Registry metadata for discovery."""
    return await controller.get_meta(include_admin=includeAdmin, include_internal=includeInternal)


@router.get("/list")
async def list_endpoint(
    path: str | None = None,
    controller: SmlController = Depends(get_sml_controller),
) -> Response:
    """List operations and namespaces at a path."""
    return await controller.list(path)


@router.get("/describe")
async def describe_endpoint(
    path: str | None = None,
    controller: SmlController = Depends(get_sml_controller),
) -> Response:
    """Describe an operation, event or namespace."""
    return await controller.describe(path)


@router.get("/resolve")
async def resolve_endpoint(
    path: str | None = None,
    controller: SmlController = Depends(get_sml_controller),
) -> Response:
    """Resolve a path to full information."""
    return await controller.resolve(path)


@router.post("/execute")
async def execute_endpoint(
    request: Request,
    payload: ExecuteRequest,
    controller: SmlController = Depends(get_sml_controller),
) -> Response:
    """Execute an operation."""
    return await controller.execute(request, payload)
