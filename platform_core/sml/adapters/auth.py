"""Authentication operations under ``auth.*``."""

from __future__ import annotations

from typing import Any

from platform_core.core.logging import get_logger
from platform_core.sml.registry import SmlRegistry
from platform_core.sml.registry import sml
from platform_core.sml.types import ExecutionContext
from platform_core.sml.types import Operation
from platform_core.sml.types import OperationSchema

logger = get_logger(__name__)

OWNER = "core:auth"


async def current_user(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any] | None:
    if ctx.user is None:
        return None
    return {"id": ctx.user.id, "email": ctx.user.email, "roles": ctx.user.roles}


async def check(params: dict[str, Any], ctx: ExecutionContext) -> bool:
    """Role check, or permission check where admins hold every permission."""
    if ctx.user is None:
        return False
    if params.get("role"):
        return params["role"] in ctx.user.roles
    if params.get("permission"):
        # TODO: resolve permissions from ability rules once roles carry them
        return "admin" in ctx.user.roles
    return False


async def is_authenticated(params: dict[str, Any], ctx: ExecutionContext) -> bool:
    return ctx.user is not None


def register_auth_operations(registry: SmlRegistry = sml) -> None:
    registry.register(
        "auth.users.current",
        Operation(
            handler=current_user,
            schema=OperationSchema.model_validate(
                {
                    "description": "Get current authenticated user from context",
                    "returns": {
                        "type": "User",
                        "fields": {
                            "id": {"type": "number", "primary": True},
                            "email": {"type": "string", "required": True},
                            "roles": {"type": "string[]"},
                        },
                    },
                }
            ),
        ),
        owner=OWNER,
    )
    registry.register(
        "auth.check",
        Operation(
            handler=check,
            schema=OperationSchema.model_validate(
                {
                    "description": "Check if current user has permission or role",
                    "params": {
                        "permission": {"type": "string", "description": "Permission to check"},
                        "role": {"type": "string", "description": "Role to check"},
                    },
                    "returns": {"type": "boolean"},
                }
            ),
        ),
        owner=OWNER,
    )
    registry.register(
        "auth.is-authenticated",
        Operation(
            handler=is_authenticated,
            schema=OperationSchema(description="Check if user is authenticated", returns={"type": "boolean"}),
        ),
        owner=OWNER,
    )
    logger.info("sml_adapter_registered", adapter="auth", operations=3)
