"""Configuration operations.

``config.*`` exposes feature flags and UI settings to any caller.
``system.config.*`` reads and writes every entry and is internal only.
"""

from __future__ import annotations

from typing import Any

from platform_core.core.logging import get_logger
from platform_core.services.system_config import SystemConfigService
from platform_core.sml.registry import SmlRegistry
from platform_core.sml.registry import sml
from platform_core.sml.types import ExecutionContext
from platform_core.sml.types import Operation
from platform_core.sml.types import OperationSchema
from platform_core.sml.types import Visibility

logger = get_logger(__name__)

OWNER = "core:config"


def _is_admin(ctx: ExecutionContext) -> bool:
    return ctx.user is not None and "admin" in ctx.user.roles


def register_config_operations(
    registry: SmlRegistry = sml,
    *,
    service: SystemConfigService | None = None,
) -> None:
    configs = service or SystemConfigService()

    async def get_public(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.get_public(params["key"], is_admin=_is_admin(ctx))

    async def list_public(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.list_public(params.get("category"))

    async def features(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.features()

    async def system_get(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.get(params["key"])

    async def system_list(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.list(params.get("category"))

    async def system_categories(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.categories()

    async def system_set(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.set(
            params["key"],
            params["value"],
            category=params.get("category"),
            data_type=params.get("dataType"),
            description=params.get("description"),
        )

    async def system_delete(params: dict[str, Any], ctx: ExecutionContext) -> dict[str, Any]:
        return await configs.delete(params["key"])

    key_param = {"key": {"type": "string", "required": True, "description": "Config key"}}
    category_param = {"category": {"type": "string", "description": "Filter by category"}}

    operations: list[tuple[str, Any, dict[str, Any], Visibility]] = [
        (
            "config.get",
            get_public,
            {
                "description": "Get a public configuration value (feature flags, UI settings)",
                "params": key_param,
                "returns": {
                    "type": "ConfigValue",
                    "fields": {
                        "found": {"type": "boolean", "required": True},
                        "key": {"type": "string"},
                        "value": {"type": "any"},
                        "category": {"type": "string"},
                    },
                },
            },
            Visibility.PUBLIC,
        ),
        (
            "config.list",
            list_public,
            {
                "description": "List public configuration values (feature flags, UI settings)",
                "params": category_param,
                "returns": {"type": "ConfigList"},
            },
            Visibility.PUBLIC,
        ),
        (
            "config.features",
            features,
            {
                "description": "Get all feature flags as key-value pairs",
                "returns": {
                    "type": "FeatureFlags",
                    "fields": {
                        "features": {"type": "object", "description": "Map of feature name to enabled status"},
                        "count": {"type": "number"},
                    },
                },
            },
            Visibility.PUBLIC,
        ),
        (
            "system.config.get",
            system_get,
            {
                "description": "Get any configuration value (admin only)",
                "params": key_param,
                "returns": {"type": "SystemConfigValue"},
            },
            Visibility.INTERNAL,
        ),
        (
            "system.config.list",
            system_list,
            {
                "description": "List all configuration values (admin only)",
                "params": category_param,
                "returns": {"type": "SystemConfigList"},
            },
            Visibility.INTERNAL,
        ),
        (
            "system.config.categories",
            system_categories,
            {
                "description": "List all configuration categories with access levels",
                "returns": {"type": "CategoryInfo"},
            },
            Visibility.INTERNAL,
        ),
        (
            "system.config.set",
            system_set,
            {
                "description": "Set a configuration value (admin only)",
                "params": {
                    **key_param,
                    "value": {"type": "any", "required": True, "description": "Config value"},
                    "category": {"type": "string", "description": "Category for grouping"},
                    "dataType": {"type": "string", "description": "Data type: string, number, boolean, json"},
                    "description": {"type": "string", "description": "Human-readable description"},
                },
                "returns": {
                    "type": "SetResult",
                    "fields": {
                        "success": {"type": "boolean", "required": True},
                        "key": {"type": "string"},
                        "created": {"type": "boolean"},
                    },
                },
            },
            Visibility.INTERNAL,
        ),
        (
            "system.config.delete",
            system_delete,
            {
                "description": "Delete a configuration value (admin only)",
                "params": {"key": {"type": "string", "required": True, "description": "Config key to delete"}},
                "returns": {
                    "type": "DeleteResult",
                    "fields": {
                        "success": {"type": "boolean", "required": True},
                        "deleted": {"type": "number"},
                    },
                },
            },
            Visibility.INTERNAL,
        ),
    ]

    for path, handler, schema, visibility in operations:
        registry.register(
            path,
            Operation(handler=handler, schema=OperationSchema.model_validate(schema)),
            owner=OWNER,
            visibility=visibility,
        )

    logger.info("sml_adapter_registered", adapter="config", operations=len(operations))
