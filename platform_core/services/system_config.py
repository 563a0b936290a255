"""Service helpers for system configuration operations."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from typing import TypeVar

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from platform_core.core.base import BaseService
from platform_core.core.errors import BadRequestError
from platform_core.db.base import session_scope
from platform_core.db.models.system_config import SystemConfig
from platform_core.db.repository.system_config import delete_configs
from platform_core.db.repository.system_config import get_config
from platform_core.db.repository.system_config import list_categories
from platform_core.db.repository.system_config import list_configs
from platform_core.db.repository.system_config import upsert_config

T = TypeVar("T")

# categories readable through the public config operations
PUBLIC_CATEGORIES = ("ui", "feature", "site", "seo", "social_media")

# categories that require an admin even when the key is known
SYSTEM_CATEGORIES = (
    "email",
    "security",
    "integrations",
    "storage",
    "queue",
    "cache",
    "session",
    "logging",
    "performance",
    "ai",
    "notifications",
    "messaging",
)

ENCRYPTED_PLACEHOLDER = "[ENCRYPTED]"
FEATURE_PREFIX = "feature."


def _masked_value(config: SystemConfig) -> Any:
    return ENCRYPTED_PLACEHOLDER if config.is_encrypted else config.value


def _is_enabled(value: Any) -> bool:
    return value is True or value == "true" or (value == 1 and not isinstance(value, bool))


def _require_key(key: str | None) -> str:
    if not key:
        raise BadRequestError("Config key is required")
    return key


class SystemConfigService(BaseService):
    """Read and write configuration entries stored in ``system_config``."""

    async def _run(self, work: Callable[[Session], T]) -> T:
        def unit() -> T:
            with session_scope(self.session_factory) as session:
                return work(session)

        return await run_in_threadpool(unit)

    async def get_public(self, key: str, *, is_admin: bool = False) -> dict[str, Any]:
        """Public lookup: system categories need an admin, secrets are masked."""
        key = _require_key(key)

        def work(session: Session) -> dict[str, Any]:
            config = get_config(session, key)
            if config is None:
                return {"found": False, "key": key}
            if config.category in SYSTEM_CATEGORIES and not is_admin:
                return {"found": False, "key": key, "message": "Access denied"}
            if config.is_encrypted:
                return {"found": True, "key": key, "value": ENCRYPTED_PLACEHOLDER}
            return {
                "found": True,
                "key": config.key,
                "value": config.value,
                "category": config.category,
            }

        return await self._run(work)

    async def list_public(self, category: str | None = None) -> dict[str, Any]:
        if category is not None and category not in PUBLIC_CATEGORIES:
            return {"items": [], "total": 0, "message": "Category not accessible"}
        categories = [category] if category else list(PUBLIC_CATEGORIES)

        def work(session: Session) -> dict[str, Any]:
            items = [
                {
                    "key": config.key,
                    "value": config.value,
                    "category": config.category,
                    "description": config.description,
                }
                for config in list_configs(session, categories=categories, include_encrypted=False)
            ]
            return {"items": items, "total": len(items)}

        return await self._run(work)

    async def features(self) -> dict[str, Any]:
        """Feature flags as ``{name: enabled}`` with the ``feature.`` prefix removed."""

        def work(session: Session) -> dict[str, Any]:
            configs = list_configs(session, categories=["feature"], include_encrypted=False)
            features = {config.key.replace(FEATURE_PREFIX, "", 1): _is_enabled(config.value) for config in configs}
            return {"features": features, "count": len(features)}

        return await self._run(work)

    async def get(self, key: str) -> dict[str, Any]:
        key = _require_key(key)

        def work(session: Session) -> dict[str, Any]:
            config = get_config(session, key)
            if config is None:
                return {"found": False, "key": key}
            return {
                "found": True,
                "key": config.key,
                "value": _masked_value(config),
                "category": config.category,
                "dataType": config.data_type,
                "isEncrypted": config.is_encrypted,
                "requiresRestart": config.requires_restart,
            }

        return await self._run(work)

    async def list(self, category: str | None = None) -> dict[str, Any]:
        def work(session: Session) -> dict[str, Any]:
            configs = list_configs(session, categories=[category] if category else None)
            items = [
                {
                    "key": config.key,
                    "value": _masked_value(config),
                    "category": config.category,
                    "dataType": config.data_type,
                    "description": config.description,
                    "isEncrypted": config.is_encrypted,
                    "requiresRestart": config.requires_restart,
                }
                for config in configs
            ]
            return {"items": items, "total": len(items)}

        return await self._run(work)

    async def categories(self) -> dict[str, Any]:
        all_categories = await self._run(list_categories)
        return {
            "all": all_categories,
            "public": list(PUBLIC_CATEGORIES),
            "system": list(SYSTEM_CATEGORIES),
            "total": len(all_categories),
        }

    async def set(
        self,
        key: str,
        value: Any,
        *,
        category: str | None = None,
        data_type: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        key = _require_key(key)

        def work(session: Session) -> dict[str, Any]:
            created = get_config(session, key) is None
            upsert_config(
                session,
                key=key,
                value=value,
                category=category,
                data_type=data_type,
                description=description,
            )
            return {"success": True, "key": key, "created": created}

        return await self._run(work)

    async def delete(self, key: str) -> dict[str, Any]:
        key = _require_key(key)
        deleted = await self._run(lambda session: delete_configs(session, key))
        return {"success": deleted > 0, "deleted": deleted}
