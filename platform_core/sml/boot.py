"""Registry boot sequence.

Core adapters register first, then plugin adapters in the order they were
added with ``register_plugin_adapter``; the registry is locked last.
"""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
import inspect
from typing import Any

from platform_core.core.logging import get_logger
from platform_core.sml.adapters.auth import register_auth_operations
from platform_core.sml.adapters.config import register_config_operations
from platform_core.sml.adapters.events import register_event_operations
from platform_core.sml.registry import SmlRegistry
from platform_core.sml.registry import sml

logger = get_logger(__name__)

AdapterFn = Callable[[SmlRegistry], Awaitable[Any] | Any]


@dataclass(frozen=True)
class PluginAdapter:
    name: str
    register: AdapterFn


_plugin_adapters: list[PluginAdapter] = []


def register_plugin_adapter(name: str, register: AdapterFn) -> None:
    """Queue a plugin adapter to run during ``boot_sml``."""
    _plugin_adapters.append(PluginAdapter(name=name, register=register))
    logger.debug("sml_plugin_adapter_queued", name=name)


def clear_plugin_adapters() -> None:
    _plugin_adapters.clear()


CORE_ADAPTERS: tuple[tuple[str, AdapterFn], ...] = (
    ("auth", register_auth_operations),
    ("events", register_event_operations),
    ("config", register_config_operations),
)


async def _run_adapter(register: AdapterFn, registry: SmlRegistry) -> None:
    result = register(registry)
    if inspect.isawaitable(result):
        await result


async def boot_sml(registry: SmlRegistry = sml) -> None:
    """Register every core and plugin operation, then lock the registry."""
    logger.info("sml_boot_started")

    for name, register in CORE_ADAPTERS:
        logger.debug("sml_core_adapter_loading", adapter=name)
        await _run_adapter(register, registry)

    for adapter in list(_plugin_adapters):
        try:
            logger.debug("sml_plugin_adapter_loading", adapter=adapter.name)
            await _run_adapter(adapter.register, registry)
        except Exception:
            logger.exception("sml_plugin_adapter_failed", adapter=adapter.name)

    registry.lock()

    meta = registry.meta
    logger.info(
        "sml_boot_completed",
        domains=len(meta.domains),
        operations=registry.size,
        events=registry.event_count,
        models=len(meta.models),
        integrations=meta.integrations,
    )


def is_sml_ready(registry: SmlRegistry = sml) -> bool:
    return registry.is_locked() and registry.size > 0
