"""FastAPI application entrypoint for the platform core."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from platform_core.api.sml import SmlController
from platform_core.api.sml import router as sml_router
from platform_core.core.config import Settings
from platform_core.core.config import get_settings
from platform_core.core.errors import register_error_handlers
from platform_core.core.logging import get_logger
from platform_core.core.logging import setup_logging
from platform_core.core.middleware import RequestContextMiddleware
from platform_core.core.middleware import RequestLoggerMiddleware
from platform_core.events.bus import event_bus
from platform_core.sml.boot import boot_sml
from platform_core.sml.boot import is_sml_ready
from platform_core.sml.registry import SmlRegistry
from platform_core.sml.registry import sml

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, registry: SmlRegistry = sml) -> FastAPI:
    """Build the application around one registry."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("application_starting", **settings.safe_for_logging())
        if settings.boot_registry and not registry.is_locked():
            await boot_sml(registry)
        yield
        await event_bus.drain()
        logger.info("application_stopped")

    app = FastAPI(title="Platform Core", lifespan=lifespan)
    app.state.sml_controller = SmlController(registry)

    # Last added runs first: the context must be bound before the logger sees the request.
    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app)
    app.include_router(sml_router)

    @app.get("/health")
    def health() -> dict[str, str | bool]:
        """Health check endpoint for service readiness."""
        return {"status": "ok", "registryReady": is_sml_ready(registry)}

    return app


app = create_app()
