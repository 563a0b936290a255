"""Request context and request logging middleware.

``RequestContextMiddleware`` must wrap ``RequestLoggerMiddleware`` so that
the completion log entry carries the request metadata; add it last.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from platform_core.core.config import get_settings
from platform_core.core.context import RequestContext
from platform_core.core.context import context_manager
from platform_core.core.identity import resolve_client_ip
from platform_core.core.identity import resolve_identity
from platform_core.core.logging import get_logger

REQUEST_ID_HEADER = "x-request-id"

logger = get_logger(__name__)


def build_request_context(request: Request) -> RequestContext:
    """Create the context for one inbound request. Never raises."""
    settings = get_settings()
    context = RequestContext()

    user = resolve_identity(
        request.headers.get("authorization"),
        settings.jwt_secret,
        settings.jwt_algorithm,
    )
    context.set("user", user)
    context.set("userId", None if user["id"] is None else str(user["id"]))

    client_host = request.client.host if request.client else None
    context.set("ipAddress", resolve_client_ip(request.headers, client_host))
    context.set("ip", client_host)
    context.set("method", request.method)
    context.set("path", request.url.path)
    context.set("userAgent", request.headers.get("user-agent") or "unknown")
    context.set("requestId", request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4()))
    return context


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a fresh request context around every request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = build_request_context(request)
        request.state.context = context
        with context_manager.bind(context):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = context.get("requestId")
        return response


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Log every completed request with its status and duration."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = context_manager.current()
        response = await call_next(request)
        duration_ms = context.duration_ms() if context is not None else None
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        return response
