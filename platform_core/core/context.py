"""Request-scoped ambient context.

A ``RequestContext`` is created once per inbound request and bound to a
``ContextVar``. asyncio copies the current context into every task it
creates, so the binding is visible to everything awaited while handling the
request and never to unrelated concurrent requests.
"""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from datetime import timezone
from typing import Any
from typing import TypeVar
import uuid

T = TypeVar("T")


class RequestContext:
    """Key/value bag describing one inbound request."""

    def __init__(self) -> None:
        self.id = str(uuid.uuid4())
        self.start_time = datetime.now(timezone.utc)
        self._data: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._data

    def duration_ms(self) -> float:
        """Milliseconds elapsed since the context was created."""
        elapsed = datetime.now(timezone.utc) - self.start_time
        return elapsed.total_seconds() * 1000

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of all bindings plus identity and timing."""
        snapshot: dict[str, Any] = {
            "contextId": self.id,
            "startTime": self.start_time.isoformat(),
            "duration": self.duration_ms(),
        }
        snapshot.update(self._data)
        return snapshot

    def __repr__(self) -> str:
        return f"RequestContext(id={self.id!r})"


_current_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


class ContextManager:
    """Bind, look up and run code under a request context."""

    def current(self) -> RequestContext | None:
        return _current_context.get()

    @contextmanager
    def bind(self, context: RequestContext) -> Iterator[RequestContext]:
        """Make ``context`` current for the duration of the block."""
        token = _current_context.set(context)
        try:
            yield context
        finally:
            _current_context.reset(token)

    def run(self, callback: Callable[[], T], context: RequestContext | None = None) -> T:
        """Run a callable under a new (or given) context."""
        with self.bind(context or RequestContext()):
            return callback()

    async def run_async(
        self,
        callback: Callable[[], Awaitable[T]],
        context: RequestContext | None = None,
    ) -> T:
        """Await a coroutine function under a new (or given) context."""
        with self.bind(context or RequestContext()):
            return await callback()

    def logging_metadata(self) -> dict[str, Any]:
        """Return tracing fields of the current context for log entries."""
        context = self.current()
        if context is None:
            return {}

        return {
            "contextId": context.id,
            "requestId": context.get("requestId"),
            "userId": context.get("userId"),
            "ipAddress": context.get("ipAddress"),
            "requestPath": context.get("path"),
            "requestMethod": context.get("method"),
            "userAgent": context.get("userAgent"),
        }


context_manager = ContextManager()


def get_current_context() -> RequestContext | None:
    """Return the context bound to the running request, if any."""
    return context_manager.current()


def get_current_user() -> dict[str, Any] | None:
    """Return the user bound to the running request, if any."""
    context = context_manager.current()
    if context is None:
        return None
    return context.get("user")
