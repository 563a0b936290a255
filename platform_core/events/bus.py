"""In-memory pub/sub event bus."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from collections.abc import Callable
import inspect
from typing import Any

from platform_core.core.logging import get_logger

logger = get_logger(__name__)

WILDCARD = "*"

EventHandler = Callable[..., Awaitable[None] | None]


class EventBus:
    """Named-event pub/sub.

    Handlers subscribed to a name receive ``payload``; handlers subscribed
    to ``*`` receive ``(event_name, payload)``. Handler errors are logged and
    never propagate to the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._wildcard_handlers: list[EventHandler] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event_name: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to an event name or ``*``; returns an unsubscribe callable."""
        if event_name == WILDCARD:
            self._wildcard_handlers.append(handler)
            logger.info("event_bus_wildcard_subscribed", total=len(self._wildcard_handlers))
            bucket = self._wildcard_handlers
        else:
            bucket = self._handlers.setdefault(event_name, [])
            bucket.append(handler)
            logger.info("event_bus_subscribed", event_name=event_name)

        def unsubscribe() -> None:
            if handler in bucket:
                bucket.remove(handler)
                logger.debug("event_bus_unsubscribed", event_name=event_name)

        return unsubscribe

    def _calls(self, event_name: str, payload: Any) -> list[tuple[EventHandler, tuple[Any, ...]]]:
        calls = [(handler, (payload,)) for handler in self._handlers.get(event_name, [])]
        calls.extend((handler, (event_name, payload)) for handler in self._wildcard_handlers)
        return calls

    async def _invoke(self, event_name: str, handler: EventHandler, args: tuple[Any, ...]) -> None:
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("event_bus_handler_failed", event_name=event_name)

    async def publish(self, event_name: str, payload: Any = None) -> int:
        """Deliver an event and wait for every handler to finish."""
        calls = self._calls(event_name, payload)
        if calls:
            await asyncio.gather(*(self._invoke(event_name, handler, args) for handler, args in calls))
        logger.debug("event_bus_published", event_name=event_name, handlers=len(calls))
        return len(calls)

    def emit(self, event_name: str, payload: Any = None) -> int:
        """Schedule delivery on the running loop and return immediately."""
        calls = self._calls(event_name, payload)
        loop = asyncio.get_running_loop()
        for handler, args in calls:
            task = loop.create_task(self._invoke(event_name, handler, args))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        logger.debug("event_bus_emitted", event_name=event_name, handlers=len(calls))
        return len(calls)

    async def drain(self) -> None:
        """Wait for handlers scheduled by ``emit``."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def has_subscribers(self, event_name: str) -> bool:
        return bool(self._handlers.get(event_name)) or bool(self._wildcard_handlers)

    def registered_events(self) -> list[str]:
        return list(self._handlers)

    def stats(self) -> dict[str, int]:
        return {
            "events": len(self._handlers),
            "specificHandlers": sum(len(handlers) for handlers in self._handlers.values()),
            "wildcardHandlers": len(self._wildcard_handlers),
        }


event_bus = EventBus()
