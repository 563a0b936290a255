"""Unit tests for the in-memory event bus."""

from __future__ import annotations

import asyncio
from typing import Any

from platform_core.events.bus import EventBus


def test_publish_delivers_to_named_and_wildcard_handlers() -> None:
    bus = EventBus()
    received: list[tuple[str, Any]] = []

    async def on_login(payload: Any) -> None:
        received.append(("named", payload))

    bus.subscribe("auth.login", on_login)
    bus.subscribe("*", lambda name, payload: received.append((name, payload)))

    delivered = asyncio.run(bus.publish("auth.login", {"userId": 1}))

    assert delivered == 2
    assert ("named", {"userId": 1}) in received
    assert ("auth.login", {"userId": 1}) in received


def test_handler_failures_do_not_reach_the_emitter() -> None:
    bus = EventBus()
    received: list[Any] = []

    def broken(payload: Any) -> None:
        raise RuntimeError("handler bug")

    bus.subscribe("system.boot", broken)
    bus.subscribe("system.boot", received.append)

    assert asyncio.run(bus.publish("system.boot", "now")) == 2
    assert received == ["now"]


def test_emit_schedules_handlers_until_drained() -> None:
    bus = EventBus()
    received: list[Any] = []

    async def slow(payload: Any) -> None:
        await asyncio.sleep(0.01)
        received.append(payload)

    bus.subscribe("crm.contact.created", slow)

    async def main() -> None:
        assert bus.emit("crm.contact.created", {"id": 9}) == 1
        assert received == []
        await bus.drain()

    asyncio.run(main())

    assert received == [{"id": 9}]


def test_unsubscribe_and_stats() -> None:
    bus = EventBus()
    unsubscribe = bus.subscribe("auth.logout", lambda payload: None)
    bus.subscribe("*", lambda name, payload: None)

    assert bus.has_subscribers("auth.logout")
    assert bus.stats() == {"events": 1, "specificHandlers": 1, "wildcardHandlers": 1}

    unsubscribe()
    unsubscribe()

    assert bus.stats()["specificHandlers"] == 0
    assert bus.registered_events() == ["auth.logout"]
