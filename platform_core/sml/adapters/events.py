"""Event operations under ``events.*`` and the core event declarations.

``events.subscribe`` is declarative: instead of a callback it takes an
operation path, which is executed with the event payload as parameters
whenever a matching event is emitted.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from platform_core.core.logging import get_logger
from platform_core.events.bus import EventBus
from platform_core.events.bus import event_bus
from platform_core.services.event_subscriptions import EventSubscriptionService
from platform_core.sml.errors import SmlError
from platform_core.sml.registry import SmlRegistry
from platform_core.sml.registry import sml
from platform_core.sml.types import EventType
from platform_core.sml.types import ExecutionContext
from platform_core.sml.types import Operation
from platform_core.sml.types import OperationSchema
from platform_core.sml.types import Visibility

logger = get_logger(__name__)

OWNER = "core:events"

CORE_EVENTS: dict[str, dict[str, Any]] = {
    "system.boot": {
        "description": "System boot completed",
        "type": EventType.SYSTEM,
        "payload": {
            "timestamp": {"type": "Date", "required": True},
            "version": {"type": "string"},
        },
    },
    "system.shutdown": {
        "description": "System shutdown initiated",
        "type": EventType.SYSTEM,
        "payload": {"reason": {"type": "string"}},
    },
    "auth.login": {
        "description": "User logged in",
        "type": EventType.DOMAIN,
        "payload": {
            "userId": {"type": "number", "required": True},
            "email": {"type": "string", "required": True},
            "ip": {"type": "string"},
        },
    },
    "auth.logout": {
        "description": "User logged out",
        "type": EventType.DOMAIN,
        "payload": {"userId": {"type": "number", "required": True}},
    },
}


def payload_matches(payload: Any, filter: dict[str, Any] | None) -> bool:
    """Key/value equality filter; no filter matches everything."""
    if not filter:
        return True
    if not isinstance(payload, dict):
        return False
    return all(payload.get(key) == value for key, value in filter.items())


class EventOperations:
    """Handlers bound to one registry, bus and subscription store."""

    def __init__(
        self,
        registry: SmlRegistry,
        bus: EventBus,
        subscriptions: EventSubscriptionService,
    ) -> None:
        self._registry = registry
        self._bus = bus
        self._subscriptions = subscriptions
        self._active: dict[str, Callable[[], None]] = {}

    async def emit(self, params: dict[str, Any], ctx: ExecutionContext) -> bool:
        self._bus.emit(params["event"], params.get("payload"))
        return True

    async def subscribe(self, params: dict[str, Any], ctx: ExecutionContext) -> bool:
        subscription_id = params["subscriptionId"]
        event_name = params["event"]
        workflow_path = params["workflowPath"]
        filter = params.get("filter")

        await self._subscriptions.save(
            subscription_id,
            event=event_name,
            workflow_path=workflow_path,
            filter=filter,
        )

        async def run_workflow(payload: Any) -> None:
            if not payload_matches(payload, filter):
                return
            try:
                await self._registry.execute(workflow_path, payload, ctx)
            except SmlError as exc:
                logger.error(
                    "event_subscription_workflow_failed",
                    subscription_id=subscription_id,
                    workflow_path=workflow_path,
                    error=exc.message,
                    code=exc.code,
                )

        previous = self._active.pop(subscription_id, None)
        if previous is not None:
            previous()
        self._active[subscription_id] = self._bus.subscribe(event_name, run_workflow)

        logger.info(
            "event_subscription_created",
            subscription_id=subscription_id,
            event_name=event_name,
            workflow_path=workflow_path,
        )
        return True

    async def unsubscribe(self, params: dict[str, Any], ctx: ExecutionContext) -> bool:
        subscription_id = params["subscriptionId"]
        await self._subscriptions.remove(subscription_id)
        unsubscribe = self._active.pop(subscription_id, None)
        if unsubscribe is not None:
            unsubscribe()
        logger.info("event_subscription_removed", subscription_id=subscription_id)
        return True

    async def list(self, params: dict[str, Any], ctx: ExecutionContext) -> list[dict[str, Any]]:
        return await self._subscriptions.list()


def register_event_operations(
    registry: SmlRegistry = sml,
    *,
    bus: EventBus = event_bus,
    subscriptions: EventSubscriptionService | None = None,
) -> EventOperations:
    operations = EventOperations(registry, bus, subscriptions or EventSubscriptionService())

    registry.register(
        "events.emit",
        Operation(
            handler=operations.emit,
            schema=OperationSchema.model_validate(
                {
                    "description": "Emit an event to the event bus",
                    "params": {
                        "event": {
                            "type": "string",
                            "required": True,
                            "description": "Event name (e.g., crm.contact.created)",
                        },
                        "payload": {"type": "object", "description": "Event payload data"},
                    },
                    "returns": {"type": "boolean"},
                }
            ),
        ),
        owner=OWNER,
    )
    registry.register(
        "events.subscribe",
        Operation(
            handler=operations.subscribe,
            schema=OperationSchema.model_validate(
                {
                    "description": "Subscribe an operation path to an event",
                    "params": {
                        "subscriptionId": {
                            "type": "string",
                            "required": True,
                            "description": "Unique subscription ID for management",
                        },
                        "event": {
                            "type": "string",
                            "required": True,
                            "description": "Event name to subscribe to (e.g., auth.login)",
                        },
                        "workflowPath": {
                            "type": "string",
                            "required": True,
                            "description": "Operation path to execute when event fires",
                        },
                        "filter": {"type": "object", "description": "Optional payload filter (key-value match)"},
                    },
                    "returns": {"type": "boolean"},
                }
            ),
        ),
        owner=OWNER,
        visibility=Visibility.INTERNAL,
    )
    registry.register(
        "events.unsubscribe",
        Operation(
            handler=operations.unsubscribe,
            schema=OperationSchema.model_validate(
                {
                    "description": "Remove an event subscription",
                    "params": {
                        "subscriptionId": {
                            "type": "string",
                            "required": True,
                            "description": "Subscription ID to remove",
                        },
                    },
                    "returns": {"type": "boolean"},
                }
            ),
        ),
        owner=OWNER,
        visibility=Visibility.INTERNAL,
    )
    registry.register(
        "events.list",
        Operation(
            handler=operations.list,
            schema=OperationSchema(description="List all event subscriptions", returns={"type": "array"}),
        ),
        owner=OWNER,
        visibility=Visibility.INTERNAL,
    )

    for path, schema in CORE_EVENTS.items():
        registry.declare_event(path, schema, owner=OWNER)

    logger.info("sml_adapter_registered", adapter="events", operations=4, events=len(CORE_EVENTS))
    return operations
