"""Persistence of declarative event subscriptions."""

from __future__ import annotations

from datetime import datetime
from datetime import timezone
from typing import Any

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from platform_core.core.base import BaseService
from platform_core.db.base import session_scope
from platform_core.db.repository.system_config import delete_configs
from platform_core.db.repository.system_config import get_config
from platform_core.db.repository.system_config import list_configs
from platform_core.db.repository.system_config import upsert_config

SUBSCRIPTION_PREFIX = "event.subscription."
SUBSCRIPTION_CATEGORY = "events"


def subscription_key(subscription_id: str) -> str:
    return f"{SUBSCRIPTION_PREFIX}{subscription_id}"


class EventSubscriptionService(BaseService):
    """Store event -> operation-path subscriptions in ``system_config``."""

    async def save(
        self,
        subscription_id: str,
        *,
        event: str,
        workflow_path: str,
        filter: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        key = subscription_key(subscription_id)
        now = datetime.now(timezone.utc).isoformat()

        def work(session: Session) -> dict[str, Any]:
            existing = get_config(session, key)
            record: dict[str, Any] = {"event": event, "workflowPath": workflow_path, "filter": filter}
            if existing is None:
                record["createdAt"] = now
            else:
                record["createdAt"] = (existing.value or {}).get("createdAt")
                record["updatedAt"] = now
            upsert_config(
                session,
                key=key,
                value=record,
                category=SUBSCRIPTION_CATEGORY,
                data_type="json",
                description=f"Event subscription: {event} -> {workflow_path}",
            )
            return {"subscriptionId": subscription_id, **record}

        return await run_in_threadpool(self._in_session, work)

    async def remove(self, subscription_id: str) -> int:
        key = subscription_key(subscription_id)
        return await run_in_threadpool(self._in_session, lambda session: delete_configs(session, key))

    async def list(self) -> list[dict[str, Any]]:
        def work(session: Session) -> list[dict[str, Any]]:
            return [
                {"subscriptionId": config.key[len(SUBSCRIPTION_PREFIX):], **(config.value or {})}
                for config in list_configs(session, key_prefix=SUBSCRIPTION_PREFIX)
            ]

        return await run_in_threadpool(self._in_session, work)

    def _in_session(self, work: Any) -> Any:
        with session_scope(self.session_factory) as session:
            return work(session)
