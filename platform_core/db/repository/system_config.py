"""Repository primitives for system configuration entries."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import delete
from sqlalchemy import select
from sqlalchemy.orm import Session

from platform_core.db.models.system_config import SystemConfig


def get_config(session: Session, key: str) -> SystemConfig | None:
    """Fetch a config entry by key."""
    return session.scalars(select(SystemConfig).where(SystemConfig.key == key)).first()


def list_configs(
    session: Session,
    *,
    categories: Sequence[str] | None = None,
    include_encrypted: bool = True,
    key_prefix: str | None = None,
) -> list[SystemConfig]:
    """List config entries ordered by key with optional filters."""
    stmt = select(SystemConfig)
    if categories is not None:
        stmt = stmt.where(SystemConfig.category.in_(list(categories)))
    if not include_encrypted:
        stmt = stmt.where(SystemConfig.is_encrypted.is_(False))
    if key_prefix is not None:
        stmt = stmt.where(SystemConfig.key.startswith(key_prefix, autoescape=True))
    stmt = stmt.order_by(SystemConfig.key.asc())
    return list(session.scalars(stmt))


def list_categories(session: Session) -> list[str]:
    """Return the distinct non-null categories."""
    stmt = (
        select(SystemConfig.category)
        .where(SystemConfig.category.is_not(None))
        .distinct()
        .order_by(SystemConfig.category.asc())
    )
    return list(session.scalars(stmt))


def upsert_config(
    session: Session,
    *,
    key: str,
    value: Any,
    category: str | None = None,
    data_type: str | None = None,
    description: str | None = None,
) -> SystemConfig:
    """Create a config entry or update the existing one in place."""
    config = get_config(session, key)
    if config is None:
        config = SystemConfig(
            key=key,
            value=value,
            category=category,
            data_type=data_type or "string",
            description=description,
        )
        session.add(config)
    else:
        config.value = value
        if category is not None:
            config.category = category
        if data_type is not None:
            config.data_type = data_type
        if description is not None:
            config.description = description
    session.flush()
    session.refresh(config)
    return config


def delete_configs(session: Session, key: str) -> int:
    """Delete entries with the given key and return the number removed."""
    result = session.execute(delete(SystemConfig).where(SystemConfig.key == key))
    session.flush()
    return result.rowcount or 0
