"""Model module imports for SQLAlchemy metadata registration."""

from platform_core.db.models.system_config import Base
from platform_core.db.models.system_config import SystemConfig

__all__ = [
    "Base",
    "SystemConfig",
]
