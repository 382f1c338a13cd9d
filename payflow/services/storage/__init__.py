"""
PayFlow Storage Services

Backends:
- memory: dict-backed, process-local (tests, demos)
- database: SQLAlchemy async (PostgreSQL/Supabase, SQLite)
"""

from payflow.core.config import Settings
from payflow.services.storage.base import (
    BillRecord,
    CategoryRecord,
    Storage,
    UserRecord,
)
from payflow.services.storage.memory import MemoryStorage


def build_storage(settings: Settings) -> Storage:
    """Select the storage backend configured for this deployment."""
    if settings.storage_backend == "memory":
        return MemoryStorage()

    from payflow.services.storage.database import DatabaseStorage
    return DatabaseStorage(
        settings.database_url,
        production=settings.is_production,
        echo=settings.debug,
    )


__all__ = [
    "Storage",
    "UserRecord",
    "CategoryRecord",
    "BillRecord",
    "MemoryStorage",
    "build_storage",
]
