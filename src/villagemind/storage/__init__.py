"""Storage backends for conversation entries, memory facts and settings."""

import logging
from pathlib import Path

from .base import (
    COLLECTIONS,
    CONVERSATION_ENTRIES,
    MEMORY_FACTS,
    SETTINGS,
    Storage,
    StorageError,
)
from .memory import InMemoryStorage
from .sqlite import SqliteStorage

logger = logging.getLogger(__name__)


async def open_storage(db_path: Path | None) -> Storage:
    """Open SQLite storage, falling back to in-memory storage on failure."""
    if db_path is not None:
        storage = SqliteStorage(db_path)
        try:
            await storage.initialize()
            return storage
        except StorageError as e:
            logger.warning("SQLite unavailable (%s), using in-memory storage", e)
            await storage.close()

    storage = InMemoryStorage()
    await storage.initialize()
    return storage


__all__ = [
    "COLLECTIONS",
    "CONVERSATION_ENTRIES",
    "InMemoryStorage",
    "MEMORY_FACTS",
    "SETTINGS",
    "SqliteStorage",
    "Storage",
    "StorageError",
    "open_storage",
]
