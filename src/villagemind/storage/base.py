"""Persistence capability consumed by the memory pipeline."""

from abc import ABC, abstractmethod
from typing import Any

CONVERSATION_ENTRIES = "conversation_entries"
MEMORY_FACTS = "memory_facts"
SETTINGS = "settings"

COLLECTIONS: tuple[str, ...] = (CONVERSATION_ENTRIES, MEMORY_FACTS, SETTINGS)

Record = dict[str, Any]


class StorageError(Exception):
    """Raised when a storage backend fails to read or write."""


class Storage(ABC):
    """Async key-value storage over a fixed set of collections.

    Values are JSON-compatible dicts. Settings are stored as
    ``{"key": ..., "value": ...}`` records keyed by the setting name.
    """

    backend: str = "abstract"

    async def initialize(self) -> None:
        """Prepare the backend. Safe to call more than once."""

    @abstractmethod
    async def get_all(self, collection: str) -> list[Record]:
        """Return every record in a collection."""

    @abstractmethod
    async def get(self, collection: str, key: str) -> Record | None:
        """Return one record, or None if missing."""

    @abstractmethod
    async def put(self, collection: str, key: str, value: Record) -> None:
        """Insert or replace one record."""

    @abstractmethod
    async def delete(self, collection: str, key: str) -> None:
        """Delete one record. Missing keys are ignored."""

    @abstractmethod
    async def replace_all(self, collection: str, items: dict[str, Record]) -> None:
        """Atomically replace the whole collection."""

    @abstractmethod
    async def clear(self, collection: str) -> None:
        """Remove every record in a collection."""

    async def close(self) -> None:
        """Release backend resources."""

    async def load_setting(self, key: str) -> Any | None:
        record = await self.get(SETTINGS, key)
        return record.get("value") if record else None

    async def save_setting(self, key: str, value: Any) -> None:
        await self.put(SETTINGS, key, {"key": key, "value": value})

    async def clear_setting(self, key: str) -> None:
        await self.delete(SETTINGS, key)


def check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise StorageError(f"Unknown collection: {collection}")
