"""Dict-backed storage used as a fallback and in tests."""

import copy

from .base import COLLECTIONS, Record, Storage, check_collection


class InMemoryStorage(Storage):
    """Non-durable storage. Records are deep-copied in and out."""

    backend = "memory"

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Record]] = {
            name: {} for name in COLLECTIONS
        }

    async def get_all(self, collection: str) -> list[Record]:
        check_collection(collection)
        return [copy.deepcopy(value) for value in self._collections[collection].values()]

    async def get(self, collection: str, key: str) -> Record | None:
        check_collection(collection)
        value = self._collections[collection].get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, collection: str, key: str, value: Record) -> None:
        check_collection(collection)
        self._collections[collection][key] = copy.deepcopy(value)

    async def delete(self, collection: str, key: str) -> None:
        check_collection(collection)
        self._collections[collection].pop(key, None)

    async def replace_all(self, collection: str, items: dict[str, Record]) -> None:
        check_collection(collection)
        self._collections[collection] = copy.deepcopy(items)

    async def clear(self, collection: str) -> None:
        check_collection(collection)
        self._collections[collection] = {}
