"""In-memory fact collection backed by the storage capability."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from ..storage import MEMORY_FACTS, Storage, StorageError
from .models import MemoryFact

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)


class MemoryStore:
    """Repository of every NPC's memory facts.

    Reads are served from memory. Writes update memory first and then
    persist; a failed write is logged and the in-memory state stays
    authoritative for the session.
    """

    def __init__(self, storage: Storage, event_log: JSONLLogger | None = None) -> None:
        """Initialize the store.

        Args:
            storage: Persistence backend.
            event_log: Optional structured logger for persistence failures.
        """
        self.storage = storage
        self.event_log = event_log
        self._facts: list[MemoryFact] = []
        self._init_task: asyncio.Future[None] | None = None

    async def initialize(self) -> None:
        """Hydrate facts from storage exactly once.

        Concurrent callers await the same hydration.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._hydrate())
        await self._init_task

    async def _hydrate(self) -> None:
        try:
            records = await self.storage.get_all(MEMORY_FACTS)
        except (StorageError, OSError) as e:
            logger.warning("Failed to hydrate memory facts: %s", e)
            return

        facts: list[MemoryFact] = []
        for record in records:
            try:
                facts.append(MemoryFact.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid stored fact: %s", e)
        self._facts = facts
        logger.debug("Memory store hydrated with %d facts", len(facts))

    async def get_all(self) -> list[MemoryFact]:
        await self.initialize()
        return list(self._facts)

    async def get_for_npc(self, npc_id: str) -> list[MemoryFact]:
        await self.initialize()
        return [fact for fact in self._facts if fact.npc_id == npc_id]

    async def upsert(self, facts: Iterable[MemoryFact]) -> None:
        """Insert or replace facts by id."""
        await self.initialize()
        incoming = {fact.id: fact for fact in facts}
        kept = [fact for fact in self._facts if fact.id not in incoming]
        self._facts = [*kept, *incoming.values()]

        for fact in incoming.values():
            await self._persist(self.storage.put(MEMORY_FACTS, fact.id, fact.to_dict()))

    async def replace_all(self, facts: Iterable[MemoryFact]) -> None:
        """Replace the whole collection."""
        await self.initialize()
        self._facts = list(facts)
        await self._persist(
            self.storage.replace_all(
                MEMORY_FACTS, {fact.id: fact.to_dict() for fact in self._facts}
            )
        )

    async def clear(self) -> None:
        """Delete every fact. Used by seed and test harnesses."""
        await self.initialize()
        self._facts = []
        await self._persist(self.storage.clear(MEMORY_FACTS))

    async def _persist(self, write) -> None:
        try:
            await write
        except (StorageError, OSError) as e:
            logger.warning("Failed to persist memory facts: %s", e)
            if self.event_log is not None:
                self.event_log.log_persistence_failure(MEMORY_FACTS, str(e))
