"""Which day it is and which NPCs the player has visited."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .conversation_log import ConversationLog
from .roster import get_npc_ids
from .storage import Storage, StorageError

logger = logging.getLogger(__name__)

DAY_CYCLE_KEY = "day-cycle-state"


@dataclass
class DayCycleState:
    day_index: int = 1
    visited_npc_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"dayIndex": self.day_index, "visitedNpcIds": list(self.visited_npc_ids)}

    @classmethod
    def from_dict(cls, data: Any) -> "DayCycleState":
        """Parse a stored snapshot.

        Raises:
            ValueError: If the snapshot is malformed.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected an object, got {type(data).__name__}")
        day_index = data.get("dayIndex")
        if isinstance(day_index, bool) or not isinstance(day_index, int) or day_index < 1:
            raise ValueError(f"Invalid dayIndex: {day_index!r}")
        visited = data.get("visitedNpcIds") or []
        if not isinstance(visited, list) or not all(isinstance(v, str) for v in visited):
            raise ValueError("visitedNpcIds must be a list of strings")
        return cls(day_index=day_index, visited_npc_ids=list(dict.fromkeys(visited)))


class DayCycle:
    """Tracks the current day; a day is complete once every NPC was visited."""

    def __init__(self, storage: Storage, conversation_log: ConversationLog) -> None:
        self.storage = storage
        self.conversation_log = conversation_log
        self.required_npc_ids = get_npc_ids()
        self._state = DayCycleState()
        self._init_task: asyncio.Future[None] | None = None

    async def initialize(self) -> None:
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._hydrate())
        await self._init_task

    async def _hydrate(self) -> None:
        await self.conversation_log.initialize()
        try:
            stored = await self.storage.load_setting(DAY_CYCLE_KEY)
        except (StorageError, OSError) as e:
            logger.warning("Failed to load day cycle state: %s", e)
            stored = None

        state = DayCycleState()
        if stored:
            try:
                state = DayCycleState.from_dict(stored)
            except ValueError as e:
                logger.warning("Invalid day cycle state, starting at day 1: %s", e)

        # Visits already in the log count even if the state write was lost
        for entry in self.conversation_log.entries_for_day(state.day_index):
            if entry.npc_id in self.required_npc_ids and entry.npc_id not in state.visited_npc_ids:
                state.visited_npc_ids.append(entry.npc_id)

        self._state = state
        self.conversation_log.active_day_index = state.day_index
        await self._persist()

    @property
    def state(self) -> DayCycleState:
        return DayCycleState(self._state.day_index, list(self._state.visited_npc_ids))

    @property
    def day_index(self) -> int:
        return self._state.day_index

    def is_complete(self) -> bool:
        return all(npc_id in self._state.visited_npc_ids for npc_id in self.required_npc_ids)

    async def mark_visited(self, npc_id: str) -> None:
        await self.initialize()
        if npc_id not in self.required_npc_ids or npc_id in self._state.visited_npc_ids:
            return
        self._state.visited_npc_ids.append(npc_id)
        await self._persist()

    async def start_new_day(self) -> int:
        """Advance to the next day and return its index."""
        await self.initialize()
        self._state = DayCycleState(day_index=self._state.day_index + 1)
        self.conversation_log.active_day_index = self._state.day_index
        await self._persist()
        logger.info("Started day %d", self._state.day_index)
        return self._state.day_index

    async def _persist(self) -> None:
        try:
            await self.storage.save_setting(DAY_CYCLE_KEY, self._state.to_dict())
        except (StorageError, OSError) as e:
            logger.warning("Failed to persist day cycle state: %s", e)
