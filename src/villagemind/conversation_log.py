"""Append-only log of what the player and NPCs said."""

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Literal

from .memory.text import timestamp_value, utc_now_iso
from .storage import CONVERSATION_ENTRIES, Storage, StorageError

logger = logging.getLogger(__name__)

Speaker = Literal["player", "npc"]


@dataclass(frozen=True)
class ConversationEntry:
    """One utterance."""

    id: str
    npc_id: str
    day_index: int
    timestamp: str
    speaker: Speaker
    text: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "id": data["id"],
            "npcId": data["npc_id"],
            "dayIndex": data["day_index"],
            "timestamp": data["timestamp"],
            "speaker": data["speaker"],
            "text": data["text"],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationEntry":
        speaker = data["speaker"]
        if speaker not in ("player", "npc"):
            raise ValueError(f"Unknown speaker: {speaker!r}")
        return cls(
            id=data["id"],
            npc_id=data["npcId"],
            day_index=int(data["dayIndex"]),
            timestamp=data["timestamp"],
            speaker=speaker,
            text=data["text"],
        )


def create_entry_id() -> str:
    return f"entry-{uuid.uuid4().hex[:12]}"


class ConversationLog:
    """In-memory conversation entries, hydrated from and persisted to storage.

    The in-memory list is authoritative for the session; a failed write is
    logged and the entry is kept.
    """

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self._entries: list[ConversationEntry] = []
        self._active_day_index = 1
        self._init_task: asyncio.Future[None] | None = None

    async def initialize(self) -> None:
        """Hydrate entries from storage once; later calls await the same load."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._hydrate())
        await self._init_task

    async def _hydrate(self) -> None:
        try:
            records = await self.storage.get_all(CONVERSATION_ENTRIES)
        except (StorageError, OSError) as e:
            logger.warning("Failed to hydrate conversation log: %s", e)
            return

        entries: list[ConversationEntry] = []
        for record in records:
            try:
                entries.append(ConversationEntry.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid conversation entry: %s", e)
        entries.sort(key=lambda entry: (timestamp_value(entry.timestamp), entry.id))
        self._entries = entries
        logger.debug("Conversation log hydrated with %d entries", len(entries))

    @property
    def active_day_index(self) -> int:
        return self._active_day_index

    @active_day_index.setter
    def active_day_index(self, day_index: int) -> None:
        self._active_day_index = max(1, int(day_index))

    async def append(
        self,
        npc_id: str,
        speaker: Speaker,
        text: str,
        day_index: int | None = None,
        timestamp: str | None = None,
    ) -> ConversationEntry:
        """Record an utterance and persist it."""
        await self.initialize()
        entry = ConversationEntry(
            id=create_entry_id(),
            npc_id=npc_id,
            day_index=day_index if day_index is not None else self._active_day_index,
            timestamp=timestamp or utc_now_iso(),
            speaker=speaker,
            text=text,
        )
        self._entries.append(entry)

        try:
            await self.storage.put(CONVERSATION_ENTRIES, entry.id, entry.to_dict())
        except (StorageError, OSError) as e:
            logger.warning("Failed to persist conversation entry %s: %s", entry.id, e)

        return entry

    def entries(self) -> list[ConversationEntry]:
        return list(self._entries)

    def entries_for_npc_day(
        self,
        npc_id: str,
        day_index: int | None = None,
    ) -> list[ConversationEntry]:
        day = day_index if day_index is not None else self._active_day_index
        return [
            entry
            for entry in self._entries
            if entry.npc_id == npc_id and entry.day_index == day
        ]

    def entries_for_day(self, day_index: int) -> list[ConversationEntry]:
        return [entry for entry in self._entries if entry.day_index == day_index]

    def recent_for_npc(self, npc_id: str, limit: int = 4) -> list[ConversationEntry]:
        """Last ``limit`` entries with an NPC, oldest first."""
        if limit <= 0:
            return []
        return [entry for entry in self._entries if entry.npc_id == npc_id][-limit:]

    async def clear(self) -> None:
        self._entries = []
        try:
            await self.storage.clear(CONVERSATION_ENTRIES)
        except (StorageError, OSError) as e:
            logger.warning("Failed to clear stored conversation entries: %s", e)
