"""Tests for the conversation log."""

from unittest.mock import AsyncMock

import pytest

from villagemind.conversation_log import ConversationEntry, ConversationLog
from villagemind.storage import CONVERSATION_ENTRIES, InMemoryStorage, StorageError


class TestConversationEntry:
    """Tests for entry serialization."""

    def test_to_dict_uses_camel_case(self):
        entry = ConversationEntry(
            id="entry-1",
            npc_id="mira",
            day_index=2,
            timestamp="2026-02-02T09:00:00.000Z",
            speaker="player",
            text="Hello!",
        )
        data = entry.to_dict()
        assert data["npcId"] == "mira"
        assert data["dayIndex"] == 2
        assert ConversationEntry.from_dict(data) == entry

    def test_rejects_unknown_speaker(self):
        with pytest.raises(ValueError, match="Unknown speaker"):
            ConversationEntry.from_dict(
                {
                    "id": "e",
                    "npcId": "mira",
                    "dayIndex": 1,
                    "timestamp": "2026-02-02T09:00:00.000Z",
                    "speaker": "narrator",
                    "text": "Once upon a time",
                }
            )


class TestConversationLog:
    """Tests for ConversationLog."""

    @pytest.mark.asyncio
    async def test_append_persists(self, storage: InMemoryStorage):
        log = ConversationLog(storage)
        entry = await log.append("mira", "player", "Hi Mira")
        assert entry.id.startswith("entry-")
        assert entry.day_index == 1
        assert await storage.get(CONVERSATION_ENTRIES, entry.id) == entry.to_dict()

    @pytest.mark.asyncio
    async def test_append_uses_active_day(self, conversation_log: ConversationLog):
        conversation_log.active_day_index = 3
        entry = await conversation_log.append("jun", "player", "Morning!")
        assert entry.day_index == 3

    def test_active_day_is_at_least_one(self, conversation_log: ConversationLog):
        conversation_log.active_day_index = 0
        assert conversation_log.active_day_index == 1

    @pytest.mark.asyncio
    async def test_hydrates_sorted_by_timestamp(self, storage: InMemoryStorage):
        writer = ConversationLog(storage)
        await writer.append("mira", "player", "second", timestamp="2026-02-02T10:00:00.000Z")
        await writer.append("mira", "player", "first", timestamp="2026-02-02T09:00:00.000Z")

        reader = ConversationLog(storage)
        await reader.initialize()
        assert [entry.text for entry in reader.entries()] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_skips_invalid_records(self, storage: InMemoryStorage, caplog):
        await storage.put(CONVERSATION_ENTRIES, "bad", {"id": "bad"})
        log = ConversationLog(storage)
        await log.initialize()
        assert log.entries() == []
        assert "Skipping invalid conversation entry" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_write_keeps_entry(self, storage: InMemoryStorage):
        log = ConversationLog(storage)
        await log.initialize()
        storage.put = AsyncMock(side_effect=StorageError("read-only"))
        entry = await log.append("pia", "player", "Still here")
        assert log.entries() == [entry]

    @pytest.mark.asyncio
    async def test_queries(self, conversation_log: ConversationLog):
        await conversation_log.append("mira", "player", "one", day_index=1)
        await conversation_log.append("mira", "npc", "two", day_index=2)
        await conversation_log.append("theo", "player", "three", day_index=2)
        await conversation_log.append("mira", "player", "four", day_index=2)

        assert [e.text for e in conversation_log.entries_for_day(2)] == ["two", "three", "four"]
        assert [e.text for e in conversation_log.entries_for_npc_day("mira", 2)] == ["two", "four"]
        assert [e.text for e in conversation_log.recent_for_npc("mira", 2)] == ["two", "four"]
        assert conversation_log.recent_for_npc("mira", 0) == []

    @pytest.mark.asyncio
    async def test_clear(self, conversation_log: ConversationLog, storage: InMemoryStorage):
        await conversation_log.append("mira", "player", "Hi")
        await conversation_log.clear()
        assert conversation_log.entries() == []
        assert await storage.get_all(CONVERSATION_ENTRIES) == []
