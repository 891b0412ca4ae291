"""Tests for the player profile."""

from unittest.mock import AsyncMock

import pytest

from villagemind.memory.models import InsightCategory, PlayerInsightSeed
from villagemind.memory.profile import (
    BASE_STRENGTH,
    EPOCH_ISO,
    PLAYER_PROFILE_KEY,
    PlayerProfileStore,
    create_empty_profile,
    merge_player_profile,
    normalize_insight,
    profile_from_dict,
)
from villagemind.storage import StorageError

DAY_ONE = "2026-02-02T20:00:00+00:00"
DAY_TWO = "2026-02-03T20:00:00+00:00"


def seed(text: str, category: InsightCategory = InsightCategory.PREFERENCE) -> PlayerInsightSeed:
    return PlayerInsightSeed(text=text, category=category)


class TestMergePlayerProfile:
    """Tests for merge_player_profile."""

    def test_normalize_insight(self):
        assert normalize_insight("  Loves Tea! ") == "loves-tea"

    def test_new_insight(self):
        profile = merge_player_profile(create_empty_profile(), [seed("Loves tea!")], DAY_ONE)
        insight = profile.insights[0]
        assert insight.id == "preference:loves-tea"
        assert insight.strength == BASE_STRENGTH
        assert insight.mentions == 1
        assert insight.first_seen_at == DAY_ONE
        assert profile.updated_at == DAY_ONE

    def test_repeat_reinforces(self):
        first = merge_player_profile(create_empty_profile(), [seed("Loves tea!")], DAY_ONE)
        second = merge_player_profile(first, [seed("loves tea")], DAY_TWO)
        assert len(second.insights) == 1
        insight = second.insights[0]
        assert insight.mentions == 2
        assert insight.strength == pytest.approx(0.7225)
        assert insight.first_seen_at == DAY_ONE
        assert insight.last_mentioned_at == DAY_TWO

    def test_category_is_part_of_identity(self):
        profile = merge_player_profile(
            create_empty_profile(),
            [seed("Gardening"), seed("Gardening", InsightCategory.HABIT)],
            DAY_ONE,
        )
        assert len(profile.insights) == 2

    def test_blank_seeds_are_skipped(self):
        profile = merge_player_profile(create_empty_profile(), [seed("!!!")], DAY_ONE)
        assert profile.insights == []

    def test_strongest_first(self):
        first = merge_player_profile(create_empty_profile(), [seed("Loves tea")], DAY_ONE)
        second = merge_player_profile(first, [seed("Likes rain"), seed("Loves tea")], DAY_TWO)
        assert [i.text for i in second.insights] == ["Loves tea", "Likes rain"]


class TestProfileFromDict:
    """Tests for loading stored profiles."""

    def test_missing_profile(self):
        profile = profile_from_dict(None)
        assert profile.updated_at == EPOCH_ISO
        assert profile.insights == []

    def test_skips_invalid_insights(self, caplog):
        stored = merge_player_profile(create_empty_profile(), [seed("Loves tea")], DAY_ONE).to_dict()
        stored["insights"].append({"id": "broken", "category": "mood"})
        profile = profile_from_dict(stored)
        assert [i.text for i in profile.insights] == ["Loves tea"]
        assert "Skipping invalid player insight" in caplog.text


class TestPlayerProfileStore:
    """Tests for PlayerProfileStore."""

    @pytest.mark.asyncio
    async def test_merge_persists(self, storage):
        store = PlayerProfileStore(storage)
        await store.merge([seed("Loves tea")], DAY_ONE)

        stored = await storage.load_setting(PLAYER_PROFILE_KEY)
        assert stored["insights"][0]["text"] == "Loves tea"
        assert [i.text for i in (await store.load()).insights] == ["Loves tea"]

    @pytest.mark.asyncio
    async def test_top_insights(self, storage):
        store = PlayerProfileStore(storage)
        await store.merge([seed("One"), seed("Two"), seed("Three")], DAY_ONE)
        assert len(await store.top_insights(2)) == 2

    @pytest.mark.asyncio
    async def test_load_failure_returns_empty_profile(self, storage):
        storage.get = AsyncMock(side_effect=StorageError("locked"))
        profile = await PlayerProfileStore(storage).load()
        assert profile.insights == []

    @pytest.mark.asyncio
    async def test_logs_merge(self, storage, event_log):
        store = PlayerProfileStore(storage, event_log=event_log)
        await store.merge([seed("Loves tea")], DAY_ONE, day_index=1)
        assert "profile_merged" in event_log.log_path.read_text()
