"""Global player profile built from day-end insight analysis."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import replace
from typing import TYPE_CHECKING

from ..storage import Storage, StorageError
from .models import InsightCategory, PlayerInsight, PlayerInsightSeed, PlayerProfile
from .text import clamp, timestamp_value

if TYPE_CHECKING:
    from ..logging import JSONLLogger

logger = logging.getLogger(__name__)

PLAYER_PROFILE_KEY = "player-profile"
BASE_STRENGTH = 0.55
EPOCH_ISO = "1970-01-01T00:00:00+00:00"

_NON_INSIGHT = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_insight(text: str) -> str:
    """Lowercase, drop punctuation, hyphenate whitespace."""
    cleaned = _NON_INSIGHT.sub("", text.lower()).strip()
    return _WHITESPACE.sub("-", cleaned)


def create_insight_id(category: InsightCategory, text: str) -> str:
    return f"{category.value}:{normalize_insight(text)}"


def create_empty_profile() -> PlayerProfile:
    return PlayerProfile(updated_at=EPOCH_ISO, insights=[])


def reinforced_strength(existing: float, mentions: int) -> float:
    """Strength after another mention; never below ``existing``."""
    strength = clamp(existing * 0.75 + 0.25 + min(0.15, mentions * 0.03), 0.0, 1.0)
    return max(existing, strength)


def sort_insights(insights: Iterable[PlayerInsight]) -> list[PlayerInsight]:
    """Strongest first, then most recently mentioned."""
    return sorted(
        insights,
        key=lambda insight: (-insight.strength, -timestamp_value(insight.last_mentioned_at)),
    )


def merge_player_profile(
    profile: PlayerProfile,
    seeds: Iterable[PlayerInsightSeed],
    timestamp: str,
) -> PlayerProfile:
    """Merge insight seeds into a profile.

    Seeds match existing insights by (category, normalized text). New seeds
    start at ``BASE_STRENGTH``; matches are reinforced.
    """
    merged: dict[tuple[InsightCategory, str], PlayerInsight] = {
        (insight.category, normalize_insight(insight.text)): insight
        for insight in profile.insights
    }

    for seed in seeds:
        text = seed.text.strip()
        normalized = normalize_insight(text)
        if not normalized:
            continue
        key = (seed.category, normalized)
        existing = merged.get(key)
        if existing is None:
            merged[key] = PlayerInsight(
                id=create_insight_id(seed.category, text),
                text=text,
                category=seed.category,
                strength=BASE_STRENGTH,
                mentions=1,
                first_seen_at=timestamp,
                last_mentioned_at=timestamp,
            )
            continue

        mentions = existing.mentions + 1
        merged[key] = replace(
            existing,
            strength=reinforced_strength(existing.strength, mentions),
            mentions=mentions,
            last_mentioned_at=timestamp,
        )

    return PlayerProfile(updated_at=timestamp, insights=sort_insights(merged.values()))


def profile_from_dict(data: dict | None) -> PlayerProfile:
    """Build a profile from a stored setting, skipping invalid insights."""
    if not isinstance(data, dict):
        return create_empty_profile()

    insights: list[PlayerInsight] = []
    for raw in data.get("insights") or []:
        try:
            insights.append(PlayerInsight.from_dict(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid player insight: %s", e)

    return PlayerProfile(
        updated_at=data.get("updatedAt") or EPOCH_ISO,
        insights=sort_insights(insights),
    )


class PlayerProfileStore:
    """Loads and saves the player profile as a setting."""

    def __init__(self, storage: Storage, event_log: JSONLLogger | None = None) -> None:
        self.storage = storage
        self.event_log = event_log

    async def load(self) -> PlayerProfile:
        """Return the stored profile, or an empty one if missing or unreadable."""
        try:
            stored = await self.storage.load_setting(PLAYER_PROFILE_KEY)
        except (StorageError, OSError) as e:
            logger.warning("Failed to load player profile: %s", e)
            return create_empty_profile()
        return profile_from_dict(stored)

    async def save(self, profile: PlayerProfile) -> None:
        try:
            await self.storage.save_setting(PLAYER_PROFILE_KEY, profile.to_dict())
        except (StorageError, OSError) as e:
            logger.warning("Failed to save player profile: %s", e)
            if self.event_log is not None:
                self.event_log.log_persistence_failure("settings", str(e))

    async def merge(
        self,
        seeds: Iterable[PlayerInsightSeed],
        timestamp: str,
        day_index: int | None = None,
    ) -> PlayerProfile:
        """Load, merge seeds into, and save the profile."""
        profile = merge_player_profile(await self.load(), seeds, timestamp)
        await self.save(profile)
        if self.event_log is not None and day_index is not None:
            self.event_log.log_profile_merge(day_index, len(profile.insights))
        return profile

    async def top_insights(self, limit: int = 3) -> list[PlayerInsight]:
        profile = await self.load()
        return profile.insights[: max(0, limit)]
