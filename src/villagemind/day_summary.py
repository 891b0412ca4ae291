"""End-of-day highlights, suggestions and summaries."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .llm.adapter import LlmError
from .llm.types import (
    LlmAdapter,
    LlmDayKickoffInput,
    LlmMessage,
    LlmPlayerInsightInput,
    LlmSummaryInput,
)
from .memory.models import InsightCategory, MemoryFact, PlayerInsightSeed, PlayerProfile, Tag
from .memory.text import humanize, timestamp_value, utc_now_iso
from .roster import NpcRosterEntry, get_npc_by_id, get_npc_roster
from .storage import Storage, StorageError

if TYPE_CHECKING:
    from .conversation_log import ConversationLog
    from .memory.profile import PlayerProfileStore
    from .memory.store import MemoryStore

logger = logging.getLogger(__name__)

DAY_SUMMARY_PREFIX = "day-summary"
SUGGESTION_GROUPS: tuple[str, ...] = ("goal", "project", "activity", "place", "plant", "item")
QUIET_DAY_SUMMARY = "The village feels quiet tonight. You can still start a new day."


@dataclass(frozen=True)
class DayHighlight:
    npc_id: str
    npc_name: str
    npc_role: str
    summary: str
    tags: list[str]


@dataclass(frozen=True)
class DaySuggestion:
    title: str
    detail: str
    source_tag: str | None = None


@dataclass
class DaySummarySnapshot:
    day_index: int
    summary_text: str
    player_insights: list[PlayerInsightSeed] = field(default_factory=list)
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "dayIndex": self.day_index,
            "summaryText": self.summary_text,
            "playerInsights": [
                {"text": seed.text, "category": seed.category.value}
                for seed in self.player_insights
            ],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DaySummarySnapshot":
        return cls(
            day_index=int(data["dayIndex"]),
            summary_text=data["summaryText"],
            player_insights=[
                PlayerInsightSeed(text=item["text"], category=InsightCategory(item["category"]))
                for item in data.get("playerInsights") or []
            ],
            created_at=data.get("createdAt", ""),
        )


def _facts_for_day(facts: Iterable[MemoryFact], day_index: int) -> list[MemoryFact]:
    return [fact for fact in facts if fact.has_tag("day", str(day_index))]


def build_day_highlights(
    facts: Iterable[MemoryFact],
    roster: Iterable[NpcRosterEntry],
    day_index: int,
) -> list[DayHighlight]:
    """The top fact per NPC for the day, in roster order.

    A higher-salience fact wins; otherwise the later-mentioned one does.
    """
    top: dict[str, MemoryFact] = {}
    for fact in _facts_for_day(facts, day_index):
        existing = top.get(fact.npc_id)
        if (
            existing is None
            or fact.salience > existing.salience
            or timestamp_value(fact.last_mentioned_at) > timestamp_value(existing.last_mentioned_at)
        ):
            top[fact.npc_id] = fact

    return [
        DayHighlight(
            npc_id=npc.id,
            npc_name=npc.name,
            npc_role=npc.role,
            summary=top[npc.id].content,
            tags=top[npc.id].tag_strings(),
        )
        for npc in roster
        if npc.id in top
    ]


def suggestion_from_tag(tag: Tag) -> DaySuggestion | None:
    value = humanize(tag.value)
    source = str(tag)
    if tag.group == "goal":
        return DaySuggestion("Resume a goal", f"Pick up where you left off: {value}.", source)
    if tag.group == "project":
        return DaySuggestion(
            "Advance a project", f"Spend time moving the {value} project forward.", source
        )
    if tag.group == "activity":
        return DaySuggestion("Plan an activity", f"Make room today for more {value}.", source)
    if tag.group == "place":
        return DaySuggestion(
            "Revisit a place", f"Swing by the {value} for a quick check-in.", source
        )
    if tag.group == "plant":
        return DaySuggestion(
            "Tend the garden", f"Check on the {value} and note its progress.", source
        )
    if tag.group == "item":
        return DaySuggestion(
            "Gather supplies", f"See if you still need {value} for today's tasks.", source
        )
    return None


def build_day_suggestion_fallbacks(
    facts: Iterable[MemoryFact],
    day_index: int,
    limit: int = 3,
) -> list[DaySuggestion]:
    """Templated suggestions from the day's tags, highest-priority group first."""
    by_group: dict[str, list[DaySuggestion]] = {group: [] for group in SUGGESTION_GROUPS}
    seen: set[str] = set()

    for fact in _facts_for_day(facts, day_index):
        for tag in fact.tags:
            if tag.group not in by_group or str(tag) in seen:
                continue
            suggestion = suggestion_from_tag(tag)
            if suggestion is None:
                continue
            seen.add(str(tag))
            by_group[tag.group].append(suggestion)

    ordered = [s for group in SUGGESTION_GROUPS for s in by_group[group]]
    return ordered[: max(0, limit)]


class DaySummaryStore:
    """Day summaries stored as ``day-summary:<n>`` settings."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    @staticmethod
    def key_for(day_index: int) -> str:
        return f"{DAY_SUMMARY_PREFIX}:{day_index}"

    async def load(self, day_index: int) -> DaySummarySnapshot | None:
        try:
            stored = await self.storage.load_setting(self.key_for(day_index))
        except (StorageError, OSError) as e:
            logger.warning("Failed to load day summary %d: %s", day_index, e)
            return None
        if not stored:
            return None
        try:
            return DaySummarySnapshot.from_dict(stored)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring invalid day summary %d: %s", day_index, e)
            return None

    async def save(self, snapshot: DaySummarySnapshot) -> None:
        try:
            await self.storage.save_setting(self.key_for(snapshot.day_index), snapshot.to_dict())
        except (StorageError, OSError) as e:
            logger.warning("Failed to save day summary %d: %s", snapshot.day_index, e)


@dataclass
class DayCloseResult:
    snapshot: DaySummarySnapshot
    highlights: list[DayHighlight]
    profile: PlayerProfile


def build_day_conversation(
    conversation_log: ConversationLog,
    day_index: int,
) -> list[LlmMessage]:
    """The day's conversation as chat messages, NPC lines prefixed by name."""
    messages: list[LlmMessage] = []
    for entry in conversation_log.entries_for_day(day_index):
        if entry.speaker == "player":
            messages.append(LlmMessage(role="user", content=entry.text))
        else:
            npc = get_npc_by_id(entry.npc_id)
            name = npc.name if npc else entry.npc_id
            messages.append(LlmMessage(role="assistant", content=f"{name}: {entry.text}"))
    return messages


async def close_day(
    adapter: LlmAdapter,
    memory_store: MemoryStore,
    conversation_log: ConversationLog,
    profile_store: PlayerProfileStore,
    summary_store: DaySummaryStore,
    day_index: int,
    roster: Iterable[NpcRosterEntry] | None = None,
) -> DayCloseResult:
    """Summarize the day, update the player profile and store the snapshot.

    Summary failures propagate. A failed player analysis only means no new
    insights for the day.
    """
    await conversation_log.initialize()
    conversation = build_day_conversation(conversation_log, day_index)

    summary = await adapter.summarize_day(
        LlmSummaryInput(day_index=day_index, conversation=conversation, max_paragraphs=2)
    )

    try:
        analysis = await adapter.analyze_player(
            LlmPlayerInsightInput(day_index=day_index, conversation=conversation, max_insights=4)
        )
        seeds = analysis.insights
    except LlmError as e:
        logger.warning("Player analysis failed for day %d: %s", day_index, e)
        seeds = []

    timestamp = utc_now_iso()
    profile = await profile_store.merge(seeds, timestamp, day_index=day_index)
    snapshot = DaySummarySnapshot(
        day_index=day_index,
        summary_text=summary.summary,
        player_insights=seeds,
        created_at=timestamp,
    )
    await summary_store.save(snapshot)

    highlights = build_day_highlights(
        await memory_store.get_all(),
        roster if roster is not None else get_npc_roster(),
        day_index,
    )
    return DayCloseResult(snapshot=snapshot, highlights=highlights, profile=profile)


async def suggest_next_day(
    adapter: LlmAdapter | None,
    memory_store: MemoryStore,
    summary_store: DaySummaryStore,
    previous_day_index: int,
    limit: int = 4,
) -> list[DaySuggestion]:
    """Suggestions for the new day, falling back to tag-based templates."""
    fallbacks = build_day_suggestion_fallbacks(
        await memory_store.get_all(), previous_day_index, limit
    )
    if adapter is None:
        return fallbacks

    previous = await summary_store.load(previous_day_index)
    try:
        result = await adapter.suggest_next_day(
            LlmDayKickoffInput(
                day_index=previous_day_index + 1,
                previous_summary=previous.summary_text if previous else "",
                player_insights=previous.player_insights if previous else [],
                max_suggestions=limit,
            )
        )
    except LlmError as e:
        logger.warning("Day kickoff suggestions failed: %s", e)
        return fallbacks

    if not result.suggestions:
        return fallbacks
    return [DaySuggestion(title=s.title, detail=s.detail) for s in result.suggestions]
