"""Ranking an NPC's memories and assembling its prompt context."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .models import FactType, MemoryFact, PlayerInsight
from .personality import NpcPersonalityProfile, PersonalityRegistry
from .text import humanize, timestamp_value, trim_sentence

if TYPE_CHECKING:
    from ..conversation_log import ConversationEntry, ConversationLog
    from ..logging import JSONLLogger
    from .profile import PlayerProfileStore
    from .store import MemoryStore

logger = logging.getLogger(__name__)

OFF_FOCUS_TYPE_MATCH = 0.3
GENERIC_FOCUS_QUESTION = "Want to pick up where we left off?"
PROACTIVE_INSTRUCTION = (
    "Be proactive: if there is an active task or thread, bring it up naturally "
    "and offer a next step."
)

_PLAYER_PREFIX = re.compile(r"^(?:the\s+)?player(?:'s)?\s+", re.IGNORECASE)
_INTENT_PREFIX = re.compile(
    r"^(?:wants you to|asked you to|wants to|needs to|has to|must|should|"
    r"plans to|hopes to|is trying to|aims to|is going to)\s+",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ActiveThread:
    id: str
    sequence: int
    label: str


@dataclass
class NpcMemoryContext:
    """Everything an NPC needs to remember the player in one turn."""

    npc_id: str
    day_index: int
    profile: NpcPersonalityProfile
    prompt: str
    top_memories: list[MemoryFact] = field(default_factory=list)
    linked_memories: list[MemoryFact] = field(default_factory=list)
    active_task: MemoryFact | None = None
    focus_question: str | None = None
    active_thread: ActiveThread | None = None
    player_insights: list[PlayerInsight] = field(default_factory=list)
    recent_conversation: list[ConversationEntry] = field(default_factory=list)


def rank_facts(
    facts: list[MemoryFact],
    profile: NpcPersonalityProfile,
    now: datetime | None = None,
) -> list[MemoryFact]:
    """Sort facts by the personality-weighted composite score.

    Recency decays linearly against the oldest fact in the set; facts of a
    focus type score a full type match, others 0.3. Ties go to the most
    recently mentioned.
    """
    if not facts:
        return []

    now_value = (now or datetime.now(timezone.utc)).timestamp()
    ages = {fact.id: max(0.0, now_value - timestamp_value(fact.last_mentioned_at)) for fact in facts}
    max_age = max(max(ages.values()), 1.0)
    weights = profile.weights

    def score(fact: MemoryFact) -> float:
        recency = 1 - min(1.0, ages[fact.id] / max_age)
        type_match = 1.0 if fact.type in profile.memory_types else OFF_FOCUS_TYPE_MATCH
        return (
            recency * weights.recency
            + fact.salience * weights.salience
            + type_match * weights.type
        )

    return sorted(
        facts,
        key=lambda fact: (score(fact), timestamp_value(fact.last_mentioned_at)),
        reverse=True,
    )


def collect_linked(
    top: list[MemoryFact],
    ranked: list[MemoryFact],
    limit: int,
) -> list[MemoryFact]:
    """Facts outside ``top`` linked to or from any top fact, in rank order."""
    top_ids = {fact.id for fact in top}
    targets = {link.target_id for fact in top for link in fact.links}

    linked: list[MemoryFact] = []
    for fact in ranked:
        if len(linked) >= limit:
            break
        if fact.id in top_ids:
            continue
        points_to_top = any(link.target_id in top_ids for link in fact.links)
        if fact.id in targets or points_to_top:
            linked.append(fact)
    return linked


def select_active_task(facts: list[MemoryFact]) -> MemoryFact | None:
    """Highest-salience open task; ties go to the most recent."""
    open_tasks = [fact for fact in facts if fact.is_open_task]
    if not open_tasks:
        return None
    return max(
        open_tasks,
        key=lambda fact: (fact.salience, timestamp_value(fact.last_mentioned_at)),
    )


def task_action(content: str) -> str:
    """The bare action of a task sentence ("finalize the playlist")."""
    action = _PLAYER_PREFIX.sub("", content.strip())
    action = _INTENT_PREFIX.sub("", action)
    return trim_sentence(action)


def build_focus_question(task: MemoryFact | None) -> str | None:
    if task is None:
        return None
    action = task_action(task.content)
    if not action:
        return GENERIC_FOCUS_QUESTION
    return f"Want to keep working on {action}?"


def build_active_thread(
    anchor_fact: MemoryFact | None,
    facts: list[MemoryFact],
) -> ActiveThread | None:
    if anchor_fact is None or not anchor_fact.thread_id:
        return None
    thread_id = anchor_fact.thread_id
    sequence = max(
        (fact.thread_sequence or 0 for fact in facts if fact.thread_id == thread_id),
        default=0,
    )
    key = thread_id.split(":", 1)[1] if ":" in thread_id else thread_id
    return ActiveThread(id=thread_id, sequence=max(sequence, 1), label=humanize(key))


def format_fact(fact: MemoryFact) -> str:
    details: list[str] = [fact.type.value]
    if fact.type is FactType.TASK and fact.status is not None:
        details.append(fact.status.value)
    if fact.mentions > 1:
        details.append(f"mentioned {fact.mentions}x")
    return f"- {fact.content} ({', '.join(details)})"


def build_prompt(
    npc_name: str,
    npc_role: str,
    profile: NpcPersonalityProfile,
    top_memories: list[MemoryFact],
    linked_memories: list[MemoryFact],
    insights: list[PlayerInsight],
    active_task: MemoryFact | None,
    active_thread: ActiveThread | None,
    focus_question: str | None,
    recent_conversation: list[ConversationEntry],
) -> str:
    """Assemble the personality prompt; empty sections are left out."""
    lines = [
        f"You are {npc_name}, the {npc_role}.",
        f"{profile.title}. Tone: {profile.tone}.",
        f"Focus: {profile.focus}.",
        profile.prompt_guidance,
        PROACTIVE_INSTRUCTION,
    ]

    if top_memories:
        lines.append("Key memories:\n" + "\n".join(format_fact(f) for f in top_memories))
    else:
        lines.append("Key memories: none yet.")

    if linked_memories:
        lines.append(
            "Linked memories:\n" + "\n".join(format_fact(f) for f in linked_memories)
        )

    if insights:
        lines.append(
            "Player insights:\n"
            + "\n".join(f"- {i.text} ({i.category.value})" for i in insights)
        )

    if active_task is not None:
        lines.append(f"Active task: {active_task.content}")

    if active_thread is not None:
        lines.append(f"Active thread: {active_thread.label} (step {active_thread.sequence})")

    if focus_question:
        lines.append(f"Focus question: {focus_question}")

    if recent_conversation:
        snippets = "\n".join(
            f"- {'Player' if entry.speaker == 'player' else npc_name}: {entry.text}"
            for entry in recent_conversation
        )
        lines.append(f"Recent conversation snippets:\n{snippets}")

    return "\n".join(lines)


class MemoryRetriever:
    """Builds ``NpcMemoryContext`` objects from the memory store.

    Retrieval only reads. An NPC with no memories still gets a usable
    prompt.
    """

    def __init__(
        self,
        store: MemoryStore,
        conversation_log: ConversationLog | None = None,
        profile_store: PlayerProfileStore | None = None,
        registry: PersonalityRegistry | None = None,
        memory_limit: int = 4,
        linked_limit: int = 3,
        recent_limit: int = 4,
        insight_limit: int = 3,
        event_log: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.conversation_log = conversation_log
        self.profile_store = profile_store
        self.registry = registry or PersonalityRegistry()
        self.memory_limit = memory_limit
        self.linked_limit = linked_limit
        self.recent_limit = recent_limit
        self.insight_limit = insight_limit
        self.event_log = event_log

    async def build_context(
        self,
        npc_id: str,
        npc_name: str,
        npc_role: str,
        memory_limit: int | None = None,
        now: datetime | None = None,
    ) -> NpcMemoryContext:
        """Rank the NPC's facts and assemble its memory context.

        Args:
            npc_id: NPC whose memories to read.
            npc_name: Display name used in the prompt.
            npc_role: Role used in the prompt and for personality fallback.
            memory_limit: Override for the number of top memories.
            now: Reference time for recency; defaults to the current time.
        """
        start = time.monotonic()
        profile = self.registry.get(npc_id, npc_role)
        ranked = rank_facts(await self.store.get_for_npc(npc_id), profile, now)

        limit = memory_limit if memory_limit is not None else self.memory_limit
        top_memories = ranked[: max(0, limit)]
        linked_memories = collect_linked(top_memories, ranked, self.linked_limit)
        active_task = select_active_task(ranked)
        focus_question = build_focus_question(active_task)
        thread_source = active_task or (top_memories[0] if top_memories else None)
        active_thread = build_active_thread(thread_source, ranked)

        insights: list[PlayerInsight] = []
        if self.profile_store is not None:
            insights = await self.profile_store.top_insights(self.insight_limit)

        recent: list[ConversationEntry] = []
        day_index = 1
        if self.conversation_log is not None:
            await self.conversation_log.initialize()
            recent = self.conversation_log.recent_for_npc(npc_id, self.recent_limit)
            day_index = self.conversation_log.active_day_index

        prompt = build_prompt(
            npc_name,
            npc_role,
            profile,
            top_memories,
            linked_memories,
            insights,
            active_task,
            active_thread,
            focus_question,
            recent,
        )

        logger.debug(
            "Memory context ready for %s (memories=%d, linked=%d)",
            npc_id,
            len(top_memories),
            len(linked_memories),
        )
        if self.event_log is not None:
            self.event_log.log_context(
                npc_id,
                len(top_memories),
                active_task=active_task.id if active_task else None,
                duration_ms=(time.monotonic() - start) * 1000,
            )

        return NpcMemoryContext(
            npc_id=npc_id,
            day_index=day_index,
            profile=profile,
            prompt=prompt,
            top_memories=top_memories,
            linked_memories=linked_memories,
            active_task=active_task,
            focus_question=focus_question,
            active_thread=active_thread,
            player_insights=insights,
            recent_conversation=recent,
        )
